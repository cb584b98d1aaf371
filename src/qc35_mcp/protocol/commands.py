"""Command opcodes, inbound message prefixes and header classification.

Host-to-device commands and device-to-host messages share the same
frame layout but use different 3-byte opcodes. Inbound frames are
classified by comparing their first three bytes against the known
message prefixes.
"""

from __future__ import annotations

from enum import Enum

from .framing import OPCODE_SIZE, encode_frame


class Command(Enum):
    """Host-to-device commands; the value is the 3-byte opcode."""

    CONNECT = b"\x00\x01\x01"
    QUERY_STATUS = b"\x01\x01\x05"
    QUERY_BATTERY = b"\x02\x02\x01"
    SET_ANC = b"\x01\x06\x02"

    @property
    def opcode(self) -> bytes:
        return self.value


class Message(Enum):
    """Device-to-host messages, plus the client's synthetic disconnect."""

    CONNECT_ACK = "connect_ack"
    ANC_LEVEL = "anc_level"
    BATTERY_LEVEL = "battery_level"
    UNKNOWN = "unknown"
    DISCONNECT = "disconnect"

    @property
    def prefix(self) -> bytes | None:
        """Wire prefix for this message, or None if it never appears on the wire."""
        return MESSAGE_PREFIXES.get(self)


# Prefixes must stay distinct so classification is order independent
MESSAGE_PREFIXES: dict[Message, bytes] = {
    Message.CONNECT_ACK: b"\x00\x01\x03",
    Message.ANC_LEVEL: b"\x01\x06\x03",
    Message.BATTERY_LEVEL: b"\x02\x02\x03",
}

_PREFIX_LOOKUP: dict[bytes, Message] = {
    prefix: message for message, prefix in MESSAGE_PREFIXES.items()
}

if len(_PREFIX_LOOKUP) != len(MESSAGE_PREFIXES):
    raise RuntimeError("Message prefixes must be distinct")


def build_command(command: Command, payload: bytes = b"") -> bytes:
    """Build a single wire frame for a command."""
    return encode_frame(command.opcode, payload)


def classify_header(header: bytes) -> Message:
    """Classify an inbound header by its 3-byte prefix.

    Returns ``Message.UNKNOWN`` when no prefix matches or when fewer than
    three bytes are available.
    """
    if len(header) < OPCODE_SIZE:
        return Message.UNKNOWN
    return _PREFIX_LOOKUP.get(bytes(header[:OPCODE_SIZE]), Message.UNKNOWN)


def find_header(data: bytes, start: int = 0) -> int | None:
    """Return the offset of the first known message prefix at or after ``start``.

    Used to resynchronise the stream after a truncated frame.
    """
    for offset in range(max(0, start), len(data) - OPCODE_SIZE + 1):
        if bytes(data[offset : offset + OPCODE_SIZE]) in _PREFIX_LOOKUP:
            return offset
    return None
