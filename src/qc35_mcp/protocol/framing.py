"""Frame builder and parser for the headset's RFCOMM serial protocol.

Frame layout::

    +-----------+---------+--------------------+
    |  Opcode   | Length  |      Payload       |
    |  3 bytes  | 1 byte  |  0..255 bytes      |
    +-----------+---------+--------------------+

- Opcode: fixed per command (host to device) or message (device to host)
- Length: number of payload bytes that follow
- There is no checksum and no preamble; frames are delimited only by
  the length byte, so a short read leaves the stream misaligned.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..exceptions import MalformedHeader, PayloadTooLarge

OPCODE_SIZE = 3
HEADER_SIZE = 4  # opcode + length byte
MAX_PAYLOAD = 0xFF


@dataclass
class Frame:
    """A parsed protocol frame."""

    opcode: bytes
    payload: bytes

    def __repr__(self) -> str:
        return (
            f"Frame(opcode={self.opcode.hex(' ')}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


def encode_frame(opcode: bytes, payload: bytes = b"") -> bytes:
    """Build a single wire frame.

    Args:
        opcode: 3-byte command opcode.
        payload: Command-specific payload bytes.

    Returns:
        ``opcode + length + payload`` ready to write to the stream.

    Raises:
        PayloadTooLarge: If the payload does not fit the length byte.
    """
    if len(opcode) != OPCODE_SIZE:
        raise ValueError(f"Opcode must be {OPCODE_SIZE} bytes, got {len(opcode)}")
    if len(payload) > MAX_PAYLOAD:
        raise PayloadTooLarge(
            f"Payload must be at most {MAX_PAYLOAD} bytes, got {len(payload)}"
        )
    return bytes(opcode) + bytes([len(payload)]) + bytes(payload)


def payload_length(header: bytes) -> int:
    """Return the payload length announced by a 4-byte header.

    Raises:
        MalformedHeader: If fewer than 4 header bytes are available.
    """
    if len(header) < HEADER_SIZE:
        raise MalformedHeader(
            f"Header must be {HEADER_SIZE} bytes, got {len(header)}"
        )
    return header[OPCODE_SIZE]


def parse_frame(data: bytes) -> Frame | None:
    """Parse one complete frame from the start of ``data``.

    Returns:
        A ``Frame``, or ``None`` if the buffer holds less than a header
        or less than the declared payload.
    """
    if len(data) < HEADER_SIZE:
        return None
    length = payload_length(data)
    if len(data) < HEADER_SIZE + length:
        return None
    return Frame(
        opcode=bytes(data[:OPCODE_SIZE]),
        payload=bytes(data[HEADER_SIZE : HEADER_SIZE + length]),
    )
