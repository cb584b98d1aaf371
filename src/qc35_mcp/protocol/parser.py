"""Payload parsing and ANC level translation.

The ANC level has two encodings. Callers use the logical level
(0 = off, 1 = low, 2 = high); the wire uses 0 = off, 1 = high,
3 = low.
"""

from __future__ import annotations

from ..exceptions import InvalidAncLevel, ProtocolViolation
from .commands import Command, build_command

ANC_OFF = 0
ANC_LOW = 1
ANC_HIGH = 2

LEVEL_UNKNOWN = -1

ANC_LEVEL_NAMES = {ANC_OFF: "off", ANC_LOW: "low", ANC_HIGH: "high"}

_LOGICAL_TO_WIRE = {ANC_OFF: 0, ANC_LOW: 3, ANC_HIGH: 1}
_WIRE_TO_LOGICAL = {wire: logical for logical, wire in _LOGICAL_TO_WIRE.items()}

ANC_PAYLOAD_SIZE = 2
BATTERY_PAYLOAD_SIZE = 1


def encode_anc_level(level: int) -> int:
    """Translate a logical ANC level to its wire byte.

    Raises:
        InvalidAncLevel: If ``level`` is not 0, 1 or 2.
    """
    if isinstance(level, bool):
        raise InvalidAncLevel(f"ANC level must be 0-2, got {level!r}")
    try:
        return _LOGICAL_TO_WIRE[level]
    except (KeyError, TypeError):
        raise InvalidAncLevel(f"ANC level must be 0-2, got {level!r}") from None


def decode_anc_level(wire: int) -> int:
    """Translate a wire ANC byte to the logical level.

    Raises:
        ProtocolViolation: If the device sent an undefined level.
    """
    try:
        return _WIRE_TO_LOGICAL[wire]
    except KeyError:
        raise ProtocolViolation(f"Received invalid ANC level: {wire}") from None


def parse_anc_payload(payload: bytes) -> int:
    """Parse an AncLevel payload into the logical level.

    The first byte is the wire level; the second is reserved.
    """
    if len(payload) != ANC_PAYLOAD_SIZE:
        raise ProtocolViolation(
            f"ANC payload must be {ANC_PAYLOAD_SIZE} bytes, got {len(payload)}"
        )
    return decode_anc_level(payload[0])


def parse_battery_payload(payload: bytes) -> int:
    """Parse a BatteryLevel payload, returning -1 if it is malformed."""
    if len(payload) != BATTERY_PAYLOAD_SIZE:
        return LEVEL_UNKNOWN
    level = payload[0]
    if level > 100:
        return LEVEL_UNKNOWN
    return level


def build_set_anc(level: int) -> bytes:
    """Build a SetAnc frame for a logical ANC level."""
    return build_command(Command.SET_ANC, bytes([encode_anc_level(level)]))
