"""Observed device state and the read-only views handed to listeners."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from ..protocol.commands import Message
from ..protocol.parser import ANC_LEVEL_NAMES, LEVEL_UNKNOWN


@dataclass
class DeviceState:
    """Values last reported by the headset.

    ``anc_level`` is always the logical level (0 off, 1 low, 2 high) or
    -1 when unknown. ``battery_level`` is 0-100 or -1 when unknown.
    """

    soft_connected: bool = False
    anc_level: int = LEVEL_UNKNOWN
    battery_level: int = LEVEL_UNKNOWN

    def reset_connection(self) -> None:
        """Forget the protocol-level handshake; ANC and battery are kept."""
        self.soft_connected = False


@dataclass(frozen=True)
class DeviceSnapshot:
    """Immutable copy of a device's state at one point in time."""

    device_id: str
    name: str
    address: str
    connected: bool
    soft_connected: bool
    anc_level: int
    battery_level: int

    @property
    def anc_mode(self) -> str:
        return ANC_LEVEL_NAMES.get(self.anc_level, "unknown")

    def to_dict(self) -> dict:
        result = asdict(self)
        result["anc_mode"] = self.anc_mode
        return result


@dataclass(frozen=True)
class DeviceEvent:
    """A message emitted to subscribers together with the resulting state."""

    message: Message
    snapshot: DeviceSnapshot
