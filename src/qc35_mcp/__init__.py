"""Headset control over a Bluetooth RFCOMM serial channel."""

__version__ = "0.1.0"

from .client import ClientSettings, CommandGate, ConnectionState, DeviceRegistry, ProtocolClient
from .exceptions import (
    HeadsetError,
    InvalidAncLevel,
    MalformedHeader,
    PayloadTooLarge,
    ProtocolViolation,
    TransportUnavailable,
)
from .models import DeviceEvent, DeviceSnapshot, DeviceState
from .protocol import Command, Message
from .protocol.parser import ANC_HIGH, ANC_LOW, ANC_OFF

__all__ = [
    "ProtocolClient",
    "DeviceRegistry",
    "CommandGate",
    "ClientSettings",
    "ConnectionState",
    "DeviceEvent",
    "DeviceSnapshot",
    "DeviceState",
    "Command",
    "Message",
    "ANC_OFF",
    "ANC_LOW",
    "ANC_HIGH",
    "HeadsetError",
    "TransportUnavailable",
    "PayloadTooLarge",
    "InvalidAncLevel",
    "ProtocolViolation",
    "MalformedHeader",
]
