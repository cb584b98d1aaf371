"""Exceptions raised by the headset protocol client."""

from __future__ import annotations


class HeadsetError(Exception):
    """Base class for headset protocol errors."""


class TransportUnavailable(HeadsetError, ConnectionError):
    """A write was attempted while the RFCOMM link is not connected."""


class RFCOMMError(TransportUnavailable):
    """The RFCOMM socket could not be created or connected."""


class PayloadTooLarge(HeadsetError, ValueError):
    """A command payload does not fit the 1-byte length field."""


class InvalidAncLevel(HeadsetError, ValueError):
    """A logical ANC level outside 0-2 was requested."""


class ProtocolViolation(HeadsetError):
    """The device sent a frame or value the protocol does not define."""


class MalformedHeader(ProtocolViolation):
    """Fewer header bytes than required were available."""
