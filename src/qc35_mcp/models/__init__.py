"""Data models for device state."""

from .state import DeviceEvent, DeviceSnapshot, DeviceState
