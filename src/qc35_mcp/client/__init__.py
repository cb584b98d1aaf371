"""Client layer: command gate, read loop, protocol client and device registry."""

from .gate import CommandGate, PendingRequest
from .read_loop import ReadLoop
from .protocol_client import ClientSettings, ConnectionState, ProtocolClient, Subscription
from .registry import DeviceRegistry
