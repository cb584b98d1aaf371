"""Protocol client for one headset.

Owns the transport, the read loop and the command gate for a single
device, and fans decoded messages out to subscribers.

Usage::

    client = ProtocolClient("4C:87:5D:00:11:22", name="QC35 II")
    client.subscribe(lambda event: print(event.message, event.snapshot))
    client.connect()
    client.wait_connected(5.0)
    client.set_anc_level(ANC_LOW)
    client.disconnect()
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from ..exceptions import HeadsetError, TransportUnavailable
from ..models.state import DeviceEvent, DeviceSnapshot, DeviceState
from ..protocol.commands import Command, Message, build_command
from ..protocol.parser import (
    LEVEL_UNKNOWN,
    encode_anc_level,
    parse_anc_payload,
    parse_battery_payload,
)
from ..transport.rfcomm_connection import RFCOMM_CHANNEL, RFCOMMConnection
from .gate import DEBOUNCE_MS, CommandGate
from .read_loop import POLL_INTERVAL, READ_TIMEOUT_MS, ReadLoop

logger = logging.getLogger(__name__)

LOW_BATTERY_RESET = 100

EventCallback = Callable[[DeviceEvent], None]
BatteryCallback = Callable[[str, int], None]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class ClientSettings:
    """Timing knobs for one client."""

    channel: int = RFCOMM_CHANNEL
    debounce_ms: int = DEBOUNCE_MS
    poll_interval: float = POLL_INTERVAL
    read_timeout_ms: int = READ_TIMEOUT_MS


class Subscription:
    """Handle returned by ``subscribe``; removes exactly one registration."""

    def __init__(self, registry: dict[int, Any], lock: threading.Lock, key: int) -> None:
        self._registry = registry
        self._lock = lock
        self._key = key

    def unsubscribe(self) -> None:
        with self._lock:
            self._registry.pop(self._key, None)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.unsubscribe()


class ProtocolClient:
    """Connection state machine and command path for one headset.

    Args:
        address: Bluetooth address of the headset.
        name: Display name; defaults to the address.
        device_id: Identity used by the registry; defaults to the address.
        transport_factory: Called as ``factory(address, channel)`` to build
            the stream transport.
        settings: Timing settings.
        clock: Millisecond monotonic clock for the command gate.
        timer_factory: Timer class for deferred sends.
    """

    def __init__(
        self,
        address: str,
        name: str | None = None,
        device_id: str | None = None,
        transport_factory: Callable[[str, int], Any] = RFCOMMConnection,
        settings: ClientSettings | None = None,
        clock: Callable[[], float] | None = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ) -> None:
        self._address = address
        self._name = name or address
        self._device_id = device_id or address
        self._transport_factory = transport_factory
        self._settings = settings or ClientSettings()

        self._lock = threading.RLock()
        self._conn_state = ConnectionState.DISCONNECTED
        self._transport: Any = None
        self._read_loop: ReadLoop | None = None
        self._state = DeviceState()
        self._anc_level_sent = LEVEL_UNKNOWN
        gate_kwargs: dict[str, Any] = {"timer_factory": timer_factory}
        if clock is not None:
            gate_kwargs["clock"] = clock
        self._gate = CommandGate(
            self._send, delay_ms=self._settings.debounce_ms, **gate_kwargs
        )

        self._observer_lock = threading.Lock()
        self._keys = itertools.count()
        self._subscribers: dict[int, EventCallback] = {}
        self._battery_listeners: dict[int, BatteryCallback] = {}

        self.last_low_battery_notification = LOW_BATTERY_RESET
        self.last_error: Exception | None = None
        self._connected_event = threading.Event()

    # ─── PROPERTIES ──────────────────────────────────────────────────

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def address(self) -> str:
        return self._address

    @property
    def state(self) -> ConnectionState:
        return self._conn_state

    @property
    def connected(self) -> bool:
        transport = self._transport
        return (
            self._conn_state is ConnectionState.CONNECTED
            and transport is not None
            and transport.connected
        )

    @property
    def soft_connected(self) -> bool:
        return self._state.soft_connected

    @property
    def anc_level(self) -> int:
        return self._state.anc_level

    @property
    def battery_level(self) -> int:
        return self._state.battery_level

    def snapshot(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            device_id=self._device_id,
            name=self._name,
            address=self._address,
            connected=self.connected,
            soft_connected=self._state.soft_connected,
            anc_level=self._state.anc_level,
            battery_level=self._state.battery_level,
        )

    # ─── CONNECTION ──────────────────────────────────────────────────

    def connect(self) -> threading.Thread | None:
        """Open the link in the background.

        Returns:
            The worker thread, or None if a connection is already open or
            being opened.
        """
        with self._lock:
            if self._conn_state is not ConnectionState.DISCONNECTED:
                return None
            self._conn_state = ConnectionState.CONNECTING
            self._connected_event.clear()
            self.last_error = None

        worker = threading.Thread(
            target=self._connect_worker,
            name=f"qc35-connect-{self._device_id}",
            daemon=True,
        )
        worker.start()
        return worker

    def wait_connected(self, timeout: float | None = None) -> bool:
        """Block until a connection attempt finishes; True if it succeeded."""
        thread_done = self._connected_event.wait(timeout)
        return thread_done and self.connected

    def _connect_worker(self) -> None:
        try:
            transport = self._transport_factory(self._address, self._settings.channel)
            transport.open()
        except Exception as e:
            logger.error("Failed to connect to %s: %s", self._name, e)
            with self._lock:
                self.last_error = e
                if self._conn_state is ConnectionState.CONNECTING:
                    self._conn_state = ConnectionState.DISCONNECTED
            self._connected_event.set()
            return

        with self._lock:
            if self._conn_state is not ConnectionState.CONNECTING:
                # disconnect() won the race
                transport.close()
                self._connected_event.set()
                return
            self._transport = transport
            self._conn_state = ConnectionState.CONNECTED

            try:
                self._gate.submit(Command.CONNECT, force=True)
                self._gate.submit(Command.QUERY_STATUS, force=True)
                self._gate.submit(Command.QUERY_BATTERY, force=True)
            except TransportUnavailable as e:
                logger.warning("Link to %s dropped during handshake: %s", self._name, e)

            self._read_loop = ReadLoop(
                transport,
                self._handle_frame,
                is_connected=lambda: self._conn_state is ConnectionState.CONNECTED,
                on_connection_lost=self._connection_lost,
                poll_interval=self._settings.poll_interval,
                read_timeout_ms=self._settings.read_timeout_ms,
                name=f"qc35-read-{self._device_id}",
            )
            self._read_loop.start()

        logger.info("Connected to %s", self._name)
        self._connected_event.set()

    def disconnect(self) -> None:
        """Tear down the link; safe to call repeatedly or before connecting."""
        with self._lock:
            previous = self._conn_state
            read_loop, self._read_loop = self._read_loop, None
            transport, self._transport = self._transport, None
            self._conn_state = ConnectionState.DISCONNECTED

        # Joined outside the lock: the loop may itself be calling disconnect()
        if read_loop is not None:
            read_loop.stop(timeout=self._settings.poll_interval + 1)
        self._gate.cancel()
        if transport is not None:
            transport.close()

        self._state.reset_connection()
        self.last_low_battery_notification = LOW_BATTERY_RESET
        self._anc_level_sent = LEVEL_UNKNOWN
        self._connected_event.set()

        if previous is not ConnectionState.DISCONNECTED:
            logger.info("Disconnected from %s", self._name)
            self._emit(Message.DISCONNECT)

    def connection_status_changed(self, connected: bool) -> None:
        """React to the OS reporting the radio link up or down."""
        if connected:
            if self._transport is None:
                self.connect()
        else:
            self.disconnect()

    def _connection_lost(self) -> None:
        logger.warning("Lost connection to %s", self._name)
        self.disconnect()

    # ─── COMMANDS ────────────────────────────────────────────────────

    def _send(self, command: Command, payload: bytes = b"") -> None:
        transport = self._transport
        if transport is None or not transport.connected:
            raise TransportUnavailable(f"{self._name} is not connected")
        logger.debug("Sending %s to %s", command.name, self._name)
        transport.write(build_command(command, payload))

    def set_anc_level(self, level: int) -> bool:
        """Request a logical ANC level (0 off, 1 low, 2 high).

        Returns:
            True if a SetAnc command was submitted, False if the client is
            not connected or the level is unchanged.

        Raises:
            InvalidAncLevel: If ``level`` is out of range.
            TransportUnavailable: If the link dropped before the command
                could be written.
        """
        wire = encode_anc_level(level)
        if not self.connected:
            return False
        if wire == self._anc_level_sent:
            return False
        previous, self._anc_level_sent = self._anc_level_sent, wire
        try:
            self._gate.submit(Command.SET_ANC, bytes([wire]))
        except TransportUnavailable:
            self._anc_level_sent = previous
            raise
        return True

    def query_status(self) -> None:
        """Ask the headset to report its ANC level."""
        self._gate.submit(Command.QUERY_STATUS, force=True)

    def query_battery(self) -> None:
        """Ask the headset to report its battery level."""
        self._gate.submit(Command.QUERY_BATTERY, force=True)

    # ─── INBOUND ─────────────────────────────────────────────────────

    def _handle_frame(self, message: Message, payload: bytes) -> None:
        if message is Message.CONNECT_ACK:
            self._state.soft_connected = True
        elif message is Message.ANC_LEVEL:
            try:
                self._state.anc_level = parse_anc_payload(payload)
            except HeadsetError as e:
                logger.warning("%s sent a bad ANC level: %s", self._name, e)
                self._state.anc_level = LEVEL_UNKNOWN
        elif message is Message.BATTERY_LEVEL:
            level = parse_battery_payload(payload)
            if level == LEVEL_UNKNOWN:
                logger.warning(
                    "%s sent a malformed battery payload: %s",
                    self._name,
                    payload.hex(" ") or "(empty)",
                )
            else:
                self._state.battery_level = level
                self._notify_battery(level)
        else:
            return
        self._emit(message)

    # ─── OBSERVERS ───────────────────────────────────────────────────

    def subscribe(self, callback: EventCallback) -> Subscription:
        """Register a callback for every emitted ``DeviceEvent``."""
        return self._register(self._subscribers, callback)

    def add_battery_listener(self, callback: BatteryCallback) -> Subscription:
        """Register a callback for battery updates as ``(device_id, level)``."""
        return self._register(self._battery_listeners, callback)

    def _register(self, registry: dict[int, Any], callback: Callable) -> Subscription:
        with self._observer_lock:
            key = next(self._keys)
            registry[key] = callback
        return Subscription(registry, self._observer_lock, key)

    def _emit(self, message: Message) -> None:
        event = DeviceEvent(message=message, snapshot=self.snapshot())
        with self._observer_lock:
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed handling %s", message.name)

    def _notify_battery(self, level: int) -> None:
        with self._observer_lock:
            callbacks = list(self._battery_listeners.values())
        for callback in callbacks:
            try:
                callback(self._device_id, level)
            except Exception:
                logger.exception("Battery listener failed")

    def __repr__(self) -> str:
        return (
            f"ProtocolClient(device_id={self._device_id!r}, "
            f"state={self._conn_state.value})"
        )
