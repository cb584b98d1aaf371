"""Background loop that drains inbound frames from the transport."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Protocol

from ..exceptions import MalformedHeader, ProtocolViolation, TransportUnavailable
from ..protocol.commands import Message, classify_header, find_header
from ..protocol.framing import HEADER_SIZE, parse_frame, payload_length
from ..transport.rfcomm_connection import READ_TIMEOUT_MS

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0


class StreamReader(Protocol):
    """The part of a transport the read loop needs."""

    @property
    def connected(self) -> bool: ...

    def data_available(self) -> bool: ...

    def read(self, size: int, timeout_ms: int = ...) -> bytes: ...


class LoopState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


class ReadLoop:
    """Polls the transport and hands each classified frame to ``on_frame``.

    Reads are bounded by ``read_timeout_ms``: a header or payload that
    never fully arrives is dropped and the stream is resynchronised on
    the next known message prefix instead of blocking forever.

    Args:
        transport: Stream to read from.
        on_frame: Called as ``on_frame(message, payload)`` for every
            recognised frame.
        is_connected: Extra liveness check supplied by the owning client.
        on_connection_lost: Called once if the loop ends because the
            transport dropped rather than because ``stop()`` was called.
    """

    def __init__(
        self,
        transport: StreamReader,
        on_frame: Callable[[Message, bytes], None],
        is_connected: Callable[[], bool] | None = None,
        on_connection_lost: Callable[[], None] | None = None,
        poll_interval: float = POLL_INTERVAL,
        read_timeout_ms: int = READ_TIMEOUT_MS,
        name: str = "qc35-read-loop",
    ) -> None:
        self._transport = transport
        self._on_frame = on_frame
        self._is_connected = is_connected or (lambda: True)
        self._on_connection_lost = on_connection_lost
        self._poll_interval = poll_interval
        self._read_timeout_ms = read_timeout_ms
        self._stop_event = threading.Event()
        self._pushback = bytearray()
        self._thread: threading.Thread | None = None
        self._name = name
        self.state = LoopState.IDLE

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Request the loop to end and wait for it unless called from inside it."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self.state = LoopState.STOPPED

    def _alive(self) -> bool:
        return (
            not self._stop_event.is_set()
            and self._transport.connected
            and self._is_connected()
        )

    def run(self) -> None:
        """Poll until stopped or disconnected."""
        self.state = LoopState.POLLING
        try:
            while self._alive():
                self.drain()
                self._stop_event.wait(self._poll_interval)
        except (TransportUnavailable, OSError) as e:
            logger.warning("Read failed: %s", e)
        finally:
            self.state = LoopState.STOPPED

        if not self._stop_event.is_set():
            logger.info("Read loop ended: transport disconnected")
            if self._on_connection_lost is not None:
                self._on_connection_lost()

    def drain(self) -> int:
        """Process every frame that is currently buffered.

        Returns:
            The number of frames handed to ``on_frame``.
        """
        handled = 0
        while self._alive() and (self._pushback or self._transport.data_available()):
            message, payload = self._read_frame()
            if message is Message.UNKNOWN:
                continue
            try:
                self._on_frame(message, payload)
            except ProtocolViolation as e:
                logger.warning("Ignoring %s frame: %s", message.name, e)
                continue
            handled += 1
        return handled

    def _read(self, size: int) -> bytes:
        data = bytes(self._pushback[:size])
        del self._pushback[:size]
        if len(data) < size:
            data += self._transport.read(size - len(data), self._read_timeout_ms)
        return data

    def _read_frame(self) -> tuple[Message, bytes]:
        header = self._read(HEADER_SIZE)
        try:
            length = payload_length(header)
        except MalformedHeader as e:
            logger.warning("Skipping frame: %s", e)
            self._resync(header)
            return Message.UNKNOWN, b""

        message = classify_header(header)
        payload = self._read(length) if length else b""
        if len(payload) < length:
            logger.warning(
                "Timed out reading %s payload (%d of %d bytes)",
                message.name,
                len(payload),
                length,
            )
            self._resync(header + payload)
            return Message.UNKNOWN, b""

        frame = parse_frame(header + payload)
        if message is Message.UNKNOWN:
            logger.debug("Skipping unknown %r", frame)
        return message, frame.payload

    def _resync(self, data: bytes) -> None:
        # Skip the first byte so the same truncated header is not retried
        offset = find_header(data, start=1)
        if offset is not None:
            self._pushback[:0] = data[offset:]
            logger.debug("Resynchronised at offset %d", offset)
