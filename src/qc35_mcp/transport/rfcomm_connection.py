"""RFCOMM stream connection to the headset.

Uses the kernel's Bluetooth socket support (``AF_BLUETOOTH`` with
``BTPROTO_RFCOMM``), so the link must already be paired at the OS level.
The headset exposes its control protocol on RFCOMM channel 8.
"""

from __future__ import annotations

import logging
import select
import socket
import threading
import time

from ..exceptions import RFCOMMError, TransportUnavailable

logger = logging.getLogger(__name__)

RFCOMM_CHANNEL = 8
CONNECT_TIMEOUT = 5.0
READ_TIMEOUT_MS = 1000


def _ensure_support() -> None:
    if not hasattr(socket, "AF_BLUETOOTH") or not hasattr(socket, "BTPROTO_RFCOMM"):
        raise RFCOMMError(
            "Python bluetooth socket support is unavailable; ensure BlueZ headers are present"
        )


class RFCOMMConnection:
    """Manages the RFCOMM byte stream to one headset.

    Usage::

        conn = RFCOMMConnection("4C:87:5D:00:11:22")
        conn.open()
        conn.write(frame_bytes)
        if conn.data_available():
            header = conn.read(4)
        conn.close()

    Writes and reads are each serialised by their own lock, so whole
    frames never interleave within one direction.
    """

    def __init__(
        self,
        address: str,
        channel: int = RFCOMM_CHANNEL,
        connect_timeout: float = CONNECT_TIMEOUT,
    ) -> None:
        if channel <= 0 or channel > 30:
            raise RFCOMMError("RFCOMM channel must be between 1 and 30")
        self._address = address
        self._channel = channel
        self._connect_timeout = connect_timeout
        self._sock: socket.socket | None = None
        self._connected = False
        self._write_lock = threading.Lock()
        self._read_lock = threading.Lock()

    @property
    def address(self) -> str:
        return self._address

    @property
    def channel(self) -> int:
        return self._channel

    @property
    def connected(self) -> bool:
        return self._connected

    def open(self) -> None:
        """Open the RFCOMM channel.

        Raises:
            RFCOMMError: If Bluetooth sockets are unsupported or the
                connection cannot be established.
        """
        _ensure_support()
        try:
            sock = socket.socket(
                socket.AF_BLUETOOTH, socket.SOCK_STREAM, socket.BTPROTO_RFCOMM
            )
        except OSError as e:
            raise RFCOMMError(f"Failed to allocate RFCOMM socket: {e}") from e

        try:
            sock.settimeout(max(0.2, float(self._connect_timeout)))
            sock.connect((self._address, self._channel))
        except OSError as e:
            sock.close()
            raise RFCOMMError(
                f"Could not connect to {self._address} on channel {self._channel}: {e}"
            ) from e

        self._sock = sock
        self._connected = True
        logger.info("Connected to %s (channel %d)", self._address, self._channel)

    def close(self) -> None:
        """Close the RFCOMM channel."""
        if self._sock is None:
            self._connected = False
            return

        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # already reset by the peer
        try:
            self._sock.close()
        except OSError as e:
            logger.warning("Error closing RFCOMM socket: %s", e)
        finally:
            self._sock = None
            self._connected = False
            logger.info("Disconnected from %s", self._address)

    def write(self, data: bytes) -> int:
        """Write one complete frame.

        A failed write is logged and reported as 0 bytes written; the
        next command re-states the caller's intent anyway.

        Raises:
            TransportUnavailable: If not connected.
        """
        sock = self._sock
        if not self._connected or sock is None:
            raise TransportUnavailable("Not connected to device")

        with self._write_lock:
            try:
                sock.sendall(data)
            except OSError as e:
                logger.warning("Write of %d bytes failed: %s", len(data), e)
                return 0
        logger.debug("TX %s", data.hex(" "))
        return len(data)

    def data_available(self) -> bool:
        """Return True if inbound bytes can be read without blocking."""
        sock = self._sock
        if not self._connected or sock is None:
            return False
        try:
            readable, _, _ = select.select([sock], [], [], 0)
        except (OSError, ValueError) as e:
            logger.debug("Poll error: %s", e)
            return False
        return bool(readable)

    def read(self, size: int, timeout_ms: int = READ_TIMEOUT_MS) -> bytes:
        """Read up to ``size`` bytes, waiting at most ``timeout_ms`` in total.

        Returns:
            The bytes read; fewer than ``size`` if the wait timed out or
            the peer closed the stream.

        Raises:
            TransportUnavailable: If not connected.
        """
        sock = self._sock
        if not self._connected or sock is None:
            raise TransportUnavailable("Not connected to device")

        deadline = time.monotonic() + timeout_ms / 1000
        chunks = b""
        with self._read_lock:
            while len(chunks) < size:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                try:
                    readable, _, _ = select.select([sock], [], [], remaining)
                    if not readable:
                        break
                    chunk = sock.recv(size - len(chunks))
                except socket.timeout:
                    break
                except (OSError, ValueError) as e:
                    logger.warning("Read error: %s", e)
                    self._connected = False
                    break
                if not chunk:
                    logger.info("Stream closed by %s", self._address)
                    self._connected = False
                    break
                chunks += chunk
        if chunks:
            logger.debug("RX %s", chunks.hex(" "))
        return chunks
