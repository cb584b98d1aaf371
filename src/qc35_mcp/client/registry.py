"""Owning registry of protocol clients keyed by device identity."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterator

from .protocol_client import BatteryCallback, ProtocolClient

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Creates one ``ProtocolClient`` per device and tears it down explicitly.

    Devices are added when discovery reports them and removed when they
    disappear; ``close()`` disconnects everything on shutdown.

    Args:
        battery_listener: Wired into every client the registry creates.
        client_factory: Builds clients; receives the ``add()`` arguments
            plus ``client_kwargs``.
    """

    def __init__(
        self,
        battery_listener: BatteryCallback | None = None,
        client_factory: Callable[..., ProtocolClient] = ProtocolClient,
        **client_kwargs: Any,
    ) -> None:
        self._battery_listener = battery_listener
        self._client_factory = client_factory
        self._client_kwargs = client_kwargs
        self._clients: dict[str, ProtocolClient] = {}
        self._lock = threading.Lock()

    def add(
        self, address: str, name: str | None = None, device_id: str | None = None
    ) -> ProtocolClient:
        """Return the client for a device, creating it on first sight."""
        key = device_id or address
        with self._lock:
            client = self._clients.get(key)
            if client is not None:
                return client
            client = self._client_factory(
                address, name=name, device_id=key, **self._client_kwargs
            )
            if self._battery_listener is not None:
                client.add_battery_listener(self._battery_listener)
            self._clients[key] = client
        logger.info("Registered %s (%s)", client.name, key)
        return client

    def get(self, device_id: str) -> ProtocolClient | None:
        with self._lock:
            return self._clients.get(device_id)

    def remove(self, device_id: str) -> bool:
        """Disconnect and forget a device; False if it was not registered."""
        with self._lock:
            client = self._clients.pop(device_id, None)
        if client is None:
            return False
        client.disconnect()
        logger.info("Removed %s (%s)", client.name, device_id)
        return True

    def connection_status_changed(self, device_id: str, connected: bool) -> None:
        """Forward an OS-level link change to the device's client."""
        client = self.get(device_id)
        if client is None:
            logger.debug("Ignoring status change for unknown device %s", device_id)
            return
        client.connection_status_changed(connected)

    def close(self) -> None:
        """Disconnect and forget every device."""
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.disconnect()

    def __iter__(self) -> Iterator[ProtocolClient]:
        with self._lock:
            return iter(list(self._clients.values()))

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._clients

    def __enter__(self) -> DeviceRegistry:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
