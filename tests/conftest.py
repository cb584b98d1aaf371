"""Shared fakes for transport, clock and timer."""

from __future__ import annotations

import pytest

from qc35_mcp.exceptions import RFCOMMError, TransportUnavailable


class FakeTransport:
    """In-memory stand-in for RFCOMMConnection."""

    def __init__(self, address: str = "4C:87:5D:00:11:22", channel: int = 8) -> None:
        self.address = address
        self.channel = channel
        self.connected = False
        self.closed = False
        self.open_error: Exception | None = None
        self.read_error: Exception | None = None
        self.write_error: Exception | None = None
        self.inbound = bytearray()
        self.written: list[bytes] = []

    def feed(self, data: bytes) -> None:
        self.inbound += data

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.connected = True

    def close(self) -> None:
        self.connected = False
        self.closed = True

    def write(self, data: bytes) -> int:
        if not self.connected:
            raise TransportUnavailable("Not connected to device")
        if self.write_error is not None:
            raise self.write_error
        self.written.append(bytes(data))
        return len(data)

    def data_available(self) -> bool:
        return bool(self.inbound)

    def read(self, size: int, timeout_ms: int = 1000) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        data = bytes(self.inbound[:size])
        del self.inbound[:size]
        return data


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class FakeTimer:
    """threading.Timer replacement that only fires when told to."""

    created: list[FakeTimer]

    def __init__(self, interval, function, args=None, kwargs=None) -> None:
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> list[FakeTimer]:
    FakeTimer.created = []
    return FakeTimer.created


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def transport_factory(transport):
    """Factory handing out the shared ``transport`` fixture."""

    def factory(address: str, channel: int) -> FakeTransport:
        transport.address = address
        transport.channel = channel
        return transport

    return factory


@pytest.fixture
def failing_factory():
    def factory(address: str, channel: int) -> FakeTransport:
        t = FakeTransport(address, channel)
        t.open_error = RFCOMMError("Host is down")
        return t

    return factory
