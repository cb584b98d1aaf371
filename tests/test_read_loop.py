"""Tests for the inbound read loop."""

import threading

from qc35_mcp.client.read_loop import LoopState, ReadLoop
from qc35_mcp.exceptions import ProtocolViolation, TransportUnavailable
from qc35_mcp.protocol.commands import Message

CONNECT_ACK = bytes([0x00, 0x01, 0x03, 0x00])
BATTERY_60 = bytes([0x02, 0x02, 0x03, 0x01, 0x3C])
ANC_LOW = bytes([0x01, 0x06, 0x03, 0x02, 0x03, 0x00])


def _make_loop(transport, frames, **kwargs):
    transport.connected = True
    return ReadLoop(
        transport,
        lambda message, payload: frames.append((message, payload)),
        **kwargs,
    )


def test_drain_dispatches_known_frames(transport):
    frames = []
    loop = _make_loop(transport, frames)
    transport.feed(CONNECT_ACK + BATTERY_60 + ANC_LOW)

    assert loop.drain() == 3
    assert frames == [
        (Message.CONNECT_ACK, b""),
        (Message.BATTERY_LEVEL, b"\x3c"),
        (Message.ANC_LEVEL, b"\x03\x00"),
    ]
    assert transport.inbound == bytearray()


def test_unknown_frame_is_consumed_and_skipped(transport):
    """Unknown frames are read in full but never dispatched."""
    frames = []
    loop = _make_loop(transport, frames)
    transport.feed(bytes([0x09, 0x09, 0x09, 0x02, 0xAA, 0xBB]) + BATTERY_60)

    assert loop.drain() == 1
    assert frames == [(Message.BATTERY_LEVEL, b"\x3c")]


def test_short_header_is_skipped(transport, caplog):
    frames = []
    loop = _make_loop(transport, frames)
    transport.feed(bytes([0x00, 0x01]))

    assert loop.drain() == 0
    assert frames == []
    assert "Skipping frame" in caplog.text


def test_truncated_payload_resyncs_on_next_header(transport, caplog):
    """A payload that never fully arrives is dropped; the next frame survives."""
    frames = []
    loop = _make_loop(transport, frames)
    # Announces 5 payload bytes, but only a ConnectAck frame follows
    transport.feed(bytes([0x01, 0x06, 0x03, 0x05]) + CONNECT_ACK)

    assert loop.drain() == 1
    assert frames == [(Message.CONNECT_ACK, b"")]
    assert "Timed out reading ANC_LEVEL payload" in caplog.text


def test_truncated_payload_without_header_is_dropped(transport):
    frames = []
    loop = _make_loop(transport, frames)
    transport.feed(bytes([0x02, 0x02, 0x03, 0x04, 0x10]))

    assert loop.drain() == 0
    assert frames == []


def test_protocol_violation_does_not_stop_draining(transport, caplog):
    seen = []

    def on_frame(message, payload):
        seen.append(message)
        if message is Message.ANC_LEVEL:
            raise ProtocolViolation("Received invalid ANC level: 5")

    transport.connected = True
    loop = ReadLoop(transport, on_frame)
    transport.feed(bytes([0x01, 0x06, 0x03, 0x02, 0x05, 0x00]) + BATTERY_60)

    assert loop.drain() == 1
    assert seen == [Message.ANC_LEVEL, Message.BATTERY_LEVEL]
    assert "Ignoring ANC_LEVEL frame" in caplog.text


def test_drain_stops_when_client_reports_disconnected(transport):
    frames = []
    loop = _make_loop(transport, frames, is_connected=lambda: False)
    transport.feed(CONNECT_ACK)

    assert loop.drain() == 0
    assert transport.inbound == bytearray(CONNECT_ACK)


def test_run_and_stop(transport):
    received = threading.Event()
    frames = []

    def on_frame(message, payload):
        frames.append(message)
        received.set()

    transport.connected = True
    transport.feed(CONNECT_ACK)
    loop = ReadLoop(transport, on_frame, poll_interval=30)
    loop.start()
    assert received.wait(2.0)
    assert loop.running

    loop.stop(timeout=2.0)
    assert not loop.running
    assert loop.state is LoopState.STOPPED
    assert frames == [Message.CONNECT_ACK]


def test_connection_lost_callback(transport):
    lost = threading.Event()
    transport.connected = True
    loop = ReadLoop(
        transport,
        lambda message, payload: None,
        on_connection_lost=lost.set,
        poll_interval=0.01,
    )
    loop.start()
    transport.connected = False

    assert lost.wait(2.0)
    loop.stop(timeout=2.0)


def test_stop_does_not_report_connection_lost(transport):
    lost = threading.Event()
    transport.connected = True
    loop = ReadLoop(
        transport,
        lambda message, payload: None,
        on_connection_lost=lost.set,
        poll_interval=30,
    )
    loop.start()
    loop.stop(timeout=2.0)

    assert not lost.is_set()


def test_read_error_is_treated_as_connection_lost(transport, caplog):
    """A transport closed under a pending read ends the loop cleanly."""
    lost = threading.Event()
    frames = []
    loop = _make_loop(transport, frames, on_connection_lost=lost.set, poll_interval=0.01)
    transport.read_error = TransportUnavailable("Not connected to device")
    transport.feed(CONNECT_ACK)
    loop.start()

    assert lost.wait(2.0)
    loop.stop(timeout=2.0)
    assert not loop.running
    assert loop.state is LoopState.STOPPED
    assert frames == []
    assert "Read failed: Not connected to device" in caplog.text
