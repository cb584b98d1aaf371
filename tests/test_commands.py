"""Tests for command opcodes and header classification."""

import itertools

from qc35_mcp.protocol.commands import (
    MESSAGE_PREFIXES,
    Command,
    Message,
    build_command,
    classify_header,
    find_header,
)


def test_command_opcodes():
    """Opcodes must match the bytes the headset expects."""
    assert Command.CONNECT.opcode == bytes([0x00, 0x01, 0x01])
    assert Command.QUERY_STATUS.opcode == bytes([0x01, 0x01, 0x05])
    assert Command.QUERY_BATTERY.opcode == bytes([0x02, 0x02, 0x01])
    assert Command.SET_ANC.opcode == bytes([0x01, 0x06, 0x02])


def test_message_prefixes():
    assert Message.CONNECT_ACK.prefix == bytes([0x00, 0x01, 0x03])
    assert Message.ANC_LEVEL.prefix == bytes([0x01, 0x06, 0x03])
    assert Message.BATTERY_LEVEL.prefix == bytes([0x02, 0x02, 0x03])
    assert Message.UNKNOWN.prefix is None
    assert Message.DISCONNECT.prefix is None


def test_message_prefixes_are_distinct():
    assert len(set(MESSAGE_PREFIXES.values())) == len(MESSAGE_PREFIXES)


def test_build_command_with_payload():
    assert build_command(Command.SET_ANC, b"\x01") == bytes([0x01, 0x06, 0x02, 0x01, 0x01])


def test_classify_known_headers():
    assert classify_header(bytes([0x00, 0x01, 0x03, 0x00])) is Message.CONNECT_ACK
    assert classify_header(bytes([0x01, 0x06, 0x03, 0x02])) is Message.ANC_LEVEL
    assert classify_header(bytes([0x02, 0x02, 0x03, 0x01])) is Message.BATTERY_LEVEL


def test_classify_ignores_length_byte():
    """Only the first three bytes take part in classification."""
    assert classify_header(bytes([0x02, 0x02, 0x03, 0xFF])) is Message.BATTERY_LEVEL
    assert classify_header(bytes([0x02, 0x02, 0x03])) is Message.BATTERY_LEVEL


def test_classify_short_header_is_unknown():
    assert classify_header(b"") is Message.UNKNOWN
    assert classify_header(bytes([0x00])) is Message.UNKNOWN
    assert classify_header(bytes([0x00, 0x01])) is Message.UNKNOWN


def test_classify_command_opcodes_are_unknown():
    """Outbound opcodes are not inbound messages."""
    for command in Command:
        assert classify_header(command.opcode + b"\x00") is Message.UNKNOWN


def test_classify_every_unrecognised_prefix():
    """Any 3-byte prefix other than the known ones classifies as Unknown."""
    known = set(MESSAGE_PREFIXES.values())
    values = [0x00, 0x01, 0x02, 0x03, 0x05, 0x06, 0x7F, 0xFF]
    for a, b, c in itertools.product(values, repeat=3):
        prefix = bytes([a, b, c])
        message = classify_header(prefix + b"\x00")
        if prefix in known:
            assert message is not Message.UNKNOWN
        else:
            assert message is Message.UNKNOWN


def test_find_header():
    data = bytes([0x05, 0x00, 0x02, 0x02, 0x03, 0x01, 0x3C])
    assert find_header(data) == 2
    assert find_header(data, start=3) is None
    assert find_header(b"\x00\x01") is None
