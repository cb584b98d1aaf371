"""Protocol layer: frame codec, command opcodes and payload parsing."""

from .framing import Frame, encode_frame, parse_frame, payload_length
from .commands import Command, Message, build_command, classify_header
