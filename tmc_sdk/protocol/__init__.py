"""Protocol layer: APT frame building, field access, and the command table."""

from .frame import (
    BUFFER_SIZE,
    HEADER_SIZE,
    Header,
    build_data,
    build_short,
    parse_header,
)
from .commands import COMMANDS, CommandSpec, MessageId, decode_voltage, encode_voltage

__all__ = [
    "BUFFER_SIZE",
    "HEADER_SIZE",
    "Header",
    "build_data",
    "build_short",
    "parse_header",
    "COMMANDS",
    "CommandSpec",
    "MessageId",
    "decode_voltage",
    "encode_voltage",
]
