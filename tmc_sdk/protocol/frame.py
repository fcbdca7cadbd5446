"""APT frame building and little-endian field access.

Frame layout::

    +--------+--------+--------+--------+--------+--------+------------------+
    | id lo  | id hi  | param1 | param2 |  dest  | source | payload ...      |
    +--------+--------+--------+--------+--------+--------+------------------+

- Short frames are the 6-byte header alone; param1/param2 carry the
  request arguments (e.g. channel and state).
- Data frames set the top bit of dest and carry the payload length in
  param1/param2 (little-endian u16). The payload follows the header.
- All multi-byte fields are little-endian.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass

HEADER_SIZE = 6
BUFFER_SIZE = 256
MAX_FRAME_SIZE = 90

DEST_GENERIC_USB = 0x50
SOURCE_HOST = 0x01
DATA_FLAG = 0x80

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_I16 = struct.Struct("<h")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")


@dataclass(frozen=True)
class Header:
    """A parsed 6-byte frame header."""

    message_id: int
    param1: int
    param2: int
    dest: int
    source: int

    @property
    def has_data(self) -> bool:
        return bool(self.dest & DATA_FLAG)

    @property
    def data_length(self) -> int:
        """Payload length for data frames, 0 for short frames."""
        if not self.has_data:
            return 0
        return self.param1 | (self.param2 << 8)

    def __repr__(self) -> str:
        return (
            f"Header(message_id=0x{self.message_id:04X}, "
            f"param1=0x{self.param1:02X}, param2=0x{self.param2:02X}, "
            f"dest=0x{self.dest:02X}, source=0x{self.source:02X})"
        )


def build_short(
    message_id: int,
    param1: int = 0,
    param2: int = 0,
    dest: int = DEST_GENERIC_USB,
    source: int = SOURCE_HOST,
) -> bytes:
    """Build a 6-byte header-only request."""
    for name, value in (("param1", param1), ("param2", param2), ("dest", dest), ("source", source)):
        if not 0 <= value <= 0xFF:
            raise ValueError(f"{name} must be 0-255, got {value}")
    return put_u16(message_id) + bytes([param1, param2, dest, source])


def build_data(
    message_id: int,
    payload: bytes,
    dest: int = DEST_GENERIC_USB,
    source: int = SOURCE_HOST,
) -> bytes:
    """Build a header + payload request.

    Args:
        message_id: APT message identifier.
        payload: Bytes appended right after the header.
        dest: Destination address; the data flag is OR'd in here.
        source: Source address.
    """
    if HEADER_SIZE + len(payload) > BUFFER_SIZE:
        raise ValueError(
            f"Frame must fit in {BUFFER_SIZE} bytes, payload is {len(payload)}"
        )
    length = len(payload)
    return build_short(message_id, length & 0xFF, length >> 8, dest | DATA_FLAG, source) + payload


def parse_header(data: bytes) -> Header:
    """Parse the 6-byte header at the start of `data`."""
    _check(data, 0, HEADER_SIZE)
    return Header(
        message_id=get_u16(data, 0),
        param1=data[2],
        param2=data[3],
        dest=data[4],
        source=data[5],
    )


def _check(data: bytes, offset: int, size: int) -> None:
    if offset < 0 or offset + size > len(data):
        raise IndexError(
            f"Field of {size} bytes at offset {offset} exceeds buffer of {len(data)} bytes"
        )


def _get(fmt: struct.Struct, data: bytes, offset: int) -> int:
    _check(data, offset, fmt.size)
    return fmt.unpack_from(data, offset)[0]


def _put(fmt: struct.Struct, value: int) -> bytes:
    try:
        return fmt.pack(value)
    except struct.error as e:
        raise ValueError(f"{value} does not fit in '{fmt.format}': {e}") from e


def get_u8(data: bytes, offset: int) -> int:
    return _get(_U8, data, offset)


def get_u16(data: bytes, offset: int) -> int:
    return _get(_U16, data, offset)


def get_i16(data: bytes, offset: int) -> int:
    return _get(_I16, data, offset)


def get_u32(data: bytes, offset: int) -> int:
    return _get(_U32, data, offset)


def get_i32(data: bytes, offset: int) -> int:
    return _get(_I32, data, offset)


def put_u16(value: int) -> bytes:
    return _put(_U16, value)


def put_i16(value: int) -> bytes:
    return _put(_I16, value)


def put_u32(value: int) -> bytes:
    return _put(_U32, value)


def put_i32(value: int) -> bytes:
    return _put(_I32, value)
