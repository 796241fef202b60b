"""Protocol Buffers wire-format primitives used by generated code.

Encoders append to a ``bytearray``. Decoders take a buffer (usually a
``memoryview``) and a position, and return ``(value, new_position)``;
anything that would read past the end of the buffer raises
:class:`MalformedWireDataError`.
"""

import math
import struct
from enum import IntEnum

from .serialization import MalformedWireDataError, Message

MASK32 = 0xFFFFFFFF
MASK64 = 0xFFFFFFFFFFFFFFFF
MAX_FIELD_NUMBER = (1 << 29) - 1
MAX_VARINT_LEN = 10

_FIXED32 = struct.Struct("<I")
_FIXED64 = struct.Struct("<Q")
_FLOAT = struct.Struct("<f")
_DOUBLE = struct.Struct("<d")


class WireType(IntEnum):
    """The 3-bit encoding shape carried in every tag."""

    VARINT = 0
    FIXED64 = 1
    BYTES = 2
    START_GROUP = 3
    END_GROUP = 4
    FIXED32 = 5


# Sizes


def size_varint(value: int) -> int:
    """Number of bytes needed to encode value as a varint.

    Negative numbers are sign-extended to 64 bits and always take 10 bytes.
    """
    value &= MASK64
    if value < 0x80:
        return 1
    return (value.bit_length() + 6) // 7


def size_tag(number: int) -> int:
    return size_varint(number << 3)


def size_bytes(length: int) -> int:
    """Size of a length-delimited payload of the given length, prefix included."""
    return size_varint(length) + length


def size_string(value: str) -> int:
    return size_bytes(len(value.encode("utf-8")))


# Integer conversions


def encode_zigzag(value: int) -> int:
    """Map a signed 64-bit integer onto an unsigned one, small magnitudes first."""
    return ((value << 1) ^ (value >> 63)) & MASK64


def decode_zigzag(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def to_int32(value: int) -> int:
    value &= MASK32
    return value - (1 << 32) if value & 0x80000000 else value


def to_int64(value: int) -> int:
    value &= MASK64
    return value - (1 << 64) if value & 0x8000000000000000 else value


def float_is_set(value: float) -> bool:
    """Implicit-presence floats are written unless they are exactly +0.0."""
    return value != 0.0 or math.copysign(1.0, value) < 0


# Encoding


def append_varint(buf: bytearray, value: int) -> None:
    value &= MASK64
    while value >= 0x80:
        buf.append((value & 0x7F) | 0x80)
        value >>= 7
    buf.append(value)


def append_tag(buf: bytearray, number: int, wire_type: int) -> None:
    append_varint(buf, (number << 3) | wire_type)


def append_fixed32(buf: bytearray, value: int) -> None:
    buf += _FIXED32.pack(value & MASK32)


def append_fixed64(buf: bytearray, value: int) -> None:
    buf += _FIXED64.pack(value & MASK64)


def append_float(buf: bytearray, value: float) -> None:
    buf += _FLOAT.pack(value)


def append_double(buf: bytearray, value: float) -> None:
    buf += _DOUBLE.pack(value)


def append_bytes(buf: bytearray, value: bytes | bytearray | memoryview) -> None:
    append_varint(buf, len(value))
    buf += value


def append_string(buf: bytearray, value: str) -> None:
    append_bytes(buf, value.encode("utf-8"))


def append_message(buf: bytearray, value: Message) -> None:
    """Write a nested message with its length prefix."""
    append_varint(buf, value.size())
    value.encode_to(buf)


def append_packed_fixed32(buf: bytearray, values: list[int]) -> None:
    buf += struct.pack(f"<{len(values)}I", *[v & MASK32 for v in values])


def append_packed_fixed64(buf: bytearray, values: list[int]) -> None:
    buf += struct.pack(f"<{len(values)}Q", *[v & MASK64 for v in values])


def append_packed_float(buf: bytearray, values: list[float]) -> None:
    buf += struct.pack(f"<{len(values)}f", *values)


def append_packed_double(buf: bytearray, values: list[float]) -> None:
    buf += struct.pack(f"<{len(values)}d", *values)


# Decoding


def consume_varint(data: memoryview | bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    end = len(data)
    while True:
        if pos >= end:
            raise MalformedWireDataError("truncated varint")
        b = data[pos]
        pos += 1
        result |= (b & 0x7F) << shift
        if b < 0x80:
            return result & MASK64, pos
        shift += 7
        if shift >= 7 * MAX_VARINT_LEN:
            raise MalformedWireDataError("varint longer than 10 bytes")


def consume_tag(data: memoryview | bytes, pos: int) -> tuple[int, int, int]:
    """Read a tag, returning (field_number, wire_type, new_position)."""
    value, pos = consume_varint(data, pos)
    number = value >> 3
    wire_type = value & 7
    if number < 1 or number > MAX_FIELD_NUMBER:
        raise MalformedWireDataError(f"invalid field number {number}")
    if wire_type > WireType.FIXED32:
        raise MalformedWireDataError(f"invalid wire type {wire_type}")
    return number, wire_type, pos


def consume_fixed32(data: memoryview | bytes, pos: int) -> tuple[int, int]:
    if pos + 4 > len(data):
        raise MalformedWireDataError("truncated fixed32")
    return _FIXED32.unpack_from(data, pos)[0], pos + 4


def consume_fixed64(data: memoryview | bytes, pos: int) -> tuple[int, int]:
    if pos + 8 > len(data):
        raise MalformedWireDataError("truncated fixed64")
    return _FIXED64.unpack_from(data, pos)[0], pos + 8


def consume_float(data: memoryview | bytes, pos: int) -> tuple[float, int]:
    if pos + 4 > len(data):
        raise MalformedWireDataError("truncated float")
    return _FLOAT.unpack_from(data, pos)[0], pos + 4


def consume_double(data: memoryview | bytes, pos: int) -> tuple[float, int]:
    if pos + 8 > len(data):
        raise MalformedWireDataError("truncated double")
    return _DOUBLE.unpack_from(data, pos)[0], pos + 8


def consume_bytes(data: memoryview | bytes, pos: int) -> tuple[memoryview | bytes, int]:
    """Read a length-delimited payload without copying it."""
    length, pos = consume_varint(data, pos)
    end = pos + length
    if end > len(data):
        raise MalformedWireDataError("truncated length-delimited field")
    return data[pos:end], end


def consume_loose(data: memoryview | bytes, pos: int, wire_type: int, as_float: bool) -> tuple[int | float, int]:
    """Read a numeric payload by the wire type it arrived with.

    Used by lenient decoders when a field's declared kind disagrees with the
    wire. Fixed-width payloads are read as unsigned integers, or as IEEE
    floats when ``as_float`` is set. A varint read ``as_float`` keeps its
    signed 64-bit value.
    """
    if wire_type == WireType.VARINT:
        value, pos = consume_varint(data, pos)
        return (float(to_int64(value)) if as_float else value), pos
    if wire_type == WireType.FIXED32:
        return consume_float(data, pos) if as_float else consume_fixed32(data, pos)
    if wire_type == WireType.FIXED64:
        return consume_double(data, pos) if as_float else consume_fixed64(data, pos)
    raise MalformedWireDataError(f"wire type {wire_type} has no numeric value")


def decode_string(raw: memoryview | bytes) -> str:
    try:
        return bytes(raw).decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedWireDataError("string field is not valid UTF-8") from e


def skip_field(data: memoryview | bytes, pos: int, wire_type: int, groups: int) -> tuple[int, int]:
    """Skip one field occurrence whose tag has already been read.

    Group framing is never materialized: ``groups`` counts how many
    start-group tags are open, and the caller discards every field while it
    is positive. An end-group tag with no open group is ignored.

    Returns (new_position, groups).
    """
    if wire_type == WireType.VARINT:
        _, pos = consume_varint(data, pos)
    elif wire_type == WireType.FIXED32:
        if pos + 4 > len(data):
            raise MalformedWireDataError("truncated fixed32")
        pos += 4
    elif wire_type == WireType.FIXED64:
        if pos + 8 > len(data):
            raise MalformedWireDataError("truncated fixed64")
        pos += 8
    elif wire_type == WireType.BYTES:
        _, pos = consume_bytes(data, pos)
    elif wire_type == WireType.START_GROUP:
        groups += 1
    elif wire_type == WireType.END_GROUP:
        if groups:
            groups -= 1
    else:
        raise MalformedWireDataError(f"invalid wire type {wire_type}")
    return pos, groups
