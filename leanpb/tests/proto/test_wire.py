"""Tests for wire primitives"""

# pylint: disable=redefined-outer-name,unused-variable,expression-not-assigned,singleton-comparison

from pytest import raises

from leanpb.proto import wire
from leanpb.proto.serialization import MalformedWireDataError, ProtoEnum


def encoded(fn, *args):
    buf = bytearray()
    fn(buf, *args)
    return bytes(buf)


def describe_varint():
    def encodes_small_values_in_one_byte(expect):
        expect(encoded(wire.append_varint, 0)) == b"\x00"
        expect(encoded(wire.append_varint, 127)) == b"\x7f"

    def encodes_multi_byte_values(expect):
        expect(encoded(wire.append_varint, 150)) == b"\x96\x01"
        expect(encoded(wire.append_varint, 2**64 - 1)) == b"\xff" * 9 + b"\x01"

    def sign_extends_negative_values(expect):
        expect(encoded(wire.append_varint, -1)) == b"\xff" * 9 + b"\x01"
        expect(wire.size_varint(-1)) == 10

    def sizes_match_encodings(expect):
        for value in [0, 1, 127, 128, 16383, 16384, 2**32, 2**63, -(2**31)]:
            expect(wire.size_varint(value)) == len(encoded(wire.append_varint, value))

    def decodes_from_a_position(expect):
        expect(wire.consume_varint(b"\x00\x96\x01\x05", 1)) == (150, 3)

    def rejects_truncated_input(expect):
        with raises(MalformedWireDataError) as e:
            wire.consume_varint(b"\x96", 0)
        expect(str(e.value)) == "truncated varint"

    def rejects_overlong_input(expect):
        with raises(MalformedWireDataError):
            wire.consume_varint(b"\x80" * 10 + b"\x01", 0)


def describe_integer_conversions():
    def zigzags_signed_values(expect):
        expect([wire.encode_zigzag(v) for v in [0, -1, 1, -2, 2]]) == [0, 1, 2, 3, 4]
        expect(wire.encode_zigzag(-(2**63))) == 2**64 - 1
        expect(wire.decode_zigzag(2**64 - 1)) == -(2**63)
        expect(wire.decode_zigzag(4)) == 2

    def narrows_to_signed_widths(expect):
        expect(wire.to_int32(2**64 - 1)) == -1
        expect(wire.to_int32(2**31)) == -(2**31)
        expect(wire.to_int64(2**63)) == -(2**63)
        expect(wire.to_int64(5)) == 5


def describe_tags():
    def packs_number_and_wire_type(expect):
        expect(encoded(wire.append_tag, 1, wire.WireType.VARINT)) == b"\x08"
        expect(encoded(wire.append_tag, 16, wire.WireType.BYTES)) == b"\x82\x01"
        expect(wire.size_tag(15)) == 1
        expect(wire.size_tag(16)) == 2

    def reads_tags(expect):
        expect(wire.consume_tag(b"\x82\x01", 0)) == (16, 2, 2)

    def rejects_field_number_zero(expect):
        with raises(MalformedWireDataError) as e:
            wire.consume_tag(b"\x02", 0)
        expect(str(e.value)) == "invalid field number 0"

    def rejects_unknown_wire_types(expect):
        with raises(MalformedWireDataError) as e:
            wire.consume_tag(b"\x0f", 0)
        expect(str(e.value)) == "invalid wire type 7"


def describe_fixed_width():
    def writes_little_endian(expect):
        expect(encoded(wire.append_fixed32, 1)) == b"\x01\x00\x00\x00"
        expect(encoded(wire.append_fixed32, -1)) == b"\xff\xff\xff\xff"
        expect(encoded(wire.append_fixed64, 2)) == b"\x02" + b"\x00" * 7
        expect(encoded(wire.append_double, 1.0)) == b"\x00" * 6 + b"\xf0\x3f"

    def reads_little_endian(expect):
        expect(wire.consume_fixed32(b"\x01\x00\x00\x00", 0)) == (1, 4)
        expect(wire.consume_float(b"\x00\x00\x80\x3f", 0)) == (1.0, 4)
        expect(wire.consume_fixed64(b"\xff" * 8, 0)) == (2**64 - 1, 8)

    def packs_runs(expect):
        expect(encoded(wire.append_packed_fixed32, [1, 2])) == b"\x01\x00\x00\x00\x02\x00\x00\x00"
        expect(encoded(wire.append_packed_double, [])) == b""

    def rejects_short_input(expect):
        with raises(MalformedWireDataError):
            wire.consume_fixed32(b"\x01\x00\x00", 0)
        with raises(MalformedWireDataError):
            wire.consume_double(b"\x00" * 7, 0)


def describe_loose_reads():
    def reads_by_the_arrived_wire_type(expect):
        expect(wire.consume_loose(b"\x96\x01", 0, wire.WireType.VARINT, False)) == (150, 2)
        expect(wire.consume_loose(b"\xff\xff\xff\xff", 0, wire.WireType.FIXED32, False)) == (2**32 - 1, 4)
        expect(wire.consume_loose(b"\x00\x00\x80\x3f", 0, wire.WireType.FIXED32, True)) == (1.0, 4)
        expect(wire.consume_loose(b"\x00" * 6 + b"\xf0\x3f", 0, wire.WireType.FIXED64, True)) == (1.0, 8)

    def keeps_the_sign_of_varints_read_as_floats(expect):
        expect(wire.consume_loose(b"\xff" * 9 + b"\x01", 0, wire.WireType.VARINT, True)) == (-1.0, 10)

    def rejects_non_numeric_wire_types(expect):
        with raises(MalformedWireDataError):
            wire.consume_loose(b"\x00", 0, wire.WireType.BYTES, False)


def describe_length_delimited():
    def prefixes_length(expect):
        expect(encoded(wire.append_bytes, b"ab")) == b"\x02ab"
        expect(encoded(wire.append_string, "é")) == b"\x02\xc3\xa9"
        expect(wire.size_string("é")) == 3
        expect(wire.size_bytes(200)) == 202

    def reads_without_copying(expect):
        data = memoryview(b"\x00\x03abcd")
        payload, pos = wire.consume_bytes(data, 1)

        expect(isinstance(payload, memoryview)) == True
        expect(bytes(payload)) == b"abc"
        expect(pos) == 5

    def rejects_length_past_the_end(expect):
        with raises(MalformedWireDataError) as e:
            wire.consume_bytes(b"\x05ab", 0)
        expect(str(e.value)) == "truncated length-delimited field"

    def rejects_invalid_utf8(expect):
        with raises(MalformedWireDataError):
            wire.decode_string(b"\xc3")


def describe_skip_field():
    def skips_each_wire_type(expect):
        data = b"\x96\x01" + b"\x00" * 8 + b"\x02ab"

        expect(wire.skip_field(data, 0, wire.WireType.VARINT, 0)) == (2, 0)
        expect(wire.skip_field(data, 2, wire.WireType.FIXED64, 0)) == (10, 0)
        expect(wire.skip_field(data, 2, wire.WireType.FIXED32, 0)) == (6, 0)
        expect(wire.skip_field(data, 10, wire.WireType.BYTES, 0)) == (13, 0)

    def counts_groups(expect):
        expect(wire.skip_field(b"", 0, wire.WireType.START_GROUP, 1)) == (0, 2)
        expect(wire.skip_field(b"", 0, wire.WireType.END_GROUP, 2)) == (0, 1)
        expect(wire.skip_field(b"", 0, wire.WireType.END_GROUP, 0)) == (0, 0)

    def rejects_truncated_fields(expect):
        with raises(MalformedWireDataError):
            wire.skip_field(b"\x00\x00", 0, wire.WireType.FIXED32, 0)


def describe_errors():
    def records_the_decode_path(expect):
        err = MalformedWireDataError("truncated varint")
        err.locate("p.Inner", "count", 2)
        err.locate("p.Outer", "inner", 1)

        expect(err.message) == "p.Inner"
        expect(err.field) == "count"
        expect(err.number) == 2
        expect(str(err)) == "truncated varint (at p.Outer.inner > p.Inner.count)"

    def names_unknown_fields_by_number(expect):
        err = MalformedWireDataError("bad").locate("p.A", None, 7)

        expect(str(err)) == "bad (at p.A#7)"


def describe_enums():
    class Color(ProtoEnum):
        RED = 0
        BLUE = 1

    def keeps_unknown_numbers(expect):
        color = Color(5)

        expect(color) == 5
        expect(color.name) == "5"
        expect(isinstance(color, Color)) == True

    def rejects_non_integers(expect):
        with raises(ValueError):
            Color("RED")
