"""Generated ``encode_to()`` bodies.

Mirrors :mod:`leanpb.generator.sizes` field by field, writing where it
counts. Tags are folded into byte literals at generation time.
"""

from leanpb.proto.wire import WireType, append_tag

from .kinds import codec_for
from .sizes import field_size_terms, map_entry_terms, packed_length, presence_check, sum_terms
from .typemap import attr_name
from .types import FieldKind, ProtoField, ProtoMessage
from .util import bytes_literal, indent


def tag_bytes(number: int, wire_type: WireType) -> bytes:
    buf = bytearray()
    append_tag(buf, number, wire_type)
    return bytes(buf)


def write_tag(field: ProtoField, wire_type: WireType) -> str:
    return f"buf += {bytes_literal(tag_bytes(field.number, wire_type))}  # {field.name}"


def write_value(field: ProtoField, value: str) -> str:
    return codec_for(field.kind).append.format(v=value)


def _encode_map(field: ProtoField, value: str) -> list[str]:
    key, val = field.map_key, field.map_value
    body = []
    if val.kind == FieldKind.MESSAGE:
        body.append("_ms = _x.size()")
        entry = sum_terms(field_size_terms(key, "_k") + [1, "_w.size_bytes(_ms)"])
    else:
        entry = sum_terms(map_entry_terms(field, "_k", "_x"))
    body += [
        write_tag(field, WireType.BYTES),
        f"_w.append_varint(buf, {entry})",
        write_tag(key, codec_for(key.kind).wire_type),
        write_value(key, "_k"),
        write_tag(val, codec_for(val.kind).wire_type),
    ]
    if val.kind == FieldKind.MESSAGE:
        body += ["_w.append_varint(buf, _ms)", "_x.encode_to(buf)"]
    else:
        body.append(write_value(val, "_x"))
    return [f"for _k, _x in {value}.items():"] + indent(body)


def _encode_packed(field: ProtoField, value: str) -> list[str]:
    codec = codec_for(field.kind)
    body = [
        write_tag(field, WireType.BYTES),
        f"_w.append_varint(buf, {packed_length(field, value)})",
    ]
    if codec.append_packed is not None:
        body.append(f"{codec.append_packed}(buf, {value})")
    else:
        body += [f"for _x in {value}:"] + indent([write_value(field, "_x")])
    return [f"if {value}:"] + indent(body)


def gen_encode(message: ProtoMessage) -> list[str]:
    """Generate the body of ``encode_to(buf)`` for a message.

    Fields are written in declaration order, map entries in dict order.
    """
    lines = []
    for field in message.fields:
        value = f"self.{attr_name(field)}"
        codec = codec_for(field.kind)

        if field.is_map:
            lines += _encode_map(field, value)
        elif field.is_repeated and field.packed:
            lines += _encode_packed(field, value)
        elif field.is_repeated:
            lines.append(f"for _x in {value}:")
            lines += indent([write_tag(field, codec.wire_type), write_value(field, "_x")])
        else:
            lines.append(f"if {presence_check(field, value)}:")
            lines += indent([write_tag(field, codec.wire_type), write_value(field, value)])
    lines.append("return buf")
    return lines
