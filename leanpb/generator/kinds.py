"""Per-kind handler table shared by the size, encode and decode generators.

Each FieldKind that can appear in generated code maps to a KindCodec whose
templates are plain Python source fragments:

- ``size``: payload size of ``{v}`` (tag excluded)
- ``append``: statement writing the payload of ``{v}`` into ``buf``
- ``consume``: runtime function reading a raw payload
- ``convert``: expression turning ``{raw}`` into the stored value
  (``{type}`` is the Python name of an enum or message type)
- ``coerce``: expression storing a number read by ``_w.consume_loose`` when
  the value arrived with another numeric wire type; None when no numeric
  value fits the kind
"""

from dataclasses import dataclass

from leanpb.proto.wire import WireType

from .types import FieldKind


@dataclass(frozen=True)
class KindCodec:
    """How one field kind is stored, sized, written and read."""

    wire_type: WireType
    py_type: str | None  # None for named types (enum, message)
    zero: str | None
    fixed_size: int | None
    size: str
    append: str
    consume: str
    convert: str
    coerce: str | None = None
    append_packed: str | None = None

    @property
    def packable(self) -> bool:
        return self.wire_type in (WireType.VARINT, WireType.FIXED32, WireType.FIXED64)


def _varint(py_type: str, zero: str, convert: str, coerce: str) -> KindCodec:
    return KindCodec(
        wire_type=WireType.VARINT,
        py_type=py_type,
        zero=zero,
        fixed_size=None,
        size="_w.size_varint({v})",
        append="_w.append_varint(buf, {v})",
        consume="_w.consume_varint",
        convert=convert,
        coerce=coerce,
    )


def _zigzag(convert: str, coerce: str) -> KindCodec:
    return KindCodec(
        wire_type=WireType.VARINT,
        py_type="int",
        zero="0",
        fixed_size=None,
        size="_w.size_varint(_w.encode_zigzag({v}))",
        append="_w.append_varint(buf, _w.encode_zigzag({v}))",
        consume="_w.consume_varint",
        convert=convert,
        coerce=coerce,
    )


def _fixed32(py_type: str, zero: str, suffix: str, convert: str, coerce: str) -> KindCodec:
    return KindCodec(
        wire_type=WireType.FIXED32,
        py_type=py_type,
        zero=zero,
        fixed_size=4,
        size="4",
        append=f"_w.append_{suffix}(buf, {{v}})",
        consume=f"_w.consume_{suffix}",
        convert=convert,
        coerce=coerce,
        append_packed=f"_w.append_packed_{suffix}",
    )


def _fixed64(py_type: str, zero: str, suffix: str, convert: str, coerce: str) -> KindCodec:
    return KindCodec(
        wire_type=WireType.FIXED64,
        py_type=py_type,
        zero=zero,
        fixed_size=8,
        size="8",
        append=f"_w.append_{suffix}(buf, {{v}})",
        consume=f"_w.consume_{suffix}",
        convert=convert,
        coerce=coerce,
        append_packed=f"_w.append_packed_{suffix}",
    )


KIND_CODECS: dict[FieldKind, KindCodec] = {
    FieldKind.BOOL: KindCodec(
        wire_type=WireType.VARINT,
        py_type="bool",
        zero="False",
        fixed_size=1,
        size="1",
        append="buf.append(1 if {v} else 0)",
        consume="_w.consume_varint",
        convert="{raw} != 0",
        coerce="{raw} != 0",
    ),
    FieldKind.INT32: _varint("int", "0", "_w.to_int32({raw})", "_w.to_int32({raw})"),
    FieldKind.UINT32: _varint("int", "0", "{raw} & 0xFFFFFFFF", "{raw} & 0xFFFFFFFF"),
    FieldKind.INT64: _varint("int", "0", "_w.to_int64({raw})", "_w.to_int64({raw})"),
    FieldKind.UINT64: _varint("int", "0", "{raw}", "{raw}"),
    FieldKind.SINT32: _zigzag("_w.to_int32(_w.decode_zigzag({raw}))", "_w.to_int32({raw})"),
    FieldKind.SINT64: _zigzag("_w.decode_zigzag({raw})", "_w.to_int64({raw})"),
    FieldKind.FIXED32: _fixed32("int", "0", "fixed32", "{raw}", "{raw} & 0xFFFFFFFF"),
    FieldKind.SFIXED32: _fixed32("int", "0", "fixed32", "_w.to_int32({raw})", "_w.to_int32({raw})"),
    FieldKind.FLOAT: _fixed32("float", "0.0", "float", "{raw}", "{raw}"),
    FieldKind.FIXED64: _fixed64("int", "0", "fixed64", "{raw}", "{raw}"),
    FieldKind.SFIXED64: _fixed64("int", "0", "fixed64", "_w.to_int64({raw})", "_w.to_int64({raw})"),
    FieldKind.DOUBLE: _fixed64("float", "0.0", "double", "{raw}", "{raw}"),
    FieldKind.STRING: KindCodec(
        wire_type=WireType.BYTES,
        py_type="str",
        zero='""',
        fixed_size=None,
        size="_w.size_string({v})",
        append="_w.append_string(buf, {v})",
        consume="_w.consume_bytes",
        convert="_w.decode_string({raw})",
    ),
    FieldKind.BYTES: KindCodec(
        wire_type=WireType.BYTES,
        py_type="bytes",
        zero='b""',
        fixed_size=None,
        size="_w.size_bytes(len({v}))",
        append="_w.append_bytes(buf, {v})",
        consume="_w.consume_bytes",
        convert="bytes({raw})",
    ),
    FieldKind.ENUM: KindCodec(
        wire_type=WireType.VARINT,
        py_type=None,
        zero=None,
        fixed_size=None,
        size="_w.size_varint({v})",
        append="_w.append_varint(buf, {v})",
        consume="_w.consume_varint",
        convert="{type}(_w.to_int32({raw}))",
        coerce="{type}(_w.to_int32({raw}))",
    ),
    FieldKind.MESSAGE: KindCodec(
        wire_type=WireType.BYTES,
        py_type=None,
        zero=None,
        fixed_size=None,
        size="_w.size_bytes({v}.size())",
        append="_w.append_message(buf, {v})",
        consume="_w.consume_bytes",
        convert="{type}().merge_from({raw})",
    ),
}

# Every kind except the rejected group kind needs a handler.
_UNHANDLED = set(FieldKind) - {FieldKind.GROUP} - set(KIND_CODECS)
if _UNHANDLED:
    raise RuntimeError(f"No codec for field kinds: {sorted(_UNHANDLED)}")


def codec_for(kind: FieldKind) -> KindCodec:
    """Return the handler for a kind. Group fields never reach this point."""
    try:
        return KIND_CODECS[kind]
    except KeyError:
        raise ValueError(f"Unsupported field kind: {kind}") from None


def wire_type_of(kind: FieldKind) -> WireType:
    if kind == FieldKind.GROUP:
        return WireType.START_GROUP
    return codec_for(kind).wire_type


def is_packable(kind: FieldKind) -> bool:
    return kind in KIND_CODECS and KIND_CODECS[kind].packable
