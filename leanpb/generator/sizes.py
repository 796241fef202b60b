"""Size calculation: generated ``size()`` bodies and static size bounds."""

from dataclasses import dataclass
from enum import StrEnum, auto

from dataclasses_json import DataClassJsonMixin

from leanpb.proto.wire import WireType, size_bytes, size_tag

from .kinds import codec_for
from .typemap import attr_name, is_nullable
from .types import FieldKind, Presence, ProtoField, ProtoMessage, SchemaFile, iter_messages
from .util import indent

# Largest payload of each varint kind; negative int32, int64 and enum
# values are sign-extended to ten bytes.
MAX_VARINT_PAYLOAD: dict[FieldKind, int] = {
    FieldKind.BOOL: 1,
    FieldKind.INT32: 10,
    FieldKind.UINT32: 5,
    FieldKind.INT64: 10,
    FieldKind.UINT64: 10,
    FieldKind.SINT32: 5,
    FieldKind.SINT64: 10,
    FieldKind.ENUM: 10,
}


def presence_check(field: ProtoField, value: str) -> str:
    """Condition under which a singular field is written at all."""
    if field.kind == FieldKind.BYTES and field.presence == Presence.IMPLICIT:
        return value
    if is_nullable(field):
        return f"{value} is not None"
    if field.kind in (FieldKind.FLOAT, FieldKind.DOUBLE):
        return f"_w.float_is_set({value})"
    return value


def payload_size(field: ProtoField, value: str) -> str:
    """Expression for the payload size of one value, tag excluded."""
    return codec_for(field.kind).size.format(v=value)


def sum_terms(terms: list[int | str]) -> str:
    """Add size terms, folding the constant ones."""
    const = sum(t for t in terms if isinstance(t, int))
    exprs = [t for t in terms if isinstance(t, str)]
    if const:
        exprs.insert(0, str(const))
    return " + ".join(exprs) if exprs else "0"


def field_size_terms(field: ProtoField, value: str) -> list[int | str]:
    """Tag and payload size of one occurrence of a non-repeated field."""
    codec = codec_for(field.kind)
    if codec.fixed_size is not None:
        return [size_tag(field.number) + codec.fixed_size]
    return [size_tag(field.number), payload_size(field, value)]


def packed_length(field: ProtoField, value: str) -> str:
    """Expression for the byte length of a packed run."""
    codec = codec_for(field.kind)
    if codec.fixed_size == 1:
        return f"len({value})"
    if codec.fixed_size is not None:
        return f"len({value}) * {codec.fixed_size}"
    return f"sum({payload_size(field, '_x')} for _x in {value})"


def map_entry_terms(field: ProtoField, key: str, value: str) -> list[int | str]:
    """Size of one map entry's payload; both key and value are always written."""
    return field_size_terms(field.map_key, key) + field_size_terms(field.map_value, value)


def gen_size(message: ProtoMessage) -> list[str]:
    """Generate the body of ``size()`` for a message."""
    lines = ["size = 0"]
    for field in message.fields:
        value = f"self.{attr_name(field)}"
        ts = size_tag(field.number)
        codec = codec_for(field.kind)

        if field.is_map:
            lines.append(f"for _k, _x in {value}.items():")
            entry = sum_terms(map_entry_terms(field, "_k", "_x"))
            lines.extend(indent([f"size += {ts} + _w.size_bytes({entry})"]))
        elif field.is_repeated and field.packed:
            lines.append(f"if {value}:")
            if codec.fixed_size is not None:
                lines.extend(indent([f"size += {ts} + _w.size_bytes({packed_length(field, value)})"]))
            else:
                lines.extend(
                    indent(
                        [
                            f"_n = {packed_length(field, value)}",
                            f"size += {ts} + _w.size_bytes(_n)",
                        ]
                    )
                )
        elif field.is_repeated:
            if codec.fixed_size is not None:
                lines.append(f"size += len({value}) * {ts + codec.fixed_size}")
            else:
                lines.append(f"for _x in {value}:")
                lines.extend(indent([f"size += {sum_terms(field_size_terms(field, '_x'))}"]))
        else:
            lines.append(f"if {presence_check(field, value)}:")
            lines.extend(indent([f"size += {sum_terms(field_size_terms(field, value))}"]))
    lines.append("return size")
    return lines


class SizeKind(StrEnum):
    """Classification of size characteristics."""

    FIXED = auto()  # Min == Max
    BOUNDED = auto()  # Variable but has a calculable max
    UNBOUNDED = auto()  # Strings, bytes, repeated fields or recursion


@dataclass(frozen=True)
class SizeInfo(DataClassJsonMixin):
    """Encoded size range of a field or message."""

    min_size: int
    max_size: int | None  # None means unbounded
    kind: SizeKind

    @property
    def is_fixed(self) -> bool:
        return self.kind == SizeKind.FIXED

    @property
    def is_bounded(self) -> bool:
        return self.kind in (SizeKind.FIXED, SizeKind.BOUNDED)


UNBOUNDED = SizeInfo(0, None, SizeKind.UNBOUNDED)


@dataclass(frozen=True)
class MessageSizeInfo(DataClassJsonMixin):
    """Size information for one message."""

    name: str
    size: SizeInfo


class SizeCalculator:
    """Calculate static encoded size bounds of messages.

    Every field may be absent, so the minimum is always zero; the maximum is
    known only when no field can grow without limit.
    """

    def __init__(self, files: list[SchemaFile]) -> None:
        self.messages = {m.full_name: m for f in files for m in iter_messages(f.messages)}
        self._cache: dict[str, SizeInfo] = {}
        self._active: set[str] = set()

    def calc_field_size(self, field: ProtoField) -> SizeInfo:
        """Calculate the largest encoding of a field, tag included."""
        if field.is_map or field.is_repeated or field.kind == FieldKind.GROUP:
            return UNBOUNDED

        tag = size_tag(field.number)
        codec = codec_for(field.kind)
        if codec.fixed_size is not None:
            return SizeInfo(0, tag + codec.fixed_size, SizeKind.BOUNDED)
        if codec.wire_type == WireType.VARINT:
            return SizeInfo(0, tag + MAX_VARINT_PAYLOAD[field.kind], SizeKind.BOUNDED)
        if field.kind == FieldKind.MESSAGE and field.type_name in self.messages:
            inner = self.calc_message_size(field.type_name).size
            if inner.max_size is None:
                return UNBOUNDED
            return SizeInfo(0, tag + size_bytes(inner.max_size), SizeKind.BOUNDED)
        return UNBOUNDED

    def calc_message_size(self, full_name: str) -> MessageSizeInfo:
        """Calculate size bounds of a message (with caching)."""
        if full_name in self._cache:
            return MessageSizeInfo(full_name, self._cache[full_name])
        if full_name in self._active:
            # Recursive messages have no upper bound.
            return MessageSizeInfo(full_name, UNBOUNDED)

        self._active.add(full_name)
        total_max: int | None = 0
        for field in self.messages[full_name].fields:
            size = self.calc_field_size(field)
            if total_max is not None and size.max_size is not None:
                total_max += size.max_size
            else:
                total_max = None
        self._active.discard(full_name)

        if total_max is None:
            info = UNBOUNDED
        elif total_max == 0:
            info = SizeInfo(0, 0, SizeKind.FIXED)
        else:
            info = SizeInfo(0, total_max, SizeKind.BOUNDED)
        self._cache[full_name] = info
        return MessageSizeInfo(full_name, info)


def calculate_sizes(files: list[SchemaFile]) -> dict[str, MessageSizeInfo]:
    """Calculate size bounds for every message of the given files."""
    calc = SizeCalculator(files)
    return {name: calc.calc_message_size(name) for name in calc.messages}
