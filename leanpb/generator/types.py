"""Schema model: the message/enum tree the code generator consumes."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from dataclasses_json import DataClassJsonMixin


class FieldKind(StrEnum):
    """Scalar or named type of a field."""

    BOOL = "bool"
    INT32 = "int32"
    UINT32 = "uint32"
    INT64 = "int64"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    SFIXED32 = "sfixed32"
    FIXED64 = "fixed64"
    SFIXED64 = "sfixed64"
    FLOAT = "float"
    DOUBLE = "double"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"
    GROUP = "group"  # recognized so it can be rejected


class Cardinality(StrEnum):
    SINGULAR = "singular"
    REPEATED = "repeated"
    MAP = "map"


class Presence(StrEnum):
    """Whether absence is distinguishable from the zero value."""

    IMPLICIT = "implicit"
    EXPLICIT = "explicit"


SCALAR_KINDS = frozenset(
    kind for kind in FieldKind if kind not in (FieldKind.ENUM, FieldKind.MESSAGE, FieldKind.GROUP)
)

# Kinds allowed as map keys: integral or string.
MAP_KEY_KINDS = frozenset(
    [
        FieldKind.BOOL,
        FieldKind.INT32,
        FieldKind.UINT32,
        FieldKind.INT64,
        FieldKind.UINT64,
        FieldKind.SINT32,
        FieldKind.SINT64,
        FieldKind.FIXED32,
        FieldKind.SFIXED32,
        FieldKind.FIXED64,
        FieldKind.SFIXED64,
        FieldKind.STRING,
    ]
)


@dataclass
class ProtoEnumValue(DataClassJsonMixin):
    """Represents a single enum value."""

    name: str
    number: int
    comment: str | None = None
    trailing_comment: str | None = None
    deprecated: bool = False


@dataclass
class ProtoEnum(DataClassJsonMixin):
    """Represents an enum type definition.

    The first value is the default of an implicitly absent enum field.
    """

    name: str
    full_name: str
    values: list[ProtoEnumValue] = field(default_factory=list)
    comment: str | None = None
    deprecated: bool = False


@dataclass
class ProtoField(DataClassJsonMixin):
    """Represents a field of a message.

    For enum and message kinds ``type_name`` holds the fully-qualified name
    of the referenced type (no leading dot). Map fields carry a synthetic
    entry message in ``map_entry`` whose fields are the key (number 1) and
    the value (number 2).
    """

    name: str
    number: int
    kind: FieldKind
    cardinality: Cardinality = Cardinality.SINGULAR
    presence: Presence = Presence.IMPLICIT
    packed: bool = False
    type_name: str | None = None
    map_entry: "ProtoMessage | None" = None
    oneof: str | None = None
    default_value: str | None = None
    weak: bool = False
    deprecated: bool = False
    options: dict[str, str] = field(default_factory=dict)
    comment: str | None = None
    trailing_comment: str | None = None

    @property
    def is_repeated(self) -> bool:
        return self.cardinality == Cardinality.REPEATED

    @property
    def is_map(self) -> bool:
        return self.cardinality == Cardinality.MAP

    @property
    def map_key(self) -> "ProtoField":
        if self.map_entry is None:
            raise ValueError(f"Field {self.name} is not a map")
        return self.map_entry.fields[0]

    @property
    def map_value(self) -> "ProtoField":
        if self.map_entry is None:
            raise ValueError(f"Field {self.name} is not a map")
        return self.map_entry.fields[1]


@dataclass
class ProtoMessage(DataClassJsonMixin):
    """Represents a message type definition."""

    name: str
    full_name: str
    fields: list[ProtoField] = field(default_factory=list)
    messages: list["ProtoMessage"] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    comment: str | None = None
    deprecated: bool = False
    is_map_entry: bool = False


@dataclass
class SchemaFile(DataClassJsonMixin):
    """Represents one schema (.proto) file."""

    name: str
    package: str = ""
    syntax: str = "proto2"
    imports: list[str] = field(default_factory=list)
    public_imports: list[str] = field(default_factory=list)
    messages: list[ProtoMessage] = field(default_factory=list)
    enums: list[ProtoEnum] = field(default_factory=list)
    comment: str | None = None
    deprecated: bool = False
    options: dict[str, Any] = field(default_factory=dict)


def iter_messages(messages: list[ProtoMessage]) -> Iterator[ProtoMessage]:
    """Yield messages depth-first, parents before their nested messages."""
    for message in messages:
        yield message
        yield from iter_messages(message.messages)


def iter_enums(file: SchemaFile) -> Iterator[ProtoEnum]:
    """Yield every enum declared in a file, top-level first."""
    yield from file.enums
    for message in iter_messages(file.messages):
        yield from message.enums

