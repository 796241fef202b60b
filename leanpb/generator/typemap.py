"""Python storage types for schema fields."""

from dataclasses import dataclass

from .kinds import codec_for
from .linker import TypeRegistry
from .types import Cardinality, FieldKind, Presence, ProtoField, SchemaFile
from .util import module_name, safe_identifier


@dataclass(frozen=True)
class StorageType:
    """How a field is held on a generated dataclass.

    ``default`` is a Python expression for the dataclass default, or None
    when ``factory`` (``list`` or ``dict``) builds it instead.
    """

    annotation: str
    nullable: bool
    default: str | None = None
    factory: str | None = None

    def declaration(self) -> str:
        """Right-hand side of the dataclass field declaration."""
        if self.factory is not None:
            return f"dataclasses.field(default_factory={self.factory})"
        if self.default is None:
            raise ValueError(f"No default for {self.annotation}")
        return self.default


class TypeContext:
    """Names of enum and message types as seen from one generated module.

    Every type defined in another schema file is recorded in ``imports``
    (module -> names) the first time it is referenced.
    """

    def __init__(self, registry: TypeRegistry, file: SchemaFile) -> None:
        self.registry = registry
        self.file = file
        self.imports: dict[str, set[str]] = {}

    def type_name(self, full_name: str) -> str:
        info = self.registry[full_name]
        if info.file != self.file.name:
            self.imports.setdefault(module_name(info.file), set()).add(info.py_name)
        return info.py_name

    def enum_default(self, full_name: str) -> str:
        info = self.registry[full_name]
        return f"{self.type_name(full_name)}.{info.default_member}"


def attr_name(field: ProtoField) -> str:
    """Attribute name of a field on the generated class."""
    return safe_identifier(field.name)


def element_type(field: ProtoField, ctx: TypeContext) -> str:
    """Bare Python type of one value of the field."""
    if field.kind in (FieldKind.ENUM, FieldKind.MESSAGE):
        if field.type_name is None:
            raise ValueError(f"Unresolved type for field {field.name}")
        return ctx.type_name(field.type_name)
    py_type = codec_for(field.kind).py_type
    if py_type is None:
        raise ValueError(f"Unknown Python type for kind {field.kind}")
    return py_type


def zero_value(field: ProtoField, ctx: TypeContext) -> str:
    """Expression for the value an absent field reads as."""
    if field.kind == FieldKind.ENUM:
        if field.type_name is None:
            raise ValueError(f"Unresolved type for field {field.name}")
        return ctx.enum_default(field.type_name)
    if field.kind == FieldKind.MESSAGE:
        return f"{element_type(field, ctx)}()"
    zero = codec_for(field.kind).zero
    if zero is None:
        raise ValueError(f"No zero value for kind {field.kind}")
    return zero


def is_nullable(field: ProtoField) -> bool:
    if field.cardinality != Cardinality.SINGULAR:
        return False
    return field.presence == Presence.EXPLICIT or field.kind in (FieldKind.BYTES, FieldKind.MESSAGE)


def map_field(field: ProtoField, ctx: TypeContext) -> StorageType:
    """Decide the storage type and default of a field.

    Messages and bytes are always nullable, and so is any explicit-presence
    field. Implicit-presence scalars and enums hold their bare value with the
    kind's zero (an enum's first value) as default.
    """
    if field.is_map:
        key = element_type(field.map_key, ctx)
        value = element_type(field.map_value, ctx)
        return StorageType(f"dict[{key}, {value}]", nullable=False, factory="dict")

    element = element_type(field, ctx)
    if field.is_repeated:
        return StorageType(f"list[{element}]", nullable=False, factory="list")
    if is_nullable(field):
        return StorageType(f"{element} | None", nullable=True, default="None")
    return StorageType(element, nullable=False, default=zero_value(field, ctx))
