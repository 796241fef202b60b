"""Schema model from a compiled ``FileDescriptorSet`` (``protoc --descriptor_set_out``)."""

import logging

from google.protobuf import descriptor_pb2 as d2

from .types import (
    Cardinality,
    FieldKind,
    Presence,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoMessage,
    SchemaFile,
)

logger = logging.getLogger(__name__)

FieldD = d2.FieldDescriptorProto

KIND_MAP: dict[int, FieldKind] = {
    FieldD.TYPE_DOUBLE: FieldKind.DOUBLE,
    FieldD.TYPE_FLOAT: FieldKind.FLOAT,
    FieldD.TYPE_INT64: FieldKind.INT64,
    FieldD.TYPE_UINT64: FieldKind.UINT64,
    FieldD.TYPE_INT32: FieldKind.INT32,
    FieldD.TYPE_FIXED64: FieldKind.FIXED64,
    FieldD.TYPE_FIXED32: FieldKind.FIXED32,
    FieldD.TYPE_BOOL: FieldKind.BOOL,
    FieldD.TYPE_STRING: FieldKind.STRING,
    FieldD.TYPE_GROUP: FieldKind.GROUP,
    FieldD.TYPE_MESSAGE: FieldKind.MESSAGE,
    FieldD.TYPE_BYTES: FieldKind.BYTES,
    FieldD.TYPE_UINT32: FieldKind.UINT32,
    FieldD.TYPE_ENUM: FieldKind.ENUM,
    FieldD.TYPE_SFIXED32: FieldKind.SFIXED32,
    FieldD.TYPE_SFIXED64: FieldKind.SFIXED64,
    FieldD.TYPE_SINT32: FieldKind.SINT32,
    FieldD.TYPE_SINT64: FieldKind.SINT64,
}

# Field numbers of the descriptor messages, used in SourceCodeInfo paths.
FILE_MESSAGE = 4
FILE_ENUM = 5
FILE_SYNTAX = 12
MESSAGE_FIELD = 2
MESSAGE_NESTED = 3
MESSAGE_ENUM = 4
ENUM_VALUE = 2

Path = tuple[int, ...]


class _Comments:
    """Comments of one file, keyed by SourceCodeInfo element path."""

    def __init__(self, fdp: d2.FileDescriptorProto) -> None:
        self.locations = {tuple(loc.path): loc for loc in fdp.source_code_info.location}

    def leading(self, path: Path) -> str | None:
        loc = self.locations.get(path)
        return _clean(loc.leading_comments) if loc else None

    def trailing(self, path: Path) -> str | None:
        loc = self.locations.get(path)
        return _clean(loc.trailing_comments) if loc else None

    def header(self) -> str | None:
        loc = self.locations.get((FILE_SYNTAX,))
        if loc and loc.leading_detached_comments:
            return _clean(loc.leading_detached_comments[0])
        return None


def _clean(text: str) -> str | None:
    lines = [line[1:] if line.startswith(" ") else line for line in text.strip("\n").split("\n")]
    return "\n".join(lines).rstrip() or None


def _syntax(fdp: d2.FileDescriptorProto) -> str:
    # protoc leaves syntax empty for proto2 files
    return fdp.syntax or "proto2"


def _presence(syntax: str, desc: d2.FieldDescriptorProto) -> tuple[Cardinality, Presence]:
    if desc.label == FieldD.LABEL_REPEATED:
        return Cardinality.REPEATED, Presence.IMPLICIT
    if syntax == "proto3" and not desc.proto3_optional:
        if desc.type == FieldD.TYPE_MESSAGE:
            return Cardinality.SINGULAR, Presence.EXPLICIT
        return Cardinality.SINGULAR, Presence.IMPLICIT
    return Cardinality.SINGULAR, Presence.EXPLICIT


def _field(
    syntax: str,
    desc: d2.FieldDescriptorProto,
    message: d2.DescriptorProto,
    comments: _Comments,
    path: Path,
) -> ProtoField:
    cardinality, presence = _presence(syntax, desc)
    options: dict[str, str] = {}
    if desc.options.HasField("packed"):
        options["packed"] = str(desc.options.packed).lower()
    oneof = None
    if desc.HasField("oneof_index") and not desc.proto3_optional:
        oneof = message.oneof_decl[desc.oneof_index].name

    return ProtoField(
        name=desc.name,
        number=desc.number,
        kind=KIND_MAP[desc.type],
        cardinality=cardinality,
        presence=presence,
        type_name=desc.type_name or None,
        oneof=oneof,
        default_value=desc.default_value if desc.HasField("default_value") else None,
        weak=desc.options.weak,
        deprecated=desc.options.deprecated,
        options=options,
        comment=comments.leading(path),
        trailing_comment=comments.trailing(path),
    )


def _enum(desc: d2.EnumDescriptorProto, prefix: str, comments: _Comments, path: Path) -> ProtoEnum:
    return ProtoEnum(
        name=desc.name,
        full_name=f"{prefix}.{desc.name}" if prefix else desc.name,
        values=[
            ProtoEnumValue(
                name=value.name,
                number=value.number,
                comment=comments.leading(path + (ENUM_VALUE, i)),
                trailing_comment=comments.trailing(path + (ENUM_VALUE, i)),
                deprecated=value.options.deprecated,
            )
            for i, value in enumerate(desc.value)
        ],
        comment=comments.leading(path),
        deprecated=desc.options.deprecated,
    )


def _message(
    syntax: str,
    desc: d2.DescriptorProto,
    prefix: str,
    comments: _Comments,
    path: Path,
) -> ProtoMessage:
    full_name = f"{prefix}.{desc.name}" if prefix else desc.name
    entries: dict[str, ProtoMessage] = {}
    messages: list[ProtoMessage] = []
    for i, nested in enumerate(desc.nested_type):
        converted = _message(syntax, nested, full_name, comments, path + (MESSAGE_NESTED, i))
        if nested.options.map_entry:
            converted.is_map_entry = True
            entries["." + converted.full_name] = converted
        else:
            messages.append(converted)

    fields = []
    for i, field_desc in enumerate(desc.field):
        field = _field(syntax, field_desc, desc, comments, path + (MESSAGE_FIELD, i))
        entry = entries.get(field_desc.type_name)
        if entry is not None and field.is_repeated:
            # Entry fields are always key = 1, value = 2.
            entry.fields.sort(key=lambda f: f.number)
            for sub in entry.fields:
                sub.presence = Presence.IMPLICIT
            field.cardinality = Cardinality.MAP
            field.map_entry = entry
            field.type_name = entry.full_name
        fields.append(field)

    return ProtoMessage(
        name=desc.name,
        full_name=full_name,
        fields=fields,
        messages=messages,
        enums=[
            _enum(e, full_name, comments, path + (MESSAGE_ENUM, i)) for i, e in enumerate(desc.enum_type)
        ],
        comment=comments.leading(path),
        deprecated=desc.options.deprecated,
    )


def convert_file(fdp: d2.FileDescriptorProto) -> SchemaFile:
    """Convert one ``FileDescriptorProto`` into the schema model.

    Type references keep their leading dot; :func:`leanpb.generator.linker.link`
    resolves them like any other fully-qualified name.
    """
    syntax = _syntax(fdp)
    comments = _Comments(fdp)
    file = SchemaFile(
        name=fdp.name,
        package=fdp.package,
        syntax=syntax,
        imports=list(fdp.dependency),
        public_imports=[fdp.dependency[i] for i in fdp.public_dependency],
        messages=[
            _message(syntax, m, fdp.package, comments, (FILE_MESSAGE, i)) for i, m in enumerate(fdp.message_type)
        ],
        enums=[_enum(e, fdp.package, comments, (FILE_ENUM, i)) for i, e in enumerate(fdp.enum_type)],
        comment=comments.header(),
        deprecated=fdp.options.deprecated,
    )
    if fdp.extension:
        logger.debug("%s: ignoring %d extension fields", fdp.name, len(fdp.extension))
    return file


def load_descriptor_set(data: bytes) -> list[SchemaFile]:
    """Parse a serialized ``FileDescriptorSet`` into schema files, in set order."""
    fds = d2.FileDescriptorSet()
    fds.ParseFromString(data)
    return [convert_file(fdp) for fdp in fds.file]
