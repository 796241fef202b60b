"""Schema (.proto) parser using Lark."""

import ast
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedInput
from lark.visitors import Transformer, v_args

from .types import (
    MAP_KEY_KINDS,
    SCALAR_KINDS,
    Cardinality,
    FieldKind,
    Presence,
    ProtoEnum,
    ProtoEnumValue,
    ProtoField,
    ProtoMessage,
    SchemaFile,
    iter_messages,
)
from .util import to_camel_case

logger = logging.getLogger(__name__)

_g_parser: Lark | None = None

MIN_RESERVED_NUMBER = 19000
MAX_RESERVED_NUMBER = 19999
MAX_FIELD_NUMBER = (1 << 29) - 1

_SCALARS = {kind.value: kind for kind in SCALAR_KINDS}


class ValidationError(RuntimeError):
    """Raised when a schema is malformed."""


class ParseError(ValidationError):
    """Raised when a schema file has a syntax error."""

    def __init__(self, file_name: str, line: int, column: int, detail: str) -> None:
        super().__init__(f"{file_name}:{line}:{column}: {detail}")
        self.file_name = file_name
        self.line = line
        self.column = column


@dataclass
class _Syntax:
    value: str


@dataclass
class _Package:
    value: str


@dataclass
class _Import:
    value: str
    public: bool = False


@dataclass
class _Option:
    name: str
    value: str


@dataclass
class _FieldOptions:
    value: dict[str, str]


@dataclass
class _TypeRef:
    value: str


@dataclass
class _String:
    value: str


@dataclass
class _Constant:
    value: str


@dataclass
class _Range:
    start: int
    end: int


@dataclass
class _ReservedName:
    value: str


@dataclass
class _Reserved:
    ranges: list[_Range]
    names: list[str]


@dataclass
class _Oneof:
    name: str
    fields: list[ProtoField]


@dataclass
class _Ignored:
    what: str


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[object]) -> Any:
    filtered = _filter(args, class_type)
    if len(filtered) == 0:
        return None
    if len(filtered) > 1:
        raise RuntimeError(f"Found more than one {class_type}")

    if hasattr(filtered[0], "value"):
        return filtered[0].value
    return filtered[0]


TMany = TypeVar("TMany")


def _find_many(args: list[Any], class_type: type[TMany]) -> list[TMany]:
    return _filter(args, class_type)


def _tokens(args: list[Any], token_type: str) -> list[Token]:
    return [a for a in args if isinstance(a, Token) and a.type == token_type]


def _parse_int(text: str) -> int:
    sign = -1 if text.startswith("-") else 1
    text = text.lstrip("+-")
    if text[:2].lower() == "0x":
        return sign * int(text, 16)
    if len(text) > 1 and text.startswith("0"):
        return sign * int(text, 8)
    return sign * int(text, 10)


def _is_true(value: str | None) -> bool:
    return value is not None and value.lower() == "true"


@dataclass
class _CommentBlock:
    start_line: int
    end_line: int
    text: str
    own_line: bool


_COMMENT_RE = re.compile(
    r"\"(?:[^\"\\\n]|\\.)*\"|'(?:[^'\\\n]|\\.)*'|//[^\n]*|/\*.*?\*/",
    re.DOTALL,
)


def _clean_block_comment(text: str) -> str:
    lines = text[2:-2].strip("\n").split("\n")
    return "\n".join(re.sub(r"^\s*\*? ?", "", line) for line in lines).strip("\n")


class Comments:
    """Source comments of one file, attachable to elements by line number.

    A comment block on the lines directly above an element is its leading
    comment; a comment after code on the element's last line is its
    trailing comment. Consecutive ``//`` lines merge into one block.
    """

    def __init__(self, text: str) -> None:
        self.blocks: list[_CommentBlock] = []
        for match in _COMMENT_RE.finditer(text):
            raw = match.group(0)
            if raw[0] in "\"'":
                continue
            start = text.count("\n", 0, match.start()) + 1
            end = start + raw.count("\n")
            line_start = text.rfind("\n", 0, match.start()) + 1
            own_line = text[line_start : match.start()].strip() == ""
            if raw.startswith("//"):
                body = raw[2:]
                body = body[1:] if body.startswith(" ") else body
                prev = self.blocks[-1] if self.blocks else None
                if prev and own_line and prev.own_line and prev.end_line == start - 1:
                    prev.end_line = end
                    prev.text += "\n" + body
                    continue
            else:
                body = _clean_block_comment(raw)
            self.blocks.append(_CommentBlock(start, end, body.rstrip(), own_line))

    def leading(self, line: int) -> str | None:
        for block in self.blocks:
            if block.own_line and block.end_line == line - 1:
                return block.text
        return None

    def trailing(self, line: int) -> str | None:
        for block in self.blocks:
            if not block.own_line and block.start_line == line:
                return block.text
        return None

    def header(self, first_line: int) -> str | None:
        """The first comment block of the file, if it precedes all statements."""
        if self.blocks and self.blocks[0].own_line and self.blocks[0].end_line < first_line:
            return self.blocks[0].text
        return None


class TreeTransformer(Transformer):
    """Transform parse tree into schema model types."""

    def __init__(self, comments: Comments, syntax: str, file_name: str) -> None:
        super().__init__()
        self.comments = comments
        self.file_syntax = syntax
        self.file_name = file_name
        self.errors: list[str] = []

    def _error(self, line: int, text: str) -> None:
        self.errors.append(f"{self.file_name}:{line}: {text}")

    # Values

    def string(self, args: list[Any]) -> _String:
        return _String(value="".join(ast.literal_eval(str(tok)) for tok in args))

    def constant(self, args: list[Any]) -> _Constant:
        arg = args[0]
        if isinstance(arg, _String):
            return _Constant(value=arg.value)
        if isinstance(arg, Tree):
            return _Constant(value="{...}")
        return _Constant(value=str(arg))

    def aggregate(self, args: list[Any]) -> Tree:
        return Tree("aggregate", [])

    def agg_list(self, args: list[Any]) -> Tree:
        return Tree("agg_list", [])

    def type_ref(self, args: list[Any]) -> _TypeRef:
        return _TypeRef(value=str(args[0]))

    def option(self, args: list[Any]) -> _Option:
        return _Option(name=str(args[0]), value=_find_one(args, _Constant))

    def field_option(self, args: list[Any]) -> _Option:
        return _Option(name=str(args[0]), value=_find_one(args, _Constant))

    def field_options(self, args: list[Any]) -> _FieldOptions:
        return _FieldOptions(value={o.name: o.value for o in _find_many(args, _Option)})

    def range(self, args: list[Any]) -> _Range:
        start = _parse_int(str(args[0]))
        if len(args) == 1:
            return _Range(start, start)
        if args[1].type == "MAX":
            return _Range(start, MAX_FIELD_NUMBER)
        return _Range(start, _parse_int(str(args[1])))

    def reserved_name(self, args: list[Any]) -> _ReservedName:
        arg = args[0]
        return _ReservedName(value=arg.value if isinstance(arg, _String) else str(arg))

    def reserved(self, args: list[Any]) -> _Reserved:
        return _Reserved(
            ranges=_find_many(args, _Range),
            names=[n.value for n in _find_many(args, _ReservedName)],
        )

    # File level

    def syntax(self, args: list[Any]) -> _Syntax:
        return _Syntax(value=_find_one(args, _String))

    def edition(self, args: list[Any]) -> _Syntax:
        return _Syntax(value="editions")

    def package(self, args: list[Any]) -> _Package:
        return _Package(value=str(args[0]))

    def import_stmt(self, args: list[Any]) -> _Import:
        kinds = _tokens(args, "IMPORT_KIND")
        return _Import(value=_find_one(args, _String), public=bool(kinds) and kinds[0] == "public")

    def extensions(self, args: list[Any]) -> _Ignored:
        return _Ignored("extensions")

    def extend(self, args: list[Any]) -> _Ignored:
        return _Ignored("extend")

    def service(self, args: list[Any]) -> _Ignored:
        return _Ignored("service")

    def rpc(self, args: list[Any]) -> _Ignored:
        return _Ignored("rpc")

    def rpc_body(self, args: list[Any]) -> _Ignored:
        return _Ignored("rpc")

    # Fields

    def _presence(self, label: str | None, line: int) -> tuple[Cardinality, Presence]:
        if label == "repeated":
            return Cardinality.REPEATED, Presence.IMPLICIT
        if self.file_syntax == "proto3":
            if label == "required":
                self._error(line, "required fields are not allowed in proto3")
            return Cardinality.SINGULAR, Presence.EXPLICIT if label == "optional" else Presence.IMPLICIT
        return Cardinality.SINGULAR, Presence.EXPLICIT

    def _make_field(
        self,
        meta: Any,
        args: list[Any],
        label: str | None,
        type_name: str,
        oneof: bool = False,
    ) -> ProtoField:
        name = str(_tokens(args, "IDENT")[0])
        number = _parse_int(str(_tokens(args, "INT")[0]))
        options = _find_one(args, _FieldOptions) or {}
        cardinality, presence = self._presence(label, meta.line)
        if oneof:
            presence = Presence.EXPLICIT

        kind = _SCALARS.get(type_name, FieldKind.MESSAGE)
        return ProtoField(
            name=name,
            number=number,
            kind=kind,
            cardinality=cardinality,
            presence=presence,
            type_name=None if kind in _SCALARS.values() else type_name,
            default_value=options.get("default"),
            weak=_is_true(options.get("weak")),
            deprecated=_is_true(options.get("deprecated")),
            options=options,
            comment=self.comments.leading(meta.line),
            trailing_comment=self.comments.trailing(meta.end_line),
        )

    @v_args(meta=True)
    def field(self, meta: Any, args: list[Any]) -> ProtoField:
        labels = _tokens(args, "LABEL")
        label = str(labels[0]) if labels else None
        return self._make_field(meta, args, label, _find_one(args, _TypeRef))

    @v_args(meta=True)
    def oneof_field(self, meta: Any, args: list[Any]) -> ProtoField:
        return self._make_field(meta, args, None, _find_one(args, _TypeRef), oneof=True)

    @v_args(meta=True)
    def map_field(self, meta: Any, args: list[Any]) -> ProtoField:
        key_type, value_type = [t.value for t in _find_many(args, _TypeRef)]
        field = self._make_field(meta, args, None, value_type)
        key_kind = _SCALARS.get(key_type)
        if key_kind not in MAP_KEY_KINDS:
            self._error(meta.line, f"invalid map key type {key_type!r} for field {field.name}")
            key_kind = FieldKind.STRING

        value = ProtoField(
            name="value",
            number=2,
            kind=field.kind,
            type_name=field.type_name,
        )
        entry_name = to_camel_case(field.name) + "Entry"
        field.cardinality = Cardinality.MAP
        field.presence = Presence.IMPLICIT
        field.map_entry = ProtoMessage(
            name=entry_name,
            full_name=entry_name,
            fields=[ProtoField(name="key", number=1, kind=key_kind), value],
            is_map_entry=True,
        )
        # The field itself no longer refers to the value type.
        field.kind = FieldKind.MESSAGE
        field.type_name = entry_name
        return field

    @v_args(meta=True)
    def group(self, meta: Any, args: list[Any]) -> ProtoField:
        labels = _tokens(args, "LABEL")
        label = str(labels[0]) if labels else None
        type_name = str(_tokens(args, "IDENT")[0])
        field = self._make_field(meta, args, label, type_name)
        field.name = type_name.lower()
        field.kind = FieldKind.GROUP
        return field

    @v_args(meta=True)
    def oneof(self, meta: Any, args: list[Any]) -> _Oneof:
        name = str(_tokens(args, "IDENT")[0])
        fields = _find_many(args, ProtoField)
        for field in fields:
            field.oneof = name
        return _Oneof(name=name, fields=fields)

    # Types

    @v_args(meta=True)
    def enum_value(self, meta: Any, args: list[Any]) -> ProtoEnumValue:
        options = _find_one(args, _FieldOptions) or {}
        return ProtoEnumValue(
            name=str(_tokens(args, "IDENT")[0]),
            number=_parse_int(str(_tokens(args, "SIGNED_INT")[0])),
            comment=self.comments.leading(meta.line),
            trailing_comment=self.comments.trailing(meta.end_line),
            deprecated=_is_true(options.get("deprecated")),
        )

    @v_args(meta=True)
    def enum(self, meta: Any, args: list[Any]) -> ProtoEnum:
        options = {o.name: o.value for o in _find_many(args, _Option)}
        name = str(_tokens(args, "IDENT")[0])
        return ProtoEnum(
            name=name,
            full_name=name,
            values=_find_many(args, ProtoEnumValue),
            comment=self.comments.leading(meta.line),
            deprecated=_is_true(options.get("deprecated")),
        )

    @v_args(meta=True)
    def message(self, meta: Any, args: list[Any]) -> ProtoMessage:
        name = str(_tokens(args, "IDENT")[0])
        options = {o.name: o.value for o in _find_many(args, _Option)}

        fields: list[ProtoField] = []
        for arg in args:
            if isinstance(arg, ProtoField):
                fields.append(arg)
            elif isinstance(arg, _Oneof):
                fields.extend(arg.fields)

        for reserved in _find_many(args, _Reserved):
            for field in fields:
                if field.name in reserved.names:
                    self._error(meta.line, f"field name {field.name!r} is reserved in {name}")
                if any(r.start <= field.number <= r.end for r in reserved.ranges):
                    self._error(meta.line, f"field number {field.number} is reserved in {name}")

        return ProtoMessage(
            name=name,
            full_name=name,
            fields=fields,
            messages=_find_many(args, ProtoMessage),
            enums=_find_many(args, ProtoEnum),
            comment=self.comments.leading(meta.line),
            deprecated=_is_true(options.get("deprecated")),
        )

    def start(self, args: list[Any]) -> SchemaFile:
        options = {o.name: o.value for o in _find_many(args, _Option)}
        return SchemaFile(
            name=self.file_name,
            package=_find_one(args, _Package) or "",
            syntax=self.file_syntax,
            imports=[i.value for i in _find_many(args, _Import)],
            public_imports=[i.value for i in _find_many(args, _Import) if i.public],
            messages=_find_many(args, ProtoMessage),
            enums=_find_many(args, ProtoEnum),
            deprecated=_is_true(options.get("deprecated")),
            options=options,
        )


def _assign_names(file: SchemaFile) -> None:
    """Fill in fully-qualified names now that the package is known."""

    def qualify(prefix: str, name: str) -> str:
        return f"{prefix}.{name}" if prefix else name

    def walk(messages: list[ProtoMessage], enums: list[ProtoEnum], prefix: str) -> None:
        for enum in enums:
            enum.full_name = qualify(prefix, enum.name)
        for message in messages:
            message.full_name = qualify(prefix, message.name)
            for field in message.fields:
                if field.map_entry is not None:
                    field.map_entry.full_name = qualify(message.full_name, field.map_entry.name)
                    field.type_name = field.map_entry.full_name
            walk(message.messages, message.enums, message.full_name)

    walk(file.messages, file.enums, file.package)


def validate(file: SchemaFile) -> None:
    """Check structural rules of a parsed schema file."""
    errors: list[str] = []

    for message in iter_messages(file.messages):
        numbers: dict[int, str] = {}
        names: set[str] = set()
        for field in message.fields:
            if field.number < 1 or field.number > MAX_FIELD_NUMBER:
                errors.append(f"{message.full_name}.{field.name}: field number {field.number} out of range")
            elif MIN_RESERVED_NUMBER <= field.number <= MAX_RESERVED_NUMBER:
                errors.append(
                    f"{message.full_name}.{field.name}: field numbers {MIN_RESERVED_NUMBER}-"
                    f"{MAX_RESERVED_NUMBER} are reserved for the protobuf implementation"
                )
            if field.number in numbers:
                errors.append(
                    f"{message.full_name}.{field.name}: field number {field.number} "
                    f"already used by {numbers[field.number]}"
                )
            numbers[field.number] = field.name
            if field.name in names:
                errors.append(f"{message.full_name}.{field.name}: duplicate field name")
            names.add(field.name)

    enums = list(file.enums)
    for message in iter_messages(file.messages):
        enums.extend(message.enums)
    for enum in enums:
        if not enum.values:
            errors.append(f"{enum.full_name}: enum must define at least one value")
        elif file.syntax == "proto3" and enum.values[0].number != 0:
            errors.append(f"{enum.full_name}: the first value of a proto3 enum must be zero")

    if errors:
        raise ValidationError("\n".join(errors))


def _get_parser() -> Lark:
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/protodef.lark", encoding="utf-8") as f:
            grammar = f.read()
        _g_parser = Lark(grammar, propagate_positions=True)

    return _g_parser


def parse(text: str, file_name: str = "<string>") -> SchemaFile:
    """Parse a .proto schema.

    Type references are left as written; :func:`leanpb.generator.linker.link`
    resolves them once every imported file is loaded.
    """
    try:
        tree = _get_parser().parse(text)
    except UnexpectedInput as e:
        raise ParseError(file_name, e.line, e.column, str(e).strip().split("\n")[0]) from e

    syntax = "proto2"
    for node in tree.find_data("syntax"):
        syntax = ast.literal_eval(str(next(node.scan_values(lambda v: isinstance(v, Token)))))
    if any(True for _ in tree.find_data("edition")):
        syntax = "editions"

    comments = Comments(text)
    transformer = TreeTransformer(comments, syntax, file_name)
    file = transformer.transform(tree)
    if transformer.errors:
        raise ValidationError("\n".join(transformer.errors))

    first_line = min((c.meta.line for c in tree.children if isinstance(c, Tree) and not c.meta.empty), default=1)
    file.comment = comments.header(first_line)

    for ignored in ("service", "extend"):
        if any(True for _ in tree.find_data(ignored)):
            logger.debug("%s: ignoring %s declarations", file_name, ignored)

    _assign_names(file)
    validate(file)
    logger.debug("parsed %s: %d messages, %d enums", file_name, len(file.messages), len(file.enums))
    return file
