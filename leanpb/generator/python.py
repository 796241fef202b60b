"""Python code generator: one module per schema file."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from importlib import resources

from jinja2 import Environment, PackageLoader

from .config import GeneratorConfig
from .decoder import gen_decode
from .encoder import gen_encode
from .linker import TypeRegistry
from .sizes import gen_size
from .typemap import TypeContext, attr_name, element_type, is_nullable, map_field, zero_value
from .types import FieldKind, ProtoEnum, ProtoField, ProtoMessage, SchemaFile, iter_enums, iter_messages
from .util import comment_lines, docstring, output_path, python_type_name, safe_member_name
from .validator import Diagnostic, SchemaValidationError, validate_file

logger = logging.getLogger(__name__)

RUNTIME_FILES = [
    "__init__.py",
    "serialization.py",
    "wire.py",
]

env = Environment(
    loader=PackageLoader("leanpb.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("python.py.j2")


@dataclass
class EnumValueModel:
    member: str
    number: int
    comments: list[str]
    trailing: str | None


@dataclass
class EnumModel:
    name: str
    doc: str | None
    values: list[EnumValueModel]
    names: dict[int, str]
    numbers: dict[str, int]


@dataclass
class FieldModel:
    attr: str
    name: str
    annotation: str
    declaration: str
    comments: list[str]
    trailing: str | None
    getter_type: str
    getter_value: str
    log_value: str


@dataclass
class MessageModel:
    name: str
    doc: str | None
    fields: list[FieldModel]
    field_names: dict[int, str]
    size_body: list[str]
    encode_body: list[str]
    decode_body: list[str]


@dataclass
class GenerationResult:
    """Outcome of generating one schema file.

    ``source`` is None when the file failed validation; ``diagnostics`` then
    lists every unsupported field it contains.
    """

    name: str
    output: str
    source: str | None
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.source is not None


def _doc(comment: str | None, deprecated: bool) -> str | None:
    parts = []
    if comment:
        parts.append(docstring(comment))
    if deprecated:
        parts.append("Deprecated.")
    return "\n\n".join(parts) or None


def _trailing(text: str | None) -> str | None:
    return " ".join(text.split()) if text else None


def _enum_model(enum: ProtoEnum, file: SchemaFile) -> EnumModel:
    names: dict[int, str] = {}
    for value in enum.values:
        names.setdefault(value.number, value.name)
    return EnumModel(
        name=python_type_name(enum.full_name, file.package),
        doc=_doc(enum.comment, enum.deprecated),
        values=[
            EnumValueModel(
                member=safe_member_name(value.name),
                number=value.number,
                comments=comment_lines(value.comment) + (["# Deprecated."] if value.deprecated else []),
                trailing=_trailing(value.trailing_comment),
            )
            for value in enum.values
        ],
        names=names,
        numbers={value.name: value.number for value in enum.values},
    )


def _logs_as_is(f: ProtoField) -> bool:
    kind = f.map_value.kind if f.is_map else f.kind
    return kind not in (FieldKind.ENUM, FieldKind.BYTES, FieldKind.MESSAGE)


def _field_model(f: ProtoField, ctx: TypeContext) -> FieldModel:
    storage = map_field(f, ctx)
    attr = attr_name(f)
    if is_nullable(f):
        getter_type = element_type(f, ctx)
        getter_value = f"self.{attr} if self.{attr} is not None else {zero_value(f, ctx)}"
    else:
        getter_type = storage.annotation
        getter_value = f"self.{attr}"

    return FieldModel(
        attr=attr,
        name=f.name,
        annotation=storage.annotation,
        declaration=storage.declaration(),
        comments=comment_lines(f.comment) + (["# Deprecated."] if f.deprecated else []),
        trailing=_trailing(f.trailing_comment),
        getter_type=getter_type,
        getter_value=getter_value,
        log_value=f"self.{attr}" if _logs_as_is(f) else f"_s.log_value(self.{attr})",
    )


def _message_model(message: ProtoMessage, file: SchemaFile, ctx: TypeContext, config: GeneratorConfig) -> MessageModel:
    return MessageModel(
        name=python_type_name(message.full_name, file.package),
        doc=_doc(message.comment, message.deprecated),
        fields=[_field_model(f, ctx) for f in message.fields],
        field_names={f.number: f.name for f in message.fields},
        size_body=gen_size(message),
        encode_body=gen_encode(message),
        decode_body=gen_decode(message, ctx, strict=config.strict_decode),
    )


def render(file: SchemaFile, registry: TypeRegistry, config: GeneratorConfig | None = None) -> str:
    """Render a linked schema file to Python source code.

    Raises:
        SchemaValidationError: the file uses constructs the codec does not
            support. Nothing is rendered.
    """
    config = config or GeneratorConfig()
    diagnostics = validate_file(file)
    if diagnostics:
        raise SchemaValidationError(diagnostics)

    ctx = TypeContext(registry, file)
    enums = [_enum_model(e, file) for e in iter_enums(file)]
    messages = [_message_model(m, file, ctx, config) for m in iter_messages(file.messages)]
    imports = sorted((module, sorted(names)) for module, names in ctx.imports.items())

    return template.render(
        file=file,
        header=_doc(file.comment, file.deprecated),
        enums=enums,
        messages=messages,
        imports=imports,
        config=config,
    )


def _generate_one(file: SchemaFile, registry: TypeRegistry, config: GeneratorConfig) -> GenerationResult:
    try:
        source = render(file, registry, config)
    except SchemaValidationError as e:
        return GenerationResult(file.name, output_path(file.name), None, e.diagnostics)
    logger.info("generated %s from %s", output_path(file.name), file.name)
    return GenerationResult(file.name, output_path(file.name), source)


def generate_files(
    files: list[SchemaFile],
    registry: TypeRegistry,
    config: GeneratorConfig | None = None,
    jobs: int = 1,
) -> list[GenerationResult]:
    """Generate every file, in input order.

    A file that fails validation yields a result without source; the other
    files are still generated. Each file is rendered by its own task, so
    ``jobs`` > 1 renders files in parallel.
    """
    config = config or GeneratorConfig()
    if jobs <= 1 or len(files) <= 1:
        return [_generate_one(f, registry, config) for f in files]
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        return list(pool.map(lambda f: _generate_one(f, registry, config), files))


def runtime() -> dict[str, str]:
    """Return the Python runtime files as a dict of filename -> content."""
    result: dict[str, str] = {}
    for filename in RUNTIME_FILES:
        content = resources.files("leanpb.proto").joinpath(filename).read_text()
        result[filename] = content
    return result
