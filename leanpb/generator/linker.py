"""Loading of schema files and resolution of type references."""

import logging
import os
from dataclasses import dataclass

from .kinds import is_packable
from .parser import ValidationError, parse
from .types import FieldKind, ProtoField, ProtoMessage, SchemaFile, iter_messages
from .util import python_type_name, safe_member_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TypeInfo:
    """A named enum or message type known to the generator."""

    full_name: str
    kind: FieldKind
    file: str
    py_name: str
    default_member: str | None = None  # First value of an enum


class TypeRegistry:
    """All named types of a batch of schema files, by fully-qualified name."""

    def __init__(self) -> None:
        self.types: dict[str, TypeInfo] = {}

    def __contains__(self, full_name: str) -> bool:
        return full_name in self.types

    def __getitem__(self, full_name: str) -> TypeInfo:
        return self.types[full_name]

    def add_file(self, file: SchemaFile) -> None:
        for enum in file.enums + [e for m in iter_messages(file.messages) for e in m.enums]:
            self._add(
                TypeInfo(
                    full_name=enum.full_name,
                    kind=FieldKind.ENUM,
                    file=file.name,
                    py_name=python_type_name(enum.full_name, file.package),
                    default_member=safe_member_name(enum.values[0].name) if enum.values else None,
                )
            )
        for message in iter_messages(file.messages):
            self._add(
                TypeInfo(
                    full_name=message.full_name,
                    kind=FieldKind.MESSAGE,
                    file=file.name,
                    py_name=python_type_name(message.full_name, file.package),
                )
            )

    def _add(self, info: TypeInfo) -> None:
        existing = self.types.get(info.full_name)
        if existing is not None and existing.file != info.file:
            raise ValidationError(f"{info.full_name} is defined in both {existing.file} and {info.file}")
        self.types[info.full_name] = info

    def resolve(self, name: str, scope: str) -> TypeInfo | None:
        """Find a type the way protoc does, from the innermost scope outwards.

        A leading dot makes the name fully-qualified.
        """
        if name.startswith("."):
            return self.types.get(name[1:])

        parts = scope.split(".") if scope else []
        while True:
            candidate = ".".join(parts + [name])
            if candidate in self.types:
                return self.types[candidate]
            if not parts:
                return None
            parts.pop()


def _apply_packed(file: SchemaFile, message: ProtoMessage, field: ProtoField, errors: list[str]) -> None:
    option = field.options.get("packed")
    if option is not None:
        if not field.is_repeated or not is_packable(field.kind):
            errors.append(
                f"{file.name}: {message.full_name}.{field.name}: [packed] only applies to "
                "repeated scalar numeric, bool or enum fields"
            )
            return
        field.packed = option.lower() == "true"
    else:
        field.packed = file.syntax != "proto2" and field.is_repeated and is_packable(field.kind)


def _link_field(
    registry: TypeRegistry,
    visible: set[str],
    file: SchemaFile,
    message: ProtoMessage,
    field: ProtoField,
    errors: list[str],
) -> None:
    if field.kind not in (FieldKind.ENUM, FieldKind.MESSAGE) or field.type_name is None:
        return

    info = registry.resolve(field.type_name, message.full_name)
    if info is None:
        errors.append(f"{file.name}: {message.full_name}.{field.name}: unknown type {field.type_name}")
        return

    if info.file != file.name and info.file not in visible:
        errors.append(
            f"{file.name}: {message.full_name}.{field.name}: {info.full_name} is defined in "
            f"{info.file}, which is not imported"
        )
    field.kind = info.kind
    field.type_name = info.full_name


def _visible_files(file: SchemaFile, by_name: dict[str, SchemaFile]) -> set[str]:
    """Files whose types the given file may use: its imports, plus public imports of those."""
    visible = set(file.imports)
    pending = list(file.imports)
    while pending:
        imported = by_name.get(pending.pop())
        for name in imported.public_imports if imported else []:
            if name not in visible:
                visible.add(name)
                pending.append(name)
    return visible


def link(files: list[SchemaFile], registry: TypeRegistry | None = None) -> TypeRegistry:
    """Resolve every type reference of the given files in place.

    Field kinds are settled to ``enum`` or ``message`` and type names made
    fully-qualified. Repeated fields get their ``packed`` flag from the
    ``[packed]`` option or the syntax default.

    Raises:
        ValidationError: listing every unresolved reference.
    """
    if registry is None:
        registry = TypeRegistry()
        for file in files:
            registry.add_file(file)

    by_name = {file.name: file for file in files}
    errors: list[str] = []
    for file in files:
        visible = _visible_files(file, by_name)
        for message in iter_messages(file.messages):
            for field in message.fields:
                if field.is_map:
                    _link_field(registry, visible, file, message, field.map_value, errors)
                else:
                    _link_field(registry, visible, file, message, field, errors)
                _apply_packed(file, message, field, errors)

    if errors:
        raise ValidationError("\n".join(errors))
    return registry


def _find_import(name: str, include_paths: list[str]) -> str | None:
    for include in include_paths:
        path = os.path.join(include, name)
        if os.path.isfile(path):
            return path
    return None


def _schema_name(path: str, include_paths: list[str]) -> str:
    """Name of a schema file relative to the include path it lives under."""
    full = os.path.abspath(path)
    for include in include_paths:
        root = os.path.abspath(include)
        if full.startswith(root + os.sep):
            return os.path.relpath(full, root).replace(os.sep, "/")
    return os.path.basename(path)


def load(paths: list[str], include_paths: list[str] | None = None) -> tuple[list[SchemaFile], TypeRegistry]:
    """Parse schema files and everything they import, then link them.

    Imports are searched on ``include_paths``; when none are given, the
    directory of each input file is used.

    Returns the parsed input files (imports excluded) and a registry holding
    the types of all loaded files.
    """
    if not include_paths:
        include_paths = list(dict.fromkeys(os.path.dirname(p) or "." for p in paths))

    loaded: dict[str, SchemaFile] = {}
    inputs: list[SchemaFile] = []

    def load_one(path: str, name: str) -> SchemaFile:
        if name in loaded:
            return loaded[name]
        logger.debug("loading %s from %s", name, path)
        with open(path, encoding="utf-8") as f:
            file = parse(f.read(), name)
        loaded[name] = file

        for imported in file.imports:
            import_path = _find_import(imported, include_paths)
            if import_path is None:
                raise ValidationError(f"{name}: import {imported!r} not found in {include_paths}")
            load_one(import_path, imported)
        return file

    for path in paths:
        inputs.append(load_one(path, _schema_name(path, include_paths)))

    return inputs, link(list(loaded.values()))
