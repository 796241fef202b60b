"""Unit tests configuration file."""

import sys
import types

import pytest
from google.protobuf import descriptor_pb2

from leanpb.generator import GeneratorConfig, link, parse, render
from leanpb.generator.util import module_name, output_path

FieldD = descriptor_pb2.FieldDescriptorProto


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


@pytest.fixture
def gen_code():
    """Generate and import modules for schemas.

    Call with one schema text, with ``{file name: text}`` for schemas that
    import each other, or with already parsed schema files (imported files
    first). Returns the module of the last file.
    """
    registered: list[str] = []

    def generate(schemas, **options):
        if isinstance(schemas, str):
            schemas = {"test.proto": schemas}
        if isinstance(schemas, dict):
            files = [parse(text, name) for name, text in schemas.items()]
        else:
            files = list(schemas)
        config = GeneratorConfig(runtime_import="leanpb.proto", **options)
        registry = link(files)

        module = None
        for file in files:
            source = render(file, registry, config)
            module = types.ModuleType(module_name(file.name))
            sys.modules[module.__name__] = module
            registered.append(module.__name__)
            exec(compile(source, output_path(file.name), "exec"), module.__dict__)
        return module

    yield generate

    for name in registered:
        sys.modules.pop(name, None)


@pytest.fixture
def todo_descriptor():
    """A compiled ``todo.proto``, as protoc would describe it."""
    fdp = descriptor_pb2.FileDescriptorProto(name="todo.proto", package="todo", syntax="proto3")

    priority = fdp.enum_type.add(name="Priority")
    priority.value.add(name="PRIORITY_UNSPECIFIED", number=0)
    priority.value.add(name="LOW", number=1)
    priority.value.add(name="HIGH", number=2)

    todo = fdp.message_type.add(name="Todo")
    todo.field.add(name="done", number=1, type=FieldD.TYPE_BOOL, label=FieldD.LABEL_OPTIONAL)
    todo.field.add(name="count", number=2, type=FieldD.TYPE_INT32, label=FieldD.LABEL_OPTIONAL)
    todo.field.add(name="tags", number=3, type=FieldD.TYPE_INT32, label=FieldD.LABEL_REPEATED)
    todo.field.add(
        name="m",
        number=4,
        type=FieldD.TYPE_MESSAGE,
        label=FieldD.LABEL_REPEATED,
        type_name=".todo.Todo.MEntry",
    )
    todo.field.add(name="title", number=5, type=FieldD.TYPE_STRING, label=FieldD.LABEL_OPTIONAL)
    todo.field.add(
        name="priority",
        number=6,
        type=FieldD.TYPE_ENUM,
        label=FieldD.LABEL_OPTIONAL,
        type_name=".todo.Priority",
    )
    todo.field.add(name="blob", number=7, type=FieldD.TYPE_BYTES, label=FieldD.LABEL_OPTIONAL)
    todo.field.add(
        name="parent",
        number=8,
        type=FieldD.TYPE_MESSAGE,
        label=FieldD.LABEL_OPTIONAL,
        type_name=".todo.Todo",
    )
    todo.field.add(
        name="note",
        number=9,
        type=FieldD.TYPE_STRING,
        label=FieldD.LABEL_OPTIONAL,
        oneof_index=0,
        proto3_optional=True,
    )
    todo.field.add(name="scores", number=10, type=FieldD.TYPE_SINT64, label=FieldD.LABEL_REPEATED)
    todo.field.add(name="weight", number=11, type=FieldD.TYPE_DOUBLE, label=FieldD.LABEL_OPTIONAL)
    todo.oneof_decl.add(name="_note")

    entry = todo.nested_type.add(name="MEntry")
    entry.options.map_entry = True
    entry.field.add(name="key", number=1, type=FieldD.TYPE_STRING, label=FieldD.LABEL_OPTIONAL)
    entry.field.add(name="value", number=2, type=FieldD.TYPE_INT32, label=FieldD.LABEL_OPTIONAL)

    return fdp
