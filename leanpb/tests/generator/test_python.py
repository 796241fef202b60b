"""Tests for Python code generation."""

# pylint: disable=redefined-outer-name,unused-variable,expression-not-assigned,singleton-comparison

import os

import pytest
from pytest import raises

from leanpb.generator import GeneratorConfig, generate_files, link, load, parse, render
from leanpb.generator.linker import TypeRegistry
from leanpb.generator.python import runtime
from leanpb.generator.typemap import StorageType, TypeContext, element_type, map_field
from leanpb.generator.types import FieldKind, ProtoField, SchemaFile
from leanpb.generator.util import module_name, output_path, python_type_name, safe_identifier

FILE_DIR = os.path.dirname(os.path.realpath(__file__))


def linked(proto, name="test.proto"):
    file = parse(proto, name)
    registry = link([file])
    return file, registry


def describe_storage_types():
    @pytest.fixture
    def fields():
        file, registry = linked(
            """
            syntax = "proto3";
            package p;
            enum Color { BLACK = 0; WHITE = 1; }
            message M {
                int32 a = 1;
                optional int32 b = 2;
                string c = 3;
                bytes d = 4;
                M e = 5;
                Color f = 6;
                repeated Color g = 7;
                map<string, M> h = 8;
                optional double i = 9;
            }
            """
        )
        ctx = TypeContext(registry, file)
        return {f.name: map_field(f, ctx) for f in file.messages[0].fields}

    def stores_implicit_scalars_bare(expect, fields):
        expect(fields["a"].annotation) == "int"
        expect(fields["a"].declaration()) == "0"
        expect(fields["c"].declaration()) == '""'
        expect(fields["f"].annotation) == "Color"
        expect(fields["f"].declaration()) == "Color.BLACK"

    def makes_explicit_fields_nullable(expect, fields):
        expect(fields["b"].annotation) == "int | None"
        expect(fields["b"].declaration()) == "None"
        expect(fields["i"].annotation) == "float | None"

    def makes_bytes_and_messages_nullable(expect, fields):
        expect(fields["d"].annotation) == "bytes | None"
        expect(fields["e"].annotation) == "M | None"
        expect(fields["e"].nullable) == True

    def uses_factories_for_containers(expect, fields):
        expect(fields["g"].annotation) == "list[Color]"
        expect(fields["g"].declaration()) == "dataclasses.field(default_factory=list)"
        expect(fields["h"].annotation) == "dict[str, M]"
        expect(fields["h"].declaration()) == "dataclasses.field(default_factory=dict)"

    def rejects_unresolved_and_non_map_fields():
        ctx = TypeContext(TypeRegistry(), SchemaFile(name="a.proto"))
        b = ProtoField(name="b", number=1, kind=FieldKind.MESSAGE)
        c = ProtoField(name="c", number=2, kind=FieldKind.INT32)

        with raises(ValueError):
            element_type(b, ctx)
        with raises(ValueError):
            c.map_key
        with raises(ValueError):
            StorageType("int", False).declaration()


def describe_naming():
    def flattens_nested_type_names(expect):
        expect(python_type_name("pkg.Outer.Inner", "pkg")) == "Outer_Inner"
        expect(python_type_name("Outer", "")) == "Outer"

    def escapes_reserved_names(expect):
        expect(safe_identifier("class")) == "class_"
        expect(safe_identifier("match")) == "match_"
        expect(safe_identifier("size")) == "size_"
        expect(safe_identifier("count")) == "count"

    def places_modules_beside_schemas(expect):
        expect(module_name("a/b-c.proto")) == "a.b_c_pb"
        expect(output_path("a/b.proto")) == "a/b_pb.py"


def describe_render():
    def renders_module_header(expect):
        file, registry = linked('// Things.\nsyntax = "proto3";\nmessage A { int32 a = 1; }\n')

        code = render(file, registry, GeneratorConfig(runtime_import="my.runtime"))

        expect(code.startswith("# Generated by leanpb from test.proto. DO NOT EDIT.\n")) == True
        expect('"""Things."""' in code) == True
        expect("from my.runtime import serialization as _s" in code) == True
        expect("from my.runtime import wire as _w" in code) == True

    def renders_dataclasses(expect):
        file, registry = linked(
            """
            syntax = "proto3";
            // A point.
            message Point {
                int32 x = 1;  // across
                repeated int32 ys = 2 [deprecated = true];
            }
            """
        )

        code = render(file, registry)

        expect("@dataclasses.dataclass\nclass Point(_s.Message):" in code) == True
        expect('    """A point."""' in code) == True
        expect("    x: int = 0  # across" in code) == True
        expect("    # Deprecated.\n    ys: list[int] = dataclasses.field(default_factory=list)" in code) == True
        expect("    _field_names = {1: 'x', 2: 'ys'}" in code) == True
        expect("    def merge_from(self, data: bytes | bytearray | memoryview) -> Point:" in code) == True

    def renders_enums_before_messages(expect):
        file, registry = linked(
            """
            syntax = "proto3";
            message A { E e = 1; }
            enum E {
                ZERO = 0;
                // The one.
                ONE = 1;  // first
                None = 2;
            }
            """
        )

        code = render(file, registry)

        expect(code.index("class E(_s.ProtoEnum)") < code.index("class A(_s.Message)")) == True
        expect("    # The one.\n    ONE = 1  # first" in code) == True
        expect("    None_ = 2" in code) == True
        expect("E_name = {0: 'ZERO', 1: 'ONE', 2: 'None'}" in code) == True
        expect("E_value = {'ZERO': 0, 'ONE': 1, 'None': 2}" in code) == True

    def folds_tags_into_literals(expect):
        file, registry = linked('syntax = "proto3"; message A { string name = 300; }')

        code = render(file, registry)

        expect('buf += b"\\xe2\\x12"  # name' in code) == True

    def checks_wire_types_when_strict(expect):
        file, registry = linked('syntax = "proto3"; message A { int32 a = 1; }')

        strict = render(file, registry, GeneratorConfig(strict_decode=True))
        lenient = render(file, registry, GeneratorConfig(strict_decode=False))

        expect("elif _num == 1:" in strict) == True
        expect("unexpected wire type" in strict) == True
        expect("elif _num == 1:" in lenient) == True
        expect("if _wt == 0:" in lenient) == True
        expect("elif _wt in (1, 5):" in lenient) == True
        expect("_w.consume_loose(_data, _o, _wt, False)" in lenient) == True
        expect("unexpected wire type" in lenient) == False

    def renders_optional_methods(expect):
        file, registry = linked('syntax = "proto3"; message A { optional int32 a = 1; }')

        plain = render(file, registry, GeneratorConfig(emit_log_fields=False))
        full = render(file, registry, GeneratorConfig(emit_getters=True))

        expect("def get_a" in plain) == False
        expect("def log_fields" in plain) == False
        expect("    def get_a(self) -> int:\n        return self.a if self.a is not None else 0" in full) == True
        expect("def log_fields(self) -> dict[str, object]:" in full) == True

    def imports_types_from_other_files(expect):
        files, registry = load([f"{FILE_DIR}/todo.proto"])

        code = render(files[0], registry)

        expect("from common_pb import Owner" in code) == True
        expect("    owner: Owner | None = None" in code) == True

    def generates_valid_python(expect):
        files, registry = load([f"{FILE_DIR}/todo.proto"])

        compile(render(files[0], registry), "todo_pb.py", "exec")


def describe_generate_files():
    def keeps_input_order(expect):
        files = [
            parse(f'syntax = "proto3"; message M{i} {{ int32 a = 1; }}', f"m{i}.proto") for i in range(6)
        ]
        registry = link(files)

        results = generate_files(files, registry, jobs=3)

        expect([r.name for r in results]) == [f"m{i}.proto" for i in range(6)]
        expect([r.output for r in results]) == [f"m{i}_pb.py" for i in range(6)]
        expect(all(r.ok for r in results)) == True
        expect(results[4].source) == render(files[4], registry)


def describe_runtime():
    def returns_runtime_files(expect):
        files = runtime()

        expect(sorted(files)) == ["__init__.py", "serialization.py", "wire.py"]
        expect("def consume_varint" in files["wire.py"]) == True
        expect("class MalformedWireDataError" in files["serialization.py"]) == True
