"""Tests for type resolution and schema loading."""

# pylint: disable=redefined-outer-name,unused-variable,expression-not-assigned,singleton-comparison

import os

import pytest

from leanpb.generator import link, load, parse
from leanpb.generator.parser import ValidationError
from leanpb.generator.types import FieldKind

FILE_DIR = os.path.dirname(os.path.realpath(__file__))


def describe_link():
    def resolves_from_the_innermost_scope(expect):
        file = parse(
            """
            syntax = "proto3";
            package p;
            message Inner {}
            message Outer {
                message Inner {}
                Inner near = 1;
                .p.Inner far = 2;
                p.Inner qualified = 3;
            }
            """
        )
        link([file])

        near, far, qualified = file.messages[1].fields
        expect(near.type_name) == "p.Outer.Inner"
        expect(far.type_name) == "p.Inner"
        expect(qualified.type_name) == "p.Inner"

    def settles_enum_kinds(expect):
        file = parse(
            """
            syntax = "proto3";
            enum Color { RED = 0; }
            message A {
                Color color = 1;
                map<string, Color> colors = 2;
            }
            """
        )
        registry = link([file])

        color, colors = file.messages[0].fields
        expect(color.kind) == FieldKind.ENUM
        expect(colors.kind) == FieldKind.MESSAGE
        expect(colors.map_value.kind) == FieldKind.ENUM
        expect(colors.map_value.type_name) == "Color"
        expect(registry["Color"].default_member) == "RED"
        expect(registry["A"].py_name) == "A"

    def reports_unknown_types(expect):
        file = parse('syntax = "proto3"; message A { Missing m = 1; Gone g = 2; }', "a.proto")

        with pytest.raises(ValidationError) as e:
            link([file])

        expect("a.proto: A.m: unknown type Missing" in str(e.value)) == True
        expect("a.proto: A.g: unknown type Gone" in str(e.value)) == True

    def requires_imports_for_other_files(expect):
        common = parse('syntax = "proto3"; package c; message Owner {}', "common.proto")
        user = parse('syntax = "proto3"; message A { c.Owner owner = 1; }', "user.proto")

        with pytest.raises(ValidationError) as e:
            link([common, user])

        expect("c.Owner is defined in common.proto, which is not imported" in str(e.value)) == True

    def follows_public_imports(expect):
        common = parse('syntax = "proto3"; package c; message Owner {}', "common.proto")
        relay = parse('syntax = "proto3"; import public "common.proto";', "relay.proto")
        user = parse(
            'syntax = "proto3"; import "relay.proto"; message A { c.Owner owner = 1; }',
            "user.proto",
        )

        link([common, relay, user])

        expect(user.messages[0].fields[0].type_name) == "c.Owner"

    def rejects_types_defined_twice(expect):
        first = parse('syntax = "proto3"; message A {}', "a.proto")
        second = parse('syntax = "proto3"; message A {}', "b.proto")

        with pytest.raises(ValidationError) as e:
            link([first, second])

        expect("A is defined in both a.proto and b.proto" in str(e.value)) == True


def describe_packed():
    def packs_proto3_scalars_by_default(expect):
        file = parse(
            """
            syntax = "proto3";
            enum E { Z = 0; }
            message A {
                repeated int32 a = 1;
                repeated E b = 2;
                repeated string c = 3;
                repeated int32 d = 4 [packed = false];
                int32 e = 5;
            }
            """
        )
        link([file])

        expect([f.packed for f in file.messages[0].fields]) == [True, True, False, False, False]

    def leaves_proto2_unpacked_unless_asked(expect):
        file = parse(
            """
            syntax = "proto2";
            message A {
                repeated int32 a = 1;
                repeated int32 b = 2 [packed = true];
            }
            """
        )
        link([file])

        expect([f.packed for f in file.messages[0].fields]) == [False, True]

    def rejects_packed_on_unpackable_fields(expect):
        file = parse('syntax = "proto2"; message A { repeated string a = 1 [packed = true]; }', "a.proto")

        with pytest.raises(ValidationError) as e:
            link([file])

        expect("[packed] only applies to" in str(e.value)) == True


def describe_load():
    def loads_imports_from_the_input_directory(expect):
        files, registry = load([f"{FILE_DIR}/todo.proto"])

        expect([f.name for f in files]) == ["todo.proto"]
        expect("common.Owner" in registry) == True
        expect(registry["common.Owner"].file) == "common.proto"
        expect(files[0].messages[0].fields[3].type_name) == "common.Owner"

    def names_files_relative_to_include_paths(expect, tmp_path):
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "a.proto").write_text('syntax = "proto3"; package pkg; message A {}')
        (tmp_path / "b.proto").write_text(
            'syntax = "proto3"; import "pkg/a.proto"; message B { pkg.A a = 1; }'
        )

        files, registry = load([str(tmp_path / "b.proto")], [str(tmp_path)])

        expect(files[0].name) == "b.proto"
        expect(registry["pkg.A"].file) == "pkg/a.proto"

    def reports_missing_imports(expect, tmp_path):
        (tmp_path / "a.proto").write_text('syntax = "proto3"; import "nowhere.proto";')

        with pytest.raises(ValidationError) as e:
            load([str(tmp_path / "a.proto")])

        expect("import 'nowhere.proto' not found" in str(e.value)) == True
