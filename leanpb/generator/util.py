"""Naming and formatting helpers for code generation."""

import keyword
import re
from pathlib import PurePosixPath

# Attributes of generated classes that a field must not shadow.
RESERVED_NAMES = frozenset(
    [
        "bool",
        "bytes",
        "dataclasses",
        "decode",
        "dict",
        "encode",
        "encode_to",
        "float",
        "int",
        "list",
        "log_fields",
        "merge_from",
        "reset",
        "self",
        "size",
        "str",
    ]
)

MODULE_SUFFIX = "_pb"


def to_camel_case(snake_str: str) -> str:
    """Convert a snake_case name to CamelCase, as protoc does for map entries."""
    return "".join(part[:1].upper() + part[1:] for part in snake_str.split("_"))


def safe_identifier(name: str) -> str:
    """Make a schema name usable as a Python attribute name."""
    if keyword.iskeyword(name) or keyword.issoftkeyword(name) or name in RESERVED_NAMES:
        return name + "_"
    return name


def safe_member_name(name: str) -> str:
    """Make an enum value name usable as an enum member name."""
    if keyword.iskeyword(name) or name in ("name", "value", "mro"):
        return name + "_"
    return name


def python_type_name(full_name: str, package: str) -> str:
    """Flatten a nested type name: ``pkg.Outer.Inner`` becomes ``Outer_Inner``."""
    if package and full_name.startswith(package + "."):
        full_name = full_name[len(package) + 1 :]
    return safe_identifier(full_name.replace(".", "_"))


def module_name(file_name: str) -> str:
    """Python module path generated for a schema file: ``a/b.proto`` -> ``a.b_pb``."""
    path = PurePosixPath(file_name.replace("\\", "/"))
    parts = [re.sub(r"\W", "_", p) for p in path.with_suffix("").parts]
    parts[-1] += MODULE_SUFFIX
    return ".".join(parts)


def output_path(file_name: str) -> str:
    """Relative output path for the module generated from a schema file."""
    return module_name(file_name).replace(".", "/") + ".py"


def bytes_literal(data: bytes) -> str:
    """Render bytes as an all-hex Python literal, e.g. ``b"\\x08"``."""
    return 'b"' + "".join(f"\\x{b:02x}" for b in data) + '"'


def docstring(text: str) -> str:
    """Escape text for use inside a triple-quoted docstring."""
    text = text.replace("\\", "\\\\").replace('"""', '\\"\\"\\"').strip()
    # A quote right before the closing quotes would end the string early.
    return text + " " if text.endswith('"') else text


def comment_lines(text: str | None) -> list[str]:
    """Render a schema comment as ``#`` comment lines."""
    if not text:
        return []
    return [("# " + line).rstrip() for line in text.strip("\n").split("\n")]


def indent(lines: list[str], level: int = 1) -> list[str]:
    """Indent generated source lines by ``level`` blocks of four spaces."""
    prefix = "    " * level
    return [prefix + line if line else line for line in lines]
