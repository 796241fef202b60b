"""Command-line interface for leanpb code generation."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from leanpb.generator import python
from leanpb.generator.config import DEFAULT_RUNTIME_IMPORT, GeneratorConfig
from leanpb.generator.descriptor import load_descriptor_set
from leanpb.generator.kinds import wire_type_of
from leanpb.generator.linker import link, load
from leanpb.generator.parser import ValidationError
from leanpb.generator.sizes import MessageSizeInfo, calculate_sizes
from leanpb.generator.typemap import TypeContext, map_field
from leanpb.generator.types import FieldKind, iter_messages
from leanpb.generator.util import output_path as module_output_path

if TYPE_CHECKING:
    from leanpb.generator.linker import TypeRegistry
    from leanpb.generator.types import ProtoField, SchemaFile

logger = logging.getLogger(__name__)

err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load(
    input_files: tuple[str, ...],
    include_paths: tuple[str, ...],
    descriptor_set: bool,
    only: tuple[str, ...] = (),
) -> tuple[list[SchemaFile], TypeRegistry]:
    if not descriptor_set:
        return load(list(input_files), list(include_paths))

    files: list[SchemaFile] = []
    for input_file in input_files:
        files.extend(load_descriptor_set(Path(input_file).read_bytes()))
    registry = link(files)
    if only:
        files = [f for f in files if f.name in only]
    return files, registry


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output")
def cli(verbose: bool) -> None:
    """leanpb Protocol Buffers code generator."""
    _setup_logging(verbose)


@cli.command()
@click.option("--input", "-i", "input_files", required=True, multiple=True, help="Input schema file")
@click.option("--output", "-o", "output_path", default=".", help="Output directory")
@click.option("--include", "-I", "include_paths", multiple=True, help="Import search path")
@click.option(
    "--descriptor-set",
    is_flag=True,
    default=False,
    help="Inputs are serialized FileDescriptorSets (protoc --descriptor_set_out)",
)
@click.option("--only", multiple=True, help="With --descriptor-set, generate only these files")
@click.option(
    "--runtime-import",
    "runtime_import",
    is_flag=False,
    flag_value="leanpb.proto",
    default=DEFAULT_RUNTIME_IMPORT,
    envvar="LEANPB_RUNTIME_IMPORT",
    help=f"Import path for runtime. No value=leanpb.proto, omit={DEFAULT_RUNTIME_IMPORT}",
)
@click.option("--getters/--no-getters", default=False, envvar="LEANPB_GEN_GET", help="Generate get_<field>() accessors")
@click.option(
    "--log-fields/--no-log-fields",
    default=True,
    envvar="LEANPB_GEN_LOG",
    help="Generate log_fields() for structured logging",
)
@click.option(
    "--strict/--lenient",
    default=True,
    envvar="LEANPB_GEN_STRICT",
    help="Reject known fields with a mismatched wire type instead of coercing or skipping them",
)
@click.option("--jobs", "-j", default=1, type=click.IntRange(min=1), help="Files to generate in parallel")
def gen(
    input_files: tuple[str, ...],
    output_path: str,
    include_paths: tuple[str, ...],
    descriptor_set: bool,
    only: tuple[str, ...],
    runtime_import: str,
    getters: bool,
    log_fields: bool,
    strict: bool,
    jobs: int,
) -> None:
    """Generate codec modules from schema files."""
    try:
        files, registry = _load(input_files, include_paths, descriptor_set, only)
    except (ValidationError, OSError) as e:
        err_console.print(f"[red]error:[/red] {escape(str(e))}")
        sys.exit(1)

    config = GeneratorConfig(
        runtime_import=runtime_import,
        emit_getters=getters,
        emit_log_fields=log_fields,
        strict_decode=strict,
    )

    failed = False
    for result in python.generate_files(files, registry, config, jobs=jobs):
        if result.source is None:
            failed = True
            for diagnostic in result.diagnostics:
                err_console.print(f"[red]error:[/red] {escape(str(diagnostic))}")
            continue

        out = Path(output_path) / result.output
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(result.source, encoding="utf-8")
        print(f"Generated {out}")

    if failed:
        sys.exit(1)


@cli.command()
@click.option("--output", "-o", "output_path", default=".", help="Output directory")
@click.option("--name", default=DEFAULT_RUNTIME_IMPORT, help="Runtime folder name")
def runtime(output_path: str, name: str) -> None:
    """Generate runtime support code."""
    runtime_dir = Path(output_path) / name
    runtime_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in python.runtime().items():
        (runtime_dir / filename).write_text(content)
    print(f"Generated Python runtime in {runtime_dir}")


@cli.command()
@click.option("--input", "-i", "input_files", required=True, multiple=True, help="Input schema file")
@click.option("--include", "-I", "include_paths", multiple=True, help="Import search path")
@click.option("--descriptor-set", is_flag=True, default=False, help="Inputs are serialized FileDescriptorSets")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(input_files: tuple[str, ...], include_paths: tuple[str, ...], descriptor_set: bool, output_json: bool) -> None:
    """Display schema information and size bounds."""
    try:
        files, registry = _load(input_files, include_paths, descriptor_set)
    except (ValidationError, OSError) as e:
        err_console.print(f"[red]error:[/red] {escape(str(e))}")
        sys.exit(1)

    sizes = calculate_sizes(files)
    if output_json:
        _output_json(files, sizes)
    else:
        _output_plain(files, registry, sizes)


def _format_size(size: int | None) -> str:
    """Format a size value, handling None for unbounded."""
    return "unbounded" if size is None else str(size)


def _wire_type_name(field: ProtoField) -> str:
    if field.is_map or field.packed:
        return "BYTES"
    return wire_type_of(field.kind).name


def _kind_name(field: ProtoField) -> str:
    if field.is_map:
        key, value = field.map_key, field.map_value
        return f"map<{key.kind}, {value.type_name or value.kind}>"
    if field.kind in (FieldKind.ENUM, FieldKind.MESSAGE):
        return f"{field.kind} {field.type_name}"
    return str(field.kind)


def _storage_name(field: ProtoField, ctx: TypeContext) -> str:
    if field.kind == FieldKind.GROUP:
        return "-"
    return map_field(field, ctx).annotation


def _output_json(files: list[SchemaFile], sizes: dict[str, MessageSizeInfo]) -> None:
    """Output schema info as JSON."""
    data: dict = {
        "files": [f.to_dict(encode_json=True) for f in files],
        "sizes": {},
    }

    for name, message_info in sizes.items():
        data["sizes"][name] = {
            "min_size": message_info.size.min_size,
            "max_size": message_info.size.max_size,
            "kind": message_info.size.kind.value,
        }

    print(json.dumps(data, indent=2))


def _output_plain(files: list[SchemaFile], registry: TypeRegistry, sizes: dict[str, MessageSizeInfo]) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    for file in files:
        console.print(f"[bold cyan]{file.name}[/bold cyan]")

        file_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
        file_table.add_column("Label", style="dim")
        file_table.add_column("Value", style="white")
        file_table.add_row("Syntax", file.syntax)
        file_table.add_row("Package", file.package or "(none)")
        file_table.add_row("Output", module_output_path(file.name))
        console.print(file_table)
        console.print()

        ctx = TypeContext(registry, file)

        for message in iter_messages(file.messages):
            size = sizes[message.full_name].size
            if size.min_size == size.max_size:
                size_str = f"{size.min_size} bytes"
            else:
                size_str = f"{size.min_size}-{_format_size(size.max_size)} bytes"
            console.print(f"[bold]{message.full_name}[/bold] [dim]({size_str}, {size.kind.value})[/dim]")

            field_table = Table(show_header=True, box=None, padding=(0, 2, 0, 2))
            field_table.add_column("#", style="green", justify="right")
            field_table.add_column("Name", style="white")
            field_table.add_column("Kind", style="yellow")
            field_table.add_column("Cardinality", style="dim")
            field_table.add_column("Presence", style="dim")
            field_table.add_column("Wire", style="dim")
            field_table.add_column("Python", style="cyan")

            for field in message.fields:
                field_table.add_row(
                    str(field.number),
                    field.name,
                    _kind_name(field),
                    field.cardinality.value + (" (packed)" if field.packed else ""),
                    field.presence.value,
                    _wire_type_name(field),
                    escape(_storage_name(field, ctx)),
                )

            console.print(field_table)
            console.print()


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
