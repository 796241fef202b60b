"""Rejection of schema constructs the generated codec does not support."""

import logging
from dataclasses import dataclass

from dataclasses_json import DataClassJsonMixin

from .parser import ValidationError
from .types import FieldKind, ProtoField, ProtoMessage, SchemaFile, iter_messages

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Diagnostic(DataClassJsonMixin):
    """One unsupported field.

    ``message`` is the fully-qualified name of the message declaring the
    field; ``reason`` lists every problem found on it.
    """

    file: str
    message: str
    field: str
    reason: str

    @property
    def path(self) -> str:
        return f"{self.message}.{self.field}"

    def __str__(self) -> str:
        return f"{self.file}: {self.path}: {self.reason}"


class SchemaValidationError(ValidationError):
    """Raised when a schema file uses unsupported constructs."""

    def __init__(self, diagnostics: list[Diagnostic]) -> None:
        super().__init__("\n".join(str(d) for d in diagnostics))
        self.diagnostics = diagnostics


def _problems(field: ProtoField) -> list[str]:
    problems = []
    if field.oneof is not None:
        problems.append(f"oneof fields are not supported (oneof {field.oneof})")
    if field.kind == FieldKind.GROUP:
        problems.append("group fields are not supported")
    if field.default_value is not None:
        problems.append("default value overrides are not supported")
    if field.weak:
        problems.append("weak fields are not supported")
    return problems


def validate_message(file: SchemaFile, message: ProtoMessage) -> list[Diagnostic]:
    """Check the fields of one message, not including nested messages.

    Returns one diagnostic per offending field; an empty list means the
    message can be generated.
    """
    diagnostics = []
    for field in message.fields:
        problems = _problems(field)
        if problems:
            diagnostics.append(Diagnostic(file.name, message.full_name, field.name, "; ".join(problems)))
    return diagnostics


def validate_file(file: SchemaFile) -> list[Diagnostic]:
    """Check every message of a file, nested ones included."""
    diagnostics = []
    for message in iter_messages(file.messages):
        diagnostics.extend(validate_message(file, message))

    for diagnostic in diagnostics:
        logger.warning("%s", diagnostic)
    return diagnostics
