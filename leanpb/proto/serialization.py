"""Base types and errors shared by generated message code."""

import base64
from dataclasses import MISSING, fields
from enum import IntEnum
from typing import Any, ClassVar, Self


class SerializationError(RuntimeError):
    """Raised when serialization or deserialization fails."""


class MalformedWireDataError(SerializationError):
    """Raised when a decode call meets bytes that are not valid wire data.

    The innermost message and field being decoded are recorded in
    ``message``, ``field`` and ``number``. Every enclosing message adds
    itself to ``path`` as the error propagates outwards, so the final
    ``str()`` names the full route to the offending field.
    """

    def __init__(
        self,
        reason: str,
        *,
        message: str | None = None,
        field: str | None = None,
        number: int | None = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.message = message
        self.field = field
        self.number = number
        self.path: list[str] = []
        if message is not None:
            self.path.append(_location(message, field, number))

    def locate(self, message: str, field: str | None, number: int) -> Self:
        """Record the message (and field) that was being decoded."""
        if self.message is None:
            self.message = message
            self.field = field
            self.number = number or None
        self.path.insert(0, _location(message, field, number))
        return self

    def __str__(self) -> str:
        if not self.path:
            return self.reason
        return f"{self.reason} (at {' > '.join(self.path)})"


def _location(message: str, field: str | None, number: int | None) -> str:
    if field is not None:
        return f"{message}.{field}"
    if number:
        return f"{message}#{number}"
    return message


class Message:
    """Base class for generated message types.

    Subclasses are @dataclass decorated and implement size(), encode_to()
    and merge_from() for their own fields.

    Example:
        @dataclass
        class Todo(Message):
            done: bool = False
            tags: list[int] = field(default_factory=list)
    """

    _field_names: ClassVar[dict[int, str]] = {}

    def size(self) -> int:
        """Return the exact number of bytes encode() will produce."""
        raise NotImplementedError("size() must be implemented by generated code")

    def encode_to(self, buf: bytearray) -> bytearray:
        """Append the encoded message to buf and return it."""
        raise NotImplementedError("encode_to() must be implemented by generated code")

    def merge_from(self, data: bytes | bytearray | memoryview) -> Self:
        """Decode data into this instance, merging with existing values."""
        raise NotImplementedError("merge_from() must be implemented by generated code")

    def encode(self) -> bytes:
        """Encode this message to bytes."""
        return bytes(self.encode_to(bytearray()))

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview) -> Self:
        """Decode a new instance from data.

        Raises:
            MalformedWireDataError: data is truncated or otherwise invalid.
                Any partially decoded instance is discarded.
        """
        return cls().merge_from(data)

    def reset(self) -> None:
        """Restore every field to its default value."""
        for f in fields(self):  # type: ignore[arg-type]
            if f.default_factory is not MISSING:
                setattr(self, f.name, f.default_factory())
            else:
                setattr(self, f.name, f.default)


class ProtoEnum(IntEnum):
    """Base class for generated enums.

    Numbers that are not declared in the schema still decode: they become
    pseudo-members whose name is the number itself, so values received from
    a newer peer survive a decode/encode round trip.
    """

    @classmethod
    def _missing_(cls, value: object) -> Any:
        if not isinstance(value, int):
            return None
        member = int.__new__(cls, value)
        member._name_ = str(value)
        member._value_ = value
        return member


def log_value(value: Any) -> Any:
    """Convert a field value to something a structured logger can print."""
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, ProtoEnum):
        return value.name
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, Message):
        log_fields = getattr(value, "log_fields", None)
        return log_fields() if log_fields is not None else repr(value)
    if isinstance(value, dict):
        return {log_value(k): log_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [log_value(v) for v in value]
    return repr(value)
