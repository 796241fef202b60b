"""Generator configuration."""

from dataclasses import dataclass

DEFAULT_RUNTIME_IMPORT = "leanpb_runtime"


@dataclass(frozen=True)
class GeneratorConfig:
    """Options that change what the emission driver writes.

    Attributes:
        runtime_import: Module path generated code imports the wire runtime
            from (``leanpb.proto`` when the package is installed, or the
            name of a copied runtime folder).
        emit_getters: Generate ``get_<field>()`` accessors.
        emit_log_fields: Generate ``log_fields()`` for structured logging.
        strict_decode: Reject a known field whose wire type does not match
            its kind. When off, a numeric value is read by the wire type it
            arrived with and coerced to the field's kind. Other mismatches
            are skipped like unknown fields.
    """

    runtime_import: str = DEFAULT_RUNTIME_IMPORT
    emit_getters: bool = False
    emit_log_fields: bool = True
    strict_decode: bool = True
