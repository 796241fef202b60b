"""Generated ``merge_from()`` bodies.

The generated decoder is a single forward pass over a ``memoryview``. All
state lives in locals:

- ``_o``: read position
- ``_num``, ``_wt``: the tag just read
- ``_groups``: number of open start-group tags; while non-zero every field
  is skipped, so group content is never materialized
"""

from leanpb.proto.wire import WireType

from .kinds import codec_for
from .typemap import TypeContext, attr_name, element_type, zero_value
from .types import FieldKind, ProtoField, ProtoMessage
from .util import indent

SKIP = "_o, _groups = _w.skip_field(_data, _o, _wt, _groups)"
ENTRY_SKIP = "_i, _mg = _w.skip_field(_v, _i, _mw, _mg)"
NUMERIC_WIRE_TYPES = (WireType.VARINT, WireType.FIXED64, WireType.FIXED32)


def _type_name(field: ProtoField, ctx: TypeContext) -> str:
    if field.kind in (FieldKind.ENUM, FieldKind.MESSAGE):
        return element_type(field, ctx)
    return ""


def _convert(field: ProtoField, raw: str, ctx: TypeContext) -> str:
    return codec_for(field.kind).convert.format(raw=raw, type=_type_name(field, ctx))


def _read(field: ProtoField, out: str, src: str, pos: str) -> str:
    return f"{out}, {pos} = {codec_for(field.kind).consume}({src}, {pos})"


def _mismatch(wt: str) -> str:
    return f'raise _s.MalformedWireDataError(f"unexpected wire type {{{wt}}}")'


def _check(wt: str, wire_types: list[WireType]) -> list[str]:
    """Strict mode: a known field number with the wrong wire type is an error."""
    accepted = [str(int(w)) for w in wire_types]
    test = f"{wt} != {accepted[0]}" if len(accepted) == 1 else f"{wt} not in ({', '.join(accepted)})"
    return [f"if {test}:", "    " + _mismatch(wt)]


def _tolerant(
    field: ProtoField,
    ctx: TypeContext,
    wt: str,
    read: tuple[str, str, str],
    matched: list[str],
    store: str,
    skip: str,
    packed: list[str] | None = None,
) -> list[str]:
    """Lenient mode: dispatch on the wire type that actually arrived.

    A numeric value sent with another numeric wire type is read as sent and
    coerced to the field's kind. Anything else is skipped by its own wire
    type, so the scan stays aligned.
    """
    codec = codec_for(field.kind)
    out, src, pos = read
    branches = []
    if packed is not None:
        branches.append((f"{wt} == 2", packed))
    branches.append((f"{wt} == {int(codec.wire_type)}", matched))
    if codec.coerce is not None:
        others = ", ".join(str(int(w)) for w in NUMERIC_WIRE_TYPES if w != codec.wire_type)
        as_float = field.kind in (FieldKind.FLOAT, FieldKind.DOUBLE)
        coerced = codec.coerce.format(raw=out, type=_type_name(field, ctx))
        branches.append(
            (
                f"{wt} in ({others})",
                [f"{out}, {pos} = _w.consume_loose({src}, {pos}, {wt}, {as_float})", store.format(coerced)],
            )
        )

    lines = []
    for i, (cond, body) in enumerate(branches):
        lines += [f"{'if' if i == 0 else 'elif'} {cond}:"] + indent(body)
    return lines + ["else:", "    " + skip]


def _decode_singular(field: ProtoField, target: str, ctx: TypeContext) -> list[str]:
    lines = [_read(field, "_v", "_data", "_o")]
    if field.kind == FieldKind.MESSAGE:
        return lines + [
            f"if {target} is None:",
            f"    {target} = {element_type(field, ctx)}()",
            f"{target}.merge_from(_v)",
        ]
    return lines + [f"{target} = {_convert(field, '_v', ctx)}"]


def _decode_repeated(field: ProtoField, target: str, ctx: TypeContext, strict: bool) -> list[str]:
    codec = codec_for(field.kind)
    single = [_read(field, "_v", "_data", "_o"), f"{target}.append({_convert(field, '_v', ctx)})"]
    if not codec.packable:
        if strict:
            return _check("_wt", [codec.wire_type]) + single
        return _tolerant(field, ctx, "_wt", ("_v", "_data", "_o"), single, "", SKIP)

    # Either encoding is accepted whatever the declared packing.
    packed = [
        "_p, _o = _w.consume_bytes(_data, _o)",
        "_i = 0",
        "_pe = len(_p)",
        "while _i < _pe:",
        "    " + _read(field, "_v", "_p", "_i"),
        f"    {target}.append({_convert(field, '_v', ctx)})",
    ]
    if not strict:
        return _tolerant(
            field, ctx, "_wt", ("_v", "_data", "_o"), single, f"{target}.append({{}})", SKIP, packed=packed
        )
    lines = ["if _wt == 2:"] + indent(packed)
    lines += [f"elif _wt == {int(codec.wire_type)}:"] + indent(single)
    return lines + ["else:", "    " + _mismatch("_wt")]


def _decode_map(field: ProtoField, target: str, ctx: TypeContext, strict: bool) -> list[str]:
    key, val = field.map_key, field.map_value
    lines = [
        "_v, _o = _w.consume_bytes(_data, _o)",
        f"_mk = {zero_value(key, ctx)}",
        f"_mv = {zero_value(val, ctx)}",
        "_i = 0",
        "_pe = len(_v)",
        "_mg = 0",
        "while _i < _pe:",
    ]

    loop = [
        "_mn, _mw, _i = _w.consume_tag(_v, _i)",
        "if _mg:",
        "    " + ENTRY_SKIP,
    ]
    for sub, var in ((key, "_mk"), (val, "_mv")):
        body = [_read(sub, "_r", "_v", "_i")]
        if sub.kind == FieldKind.MESSAGE:
            body.append(f"{var}.merge_from(_r)")
        else:
            body.append(f"{var} = {_convert(sub, '_r', ctx)}")
        if strict:
            body = _check("_mw", [codec_for(sub.kind).wire_type]) + body
        else:
            body = _tolerant(sub, ctx, "_mw", ("_r", "_v", "_i"), body, f"{var} = {{}}", ENTRY_SKIP)
        loop += [f"elif _mn == {sub.number}:"] + indent(body)
    loop += ["else:", "    " + ENTRY_SKIP]

    return lines + indent(loop) + [f"{target}[_mk] = _mv"]


def gen_decode(message: ProtoMessage, ctx: TypeContext, strict: bool = True) -> list[str]:
    """Generate the body of ``merge_from(data)`` for a message."""
    loop = [
        "_num = 0",
        "_num, _wt, _o = _w.consume_tag(_data, _o)",
        "if _groups:",
        "    " + SKIP,
    ]

    for field in message.fields:
        target = f"self.{attr_name(field)}"

        if field.is_map:
            entries = _decode_map(field, target, ctx, strict)
            if strict:
                body = _check("_wt", [WireType.BYTES]) + entries
            else:
                body = ["if _wt == 2:"] + indent(entries) + ["else:", "    " + SKIP]
        elif field.is_repeated:
            body = _decode_repeated(field, target, ctx, strict)
        elif strict:
            body = _check("_wt", [codec_for(field.kind).wire_type]) + _decode_singular(field, target, ctx)
        else:
            body = _tolerant(
                field,
                ctx,
                "_wt",
                ("_v", "_data", "_o"),
                _decode_singular(field, target, ctx),
                f"{target} = {{}}",
                SKIP,
            )
        loop += [f"elif _num == {field.number}:"] + indent(body)

    loop += ["else:", "    " + SKIP]
    return [
        "_data = memoryview(data)",
        "_end = len(_data)",
        "_o = 0",
        "_num = 0",
        "_groups = 0",
        "try:",
        "    while _o < _end:",
        *indent(loop, 2),
        "except _s.MalformedWireDataError as err:",
        f'    raise err.locate("{message.full_name}", self._field_names.get(_num), _num)',
        "return self",
    ]
