"""
Knitout -> formal knitout lowering.

lower() expands a knitout program into formal knitout, resolving everything
knitout leaves implicit:

  1. Synonyms: ``amiss`` / ``drop`` / ``xfer`` become carrier-less
     ``tuck +`` / ``knit +`` / ``split +``.
  2. Carrier entry: ``in`` emits a placeholder that is resolved once the first
     operation using the carrier fixes where the feeder enters.
  3. Carrier travel: before each operation every involved carrier is walked,
     one ``miss`` per half-pitch step, to just before the operation's needle.
  4. Decay: knit/split on a needle holding no loops becomes a tuck (or a plain
     xfer when no carriers are involved).
  5. Lengths: every yarn gets an explicit length reckoned from the loop it was
     last attached to; loops get the configured stitch size.
  6. Racking: racking changes are expanded into single-step ``rack`` lines.

Structural problems raise FatalLoweringError; everything else is reported to
the DiagnosticSink and the pass carries on.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from fnitout.diagnostics import Diagnostic, DiagnosticSink, FatalLoweringError
from fnitout.schemas.instruction import (
    Bed,
    Direction,
    Drop,
    In,
    Knit,
    Miss,
    Needle,
    Out,
    Rack,
    Split,
    Tuck,
    Xfer,
    YarnLength,
)

from .config import LoweringConfig, get_config
from .context import Carrier, CarrierLocation, CarrierState, EmitSlot, LoweringContext
from .headers import read_header

logger = logging.getLogger(__name__)

_SOURCE_NEEDLE_RE = re.compile(r"^([fb]s?)(-?\d+)$")
_RACK_RE = re.compile(r"^[+-]?\d*\.?\d+$")
_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_NON_NEGATIVE_INTEGER_RE = re.compile(r"^[+]?\d+$")
_NON_NEGATIVE_NUMBER_RE = re.compile(r"^[+]?(\d+\.?\d*|\.\d+)$")
_LINE_SPLIT_RE = re.compile(r"\r?\n")

# source synonym -> (formal op it expands to)
_SYNONYMS: dict[str, str] = {
    "amiss": "tuck",
    "drop": "knit",
    "xfer": "split",
}


@dataclass
class SourceOp:
    """One knitout operation line after synonym expansion."""

    name: str
    args: list[str]
    keyword: str
    carrierless: bool = False


@dataclass(frozen=True)
class LoweringResult:
    """
    Outcome of a successful lowering run.

    Attributes:
        text: Formal knitout program, one instruction per line.
        context: Final lowering state (carrier and loop tables, racking).
        diagnostics: Warnings reported during the run, in order.
    """

    text: str
    context: LoweringContext
    diagnostics: tuple[Diagnostic, ...]


def _fatal(ctx: LoweringContext, message: str) -> FatalLoweringError:
    return FatalLoweringError(ctx.line_number, message)


def _carrier(ctx: LoweringContext, name: str) -> Carrier:
    carrier = ctx.carriers.get(name)
    if carrier is None:
        raise _fatal(ctx, f"Carrier '{name}' not named in Carriers comment header.")
    carrier.referenced = True
    return carrier


def _parse_source_needle(ctx: LoweringContext, token: str) -> Needle:
    m = _SOURCE_NEEDLE_RE.match(token)
    if m is None:
        raise _fatal(ctx, f"invalid needle specification '{token}'")
    if m.group(1) not in ("f", "b"):
        raise _fatal(ctx, "sliders not supported yet by translation code")
    return Needle(Bed(m.group(1)), int(m.group(2)))


# ── Carrier protocol ───────────────────────────────────────────────────────────


def _lower_in(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    if not sop.args:
        raise _fatal(ctx, "Can't bring in no carriers")
    for name in sop.args:
        carrier = _carrier(ctx, name)
        if carrier.state is CarrierState.ACTIVE:
            raise _fatal(ctx, f"Can't in '{name}' -- it's already in.")
        if carrier.state is CarrierState.PENDING:
            raise _fatal(ctx, f"Can't in '{name}' -- it's pending.")
        carrier.pending_slot = ctx.emit(EmitSlot(placeholder_for=name))
        carrier.pending_line = ctx.line_number


def _lower_out(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    if not sop.args:
        raise _fatal(ctx, "Can't bring out no carriers")
    for name in sop.args:
        carrier = _carrier(ctx, name)
        if carrier.state is CarrierState.PENDING:
            raise _fatal(ctx, f"Can't out '{name}' -- it's pending, not in.")
        if carrier.state is CarrierState.ABSENT:
            raise _fatal(ctx, f"Can't out '{name}' -- it isn't in.")
        parked = carrier.parked
        ctx.emit(EmitSlot(Out(parked.direction, parked.needle, carrier.yarn)))
        carrier.parked = None
        carrier.attached = None


def _resolve_pending(ctx: LoweringContext, carrier: Carrier, before: CarrierLocation) -> None:
    # the in is written on the front bed so racking changes between the
    # placeholder and this point cannot change its meaning
    entry = Needle(Bed.FRONT, before.column(ctx.racking))
    slot = ctx.slots[carrier.pending_slot]
    slot.instruction = In(before.direction, entry, carrier.yarn)
    slot.placeholder_for = None
    carrier.pending_slot = None
    carrier.pending_line = None
    carrier.parked = before
    carrier.attached = before


def _walk(ctx: LoweringContext, carrier: Carrier, before: CarrierLocation) -> None:
    """Emit single-step misses moving ``carrier`` to ``before``."""
    target = before.half_position(ctx.racking)
    moved_up = False
    moved_down = False
    while True:
        parked = carrier.parked
        current = parked.half_position(ctx.racking)
        if current == target:
            break
        if current < target:
            if moved_down:
                raise RuntimeError(f"carrier '{carrier.name}' walk reversed direction")
            moved_up = True
            if parked.direction is Direction.NEGATIVE:
                parked = replace(parked, direction=Direction.POSITIVE)
            else:
                parked = replace(parked, index=parked.index + 1)
            ctx.emit(EmitSlot(Miss(Direction.POSITIVE, parked.needle, carrier.yarn)))
        else:
            if moved_up:
                raise RuntimeError(f"carrier '{carrier.name}' walk reversed direction")
            moved_down = True
            if parked.direction is Direction.POSITIVE:
                parked = replace(parked, direction=Direction.NEGATIVE)
            else:
                parked = replace(parked, index=parked.index - 1)
            ctx.emit(EmitSlot(Miss(Direction.NEGATIVE, parked.needle, carrier.yarn)))
        carrier.parked = parked


def _bring_to(ctx: LoweringContext, carrier: Carrier, needle: Needle, direction: Direction) -> None:
    """Put ``carrier`` just before ``needle`` on the side ``direction`` approaches from."""
    step = -1 if direction is Direction.POSITIVE else 1
    before = CarrierLocation(needle.bed, needle.index + step, direction)
    if carrier.state is CarrierState.PENDING:
        _resolve_pending(ctx, carrier, before)
    elif carrier.state is CarrierState.ACTIVE:
        _walk(ctx, carrier, before)
    else:
        raise _fatal(ctx, f"Carrier '{carrier.name}' isn't pending or in.")


def _yarn_length(
    ctx: LoweringContext, carrier: Carrier, needle: Needle, direction: Direction
) -> float:
    w = ctx.config.needle_width
    column = needle.index + (ctx.racking if needle.bed is Bed.BACK else 0)
    here = column + (-w if direction is Direction.POSITIVE else w)
    attached = carrier.attached
    there = attached.column(ctx.racking) + (w if attached.direction is Direction.POSITIVE else -w)
    return abs(here - there)


def _retarget_carriers(ctx: LoweringContext, needle: Needle, target: Needle) -> None:
    """Loops moved from ``needle`` to ``target`` carry every attached yarn with them."""
    for carrier in ctx.active_carriers():
        if carrier.attached.needle == needle:
            carrier.attached = replace(carrier.attached, bed=target.bed, index=target.index)
        if carrier.parked.needle == needle:
            carrier.parked = replace(carrier.parked, bed=target.bed, index=target.index)


def _add_tuck_loop(ctx: LoweringContext, needle: Needle) -> None:
    # same accumulation as the validator: a single-yarn tuck sets 1, then adds 1
    if needle not in ctx.loops:
        ctx.loops[needle] = 1
    else:
        ctx.loops[needle] += 1


# ── Loop-forming operations ────────────────────────────────────────────────────


def _lower_operation(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    op = sop.name
    args = list(sop.args)

    if not args:
        raise _fatal(ctx, f"{sop.keyword} needs a direction.")
    token = args.pop(0)
    if token not in ("+", "-"):
        raise _fatal(ctx, f"invalid direction '{token}'")
    direction = Direction(token)

    if not args:
        raise _fatal(ctx, f"{sop.keyword} needs a needle.")
    needle = _parse_source_needle(ctx, args.pop(0))
    target = None
    if op == "split":
        if not args:
            raise _fatal(ctx, f"{sop.keyword} needs a target needle.")
        target = _parse_source_needle(ctx, args.pop(0))

    names = args
    if sop.carrierless and names:
        raise _fatal(ctx, "cannot amiss/drop/xfer with carriers (use tuck/knit/split).")
    if op == "miss" and not names:
        raise _fatal(ctx, "it makes no sense to miss with no yarns.")
    if len(set(names)) != len(names):
        raise _fatal(ctx, f"carrier named more than once in '{' '.join(names)}'.")

    carriers = [_carrier(ctx, name) for name in names]
    for carrier in carriers:
        _bring_to(ctx, carrier, needle, direction)

    # decay based on loop presence
    if needle not in ctx.loops:
        if op == "knit" or (op == "split" and carriers):
            logger.debug("line %d: %s on empty %s decays to tuck", ctx.line_number, op, needle)
            op = "tuck"

    size = ctx.config.stitch_size
    yarns = [
        YarnLength(c.yarn, _yarn_length(ctx, c, needle, direction)) for c in carriers
    ]

    if op == "miss":
        for carrier in carriers:
            ctx.emit(EmitSlot(Miss(direction, needle, carrier.yarn)))
    elif op == "tuck":
        if not carriers:
            what = "amiss" if sop.keyword == "amiss" else f"{sop.keyword} of empty needle"
            ctx.emit(EmitSlot(note=f"{what} ignored"))
        for ys in yarns:
            ctx.emit(EmitSlot(Tuck(direction, needle, size, (ys,))))
            _add_tuck_loop(ctx, needle)
    elif op == "knit":
        if not carriers:
            ctx.emit(EmitSlot(Drop(needle)))
            del ctx.loops[needle]
        else:
            ctx.emit(EmitSlot(Knit(direction, needle, size, tuple(yarns))))
            ctx.loops[needle] = len(carriers)
    elif op == "split":
        if carriers:
            ctx.emit(EmitSlot(Split(direction, needle, target, size, tuple(yarns))))
        else:
            ctx.emit(EmitSlot(Xfer(needle, target)))
        if needle in ctx.loops:
            ctx.loops[target] = ctx.loops.get(target, 0) + ctx.loops.pop(needle)
        if carriers:
            ctx.loops[needle] = len(carriers)
        _retarget_carriers(ctx, needle, target)

    location = CarrierLocation(needle.bed, needle.index, direction)
    for carrier in carriers:
        if op != "miss":
            carrier.attached = location
        carrier.parked = location


# ── Racking and machine settings ───────────────────────────────────────────────


def _rebase_back_parked(ctx: LoweringContext) -> None:
    """Re-express back-bed feeder positions on the front bed before racking moves the back bed."""
    for carrier in ctx.active_carriers():
        parked = carrier.parked
        if parked.bed is Bed.BACK:
            carrier.parked = CarrierLocation(Bed.FRONT, parked.column(ctx.racking), parked.direction)


def _lower_rack(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    if len(sop.args) != 1:
        raise _fatal(ctx, "racking takes one argument")
    if _RACK_RE.match(sop.args[0]) is None:
        raise _fatal(ctx, "racking must be a number")
    value = float(sop.args[0])
    if not value.is_integer():
        raise _fatal(ctx, "quarter-pitch racking conversion not supported yet")
    racking = int(value)
    if racking == ctx.racking:
        ctx.emit(EmitSlot(note="(rack not needed)"))
        return
    # TODO: emit misses for carriers attached to back-bed loops that the racking drags past
    _rebase_back_parked(ctx)
    while ctx.racking != racking:
        ctx.racking += 1 if ctx.racking < racking else -1
        ctx.emit(EmitSlot(Rack(ctx.racking)))


def _lower_stitch(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    if len(sop.args) != 2:
        raise _fatal(ctx, "stitch takes two arguments.")
    if not all(_INTEGER_RE.match(a) for a in sop.args):
        raise _fatal(ctx, "stitch arguments must be integers.")
    ctx.stitch = (int(sop.args[0]), int(sop.args[1]))


def _lower_stitch_number(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    if len(sop.args) != 1:
        raise _fatal(ctx, "x-stitch-number takes one argument.")
    if _NON_NEGATIVE_INTEGER_RE.match(sop.args[0]) is None:
        raise _fatal(ctx, "x-stitch-number argument must be non-negative integer.")
    ctx.stitch_number = int(sop.args[0])


def _lower_speed_number(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    if len(sop.args) != 1:
        raise _fatal(ctx, "x-speed-number takes one argument.")
    if _NON_NEGATIVE_NUMBER_RE.match(sop.args[0]) is None:
        raise _fatal(ctx, "x-speed-number argument must be a non-negative number.")
    ctx.speed_number = float(sop.args[0])


def _lower_presser_mode(ctx: LoweringContext, sop: SourceOp, sink: DiagnosticSink) -> None:
    if len(sop.args) != 1:
        raise _fatal(ctx, "x-presser-mode takes one argument.")
    mode = sop.args[0]
    if mode not in ctx.config.presser_modes:
        raise _fatal(
            ctx,
            f"x-presser-mode argument must be one of {', '.join(sorted(ctx.config.presser_modes))}.",
        )
    ctx.presser_mode = mode


_LineHandler = Callable[[LoweringContext, SourceOp, DiagnosticSink], None]

_DISPATCH: dict[str, _LineHandler] = {
    "in": _lower_in,
    "inhook": _lower_in,
    "out": _lower_out,
    "outhook": _lower_out,
    "rack": _lower_rack,
    "stitch": _lower_stitch,
    "x-stitch-number": _lower_stitch_number,
    "x-speed-number": _lower_speed_number,
    "x-presser-mode": _lower_presser_mode,
    "miss": _lower_operation,
    "tuck": _lower_operation,
    "knit": _lower_operation,
    "split": _lower_operation,
}


# ── Driver ─────────────────────────────────────────────────────────────────────


def lower_line(ctx: LoweringContext, line_number: int, text: str, sink: DiagnosticSink) -> None:
    """Lower one body line of a knitout program into ``ctx``."""
    ctx.begin_line(line_number, text)

    code = text.split(";", 1)[0]
    tokens = code.split()
    if not tokens:
        if ";" in text:
            ctx.emit(EmitSlot())
        return

    keyword, args = tokens[0], tokens[1:]
    name = _SYNONYMS.get(keyword, keyword)
    sop = SourceOp(name=name, args=args, keyword=keyword, carrierless=keyword in _SYNONYMS)
    if sop.carrierless:
        sop.args.insert(0, "+")

    handler = _DISPATCH.get(name)
    if handler is not None:
        handler(ctx, sop, sink)
    elif name in ctx.config.no_op_operations:
        pass
    elif name.startswith("x-"):
        sink.warn(line_number, f"unsupported extension operation '{name}'.")
    else:
        raise _fatal(ctx, f"unsupported operation '{name}'.")


def _finish(ctx: LoweringContext, sink: DiagnosticSink) -> None:
    for carrier in ctx.carriers.values():
        if carrier.state is CarrierState.PENDING:
            sink.warn(
                carrier.pending_line,
                f"Carrier '{carrier.name}' was brought in but never used; dropping its 'in'.",
            )
            slot = ctx.slots[carrier.pending_slot]
            slot.note = f"(in of unused carrier {carrier.name} dropped)"
            slot.placeholder_for = None
            carrier.pending_slot = None
        elif not carrier.referenced:
            sink.warn(None, f"Carrier '{carrier.name}' is named in the Carriers header but never used.")


def lower(
    source: str | Sequence[str],
    config: LoweringConfig | None = None,
    sink: DiagnosticSink | None = None,
) -> LoweringResult:
    """
    Lower a knitout program to formal knitout.

    Parameters
    ----------
    source:
        The knitout program, as one string or a sequence of lines.
    config:
        Lowering constants; defaults to the packaged configuration.
    sink:
        Receives warnings; a fresh DiagnosticSink is used if omitted.

    Returns
    -------
    LoweringResult
        The formal knitout text plus the final lowering state.

    Raises
    ------
    FatalLoweringError
        On structural problems (bad magic line, missing Carriers header, bad
        Gauge, unsupported operation or needle, carrier protocol violations,
        fractional racking). No output is produced.
    """
    lines = _LINE_SPLIT_RE.split(source) if isinstance(source, str) else list(source)
    config = config or get_config()
    sink = sink if sink is not None else DiagnosticSink()

    header, body_start = read_header(lines, config, sink)
    ctx = LoweringContext.for_header(header, config)

    for index in range(body_start, len(lines)):
        lower_line(ctx, index + 1, lines[index], sink)
    _finish(ctx, sink)

    logger.debug("lowered %d source lines into %d output lines", len(lines), len(ctx.slots))
    return LoweringResult(text=ctx.render(), context=ctx, diagnostics=tuple(sink.diagnostics))
