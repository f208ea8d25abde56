"""
Single-instruction execution for the trace validator.

Each formal knitout operation is dispatched to a handler that checks the
physical preconditions against the current MachineState and returns the
successor state. Violated preconditions (carrier in the wrong column,
misaligned transfer, dropping an empty needle, racking by more than one)
raise ValidationError; the validate layer above records them and moves on.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from fnitout.schemas.instruction import (
    Direction,
    Drop,
    In,
    Instruction,
    Knit,
    Miss,
    Needle,
    OpType,
    Out,
    Rack,
    Split,
    Tuck,
    Xfer,
)

from .machine_state import Attachment, MachineState, physical_pos

_OpHandler = Callable[["MachineState", "Instruction"], "MachineState"]

# needle columns are compared with the direction that adds no half-step
_NO_OFFSET = Direction.NEGATIVE


class ValidationError(Exception):
    """Raised when an instruction violates the machine's physical state."""


def execute_instruction(state: MachineState, instruction: Instruction) -> MachineState:
    """
    Execute a single instruction against the current machine state.

    Returns a new MachineState reflecting the instruction's effect; ``state``
    is left untouched. Raises ValidationError if the instruction is invalid
    given the current state.
    """
    handler = _DISPATCH.get(instruction.op)
    if handler is None:
        op = instruction.op.value if instruction.op is not None else type(instruction).__name__
        raise ValidationError(f"Unrecognized operation '{op}'.")
    return handler(state, instruction)


# ── Preconditions ──────────────────────────────────────────────────────────────


def _check_carriers_at(state: MachineState, yarns: Iterable[int], expected: float) -> None:
    for yarn in yarns:
        if yarn not in state.carriers:
            raise ValidationError(f"Using yarn {yarn}, but it is not in action.")
        if state.carriers[yarn] != expected:
            raise ValidationError(
                f"Expected yarn {yarn} at {expected}, but it is at {state.carriers[yarn]}."
            )


def _check_ready(state: MachineState, instruction: Knit | Tuck | Split | Miss) -> None:
    """Carriers must sit just before the needle, on the side the operation comes from."""
    expected = physical_pos(instruction.needle, instruction.direction.opposite, state.rack)
    _check_carriers_at(state, instruction.carriers, expected)


def _check_aligned(state: MachineState, needle: Needle, target: Needle) -> None:
    if needle.bed == target.bed:
        raise ValidationError(
            f"Needle '{needle}' and target '{target}' are not on opposite beds."
        )
    column = physical_pos(needle, _NO_OFFSET, state.rack)
    if column != physical_pos(target, _NO_OFFSET, state.rack):
        raise ValidationError(
            f"Needle '{needle}' and target '{target}' are not aligned at racking {state.rack}."
        )


# ── State updates (all operate on private copies) ──────────────────────────────


def _move_loops(loops: dict[Needle, int], needle: Needle, target: Needle) -> None:
    if needle in loops:
        loops[target] = loops.get(target, 0) + loops.pop(needle)


def _retarget_attachments(
    attachments: dict[int, Attachment], needle: Needle, target: Needle
) -> None:
    for yarn, attachment in list(attachments.items()):
        if attachment.needle == needle:
            attachments[yarn] = Attachment(target, attachment.direction)


def _attach(attachments: dict[int, Attachment], instruction: Knit | Tuck | Split) -> None:
    for yarn in instruction.carriers:
        attachments[yarn] = Attachment(instruction.needle, instruction.direction)


def _moved_carriers(
    state: MachineState, instruction: Knit | Tuck | Split | Miss
) -> dict[int, float]:
    carriers = dict(state.carriers)
    at = physical_pos(instruction.needle, instruction.direction, state.rack)
    for yarn in instruction.carriers:
        carriers[yarn] = at
    return carriers


# ── Handlers ───────────────────────────────────────────────────────────────────


def _exec_tuck(state: MachineState, instruction: Tuck) -> MachineState:
    _check_ready(state, instruction)
    loops = dict(state.loops)
    if instruction.yarns:
        # first tuck sets the yarn count, later tucks add exactly one
        if instruction.needle not in loops:
            loops[instruction.needle] = len(instruction.yarns)
        else:
            loops[instruction.needle] += 1
    attachments = dict(state.attachments)
    _attach(attachments, instruction)
    return state.evolve(
        loops=loops,
        attachments=attachments,
        carriers=_moved_carriers(state, instruction),
    )


def _exec_knit(state: MachineState, instruction: Knit) -> MachineState:
    _check_ready(state, instruction)
    loops = dict(state.loops)
    loops.pop(instruction.needle, None)
    if instruction.yarns:
        loops[instruction.needle] = len(instruction.yarns)
    attachments = dict(state.attachments)
    _attach(attachments, instruction)
    return state.evolve(
        loops=loops,
        attachments=attachments,
        carriers=_moved_carriers(state, instruction),
    )


def _exec_split(state: MachineState, instruction: Split) -> MachineState:
    _check_aligned(state, instruction.needle, instruction.target)
    _check_ready(state, instruction)
    loops = dict(state.loops)
    _move_loops(loops, instruction.needle, instruction.target)
    if instruction.yarns:
        loops[instruction.needle] = len(instruction.yarns)
    attachments = dict(state.attachments)
    _retarget_attachments(attachments, instruction.needle, instruction.target)
    _attach(attachments, instruction)
    return state.evolve(
        loops=loops,
        attachments=attachments,
        carriers=_moved_carriers(state, instruction),
    )


def _exec_miss(state: MachineState, instruction: Miss) -> MachineState:
    _check_ready(state, instruction)
    return state.evolve(carriers=_moved_carriers(state, instruction))


def _exec_in(state: MachineState, instruction: In) -> MachineState:
    if instruction.yarn in state.carriers:
        raise ValidationError(
            f"Can't bring in yarn {instruction.yarn} because it is already in."
        )
    carriers = dict(state.carriers)
    carriers[instruction.yarn] = physical_pos(
        instruction.needle, instruction.direction, state.rack
    )
    return state.evolve(carriers=carriers)


def _exec_out(state: MachineState, instruction: Out) -> MachineState:
    # out wants the carrier where an operation in the same direction leaves it
    expected = physical_pos(instruction.needle, instruction.direction, state.rack)
    _check_carriers_at(state, instruction.carriers, expected)
    carriers = dict(state.carriers)
    attachments = dict(state.attachments)
    del carriers[instruction.yarn]
    attachments.pop(instruction.yarn, None)
    return state.evolve(carriers=carriers, attachments=attachments)


def _exec_drop(state: MachineState, instruction: Drop) -> MachineState:
    if state.loop_count(instruction.needle) <= 0:
        raise ValidationError(
            f"Can't drop {instruction.needle} because it contains no loops."
        )
    loops = dict(state.loops)
    del loops[instruction.needle]
    return state.evolve(loops=loops)


def _exec_xfer(state: MachineState, instruction: Xfer) -> MachineState:
    _check_aligned(state, instruction.needle, instruction.target)
    loops = dict(state.loops)
    _move_loops(loops, instruction.needle, instruction.target)
    attachments = dict(state.attachments)
    _retarget_attachments(attachments, instruction.needle, instruction.target)
    return state.evolve(loops=loops, attachments=attachments)


def _exec_rack(state: MachineState, instruction: Rack) -> MachineState:
    if abs(state.rack - instruction.rack) != 1:
        raise ValidationError(
            f"Change in racking isn't by +/-1 -- from {state.rack} to {instruction.rack}."
        )
    return state.evolve(rack=instruction.rack)


_DISPATCH: dict[OpType, _OpHandler] = {
    OpType.TUCK: _exec_tuck,
    OpType.KNIT: _exec_knit,
    OpType.SPLIT: _exec_split,
    OpType.MISS: _exec_miss,
    OpType.IN: _exec_in,
    OpType.OUT: _exec_out,
    OpType.DROP: _exec_drop,
    OpType.XFER: _exec_xfer,
    OpType.RACK: _exec_rack,
}
