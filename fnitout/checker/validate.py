"""
Trace construction for formal knitout programs.

validate replays an ordered instruction sequence through the machine model,
producing the trace of machine states and every validation error found.

An instruction that fails validation contributes no state: it is recorded and
skipped, and the next instruction is checked against the last state that was
successfully produced. Errors are collected, never short-circuited.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from fnitout.schemas.instruction import Instruction

from .machine_state import MachineState
from .operations import ValidationError, execute_instruction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceError:
    """
    A single validation error.

    Attributes:
        instruction_index: 0-based index of the offending instruction.
        message: Human-readable description of the violated precondition.
        source_line: Line the instruction came from, when known.
    """

    instruction_index: int
    message: str
    source_line: int | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of replaying a program.

    Attributes:
        trace: Machine states such that trace[0] is the empty machine and each
            later entry follows one successfully validated instruction.
        errors: Validation errors in instruction order.
    """

    trace: tuple[MachineState, ...]
    errors: tuple[TraceError, ...]

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    @property
    def final_state(self) -> MachineState:
        return self.trace[-1]


def validate(instructions: Sequence[Instruction]) -> ValidationResult:
    """
    Build the machine-state trace for ``instructions``.

    ``len(trace)`` is always one more than the number of instructions that
    validated successfully.
    """
    trace: list[MachineState] = [MachineState()]
    errors: list[TraceError] = []

    for i, instruction in enumerate(instructions):
        try:
            state = execute_instruction(trace[-1], instruction)
        except ValidationError as exc:
            logger.debug("instruction %d (%s) rejected: %s", i, instruction, exc)
            errors.append(
                TraceError(
                    instruction_index=i,
                    message=str(exc),
                    source_line=instruction.source_line,
                )
            )
            continue
        trace.append(state)

    return ValidationResult(trace=tuple(trace), errors=tuple(errors))
