"""
State owned by one run of the lowering pass.

LoweringContext bundles everything the pass tracks while walking the body of
a knitout file: the carrier table, the loop-occupancy table used for operation
decay, the current racking, and the output as a list of emit slots. It is
created per run and threaded explicitly through every line handler.

Output is kept as EmitSlots rather than text so that a carrier's ``in`` can be
emitted as a placeholder and resolved later, once the first operation using
that carrier fixes where it enters. Slots are rendered to text only at the end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from fnitout.schemas.instruction import Bed, Direction, Instruction, Needle

from .config import LoweringConfig
from .headers import KnitoutHeader


class CarrierState(str, Enum):
    ABSENT = "absent"
    PENDING = "pending"
    ACTIVE = "active"  # parked and attached


@dataclass(frozen=True)
class CarrierLocation:
    """A carrier location expressed as needle + travel direction."""

    bed: Bed
    index: int
    direction: Direction

    @property
    def needle(self) -> Needle:
        return Needle(self.bed, self.index)

    def column(self, racking: int) -> int:
        """Needle column, shifted by racking on the back bed."""
        return self.index + (racking if self.bed is Bed.BACK else 0)

    def half_position(self, racking: int) -> float:
        """Feeder position half a needle-pitch past the needle in ``direction``."""
        half = 0.5 if self.direction is Direction.POSITIVE else -0.5
        return self.column(racking) + half


@dataclass
class Carrier:
    """
    Lowering-side view of one named carrier.

    Attributes:
        name: Name from the Carriers header.
        yarn: Formal knitout yarn id.
        pending_slot: Output slot holding the unresolved ``in``, while pending.
        pending_line: Source line of that ``in``.
        parked: Where the feeder physically sits, while active.
        attached: Last loop the yarn was worked into, while active.
        referenced: Whether any body line has named this carrier.
    """

    name: str
    yarn: int
    pending_slot: int | None = None
    pending_line: int | None = None
    parked: CarrierLocation | None = None
    attached: CarrierLocation | None = None
    referenced: bool = False

    @property
    def state(self) -> CarrierState:
        if self.pending_slot is not None:
            return CarrierState.PENDING
        if self.parked is not None:
            return CarrierState.ACTIVE
        return CarrierState.ABSENT


@dataclass
class EmitSlot:
    """
    One output line.

    Exactly one of ``instruction`` / ``note`` describes the body; a slot with
    neither is a placeholder awaiting resolution (or an echo-only line).
    """

    instruction: Instruction | None = None
    note: str = ""
    echo: str = ""
    placeholder_for: str | None = None

    def render(self, echo_column: int) -> str:
        if self.instruction is not None:
            body = str(self.instruction)
        elif self.note:
            body = f"; {self.note}"
        else:
            body = ""
        if self.echo:
            body = body.ljust(echo_column) + "; " + self.echo
        return body


@dataclass
class LoweringContext:
    """Mutable state for a single lowering run."""

    header: KnitoutHeader
    config: LoweringConfig
    carriers: dict[str, Carrier] = field(default_factory=dict)
    loops: dict[Needle, int] = field(default_factory=dict)
    racking: int = 0
    slots: list[EmitSlot] = field(default_factory=list)
    stitch: tuple[int, int] | None = None
    stitch_number: int | None = None
    speed_number: float | None = None
    presser_mode: str | None = None

    # per-line bookkeeping
    line_number: int = 0
    pending_echo: str = ""

    @classmethod
    def for_header(cls, header: KnitoutHeader, config: LoweringConfig) -> LoweringContext:
        carriers = {
            name: Carrier(name=name, yarn=header.yarn_ids[name]) for name in header.carriers
        }
        return cls(header=header, config=config, carriers=carriers)

    def begin_line(self, line_number: int, text: str) -> None:
        self.line_number = line_number
        self.pending_echo = text

    def emit(self, slot: EmitSlot) -> int:
        """Append ``slot``, attaching the current line's echo to the first slot of the line."""
        if self.pending_echo:
            slot.echo = self.pending_echo
            self.pending_echo = ""
        self.slots.append(slot)
        return len(self.slots) - 1

    def active_carriers(self) -> list[Carrier]:
        return [c for c in self.carriers.values() if c.state is CarrierState.ACTIVE]

    def render(self) -> str:
        return "".join(slot.render(self.config.echo_column) + "\n" for slot in self.slots)
