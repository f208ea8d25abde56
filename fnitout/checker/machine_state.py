"""
Machine state for the trace validator.

MachineState is a complete physical snapshot of the knitting machine: racking,
loops held on each needle, where each yarn carrier's feeder sits, and which
loop each yarn was last worked into. MachineState is frozen: operation
handlers return new instances rather than mutating state in place, so a
snapshot already appended to a trace never changes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from fnitout.schemas.instruction import Bed, Direction, Needle


def physical_pos(needle: Needle, direction: Direction, rack: int) -> int:
    """
    Physical column of a feeder working ``needle`` in ``direction``.

    A feeder sits half a needle-pitch to one side depending on travel
    direction, and back-bed columns shift with racking. Because ``-`` adds
    nothing, ``physical_pos(n, Direction.NEGATIVE, rack)`` is also the column
    of the needle itself.
    """
    offset = 1 if direction is Direction.POSITIVE else 0
    if needle.bed is Bed.FRONT:
        return needle.index + offset
    return needle.index + rack + offset


@dataclass(frozen=True)
class Attachment:
    """The last needle and direction a yarn was worked at."""

    needle: Needle
    direction: Direction

    def __str__(self) -> str:
        return f"{self.needle}{self.direction.value}"


@dataclass(frozen=True)
class MachineState:
    """
    Physical snapshot of the machine between two instructions.

    Attributes:
        rack: Current racking offset.
        loops: Loop count per needle; needles holding nothing are absent.
        carriers: Physical feeder column per yarn in action.
        attachments: Last-worked loop per yarn (absent after an ``in``).
    """

    rack: int = 0
    loops: Mapping[Needle, int] = field(default_factory=dict)
    carriers: Mapping[int, float] = field(default_factory=dict)
    attachments: Mapping[int, Attachment] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("loops", "carriers", "attachments"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))
        for needle, count in self.loops.items():
            if count <= 0:
                raise ValueError(f"loop count at {needle} must be positive, got {count}")

    def evolve(self, **changes: Any) -> MachineState:
        """Return a new snapshot with ``changes`` applied."""
        return replace(self, **changes)

    def loop_count(self, needle: Needle) -> int:
        return self.loops.get(needle, 0)

    def __str__(self) -> str:
        info = f"rack:{self.rack}"
        for yarn in sorted(self.carriers):
            attachment = self.attachments.get(yarn)
            attached = str(attachment) if attachment is not None else "x"
            info += f" y{yarn}:[{self.carriers[yarn]} / {attached}]"
        for needle in sorted(self.loops):
            info += f" {needle}:{self.loops[needle]}"
        return info
