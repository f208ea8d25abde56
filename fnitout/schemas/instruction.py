"""
Instruction model for formal knitout.

Every formal knitout line is a self-contained instruction: nothing about it
depends on machine state left over from earlier lines. Each operation is its
own frozen dataclass carrying exactly the fields legal for that operation, and
a class-level ``op`` tag that consumers dispatch on.

Instructions are the unit of exchange between the Parser, the Checker, and
the Lowering pass (which builds them and renders them back to text).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar


class Bed(str, Enum):
    """Needle bed."""

    FRONT = "f"
    BACK = "b"


class Direction(str, Enum):
    """Carriage travel direction."""

    POSITIVE = "+"
    NEGATIVE = "-"

    @property
    def opposite(self) -> Direction:
        return Direction.NEGATIVE if self is Direction.POSITIVE else Direction.POSITIVE


class OpType(str, Enum):
    """Formal knitout operations."""

    KNIT = "knit"
    TUCK = "tuck"
    SPLIT = "split"
    MISS = "miss"
    IN = "in"
    OUT = "out"
    DROP = "drop"
    XFER = "xfer"
    RACK = "rack"


@dataclass(frozen=True, order=True)
class Needle:
    """A loop-holding position, addressed by bed and index."""

    bed: Bed
    index: int

    def __str__(self) -> str:
        return f"{self.bed.value}.{self.index}"


@dataclass(frozen=True)
class YarnLength:
    """Yarn id paired with the length of yarn fed to the new loop."""

    yarn: int
    length: float

    def __str__(self) -> str:
        return f"({self.yarn},{format_number(self.length)})"


def format_number(value: float) -> str:
    """Render a real number, dropping the fractional part when it is integral."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _check_yarns(yarns: tuple[YarnLength, ...]) -> None:
    seen: set[int] = set()
    for ys in yarns:
        if ys.yarn < 0:
            raise ValueError(f"Yarn id must be non-negative, got {ys.yarn}.")
        if ys.yarn in seen:
            raise ValueError(f"Yarn {ys.yarn} reused in yarns.")
        seen.add(ys.yarn)


@dataclass(frozen=True)
class Instruction:
    """
    Base class for all formal knitout instructions.

    Attributes:
        source_line: 1-based line the instruction was parsed from, if any.
        comment: Text following the first ``;`` on the line, if any.
    """

    op: ClassVar[OpType | None] = None

    source_line: int | None = field(default=None, kw_only=True, compare=False)
    comment: str | None = field(default=None, kw_only=True, compare=False)

    @property
    def carriers(self) -> tuple[int, ...]:
        """Yarn ids used by this instruction."""
        return ()

    def operands(self) -> list[str]:
        return []

    def __str__(self) -> str:
        if self.op is None:
            return "(invalid op)"
        text = " ".join([self.op.value, *self.operands()])
        if self.comment is not None:
            text += f" ;{self.comment}"
        return text


@dataclass(frozen=True)
class Knit(Instruction):
    op: ClassVar[OpType] = OpType.KNIT

    direction: Direction
    needle: Needle
    length: float
    yarns: tuple[YarnLength, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "yarns", tuple(self.yarns))
        _check_yarns(self.yarns)
        if len(self.yarns) == 0:
            raise ValueError("Knit must have at least one yarn.")

    @property
    def carriers(self) -> tuple[int, ...]:
        return tuple(ys.yarn for ys in self.yarns)

    def operands(self) -> list[str]:
        return [
            self.direction.value,
            str(self.needle),
            format_number(self.length),
            *(str(ys) for ys in self.yarns),
        ]


@dataclass(frozen=True)
class Tuck(Instruction):
    op: ClassVar[OpType] = OpType.TUCK

    direction: Direction
    needle: Needle
    length: float
    yarns: tuple[YarnLength, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "yarns", tuple(self.yarns))
        _check_yarns(self.yarns)
        if len(self.yarns) != 1:
            raise ValueError("Tuck must have exactly one yarn.")

    @property
    def carriers(self) -> tuple[int, ...]:
        return tuple(ys.yarn for ys in self.yarns)

    def operands(self) -> list[str]:
        return [
            self.direction.value,
            str(self.needle),
            format_number(self.length),
            *(str(ys) for ys in self.yarns),
        ]


@dataclass(frozen=True)
class Split(Instruction):
    op: ClassVar[OpType] = OpType.SPLIT

    direction: Direction
    needle: Needle
    target: Needle
    length: float
    yarns: tuple[YarnLength, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "yarns", tuple(self.yarns))
        _check_yarns(self.yarns)
        if len(self.yarns) == 0:
            raise ValueError("Split must have at least one yarn.")

    @property
    def carriers(self) -> tuple[int, ...]:
        return tuple(ys.yarn for ys in self.yarns)

    def operands(self) -> list[str]:
        return [
            self.direction.value,
            str(self.needle),
            str(self.target),
            format_number(self.length),
            *(str(ys) for ys in self.yarns),
        ]


@dataclass(frozen=True)
class _CarrierMove(Instruction):
    """Shared shape of miss / in / out: direction, needle, single yarn."""

    direction: Direction
    needle: Needle
    yarn: int

    def __post_init__(self) -> None:
        if self.yarn < 0:
            raise ValueError(f"Yarn id must be non-negative, got {self.yarn}.")

    @property
    def carriers(self) -> tuple[int, ...]:
        return (self.yarn,)

    def operands(self) -> list[str]:
        return [self.direction.value, str(self.needle), str(self.yarn)]


@dataclass(frozen=True)
class Miss(_CarrierMove):
    op: ClassVar[OpType] = OpType.MISS


@dataclass(frozen=True)
class In(_CarrierMove):
    op: ClassVar[OpType] = OpType.IN


@dataclass(frozen=True)
class Out(_CarrierMove):
    op: ClassVar[OpType] = OpType.OUT


@dataclass(frozen=True)
class Drop(Instruction):
    op: ClassVar[OpType] = OpType.DROP

    needle: Needle

    def operands(self) -> list[str]:
        return [str(self.needle)]


@dataclass(frozen=True)
class Xfer(Instruction):
    op: ClassVar[OpType] = OpType.XFER

    needle: Needle
    target: Needle

    def operands(self) -> list[str]:
        return [str(self.needle), str(self.target)]


@dataclass(frozen=True)
class Rack(Instruction):
    op: ClassVar[OpType] = OpType.RACK

    rack: int

    def operands(self) -> list[str]:
        return [str(self.rack)]
