"""
Formal knitout parser.

parse() turns program text into an ordered list of Instructions. Malformed
lines never abort the parse: each one is recorded as a ParseIssue and skipped,
so callers see every syntax problem in a single pass.

Line grammar::

    <op> <fields...> [;<comment>]

Fields are consumed left to right from the whitespace-separated tokens:

    knit   dir needle length yarns        (at least one yarn)
    tuck   dir needle length yarns        (exactly one yarn)
    split  dir needle target length yarns (at least one yarn)
    miss | in | out  dir needle yarn
    drop   needle
    xfer   needle target
    rack   rack
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from fnitout.schemas.instruction import (
    Bed,
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
    YarnLength,
)

logger = logging.getLogger(__name__)

_NEEDLE_RE = re.compile(r"^(f|b)\.(-?\d+)$")
_YARN_LENGTH_RE = re.compile(r"^\(([0-9]|[1-9]\d+),([-+0-9.eE]+)\)$")
_YARN_RE = re.compile(r"^([0-9]|[1-9]\d+)$")
_RACK_RE = re.compile(r"^[-+]?([0-9]|[1-9]\d+)$")
_NUMBER_RE = re.compile(r"^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


class ParseError(Exception):
    """Raised when a single line cannot be parsed into an Instruction."""


@dataclass(frozen=True)
class ParseIssue:
    """
    A syntax problem found on one line.

    Attributes:
        line: 1-based line number.
        message: Human-readable description of the problem.
    """

    line: int
    message: str


@dataclass(frozen=True)
class ParseResult:
    """Instructions parsed from a program, plus every line that failed."""

    instructions: tuple[Instruction, ...]
    errors: tuple[ParseIssue, ...]

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0


def parse_needle(token: str) -> Needle:
    """Parse ``f.3`` / ``b.-2`` style needle tokens."""
    m = _NEEDLE_RE.match(token)
    if m is None:
        raise ParseError(f"Expecting bed.index but got '{token}'.")
    return Needle(Bed(m.group(1)), int(m.group(2)))


def _parse_real(token: str) -> float | None:
    if _NUMBER_RE.match(token) is None:
        return None
    value = float(token)
    if not math.isfinite(value):
        return None
    return value


class _Tokens:
    """Left-to-right field consumer over one line's tokens."""

    def __init__(self, tokens: list[str]) -> None:
        self._tokens = tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def _take(self, what: str) -> str:
        if not self._tokens:
            raise ParseError(f"Expecting {what} but ran out of tokens.")
        return self._tokens.pop(0)

    def direction(self) -> Direction:
        tok = self._take("direction")
        if tok not in ("+", "-"):
            raise ParseError(f"Expecting +/- for direction, but got '{tok}'.")
        return Direction(tok)

    def needle(self) -> Needle:
        return parse_needle(self._take("needle"))

    def length(self) -> float:
        tok = self._take("length")
        value = _parse_real(tok)
        if value is None:
            raise ParseError(f"Expecting length, got '{tok}'.")
        return value

    def yarns(self) -> tuple[YarnLength, ...]:
        yarns: list[YarnLength] = []
        used: set[int] = set()
        while self._tokens:
            tok = self._tokens.pop(0)
            m = _YARN_LENGTH_RE.match(tok)
            if m is None:
                raise ParseError(f"Expecting '(yarn,length)' but got '{tok}'.")
            yarn = int(m.group(1))
            if yarn in used:
                raise ParseError(f"Yarn {yarn} reused in yarns.")
            used.add(yarn)
            length = _parse_real(m.group(2))
            if length is None:
                raise ParseError(f"Expecting length in yarn but got '{m.group(2)}'.")
            yarns.append(YarnLength(yarn, length))
        return tuple(yarns)

    def yarn(self) -> int:
        tok = self._take("yarn")
        if _YARN_RE.match(tok) is None:
            raise ParseError(f"Expecting yarn but got '{tok}'.")
        return int(tok)

    def rack(self) -> int:
        tok = self._take("rack")
        if _RACK_RE.match(tok) is None:
            raise ParseError(f"Expecting rack but got '{tok}'.")
        return int(tok)


def _parse_knit(t: _Tokens, **common) -> Instruction:
    return Knit(t.direction(), t.needle(), t.length(), t.yarns(), **common)


def _parse_tuck(t: _Tokens, **common) -> Instruction:
    return Tuck(t.direction(), t.needle(), t.length(), t.yarns(), **common)


def _parse_split(t: _Tokens, **common) -> Instruction:
    return Split(t.direction(), t.needle(), t.needle(), t.length(), t.yarns(), **common)


def _parse_miss(t: _Tokens, **common) -> Instruction:
    return Miss(t.direction(), t.needle(), t.yarn(), **common)


def _parse_in(t: _Tokens, **common) -> Instruction:
    return In(t.direction(), t.needle(), t.yarn(), **common)


def _parse_out(t: _Tokens, **common) -> Instruction:
    return Out(t.direction(), t.needle(), t.yarn(), **common)


def _parse_drop(t: _Tokens, **common) -> Instruction:
    return Drop(t.needle(), **common)


def _parse_xfer(t: _Tokens, **common) -> Instruction:
    return Xfer(t.needle(), t.needle(), **common)


def _parse_rack(t: _Tokens, **common) -> Instruction:
    return Rack(t.rack(), **common)


_LineParser = Callable[..., Instruction]

_DISPATCH: dict[str, _LineParser] = {
    OpType.KNIT.value: _parse_knit,
    OpType.TUCK.value: _parse_tuck,
    OpType.SPLIT.value: _parse_split,
    OpType.MISS.value: _parse_miss,
    OpType.IN.value: _parse_in,
    OpType.OUT.value: _parse_out,
    OpType.DROP.value: _parse_drop,
    OpType.XFER.value: _parse_xfer,
    OpType.RACK.value: _parse_rack,
}


def parse_line(line: str, line_number: int | None = None) -> Instruction | None:
    """
    Parse one line of formal knitout.

    Returns None for blank and comment-only lines. Raises ParseError if the
    line is malformed.
    """
    comment: str | None = None
    idx = line.find(";")
    if idx != -1:
        comment = line[idx + 1 :]
        line = line[:idx]

    tokens = line.split()
    if not tokens:
        return None

    op = tokens.pop(0)
    handler = _DISPATCH.get(op)
    if handler is None:
        raise ParseError(f"Unrecognized operation '{op}'.")

    remaining = _Tokens(tokens)
    try:
        instruction = handler(remaining, source_line=line_number, comment=comment)
    except ValueError as exc:
        # count constraints (knit/split need yarns, tuck needs exactly one)
        raise ParseError(str(exc)) from exc
    if len(remaining) > 0:
        raise ParseError("Extra tokens at end of line.")
    return instruction


def parse(text: str | Sequence[str]) -> ParseResult:
    """
    Parse a formal knitout program.

    Parameters
    ----------
    text:
        Either the whole program as one string or a sequence of lines.

    Returns
    -------
    ParseResult
        Every well-formed instruction in program order, and one ParseIssue
        per malformed line. Never raises for malformed input.
    """
    lines = _LINE_SPLIT_RE.split(text) if isinstance(text, str) else list(text)

    instructions: list[Instruction] = []
    errors: list[ParseIssue] = []
    for line_number, line in enumerate(lines, start=1):
        try:
            instruction = parse_line(line, line_number)
        except ParseError as exc:
            errors.append(ParseIssue(line=line_number, message=str(exc)))
            continue
        if instruction is not None:
            instructions.append(instruction)

    logger.debug(
        "parsed %d instructions with %d errors from %d lines",
        len(instructions),
        len(errors),
        len(lines),
    )
    return ParseResult(instructions=tuple(instructions), errors=tuple(errors))
