"""
Schema definitions for formal knitout.

Provides the instruction model (needles, yarn lengths, one dataclass per
operation) shared by the Parser, the Checker, and the Lowering pass.
"""

from .instruction import (
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
    format_number,
)

__all__ = [
    # vocabulary
    "Bed",
    "Direction",
    "OpType",
    # values
    "Needle",
    "YarnLength",
    # instructions
    "Instruction",
    "Knit",
    "Tuck",
    "Split",
    "Miss",
    "In",
    "Out",
    "Drop",
    "Xfer",
    "Rack",
    # rendering
    "format_number",
]
