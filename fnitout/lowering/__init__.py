"""
Lowering pass: knitout to formal knitout.

Reads the knitout header block, then expands every operation line into
explicit formal knitout instructions, tracking carriers and loops itself so
that the output satisfies the trace validator's physical checks.
"""

from .config import LoweringConfig, get_config
from .context import Carrier, CarrierLocation, CarrierState, EmitSlot, LoweringContext
from .headers import KnitoutHeader, assign_yarn_ids, read_header
from .lower import LoweringResult, lower, lower_line

__all__ = [
    # Full pass
    "lower",
    "lower_line",
    "LoweringResult",
    # Headers
    "read_header",
    "assign_yarn_ids",
    "KnitoutHeader",
    # State
    "LoweringContext",
    "Carrier",
    "CarrierLocation",
    "CarrierState",
    "EmitSlot",
    # Configuration
    "LoweringConfig",
    "get_config",
]
