"""
Trace validator: replays formal knitout instructions against a simulated
knitting machine.

The checker tracks racking, loops held on each needle, yarn carrier columns,
and the loop each yarn was last worked into. Every instruction is checked
against the physical state left by the instructions before it; violations are
collected with their instruction index rather than stopping the replay.
"""

from .machine_state import Attachment, MachineState, physical_pos
from .operations import ValidationError, execute_instruction
from .validate import TraceError, ValidationResult, validate

__all__ = [
    # Full replay
    "validate",
    "ValidationResult",
    "TraceError",
    # Operations
    "execute_instruction",
    "ValidationError",
    # Machine state
    "MachineState",
    "Attachment",
    "physical_pos",
]
