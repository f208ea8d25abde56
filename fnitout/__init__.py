"""
fnitout: semantics for machine-knitting programs.

Parses and validates formal knitout by replaying it against a simulated
knitting machine, and lowers knitout into formal knitout.
"""

from fnitout.checker import MachineState, TraceError, ValidationResult, validate
from fnitout.diagnostics import Diagnostic, DiagnosticSink, FatalLoweringError, Severity
from fnitout.lowering import LoweringResult, lower
from fnitout.parser import ParseIssue, ParseResult, parse

__version__ = "0.1.0"

__all__ = [
    "parse",
    "ParseResult",
    "ParseIssue",
    "validate",
    "ValidationResult",
    "TraceError",
    "MachineState",
    "lower",
    "LoweringResult",
    "Diagnostic",
    "DiagnosticSink",
    "FatalLoweringError",
    "Severity",
]
