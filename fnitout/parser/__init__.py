"""
Formal knitout parser: program text to Instructions, collecting per-line
syntax errors instead of stopping at the first one.
"""

from .parser import ParseError, ParseIssue, ParseResult, parse, parse_line, parse_needle

__all__ = [
    "parse",
    "parse_line",
    "parse_needle",
    "ParseResult",
    "ParseIssue",
    "ParseError",
]
