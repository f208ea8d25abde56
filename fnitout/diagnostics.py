"""
Diagnostics shared by the lowering pass and the command-line shells.

Two kinds of problems are kept apart on purpose:

  - Diagnostics with WARNING or RECOVERABLE severity are reported to a
    DiagnosticSink, which records them in order and forwards them to the
    logger. Processing continues.
  - A FATAL diagnostic is raised as FatalLoweringError and stops the pass
    where it was detected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """How a diagnostic affects the run."""

    WARNING = "warning"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single reported problem.

    Attributes:
        location: 1-based source line, or None when not tied to a line.
        message: Human-readable description.
        severity: WARNING, RECOVERABLE, or FATAL.
    """

    location: int | None
    message: str
    severity: Severity

    def __str__(self) -> str:
        where = f"{self.location}: " if self.location is not None else ""
        return f"{where}{self.severity.value.upper()}: {self.message}"


class FatalLoweringError(Exception):
    """Raised when the lowering pass cannot continue.

    Attributes:
        diagnostic: The FATAL diagnostic describing the failure.
    """

    def __init__(self, location: int | None, message: str) -> None:
        super().__init__(message)
        self.diagnostic = Diagnostic(location, message, Severity.FATAL)

    @property
    def location(self) -> int | None:
        return self.diagnostic.location


class DiagnosticSink:
    """Ordered collector for non-fatal diagnostics."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self.diagnostics: list[Diagnostic] = []

    def report(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)
        level = logging.ERROR if diagnostic.severity is Severity.FATAL else logging.WARNING
        self._log.log(level, "%s", diagnostic)

    def warn(self, location: int | None, message: str) -> None:
        self.report(Diagnostic(location, message, Severity.WARNING))

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity is Severity.WARNING)

    def __len__(self) -> int:
        return len(self.diagnostics)
