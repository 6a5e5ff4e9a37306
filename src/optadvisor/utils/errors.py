"""
Error types and IR location tracking for the optimization advisor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True, slots=True)
class IRLocation:
    """
    Represents a location inside a function's IR.

    Attributes:
        function: Name of the function being analyzed
        index: 1-indexed statement position (0 when the whole function is meant)
    """

    function: str
    index: int = 0

    def __str__(self) -> str:
        if self.index:
            return f"{self.function}#{self.index}"
        return self.function


class AdvisorError(Exception):
    """Base exception for all optimization advisor errors."""

    def __init__(
        self,
        message: str,
        location: Optional[IRLocation] = None,
    ) -> None:
        self.message = message
        self.location = location
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.location:
            return f"[{self.location}] {self.message}"
        return self.message


class MalformedIRError(AdvisorError):
    """
    Raised when a function's IR violates a structural precondition.

    The frontend must hand over well-formed IR. Every problem found during
    ingestion is collected so that the caller sees all of them at once.
    """

    def __init__(
        self,
        message: str,
        location: Optional[IRLocation] = None,
        problems: Optional[Sequence[str]] = None,
    ) -> None:
        self.problems = list(problems or [])
        super().__init__(message, location)

    def _format_message(self) -> str:
        base = super()._format_message()
        if not self.problems:
            return base
        lines = [base]
        for problem in self.problems:
            lines.append(f"  - {problem}")
        return "\n".join(lines)


class ConfigError(AdvisorError):
    """Raised when an analysis configuration is invalid."""

    pass


class AnalysisError(AdvisorError):
    """
    Raised (or recorded) when a single analysis pass cannot run.

    Attributes:
        analysis: Name of the pass that failed ("escape", "constants", ...)
    """

    def __init__(
        self,
        analysis: str,
        message: str,
        location: Optional[IRLocation] = None,
    ) -> None:
        self.analysis = analysis
        super().__init__(message, location)

    def _format_message(self) -> str:
        return f"{self.analysis}: {super()._format_message()}"
