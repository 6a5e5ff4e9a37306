"""
Aggregate analysis report.

Every pass contributes one ``Section`` whose status distinguishes "the pass
could not run" (UNAVAILABLE) from "the pass ran and found nothing" (EMPTY)
and "the pass found something" (POPULATED). The report is plain data once
constructed and is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from optadvisor.analysis.const_prop import ConstantReport
from optadvisor.analysis.devirtualization import DevirtualizationReport
from optadvisor.analysis.escape import EscapeReport
from optadvisor.analysis.lifetime import LifetimeReport
from optadvisor.analysis.monomorphization import MonomorphizationReport
from optadvisor.utils.errors import AdvisorError

T = TypeVar("T")


class SectionStatus(Enum):
    """Outcome of one pass."""

    UNAVAILABLE = "unavailable"
    EMPTY = "empty"
    POPULATED = "populated"


@dataclass(frozen=True, slots=True)
class Section(Generic[T]):
    """
    One pass's contribution to a report.

    Attributes:
        status: Whether the pass ran and found anything
        value: The pass report (None when unavailable)
        error: Why the pass is unavailable
    """

    status: SectionStatus
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def of(cls, value: T) -> Section[T]:
        """Wrap a finished pass report; empty reports give an EMPTY section."""
        empty = getattr(value, "is_empty", False)
        return cls(SectionStatus.EMPTY if empty else SectionStatus.POPULATED, value)

    @classmethod
    def unavailable(cls, error: str) -> Section[T]:
        return cls(SectionStatus.UNAVAILABLE, None, error)

    @property
    def available(self) -> bool:
        return self.status is not SectionStatus.UNAVAILABLE

    def to_dict(self) -> dict[str, Any]:
        value = self.value.to_dict() if self.value is not None else None
        return {"status": self.status.value, "value": value, "error": self.error}


# =============================================================================
# Findings
# =============================================================================


class Priority(Enum):
    """Finding priority, most urgent first."""

    CRITICAL = 0
    HIGH = 1
    MEDIUM = 2
    LOW = 3

    def __str__(self) -> str:
        return self.name.lower()


class Category(Enum):
    PERFORMANCE = "performance"
    SIZE = "size"
    CORRECTNESS = "correctness"


@dataclass(frozen=True, slots=True)
class Finding:
    """
    One actionable item in a report.

    Attributes:
        priority: How urgent the finding is
        category: What the finding affects
        analysis: Name of the pass that produced it
        index: Statement index, or None for function-level findings
        message: What was found
        suggestion: What to do about it
    """

    priority: Priority
    category: Category
    analysis: str
    index: Optional[int]
    message: str
    suggestion: str = ""

    @property
    def sort_key(self) -> tuple[int, int, str, str]:
        # Function-level findings sort before statement-level ones
        return (self.priority.value, self.index if self.index is not None else 0, self.analysis, self.message)

    def __str__(self) -> str:
        where = f" #{self.index}" if self.index is not None else ""
        return f"[{self.priority}] {self.analysis}{where}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": str(self.priority),
            "category": self.category.value,
            "analysis": self.analysis,
            "index": self.index,
            "message": self.message,
            "suggestion": self.suggestion,
        }


# =============================================================================
# Report
# =============================================================================


SECTION_NAMES = ("escape", "constants", "devirtualization", "monomorphization", "lifetime")


@dataclass(frozen=True, slots=True)
class AnalysisReport:
    """Combined result of all five passes for one function."""

    function_name: str
    parameter_types: tuple[str, ...]
    escape: Section[EscapeReport]
    constants: Section[ConstantReport]
    devirtualization: Section[DevirtualizationReport]
    monomorphization: Section[MonomorphizationReport]
    lifetime: Section[LifetimeReport]
    performance_score: float = 100.0
    size_score: float = 100.0
    findings: tuple[Finding, ...] = ()

    def sections(self) -> dict[str, Section[Any]]:
        return {name: getattr(self, name) for name in SECTION_NAMES}

    @property
    def is_complete(self) -> bool:
        """True if every pass produced a result."""
        return all(section.available for section in self.sections().values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "function_name": self.function_name,
            "parameter_types": list(self.parameter_types),
            "sections": {name: section.to_dict() for name, section in self.sections().items()},
            "performance_score": self.performance_score,
            "size_score": self.size_score,
            "findings": [f.to_dict() for f in self.findings],
        }

    def summary(self) -> str:
        """Short human-readable overview."""
        lines = [
            f"Analysis of {self.function_name}({', '.join(self.parameter_types)})",
            f"  performance score: {self.performance_score:.1f}/100",
            f"  size score:        {self.size_score:.1f}/100",
        ]
        for name, section in self.sections().items():
            note = f" ({section.error})" if section.error else ""
            lines.append(f"  {name}: {section.status.value}{note}")
        if self.findings:
            lines.append(f"  findings ({len(self.findings)}):")
            for finding in self.findings:
                lines.append(f"    {finding}")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """
    Tagged result of ``analyze``: either a report or the error that prevented one.

    Only precondition violations (malformed IR) produce the error arm.
    """

    report: Optional[AnalysisReport] = None
    error: Optional[AdvisorError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None

    def unwrap(self) -> AnalysisReport:
        """
        Return the report.

        Raises:
            AdvisorError: The recorded error, when there is no report
        """
        if self.error is not None:
            raise self.error
        assert self.report is not None
        return self.report
