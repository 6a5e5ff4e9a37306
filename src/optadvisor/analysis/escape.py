"""
Escape analysis for allocation sites.

An allocation escapes when its value can outlive the function that created
it. Every later read of the value is classified by ``AllocationClassifier``;
the value escapes if it is returned, stored into a global, or passed to a
callee outside the safe-read allow-list. Unknown callees are assumed to
retain their arguments.

Non-escaping allocations of known size are candidates for:

1. Stack promotion - allocate on the stack instead of the heap
2. Scalar replacement - replace a small array by individual scalars

When the size is unknown both flags stay false.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from optadvisor.analysis.allocations import (
    DEFAULT_CLASSIFIER,
    AllocationClassifier,
    AllocationKind,
    AllocationSite,
)
from optadvisor.config import DEFAULT_CONFIG, AnalysisConfig
from optadvisor.ir.nodes import Function

logger = logging.getLogger(__name__)

SAVINGS_REPORT_THRESHOLD = 1024  # bytes


@dataclass(frozen=True, slots=True)
class EscapeRecord:
    """
    Escape verdict for one allocation site.

    Attributes:
        index: SSA index of the allocating call
        callee: Allocation constructor
        kind: Category of memory allocated
        size_known: True if the byte size could be determined
        estimated_bytes: Estimated byte size (None when unknown)
        escapes: True if the value may outlive the function
        reasons: Why the value escapes, in statement order
        can_stack_promote: Safe to allocate on the stack
        can_scalar_replace: Safe to replace by scalars
    """

    index: int
    callee: str
    kind: AllocationKind
    size_known: bool
    estimated_bytes: Optional[int]
    escapes: bool
    reasons: tuple[str, ...] = ()
    can_stack_promote: bool = False
    can_scalar_replace: bool = False

    def __str__(self) -> str:
        verdict = "escapes" if self.escapes else "local"
        return f"#{self.index} {self.callee}: {verdict}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "callee": self.callee,
            "kind": self.kind.value,
            "size_known": self.size_known,
            "estimated_bytes": self.estimated_bytes,
            "escapes": self.escapes,
            "reasons": list(self.reasons),
            "can_stack_promote": self.can_stack_promote,
            "can_scalar_replace": self.can_scalar_replace,
        }


@dataclass(frozen=True, slots=True)
class EscapeReport:
    """Escape analysis result for one function."""

    records: tuple[EscapeRecord, ...] = ()
    promotable_count: int = 0
    scalar_replaceable_count: int = 0
    potential_savings_bytes: int = 0
    suggestions: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def escaping(self) -> tuple[EscapeRecord, ...]:
        return tuple(r for r in self.records if r.escapes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": [r.to_dict() for r in self.records],
            "promotable_count": self.promotable_count,
            "scalar_replaceable_count": self.scalar_replaceable_count,
            "potential_savings_bytes": self.potential_savings_bytes,
            "suggestions": list(self.suggestions),
        }


class EscapeAnalyzer:
    """
    Classifies every allocation site of a function as escaping or local.

    Usage:
        analyzer = EscapeAnalyzer(config)
        report = analyzer.analyze(func)
        for record in report.records:
            if record.can_stack_promote:
                ...
    """

    def __init__(
        self,
        config: AnalysisConfig = DEFAULT_CONFIG,
        classifier: AllocationClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self.config = config
        self.classifier = classifier

    def analyze(self, func: Function) -> EscapeReport:
        """
        Run escape analysis on a function.

        Args:
            func: The function to analyze

        Returns:
            EscapeReport with one record per allocation site
        """
        records = [self.track(func, site) for site in self.classifier.find_sites(func)]

        promotable = sum(1 for r in records if r.can_stack_promote)
        scalar_replaceable = sum(1 for r in records if r.can_scalar_replace)
        savings = sum(r.estimated_bytes or 0 for r in records if r.can_stack_promote)

        suggestions = []
        if promotable:
            suggestions.append(f"Stack promotion: {promotable} allocation(s) can be moved to the stack")
        if scalar_replaceable:
            suggestions.append(
                f"Scalar replacement: {scalar_replaceable} allocation(s) can be eliminated via scalarization"
            )
        if savings > SAVINGS_REPORT_THRESHOLD:
            suggestions.append(f"Potential memory savings: {savings // 1024} KB")

        logger.debug(
            f"{func.name}: {len(records)} allocation(s), "
            f"{sum(1 for r in records if r.escapes)} escaping"
        )
        return EscapeReport(
            records=tuple(records),
            promotable_count=promotable,
            scalar_replaceable_count=scalar_replaceable,
            potential_savings_bytes=savings,
            suggestions=tuple(suggestions),
        )

    def track(self, func: Function, site: AllocationSite) -> EscapeRecord:
        """Decide whether one allocation escapes."""
        reasons = [
            use.describe()
            for use in self.classifier.find_uses(func, site.index)
            if use.kind.leaks
        ]
        escapes = bool(reasons)
        size = site.estimated_bytes

        can_stack_promote = (
            not escapes
            and site.size_known
            and size is not None
            and size < self.config.stack_threshold
        )
        can_scalar_replace = (
            not escapes
            and site.kind is AllocationKind.ARRAY
            and site.size_known
            and size is not None
            and size < self.config.scalar_threshold
        )

        return EscapeRecord(
            index=site.index,
            callee=site.callee,
            kind=site.kind,
            size_known=site.size_known,
            estimated_bytes=size,
            escapes=escapes,
            reasons=tuple(reasons),
            can_stack_promote=can_stack_promote,
            can_scalar_replace=can_scalar_replace,
        )


def analyze_escapes(func: Function, config: AnalysisConfig = DEFAULT_CONFIG) -> EscapeReport:
    """
    Convenience function to run escape analysis on a function.

    Args:
        func: The function to analyze
        config: Analysis configuration

    Returns:
        EscapeReport
    """
    return EscapeAnalyzer(config).analyze(func)
