"""
Lifetime analysis for manually-managed allocations.

For every ``manual`` allocation site the pass finds the last statement that
reads the value and decides whether a release call can be inserted
automatically after it. Insertion is refused when:

- the value is returned, stored to a global, or handed to a callee outside
  the safe-read allow-list (it may be captured)
- the function already releases the value explicitly
- no statement between the last use and the next ``Return`` is a safe
  insertion point
- a jump from outside the live range lands inside it, so the release could
  run before a use or without the allocation
- a statement before the allocation reads it through a backward jump
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
    UseKind,
)
from optadvisor.config import DEFAULT_CONFIG, AnalysisConfig
from optadvisor.ir.nodes import Function, Return

logger = logging.getLogger(__name__)


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True, slots=True)
class AllocationLifetime:
    """
    Live range of one manual allocation.

    Attributes:
        index: SSA index of the allocating call
        callee: Allocation function
        last_use_index: Last statement reading the value (the site itself if unused)
        conflicts: Reasons an automatic release is unsafe
        free_insertion_index: Statement before which a release can be inserted
        can_auto_free: True if a release can be inserted automatically
        has_manual_release: True if the function already releases the value
    """

    index: int
    callee: str
    last_use_index: int
    conflicts: tuple[str, ...] = ()
    free_insertion_index: Optional[int] = None
    can_auto_free: bool = False
    has_manual_release: bool = False

    @property
    def may_leak(self) -> bool:
        return not self.can_auto_free and not self.conflicts and not self.has_manual_release

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "callee": self.callee,
            "last_use_index": self.last_use_index,
            "conflicts": list(self.conflicts),
            "free_insertion_index": self.free_insertion_index,
            "can_auto_free": self.can_auto_free,
            "has_manual_release": self.has_manual_release,
        }


@dataclass(frozen=True, slots=True)
class LifetimeReport:
    """Lifetime analysis result for one function."""

    lifetimes: tuple[AllocationLifetime, ...] = ()
    auto_freeable_count: int = 0
    leaks_prevented: int = 0
    free_insertions: tuple[tuple[int, str], ...] = ()  # (index, variable)
    suggestions: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.lifetimes

    def to_dict(self) -> dict[str, Any]:
        return {
            "lifetimes": [lt.to_dict() for lt in self.lifetimes],
            "auto_freeable_count": self.auto_freeable_count,
            "leaks_prevented": self.leaks_prevented,
            "free_insertions": [list(entry) for entry in self.free_insertions],
            "suggestions": list(self.suggestions),
        }


# =============================================================================
# Analyzer
# =============================================================================


class LifetimeAnalyzer:
    """
    Computes safe automatic release points for manual allocations.

    Usage:
        analyzer = LifetimeAnalyzer(config)
        report = analyzer.analyze(func)
        for index, variable in report.free_insertions:
            ...
    """

    def __init__(
        self,
        config: AnalysisConfig = DEFAULT_CONFIG,
        classifier: AllocationClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self.config = config
        self.classifier = classifier

    def analyze(self, func: Function) -> LifetimeReport:
        """
        Run lifetime analysis on a function.

        Args:
            func: The function to analyze

        Returns:
            LifetimeReport with one entry per manual allocation
        """
        sites = self.classifier.find_sites(func, kind=AllocationKind.MANUAL)
        lifetimes = [self.track(func, site) for site in sites]

        auto_freeable = sum(1 for lt in lifetimes if lt.can_auto_free)
        insertions = tuple(
            (lt.free_insertion_index, f"alloc_{lt.index}")
            for lt in lifetimes
            if lt.can_auto_free and lt.free_insertion_index is not None
        )

        logger.debug(f"{func.name}: {len(lifetimes)} manual allocation(s), {auto_freeable} auto-freeable")
        return LifetimeReport(
            lifetimes=tuple(lifetimes),
            auto_freeable_count=auto_freeable,
            leaks_prevented=auto_freeable,
            free_insertions=insertions,
            suggestions=tuple(_suggestions(lifetimes, auto_freeable)),
        )

    def track(self, func: Function, site: AllocationSite) -> AllocationLifetime:
        """Compute the live range and release point of one allocation."""
        uses = self.classifier.find_uses(func, site.index)
        last_use = max([site.index, *(use.index for use in uses)])

        conflicts = []
        for use in uses:
            if use.index < site.index:
                conflicts.append(
                    f"Allocation used across loop back-edge at #{use.index} - cannot auto-free"
                )
            elif use.kind is UseKind.RETURN:
                conflicts.append(f"Allocation is returned at #{use.index} - cannot auto-free")
            elif use.kind is UseKind.GLOBAL_STORE:
                conflicts.append(
                    f"Allocation stored to global '{use.callee}' at #{use.index} - cannot auto-free"
                )
            elif use.kind is UseKind.LEAKING_CALL:
                conflicts.append(
                    f"Allocation may be captured by '{use.callee}' at #{use.index} - cannot auto-free"
                )
        has_release = any(use.kind is UseKind.RELEASE for use in uses)

        insertion = None
        if not conflicts and not has_release:
            insertion = find_free_insertion_point(func, last_use)
            if insertion is not None:
                entry = _jump_into_range(func, site.index, insertion)
                if entry is not None:
                    source, target = entry
                    kind = "Loop back-edge" if source >= insertion else "Jump"
                    conflicts.append(
                        f"{kind} at #{source} enters the live range at #{target} - cannot auto-free"
                    )
                    insertion = None

        return AllocationLifetime(
            index=site.index,
            callee=site.callee,
            last_use_index=last_use,
            conflicts=tuple(conflicts),
            free_insertion_index=insertion,
            can_auto_free=insertion is not None,
            has_manual_release=has_release,
        )


def find_free_insertion_point(func: Function, last_use: int) -> Optional[int]:
    """
    First index after ``last_use`` that is not a jump target, no later than
    the nearest following ``Return``.

    The release is inserted before the statement at the returned index.
    """
    targets = func.jump_targets()
    for index, stmt in func.indexed(start=last_use + 1):
        if index not in targets:
            return index
        if isinstance(stmt, Return):
            break
    return None


def _jump_into_range(func: Function, start: int, end: int) -> Optional[tuple[int, int]]:
    """A ``(source, target)`` jump from outside ``[start, end]`` into ``(start, end]``."""
    for source, stmt in func.indexed():
        target = stmt.jump_target()
        if target is None or not start < target <= end:
            continue
        if not start <= source < end:
            return source, target
    return None


def _suggestions(lifetimes: list[AllocationLifetime], auto_freeable: int) -> list[str]:
    suggestions = []
    if auto_freeable:
        suggestions.append(f"{auto_freeable} allocation(s) can have an automatic release inserted")

    for lt in lifetimes:
        if lt.conflicts:
            suggestions.append(
                f"Allocation at #{lt.index} cannot be auto-freed: {'; '.join(lt.conflicts)}"
            )

    leaked = sum(1 for lt in lifetimes if lt.may_leak)
    if leaked:
        suggestions.append(f"Warning: {leaked} allocation(s) may leak memory; add an explicit release")
    return suggestions


def analyze_lifetimes(func: Function, config: AnalysisConfig = DEFAULT_CONFIG) -> LifetimeReport:
    """
    Convenience function to run lifetime analysis on a function.

    Args:
        func: The function to analyze
        config: Analysis configuration

    Returns:
        LifetimeReport
    """
    return LifetimeAnalyzer(config).analyze(func)
