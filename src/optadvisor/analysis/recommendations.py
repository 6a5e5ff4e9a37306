"""
Scores and priority-ranked findings derived from the pass reports.

Scores start at 100 and lose capped penalties:

- performance: escaping allocations and unresolved virtual calls
- size: dead-branch statements still present and extra monomorphized variants

Sections that are unavailable contribute no penalty; they are reported as
low-priority findings instead.
"""

from __future__ import annotations

from typing import Any

from optadvisor.analysis.const_prop import ConstantReport
from optadvisor.analysis.devirtualization import DevirtualizationReport, DevirtStrategy
from optadvisor.analysis.escape import EscapeReport
from optadvisor.analysis.lifetime import LifetimeReport
from optadvisor.analysis.monomorphization import MonomorphizationReport
from optadvisor.analysis.report import Category, Finding, Priority, Section
from optadvisor.config import DEFAULT_CONFIG, AnalysisConfig


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


def performance_score(
    escape: Section[EscapeReport],
    devirtualization: Section[DevirtualizationReport],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> float:
    """100 minus capped penalties for escaping allocations and unresolved calls."""
    score = 100.0
    if escape.value is not None:
        escaping = len(escape.value.escaping)
        score -= min(config.escape_penalty * escaping, config.escape_penalty_cap)
    if devirtualization.value is not None:
        unresolved = len(devirtualization.value.unresolved)
        score -= min(config.unresolved_call_penalty * unresolved, config.unresolved_call_penalty_cap)
    return _clamp(score)


def size_score(
    constants: Section[ConstantReport],
    monomorphization: Section[MonomorphizationReport],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> float:
    """100 minus capped penalties for dead statements and extra variants."""
    score = 100.0
    if constants.value is not None:
        dead = constants.value.dead_statement_count
        score -= min(config.dead_statement_penalty * dead, config.dead_statement_penalty_cap)
    if monomorphization.value is not None:
        extra = max(monomorphization.value.required_variants - 1, 0)
        score -= min(config.variant_penalty * extra, config.variant_penalty_cap)
    return _clamp(score)


# =============================================================================
# Findings
# =============================================================================


def collect_findings(
    sections: dict[str, Section[Any]],
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> tuple[Finding, ...]:
    """
    Flatten every section into findings sorted by priority, then statement index.

    Args:
        sections: Pass name -> section, as returned by ``AnalysisReport.sections``
        config: Analysis configuration

    Returns:
        Sorted findings
    """
    findings: list[Finding] = []
    for name, section in sections.items():
        if not section.available:
            findings.append(
                Finding(
                    Priority.LOW,
                    Category.CORRECTNESS,
                    name,
                    None,
                    f"Analysis unavailable: {section.error}",
                    "Re-run with a longer timeout or check the debug log",
                )
            )
            continue

        collector = _COLLECTORS.get(name)
        if collector is not None and section.value is not None:
            findings.extend(collector(section.value, config))

    return tuple(sorted(findings, key=lambda f: f.sort_key))


def _escape_findings(report: EscapeReport, config: AnalysisConfig) -> list[Finding]:
    findings = []
    for record in report.records:
        if record.escapes:
            priority = Priority.CRITICAL if config.expect_allocation_free else Priority.LOW
            findings.append(
                Finding(
                    priority,
                    Category.PERFORMANCE,
                    "escape",
                    record.index,
                    f"Allocation by '{record.callee}' escapes: {'; '.join(record.reasons)}",
                    "Keep the value local or preallocate it outside this function",
                )
            )
        elif record.can_stack_promote:
            detail = " and scalar replacement" if record.can_scalar_replace else ""
            findings.append(
                Finding(
                    Priority.LOW,
                    Category.PERFORMANCE,
                    "escape",
                    record.index,
                    f"Allocation by '{record.callee}' ({record.estimated_bytes} bytes) does not escape",
                    f"Eligible for stack promotion{detail}",
                )
            )
    return findings


def _constant_findings(report: ConstantReport, config: AnalysisConfig) -> list[Finding]:
    findings = []
    for branch in report.dead_branches:
        findings.append(
            Finding(
                Priority.MEDIUM,
                Category.SIZE,
                "constants",
                branch.index,
                f"Branch condition is always {str(branch.condition_value).lower()}; "
                f"{branch.statements_eliminated} statement(s) are dead",
                "Remove the dead arm or make the condition a compile-time switch",
            )
        )
    return findings


def _devirtualization_findings(report: DevirtualizationReport, config: AnalysisConfig) -> list[Finding]:
    findings = []
    for site in report.sites:
        if site.can_devirtualize:
            how = "a direct call" if site.strategy is DevirtStrategy.DIRECT else "a type switch"
            findings.append(
                Finding(
                    Priority.LOW,
                    Category.PERFORMANCE,
                    "devirtualization",
                    site.index,
                    f"Call to '{site.callee}' on {site.receiver_type} can be devirtualized",
                    f"Replace dynamic dispatch with {how} over "
                    f"{len(site.candidate_targets)} target(s)",
                )
            )
        else:
            hot = " in a loop" if site.in_loop else ""
            findings.append(
                Finding(
                    Priority.HIGH if site.in_loop else Priority.LOW,
                    Category.PERFORMANCE,
                    "devirtualization",
                    site.index,
                    f"Unresolved dynamic call to '{site.callee}' on {site.receiver_type}{hot} "
                    f"({len(site.candidate_targets)} candidate(s))",
                    "Annotate the receiver with a concrete type",
                )
            )
    return findings


def _monomorphization_findings(report: MonomorphizationReport, config: AnalysisConfig) -> list[Finding]:
    if not report.parameters:
        return []

    params = ", ".join(str(p) for p in report.parameters)
    if report.required_variants > config.max_specialization_factor:
        return [
            Finding(
                Priority.MEDIUM,
                Category.SIZE,
                "monomorphization",
                None,
                f"Full specialization needs {report.required_variants} variants "
                f"(limit {config.max_specialization_factor}) for {params}",
                "Narrow the parameter types or specialize only the hot combinations",
            )
        ]

    suggested = any(p.is_suggestion for p in report.parameters)
    note = " (suggested instantiations)" if suggested else ""
    return [
        Finding(
            Priority.LOW,
            Category.PERFORMANCE,
            "monomorphization",
            None,
            f"Abstract parameter(s) {params}; {report.required_variants} variant(s) remove dispatch{note}",
            "Specialize the function on concrete parameter types",
        )
    ]


def _lifetime_findings(report: LifetimeReport, config: AnalysisConfig) -> list[Finding]:
    findings = []
    for lt in report.lifetimes:
        if lt.can_auto_free:
            findings.append(
                Finding(
                    Priority.LOW,
                    Category.CORRECTNESS,
                    "lifetime",
                    lt.index,
                    f"Allocation by '{lt.callee}' can be released automatically",
                    f"Insert a release before #{lt.free_insertion_index}",
                )
            )
        elif lt.conflicts:
            findings.append(
                Finding(
                    Priority.LOW,
                    Category.CORRECTNESS,
                    "lifetime",
                    lt.index,
                    f"Allocation by '{lt.callee}' cannot be auto-freed: {'; '.join(lt.conflicts)}",
                    "Release it manually or restructure its ownership",
                )
            )
        elif lt.may_leak:
            findings.append(
                Finding(
                    Priority.LOW,
                    Category.CORRECTNESS,
                    "lifetime",
                    lt.index,
                    f"Allocation by '{lt.callee}' may leak",
                    "Add an explicit release",
                )
            )
    return findings


_COLLECTORS = {
    "escape": _escape_findings,
    "constants": _constant_findings,
    "devirtualization": _devirtualization_findings,
    "monomorphization": _monomorphization_findings,
    "lifetime": _lifetime_findings,
}
