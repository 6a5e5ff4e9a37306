"""
Analysis pipeline: runs all five passes over one function and combines them.

The pipeline performs the following stages:
1. Validation - reject structurally malformed IR (the only hard failure)
2. Passes - escape, constants, devirtualization, monomorphization and
   lifetime analysis, each run independently on a bounded worker pool
3. Aggregation - scores and priority-ranked findings

A pass that raises is recorded as an unavailable section and never aborts
the others. When a timeout is given, passes still running when it expires
are recorded as unavailable ("timed out") and the partial report is
returned without waiting for them.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

from optadvisor.analysis.allocations import DEFAULT_CLASSIFIER, AllocationClassifier
from optadvisor.analysis.const_prop import ConstantPropagator
from optadvisor.analysis.devirtualization import Devirtualizer
from optadvisor.analysis.escape import EscapeAnalyzer
from optadvisor.analysis.lifetime import LifetimeAnalyzer
from optadvisor.analysis.monomorphization import MonomorphizationAnalyzer
from optadvisor.analysis.recommendations import collect_findings, performance_score, size_score
from optadvisor.analysis.report import SECTION_NAMES, AnalysisReport, AnalysisResult, Section
from optadvisor.config import DEFAULT_CONFIG, AnalysisConfig
from optadvisor.ir.method_table import EMPTY_METHOD_TABLE, MethodTable
from optadvisor.ir.nodes import Function
from optadvisor.ir.validation import validate_function
from optadvisor.utils.errors import AnalysisError, IRLocation, MalformedIRError

logger = logging.getLogger(__name__)

TIMED_OUT = "timed out"

PassFn = Callable[[Function], Any]


class AnalysisPipeline:
    """
    Runs every analysis pass over a function and builds an ``AnalysisReport``.

    The pipeline holds only read-only collaborators, so one instance can
    serve concurrent ``analyze`` calls.

    Example:
        pipeline = AnalysisPipeline(method_table, AnalysisConfig(timeout=2.0))
        result = pipeline.analyze(func)
        if result.ok:
            print(result.report.summary())
        else:
            print(result.error)

    Attributes:
        method_table: Read-only method table for devirtualization and monomorphization
        config: Thresholds, penalties and pool settings
        classifier: Allocation and use classifier shared by escape and lifetime analysis
    """

    def __init__(
        self,
        method_table: MethodTable = EMPTY_METHOD_TABLE,
        config: AnalysisConfig = DEFAULT_CONFIG,
        classifier: AllocationClassifier = DEFAULT_CLASSIFIER,
    ) -> None:
        self.method_table = method_table
        self.config = config
        self.classifier = classifier

    def passes(self) -> dict[str, PassFn]:
        """The five passes keyed by section name."""
        config = self.config
        return {
            "escape": EscapeAnalyzer(config, self.classifier).analyze,
            "constants": ConstantPropagator(config).analyze,
            "devirtualization": Devirtualizer(self.method_table, config).analyze,
            "monomorphization": lambda func: MonomorphizationAnalyzer(
                self.method_table, config
            ).analyze(func.signature),
            "lifetime": LifetimeAnalyzer(config, self.classifier).analyze,
        }

    def analyze(self, func: Function, timeout: Optional[float] = None) -> AnalysisResult:
        """
        Analyze one function.

        Args:
            func: The function to analyze
            timeout: Seconds to wait for the passes; overrides ``config.timeout``

        Returns:
            AnalysisResult holding the report, or the validation error
        """
        if not isinstance(func, Function):
            error = MalformedIRError(f"expected a Function, got {type(func).__name__}")
            return AnalysisResult(error=error)

        try:
            validate_function(func)
        except MalformedIRError as e:
            logger.warning(f"Rejected malformed IR for {func.name}: {len(e.problems)} problem(s)")
            return AnalysisResult(error=e)

        limit = timeout if timeout is not None else self.config.timeout
        if self.config.parallel:
            sections = self._run_parallel(func, limit)
        else:
            sections = self._run_sequential(func, limit)

        report = self._build_report(func, sections)
        logger.info(
            f"Analyzed {func.name}: performance {report.performance_score:.1f}, "
            f"size {report.size_score:.1f}, {len(report.findings)} finding(s)"
        )
        return AnalysisResult(report=report)

    def analyze_or_raise(self, func: Function, timeout: Optional[float] = None) -> AnalysisReport:
        """
        Analyze one function, raising instead of returning an error result.

        Raises:
            MalformedIRError: If the function fails validation
        """
        return self.analyze(func, timeout).unwrap()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _run_sequential(self, func: Function, timeout: Optional[float]) -> dict[str, Section[Any]]:
        deadline = None if timeout is None else time.monotonic() + timeout
        sections: dict[str, Section[Any]] = {}
        for name, run in self.passes().items():
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"{func.name}: '{name}' skipped, {TIMED_OUT}")
                sections[name] = Section.unavailable(TIMED_OUT)
                continue
            sections[name] = _run_pass(name, run, func)
        return sections

    def _run_parallel(self, func: Function, timeout: Optional[float]) -> dict[str, Section[Any]]:
        passes = self.passes()
        workers = min(self.config.max_workers, len(passes))
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="optadvisor")
        try:
            futures: dict[str, Future[Section[Any]]] = {
                name: pool.submit(_run_pass, name, run, func) for name, run in passes.items()
            }
            wait(futures.values(), timeout=timeout)

            sections: dict[str, Section[Any]] = {}
            for name, future in futures.items():
                if future.done():
                    sections[name] = future.result()
                else:
                    logger.warning(f"{func.name}: '{name}' {TIMED_OUT} after {timeout}s")
                    sections[name] = Section.unavailable(TIMED_OUT)
            return sections
        finally:
            # Never block on passes that outlived the timeout
            pool.shutdown(wait=False, cancel_futures=True)

    def _build_report(self, func: Function, sections: dict[str, Section[Any]]) -> AnalysisReport:
        ordered = {name: sections[name] for name in SECTION_NAMES}
        config = self.config
        return AnalysisReport(
            function_name=func.name,
            parameter_types=tuple(str(t) for t in func.parameter_types),
            escape=ordered["escape"],
            constants=ordered["constants"],
            devirtualization=ordered["devirtualization"],
            monomorphization=ordered["monomorphization"],
            lifetime=ordered["lifetime"],
            performance_score=performance_score(ordered["escape"], ordered["devirtualization"], config),
            size_score=size_score(ordered["constants"], ordered["monomorphization"], config),
            findings=collect_findings(ordered, config),
        )


def _run_pass(name: str, run: PassFn, func: Function) -> Section[Any]:
    """Run one pass, turning any exception into an unavailable section."""
    started = time.perf_counter()
    try:
        value = run(func)
    except Exception as e:
        error = AnalysisError(name, f"{type(e).__name__}: {e}", IRLocation(func.name))
        logger.warning(f"Section '{name}' unavailable for {func.name}: {error.message}")
        logger.debug(f"Pass '{name}' failed on {func.name}", exc_info=True)
        return Section.unavailable(str(error))

    elapsed = (time.perf_counter() - started) * 1000
    logger.debug(f"Pass '{name}' finished on {func.name} in {elapsed:.2f}ms")
    return Section.of(value)


def analyze(
    func: Function,
    method_table: MethodTable = EMPTY_METHOD_TABLE,
    config: AnalysisConfig = DEFAULT_CONFIG,
    timeout: Optional[float] = None,
) -> AnalysisResult:
    """
    Convenience function to analyze a function with a fresh pipeline.

    Args:
        func: The function to analyze
        method_table: Read-only method table
        config: Analysis configuration
        timeout: Seconds to wait for the passes

    Returns:
        AnalysisResult
    """
    return AnalysisPipeline(method_table, config).analyze(func, timeout)


def analyze_or_raise(
    func: Function,
    method_table: MethodTable = EMPTY_METHOD_TABLE,
    config: AnalysisConfig = DEFAULT_CONFIG,
    timeout: Optional[float] = None,
) -> AnalysisReport:
    """
    Analyze a function and return its report.

    Raises:
        MalformedIRError: If the function fails validation
    """
    return AnalysisPipeline(method_table, config).analyze_or_raise(func, timeout)

