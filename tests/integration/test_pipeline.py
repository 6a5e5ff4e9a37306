"""
Integration tests for the full analysis pipeline.

These tests run all five passes through AnalysisPipeline and check the
combined report, including partial reports for failing or slow passes.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from optadvisor import analyze, analyze_or_raise
from optadvisor.analysis.pipeline import TIMED_OUT, AnalysisPipeline
from optadvisor.analysis.report import Priority, SectionStatus
from optadvisor.config import AnalysisConfig
from optadvisor.ir.nodes import Call, ConditionalBranch, GlobalStore, Literal, Return, arg, ref
from optadvisor.ir.types import ANY_TYPE, FLOAT64_TYPE, NUMBER_TYPE, UINT8_TYPE, vector_of
from optadvisor.utils.errors import MalformedIRError

FLOAT_VECTOR = vector_of(FLOAT64_TYPE)
BYTE_VECTOR = vector_of(UINT8_TYPE)

@pytest.fixture
def mixed_function(function_factory, animal_types):
    """A function that exercises every pass at least once."""
    animal, _ = animal_types
    return function_factory(
        Call("makeArray", (10,), FLOAT_VECTOR),  # 1: local array
        Call("sum", (ref(1),), FLOAT64_TYPE),  # 2
        Literal(False),  # 3
        ConditionalBranch(ref(3), target=7),  # 4: always false
        Call("log_debug", (), ANY_TYPE),  # 5: dead
        Call("log_debug", (), ANY_TYPE),  # 6: dead
        Call("speak", (arg(1),), ANY_TYPE),  # 7: dynamic call
        Call("malloc", (32,), BYTE_VECTOR),  # 8: manual buffer
        Call("length", (ref(8),)),  # 9
        Call("zeros", (4,), FLOAT_VECTOR),  # 10: escapes
        GlobalStore("LAST", ref(10)),  # 11
        Return(ref(2)),  # 12
        params=(animal, NUMBER_TYPE),
        name="mixed",
    )


@pytest.fixture
def speak_methods(animal_types, method_table_factory):
    _, kinds = animal_types
    return method_table_factory(
        ("speak", (kinds["Dog"],)),
        ("speak", (kinds["Cat"],)),
        ("speak", (kinds["Cow"],)),
    )


class _SlowPipeline(AnalysisPipeline):
    """Pipeline with one pass that blocks until released."""

    def __init__(self, *args, slow_pass="lifetime", **kwargs):
        super().__init__(*args, **kwargs)
        self.slow_pass = slow_pass
        self.release = threading.Event()

    def passes(self):
        passes = super().passes()
        inner = passes[self.slow_pass]

        def slow(func):
            self.release.wait(timeout=5)
            return inner(func)

        passes[self.slow_pass] = slow
        return passes


class _FailingPipeline(AnalysisPipeline):
    """Pipeline whose devirtualization pass raises."""

    def passes(self):
        passes = super().passes()

        def broken(func):
            raise RuntimeError("method table corrupted")

        passes["devirtualization"] = broken
        return passes


# =============================================================================
# End-to-End Scenarios
# =============================================================================


class TestScenarios:
    """Tests for documented end-to-end scenarios."""

    def test_local_array(self, function_factory):
        """Test: makeArray(10) summed and dropped is promotable."""
        func = function_factory(Call("makeArray", (10,)), Call("sum", (ref(1),)), Return(ref(2)))
        report = analyze_or_raise(func)
        [record] = report.escape.value.records
        assert record.estimated_bytes == 80
        assert not record.escapes
        assert record.can_stack_promote
        # sum() on an untyped result is still a dynamic call
        assert report.devirtualization.value.sites[0].callee == "sum"

    def test_constant_true_branch(self, function_factory):
        """Test: A literal true branch over ten statements."""
        work = [Call(f"step{i}", (), ANY_TYPE) for i in range(10)]
        func = function_factory(Literal(True), ConditionalBranch(ref(1)), *work, Return(ref(12)))
        report = analyze_or_raise(func)
        [dead] = report.constants.value.dead_branches
        assert dead.eliminated_arm is False
        assert dead.statements_eliminated == 10
        assert report.size_score == 90.0

    def test_returned_manual_allocation(self, function_factory):
        """Test: A returned manual allocation escapes and is not auto-freed."""
        func = function_factory(Call("malloc", (16,)), Return(ref(1)))
        report = analyze_or_raise(func)
        assert report.escape.value.records[0].escapes
        [lifetime] = report.lifetime.value.lifetimes
        assert not lifetime.can_auto_free
        assert "return" in lifetime.conflicts[0]

    def test_mixed_function(self, mixed_function, speak_methods):
        """Test: Every pass contributes to one report."""
        report = analyze_or_raise(mixed_function, speak_methods)
        assert report.is_complete
        assert all(s.status is SectionStatus.POPULATED for s in report.sections().values())

        escaping = report.escape.value.escaping
        assert [r.index for r in escaping] == [10]
        assert report.constants.value.dead_branches[0].statements_eliminated == 2
        [site] = report.devirtualization.value.sites
        assert (site.index, len(site.candidate_targets)) == (7, 3)
        # Animal has no known instantiations, so nothing can be fully specialized
        assert len(report.monomorphization.value.parameters) == 2
        assert report.monomorphization.value.required_variants == 0
        assert report.lifetime.value.free_insertions == ((10, "alloc_8"),)

        assert report.findings[0].priority is Priority.CRITICAL
        assert report.findings[0].index == 10
        assert report.performance_score == 90.0

    def test_allocation_heavy_context(self, mixed_function, speak_methods):
        """Test: Allowing allocations lowers the escape finding's priority."""
        config = AnalysisConfig(expect_allocation_free=False)
        report = analyze_or_raise(mixed_function, speak_methods, config)
        assert all(f.priority is not Priority.CRITICAL for f in report.findings)

    def test_empty_function(self, function_factory):
        """Test: A trivial function yields empty sections and full scores."""
        report = analyze_or_raise(function_factory(Return()))
        assert all(s.status is SectionStatus.EMPTY for s in report.sections().values())
        assert report.findings == ()
        assert (report.performance_score, report.size_score) == (100.0, 100.0)


# =============================================================================
# Determinism and Concurrency
# =============================================================================


class TestDeterminism:
    """Tests for idempotence and concurrent use."""

    def test_idempotent(self, mixed_function, speak_methods):
        """Test: Two runs produce equal reports."""
        first = analyze_or_raise(mixed_function, speak_methods)
        second = analyze_or_raise(mixed_function, speak_methods)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_sequential_matches_parallel(self, mixed_function, speak_methods, pipeline_factory):
        """Test: Sequential execution yields the same report."""
        parallel = pipeline_factory(speak_methods).analyze_or_raise(mixed_function)
        sequential = pipeline_factory(speak_methods, parallel=False).analyze_or_raise(mixed_function)
        assert parallel == sequential

    def test_single_worker(self, mixed_function, speak_methods, pipeline_factory):
        """Test: A pool of one worker still runs every pass."""
        report = pipeline_factory(speak_methods, max_workers=1).analyze_or_raise(mixed_function)
        assert report.is_complete

    def test_concurrent_analyze_calls(self, mixed_function, function_factory, speak_methods):
        """Test: One pipeline serves concurrent calls on different functions."""
        pipeline = AnalysisPipeline(speak_methods)
        other = function_factory(Call("malloc", (8,)), Return(ref(1)), name="other")
        expected = {f.name: pipeline.analyze_or_raise(f) for f in (mixed_function, other)}

        with ThreadPoolExecutor(max_workers=4) as pool:
            funcs = [mixed_function, other] * 4
            reports = list(pool.map(pipeline.analyze_or_raise, funcs))

        for report in reports:
            assert report == expected[report.function_name]


# =============================================================================
# Degraded Results
# =============================================================================


class TestDegradedResults:
    """Tests for partial reports and rejected input."""

    def test_failing_pass_is_unavailable(self, mixed_function, speak_methods):
        """Test: A raising pass is recorded and the others still run."""
        report = _FailingPipeline(speak_methods).analyze_or_raise(mixed_function)
        section = report.devirtualization
        assert section.status is SectionStatus.UNAVAILABLE
        assert "method table corrupted" in section.error
        assert section.error.startswith("devirtualization:")
        assert report.escape.available
        assert report.lifetime.available
        assert any(f.message.startswith("Analysis unavailable") for f in report.findings)

    def test_failing_pass_costs_no_score(self, function_factory):
        """Test: An unavailable devirtualization section adds no penalty."""
        func = function_factory(Call("speak", (arg(1),), ANY_TYPE), Return(), params=(NUMBER_TYPE,))
        assert _FailingPipeline().analyze_or_raise(func).performance_score == 100.0

    def test_parallel_timeout(self, mixed_function, speak_methods):
        """Test: A pass still running at the timeout is marked timed out."""
        pipeline = _SlowPipeline(speak_methods)
        try:
            started = time.monotonic()
            report = pipeline.analyze_or_raise(mixed_function, timeout=0.2)
            assert time.monotonic() - started < 4
        finally:
            pipeline.release.set()

        assert report.lifetime.status is SectionStatus.UNAVAILABLE
        assert report.lifetime.error == TIMED_OUT
        assert report.escape.status is SectionStatus.POPULATED
        assert not report.is_complete

    def test_sequential_timeout(self, mixed_function, speak_methods):
        """Test: Passes after the deadline are skipped in sequential mode."""
        pipeline = _SlowPipeline(
            speak_methods, AnalysisConfig(parallel=False, timeout=0.05), slow_pass="escape"
        )
        threading.Timer(0.2, pipeline.release.set).start()
        report = pipeline.analyze_or_raise(mixed_function)
        # escape runs first and finishes past the deadline
        assert report.escape.available
        assert report.constants.error == TIMED_OUT
        assert report.lifetime.error == TIMED_OUT

    def test_config_timeout(self, function_factory, speak_methods):
        """Test: config.timeout applies when no explicit timeout is given."""
        pipeline = _SlowPipeline(speak_methods, AnalysisConfig(timeout=0.1))
        try:
            report = pipeline.analyze_or_raise(function_factory(Return()))
        finally:
            pipeline.release.set()
        assert report.lifetime.error == TIMED_OUT

    def test_malformed_ir(self, function_factory):
        """Test: Malformed IR produces an error result, not a report."""
        func = function_factory(Return(ref(3)))
        result = analyze(func)
        assert not result.ok
        assert result.report is None
        assert isinstance(result.error, MalformedIRError)

    def test_malformed_ir_raises(self, function_factory):
        """Test: analyze_or_raise raises MalformedIRError."""
        with pytest.raises(MalformedIRError):
            analyze_or_raise(function_factory(ConditionalBranch(ref(9), target=99)))

    def test_not_a_function(self):
        """Test: Non-Function input is rejected."""
        result = analyze({"name": "f"})
        assert isinstance(result.error, MalformedIRError)


class TestLogging:
    """Tests for pipeline log output."""

    def test_info_summary(self, function_factory, caplog):
        """Test: Each analysis logs a one-line summary."""
        caplog.set_level(logging.INFO, logger="optadvisor")
        analyze_or_raise(function_factory(Return(), name="quiet"))
        assert any("Analyzed quiet" in r.message for r in caplog.records)

    def test_rejection_warning(self, function_factory, caplog):
        """Test: Rejected IR is logged as a warning."""
        caplog.set_level(logging.WARNING, logger="optadvisor")
        analyze(function_factory(Return(ref(4)), name="broken"))
        assert any(r.levelno == logging.WARNING and "broken" in r.message for r in caplog.records)
