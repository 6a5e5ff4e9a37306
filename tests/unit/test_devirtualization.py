"""
Unit tests for devirtualization analysis.
"""

import pytest

from optadvisor.analysis.devirtualization import (
    DevirtStrategy,
    Devirtualizer,
    analyze_devirtualization,
    choose_strategy,
)
from optadvisor.ir.nodes import Call, ConditionalBranch, Literal, Return, arg, ref
from optadvisor.ir.types import ANY_TYPE, BOOL_TYPE, NUMBER_TYPE, STRING_TYPE, UnionType


@pytest.fixture
def speak_table(animal_types, method_table_factory):
    """Build a table with ``speak`` defined for the first ``n`` animals."""
    _, kinds = animal_types
    names = list(kinds)

    def _create(n):
        return method_table_factory(*[("speak", (kinds[name],)) for name in names[:n]])

    return _create


class TestChooseStrategy:
    """Tests for candidate count to strategy mapping."""

    @pytest.mark.parametrize(
        "count,expected",
        [
            (0, DevirtStrategy.NONE),
            (1, DevirtStrategy.DIRECT),
            (2, DevirtStrategy.SWITCH),
            (4, DevirtStrategy.SWITCH),
            (5, DevirtStrategy.NONE),
        ],
    )
    def test_default_limit(self, count, expected):
        """Test: Strategy follows the candidate count."""
        assert choose_strategy(count) is expected

    def test_custom_limit(self):
        """Test: A larger switch limit admits more candidates."""
        assert choose_strategy(6, switch_max_targets=8) is DevirtStrategy.SWITCH


class TestCallSites:
    """Tests for virtual call site detection."""

    @pytest.mark.parametrize(
        "n,strategy",
        [(1, DevirtStrategy.DIRECT), (3, DevirtStrategy.SWITCH), (5, DevirtStrategy.NONE)],
    )
    def test_strategy_by_candidate_count(self, animal_types, speak_table, function_factory, n, strategy):
        """Test: One, three and five implementations map to direct, switch and none."""
        animal, _ = animal_types
        func = function_factory(Call("speak", (arg(1),), ANY_TYPE), Return(ref(1)), params=(animal,))
        [site] = analyze_devirtualization(func, speak_table(n)).sites
        assert len(site.candidate_targets) == n
        assert site.strategy is strategy
        assert site.receiver_type == animal

    def test_unknown_symbol(self, animal_types, speak_table, function_factory):
        """Test: A symbol missing from the table is reported with no candidates."""
        animal, _ = animal_types
        func = function_factory(Call("fly", (arg(1),), ANY_TYPE), Return(), params=(animal,))
        [site] = analyze_devirtualization(func, speak_table(3)).sites
        assert site.candidate_targets == ()
        assert site.strategy is DevirtStrategy.NONE
        assert not site.can_devirtualize

    def test_concrete_receiver_is_skipped(self, animal_types, speak_table, function_factory):
        """Test: Statically dispatched calls are not reported."""
        _, kinds = animal_types
        func = function_factory(Call("speak", (arg(1),), ANY_TYPE), Return(), params=(kinds["Dog"],))
        report = analyze_devirtualization(func, speak_table(3))
        assert report.is_empty
        assert report.total_call_sites == 1

    def test_call_without_arguments(self, function_factory):
        """Test: A call with no receiver is not a virtual call."""
        func = function_factory(Call("now", (), ANY_TYPE), Return())
        report = analyze_devirtualization(func)
        assert report.sites == ()
        assert report.total_call_sites == 1

    def test_unrelated_receivers_are_excluded(self, animal_types, method_table_factory, function_factory):
        """Test: Methods for unrelated receiver types are not candidates."""
        animal, kinds = animal_types
        table = method_table_factory(("speak", (kinds["Dog"],)), ("speak", (STRING_TYPE,)))
        func = function_factory(Call("speak", (arg(1),), ANY_TYPE), Return(), params=(animal,))
        [site] = analyze_devirtualization(func, table).sites
        assert [str(t.receiver_type) for t in site.candidate_targets] == ["Dog"]

    def test_duplicate_signatures(self, animal_types, method_table_factory, function_factory):
        """Test: Identical signatures are counted once."""
        animal, kinds = animal_types
        table = method_table_factory(("speak", (kinds["Dog"],)), ("speak", (kinds["Dog"],)))
        func = function_factory(Call("speak", (arg(1),), ANY_TYPE), Return(), params=(animal,))
        assert analyze_devirtualization(func, table).sites[0].strategy is DevirtStrategy.DIRECT

    def test_union_receiver(self, animal_types, method_table_factory, function_factory):
        """Test: A union receiver matches methods of each member."""
        _, kinds = animal_types
        table = method_table_factory(
            ("speak", (kinds["Dog"],)),
            ("speak", (kinds["Cat"],)),
            ("speak", (kinds["Owl"],)),
        )
        receiver = UnionType.of(kinds["Dog"], kinds["Cat"])
        func = function_factory(Call("speak", (arg(1),), ANY_TYPE), Return(), params=(receiver,))
        [site] = analyze_devirtualization(func, table).sites
        assert len(site.candidate_targets) == 2

    def test_constant_receiver_is_narrowed(self, method_table_factory, function_factory):
        """Test: A receiver resolved to a constant uses the constant's type."""
        table = method_table_factory(("describe", (NUMBER_TYPE,)))
        func = function_factory(
            Literal(3, NUMBER_TYPE),
            Call("describe", (ref(1),), ANY_TYPE),
            Return(),
        )
        assert analyze_devirtualization(func, table).is_empty


class TestReport:
    """Tests for report totals and hot-path flags."""

    def test_in_loop(self, animal_types, speak_table, function_factory):
        """Test: Calls inside a back-edge span are flagged as hot."""
        animal, _ = animal_types
        func = function_factory(
            Literal(True, BOOL_TYPE),
            Call("speak", (arg(1),), ANY_TYPE),
            ConditionalBranch(ref(1), target=2),
            Call("speak", (arg(1),), ANY_TYPE),
            Return(),
            params=(animal,),
        )
        sites = analyze_devirtualization(func, speak_table(5)).sites
        assert [s.in_loop for s in sites] == [True, False]

    def test_speedup_is_capped(self, animal_types, speak_table, function_factory):
        """Test: Estimated speedup is 5% per site up to 30%."""
        animal, _ = animal_types
        calls = [Call("speak", (arg(1),), ANY_TYPE) for _ in range(8)]
        func = function_factory(*calls, Return(), params=(animal,))
        report = analyze_devirtualization(func, speak_table(1))
        assert report.devirtualizable_count == 8
        assert report.estimated_speedup == 30.0

    def test_speedup_per_site(self, animal_types, speak_table, function_factory):
        """Test: Two devirtualizable sites give 10%."""
        animal, _ = animal_types
        calls = [Call("speak", (arg(1),), ANY_TYPE) for _ in range(2)]
        func = function_factory(*calls, Return(), params=(animal,))
        assert analyze_devirtualization(func, speak_table(2)).estimated_speedup == 10.0

    def test_unresolved(self, animal_types, speak_table, function_factory):
        """Test: unresolved lists the sites left dynamic."""
        animal, _ = animal_types
        func = function_factory(
            Call("speak", (arg(1),), ANY_TYPE),
            Call("fly", (arg(1),), ANY_TYPE),
            Return(),
            params=(animal,),
        )
        report = analyze_devirtualization(func, speak_table(1))
        assert [s.callee for s in report.unresolved] == ["fly"]

    def test_analyzer_is_reusable(self, animal_types, speak_table, function_factory):
        """Test: One devirtualizer gives equal results on repeated runs."""
        animal, _ = animal_types
        func = function_factory(Call("speak", (arg(1),), ANY_TYPE), Return(), params=(animal,))
        devirtualizer = Devirtualizer(speak_table(3))
        assert devirtualizer.analyze(func) == devirtualizer.analyze(func)
