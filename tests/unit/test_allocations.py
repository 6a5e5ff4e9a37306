"""
Unit tests for allocation classification and use scanning.
"""

import pytest

from optadvisor.analysis.allocations import (
    AllocationClassifier,
    AllocationKind,
    AllocatorSpec,
    UseKind,
)
from optadvisor.ir.nodes import (
    Call,
    ConditionalBranch,
    GlobalStore,
    Literal,
    Return,
    UnconditionalJump,
    arg,
    ref,
)
from optadvisor.ir.types import FLOAT32_TYPE, INT32_TYPE, INT64_TYPE, ANY_TYPE, vector_of


@pytest.fixture
def classifier():
    """Create a classifier with the default allow-lists."""
    return AllocationClassifier()


# =============================================================================
# Allocation Sites
# =============================================================================


class TestAllocationSites:
    """Tests for allocation site recognition and sizing."""

    def test_array_with_immediate_size(self, classifier, function_factory):
        """Test: makeArray(10) of Float64 is 80 bytes."""
        func = function_factory(Call("makeArray", (10,)), Return())
        [site] = classifier.find_sites(func)
        assert site.kind is AllocationKind.ARRAY
        assert site.size_known
        assert site.estimated_bytes == 80

    def test_element_type_from_result(self, classifier, function_factory):
        """Test: Vector[Float32] elements are 4 bytes each."""
        func = function_factory(Call("zeros", (16,), vector_of(FLOAT32_TYPE)), Return())
        assert classifier.find_sites(func)[0].estimated_bytes == 64

    def test_shape_tuple(self, classifier, function_factory):
        """Test: A shape tuple multiplies its extents."""
        func = function_factory(Call("ones", ((3, 4),)), Return())
        assert classifier.find_sites(func)[0].estimated_bytes == 96

    def test_multiple_dimension_arguments(self, classifier, function_factory):
        """Test: Matrix(3, 4) counts 12 elements."""
        func = function_factory(Call("Matrix", (3, 4)), Return())
        assert classifier.find_sites(func)[0].estimated_bytes == 96

    def test_size_from_literal(self, classifier, function_factory):
        """Test: An SSA reference to an integer literal sizes the allocation."""
        func = function_factory(Literal(5), Call("zeros", (ref(1),)), Return())
        assert classifier.find_sites(func)[0].estimated_bytes == 40

    def test_fill_skips_value_argument(self, classifier, function_factory):
        """Test: fill(value, n) is sized by its second argument."""
        func = function_factory(Call("fill", (0.0, 8)), Return())
        assert classifier.find_sites(func)[0].estimated_bytes == 64

    def test_unknown_size_from_parameter(self, classifier, function_factory):
        """Test: A parameter-sized allocation has unknown size."""
        func = function_factory(Call("zeros", (arg(1),)), Return(), params=(INT64_TYPE,))
        [site] = classifier.find_sites(func)
        assert not site.size_known
        assert site.estimated_bytes is None

    def test_boolean_is_not_a_size(self, classifier, function_factory):
        """Test: zeros(True) is not treated as one element."""
        func = function_factory(Call("zeros", (True,)), Return())
        assert not classifier.find_sites(func)[0].size_known

    def test_string_size_is_unknown(self, classifier, function_factory):
        """Test: String constructors never have a known size."""
        func = function_factory(Call("repeat", ("ab", 3)), Return())
        [site] = classifier.find_sites(func)
        assert site.kind is AllocationKind.STRING
        assert not site.size_known

    def test_struct_sums_field_sizes(self, classifier, function_factory):
        """Test: new(Int64, Int32 field) is 12 bytes."""
        func = function_factory(
            Literal(1, INT32_TYPE),
            Call("new", (7, ref(1))),
            Return(),
        )
        [site] = classifier.find_sites(func)
        assert site.kind is AllocationKind.STRUCT
        assert site.estimated_bytes == 12

    def test_struct_with_unknown_field(self, classifier, function_factory):
        """Test: A field of non-scalar type leaves the size unknown."""
        func = function_factory(Call("new", ("name",)), Return())
        assert not classifier.find_sites(func)[0].size_known

    def test_manual_allocation_in_bytes(self, classifier, function_factory):
        """Test: malloc(64) is a 64-byte manual allocation."""
        func = function_factory(Call("malloc", (64,)), Return())
        [site] = classifier.find_sites(func)
        assert site.kind is AllocationKind.MANUAL
        assert site.estimated_bytes == 64

    def test_qualified_callee(self, classifier, function_factory):
        """Test: Module-qualified constructors are recognized."""
        func = function_factory(Call("Base.zeros", (2,)), Return())
        assert classifier.find_sites(func)[0].callee == "Base.zeros"

    def test_non_allocating_call(self, classifier, function_factory):
        """Test: Ordinary calls are not allocation sites."""
        func = function_factory(Call("compute", (1,)), Return())
        assert classifier.find_sites(func) == []

    def test_filter_by_kind(self, classifier, function_factory):
        """Test: find_sites can be restricted to one kind."""
        func = function_factory(Call("zeros", (2,)), Call("malloc", (8,)), Return())
        sites = classifier.find_sites(func, kind=AllocationKind.MANUAL)
        assert [s.index for s in sites] == [2]

    def test_custom_allocator(self, function_factory):
        """Test: Extra allocators extend the defaults."""
        classifier = AllocationClassifier(
            allocators={"arena_alloc": AllocatorSpec(AllocationKind.MANUAL, element_dtype="uint8")}
        )
        func = function_factory(Call("arena_alloc", (32,)), Return())
        assert classifier.find_sites(func)[0].estimated_bytes == 32


# =============================================================================
# Uses
# =============================================================================


class TestUses:
    """Tests for use classification."""

    def test_return_use(self, classifier, function_factory):
        """Test: Returning the value is a leaking use."""
        func = function_factory(Call("zeros", (4,)), Return(ref(1)))
        [use] = classifier.find_uses(func, 1)
        assert use.kind is UseKind.RETURN
        assert use.kind.leaks

    def test_global_store_use(self, classifier, function_factory):
        """Test: Storing into a global is a leaking use."""
        func = function_factory(Call("zeros", (4,)), GlobalStore("cache", ref(1)), Return())
        [use] = classifier.find_uses(func, 1)
        assert use.kind is UseKind.GLOBAL_STORE
        assert use.callee == "cache"

    def test_safe_read(self, classifier, function_factory):
        """Test: length() does not leak its argument."""
        func = function_factory(Call("zeros", (4,)), Call("length", (ref(1),)), Return(ref(2)))
        [use] = classifier.find_uses(func, 1)
        assert use.kind is UseKind.SAFE_READ
        assert not use.kind.leaks

    def test_unknown_callee_leaks(self, classifier, function_factory):
        """Test: Unknown callees are assumed to retain their arguments."""
        func = function_factory(Call("zeros", (4,)), Call("stash", (ref(1),)), Return())
        [use] = classifier.find_uses(func, 1)
        assert use.kind is UseKind.LEAKING_CALL

    def test_no_substring_matching(self, classifier, function_factory):
        """Test: A callee merely containing 'sum' is not a safe reader."""
        func = function_factory(Call("zeros", (4,)), Call("checksum_and_keep", (ref(1),)), Return())
        assert classifier.find_uses(func, 1)[0].kind is UseKind.LEAKING_CALL

    def test_setindex_value_position_leaks(self, classifier, function_factory):
        """Test: Storing an allocation into another container leaks it."""
        func = function_factory(
            Call("zeros", (4,)),
            Call("zeros", (4,)),
            Call("setindex", (ref(1), ref(2), 1)),
            Return(),
        )
        assert classifier.find_uses(func, 1)[0].kind is UseKind.SAFE_READ
        assert classifier.find_uses(func, 2)[0].kind is UseKind.LEAKING_CALL

    def test_tuple_argument_leaks(self, classifier, function_factory):
        """Test: A value packed into a tuple argument is not a safe read."""
        func = function_factory(Call("zeros", (4,)), Call("length", ((ref(1), 2),)), Return())
        assert classifier.find_uses(func, 1)[0].kind is UseKind.LEAKING_CALL

    def test_release(self, classifier, function_factory):
        """Test: free(x) is a release use."""
        func = function_factory(Call("malloc", (8,)), Call("free", (ref(1),), ANY_TYPE), Return())
        assert classifier.find_uses(func, 1)[0].kind is UseKind.RELEASE

    def test_condition_use(self, classifier, function_factory):
        """Test: A branch condition is a non-leaking use."""
        func = function_factory(Call("isempty", ()), ConditionalBranch(ref(1)), Return())
        assert classifier.find_uses(func, 1)[0].kind is UseKind.CONDITION

    def test_earlier_statements_are_scanned(self, classifier, function_factory):
        """Test: A use at a lower index, reached by a backward jump, is found."""
        func = function_factory(
            UnconditionalJump(3),
            Return(ref(3)),
            Call("zeros", (4,)),
            UnconditionalJump(2),
        )
        [use] = classifier.find_uses(func, 3)
        assert use.kind is UseKind.RETURN
        assert use.index == 2

    def test_definition_is_not_a_use(self, classifier, function_factory):
        """Test: The defining statement never counts as its own use."""
        func = function_factory(Call("zeros", (4,)), Return())
        assert classifier.find_uses(func, 1) == []
