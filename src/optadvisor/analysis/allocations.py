"""
Allocation site detection and value-use classification.

Shared by escape analysis and lifetime analysis:

1. Allocation classification - recognize the calls that produce heap or
   manually-managed memory, and estimate their size
2. Use classification - for one SSA value, find every later statement that
   reads it and decide whether that read can leak the value

The allow-lists are exact-name lookups. A callee that is not listed is
assumed to leak every argument it receives; nothing is ever matched by
substring, so an unrelated function that happens to contain "sum" in its
name is never treated as a safe reader.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Mapping, Optional

import numpy as np

from optadvisor.ir.nodes import (
    Call,
    ConditionalBranch,
    Function,
    GlobalStore,
    Literal,
    Return,
    SSARef,
    mentions,
)
from optadvisor.ir.types import ContainerType, Type


# =============================================================================
# Data Structures
# =============================================================================


class AllocationKind(Enum):
    """Category of memory an allocation site produces."""

    ARRAY = "array"
    STRING = "string"
    STRUCT = "struct"
    MANUAL = "manual"  # explicit allocate/release resource


@dataclass(frozen=True, slots=True)
class AllocatorSpec:
    """
    How to recognize and size one allocation constructor.

    Attributes:
        kind: Category of the memory produced
        size_argument: Position of the first dimension argument; every argument
            from there on is a dimension. None when the size cannot be derived
            from the arguments.
        element_dtype: numpy dtype of one element when the result type does not
            name one
        sum_field_sizes: Size is the sum of the arguments' element sizes (structs)
    """

    kind: AllocationKind
    size_argument: Optional[int] = 0
    element_dtype: str = "float64"
    sum_field_sizes: bool = False


@dataclass(frozen=True, slots=True)
class AllocationSite:
    """
    A call recognized as an allocation.

    Attributes:
        index: SSA index of the allocating call
        callee: Name of the allocation constructor
        kind: Category of the memory produced
        size_known: True if the byte size could be determined
        estimated_bytes: Estimated byte size (None when unknown)
    """

    index: int
    callee: str
    kind: AllocationKind
    size_known: bool = False
    estimated_bytes: Optional[int] = None

    def __str__(self) -> str:
        size = f"{self.estimated_bytes} bytes" if self.size_known else "unknown size"
        return f"#{self.index} {self.callee} [{self.kind.value}, {size}]"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "callee": self.callee,
            "kind": self.kind.value,
            "size_known": self.size_known,
            "estimated_bytes": self.estimated_bytes,
        }


class UseKind(Enum):
    """How a statement reads an SSA value."""

    RETURN = auto()  # returned from the function
    GLOBAL_STORE = auto()  # stored into a global binding
    LEAKING_CALL = auto()  # passed to a callee that may retain it
    SAFE_READ = auto()  # passed to an allow-listed accessor
    RELEASE = auto()  # passed to an explicit release function
    CONDITION = auto()  # used as a branch condition

    @property
    def leaks(self) -> bool:
        return self in (UseKind.RETURN, UseKind.GLOBAL_STORE, UseKind.LEAKING_CALL)


@dataclass(frozen=True, slots=True)
class ValueUse:
    """One read of an SSA value."""

    index: int
    kind: UseKind
    callee: Optional[str] = None
    position: Optional[int] = None

    def describe(self) -> str:
        if self.kind is UseKind.RETURN:
            return f"Returned from function at #{self.index}"
        if self.kind is UseKind.GLOBAL_STORE:
            return f"Stored to global at #{self.index}"
        if self.kind is UseKind.LEAKING_CALL:
            return f"Passed to function '{self.callee}' at #{self.index}"
        if self.kind is UseKind.RELEASE:
            return f"Released by '{self.callee}' at #{self.index}"
        if self.kind is UseKind.CONDITION:
            return f"Used as branch condition at #{self.index}"
        return f"Read by '{self.callee}' at #{self.index}"


# =============================================================================
# Allow-lists
# =============================================================================


DEFAULT_ALLOCATORS: dict[str, AllocatorSpec] = {
    # Managed arrays
    "zeros": AllocatorSpec(AllocationKind.ARRAY),
    "ones": AllocatorSpec(AllocationKind.ARRAY),
    "empty": AllocatorSpec(AllocationKind.ARRAY),
    "fill": AllocatorSpec(AllocationKind.ARRAY, size_argument=1),
    "Array": AllocatorSpec(AllocationKind.ARRAY),
    "Vector": AllocatorSpec(AllocationKind.ARRAY),
    "Matrix": AllocatorSpec(AllocationKind.ARRAY),
    "makeArray": AllocatorSpec(AllocationKind.ARRAY),
    "similar": AllocatorSpec(AllocationKind.ARRAY, size_argument=None),
    # Strings
    "string": AllocatorSpec(AllocationKind.STRING, size_argument=None),
    "String": AllocatorSpec(AllocationKind.STRING, size_argument=None),
    "repeat": AllocatorSpec(AllocationKind.STRING, size_argument=None),
    "join": AllocatorSpec(AllocationKind.STRING, size_argument=None),
    "concat": AllocatorSpec(AllocationKind.STRING, size_argument=None),
    # Structs
    "new": AllocatorSpec(AllocationKind.STRUCT, size_argument=None, sum_field_sizes=True),
    # Manually-managed memory
    "malloc": AllocatorSpec(AllocationKind.MANUAL, element_dtype="uint8"),
    "calloc": AllocatorSpec(AllocationKind.MANUAL, element_dtype="uint8"),
    "allocate": AllocatorSpec(AllocationKind.MANUAL, element_dtype="uint8"),
    "MallocArray": AllocatorSpec(AllocationKind.MANUAL),
    "MallocString": AllocatorSpec(AllocationKind.MANUAL, element_dtype="uint8"),
}

# callee -> argument positions that never leak (None: every position)
DEFAULT_SAFE_READS: dict[str, Optional[frozenset[int]]] = {
    "getindex": None,
    "setindex": frozenset({0}),  # the container written to; the stored value leaks
    "length": None,
    "size": None,
    "ndims": None,
    "eltype": None,
    "isempty": None,
    "sum": None,
    "prod": None,
    "minimum": None,
    "maximum": None,
    "first": None,
    "last": None,
}

DEFAULT_RELEASES: frozenset[str] = frozenset({"free", "release", "dealloc"})

# IR element type name -> numpy dtype
DTYPE_BY_TYPE_NAME: dict[str, str] = {
    "Bool": "bool",
    "Int8": "int8",
    "Int16": "int16",
    "Int32": "int32",
    "Int64": "int64",
    "UInt8": "uint8",
    "UInt16": "uint16",
    "UInt32": "uint32",
    "UInt64": "uint64",
    "Float16": "float16",
    "Float32": "float32",
    "Float64": "float64",
    "Complex64": "complex64",
    "Complex128": "complex128",
}


def _base_name(callee: str) -> str:
    """Strip a module qualifier ("Base.getindex" -> "getindex")."""
    return callee.split(".")[-1]


# =============================================================================
# Allocation Classifier
# =============================================================================


class AllocationClassifier:
    """
    Recognizes allocation sites and classifies uses of their values.

    The default allow-lists can be extended (or overridden entry by entry)
    through the constructor. Instances are immutable after construction and
    safe to share between concurrent analyses.

    Example:
        classifier = AllocationClassifier(
            allocators={"arena_alloc": AllocatorSpec(AllocationKind.MANUAL)},
            releases={"arena_free"},
        )
        sites = classifier.find_sites(func)
    """

    def __init__(
        self,
        allocators: Optional[Mapping[str, AllocatorSpec]] = None,
        safe_reads: Optional[Mapping[str, Optional[frozenset[int]]]] = None,
        releases: Optional[set[str] | frozenset[str]] = None,
    ) -> None:
        self._allocators: dict[str, AllocatorSpec] = {**DEFAULT_ALLOCATORS, **(allocators or {})}
        self._safe_reads: dict[str, Optional[frozenset[int]]] = {
            **DEFAULT_SAFE_READS,
            **(safe_reads or {}),
        }
        self._releases: frozenset[str] = DEFAULT_RELEASES | frozenset(releases or ())

    # -------------------------------------------------------------------------
    # Allow-list queries
    # -------------------------------------------------------------------------

    def allocator(self, callee: str) -> Optional[AllocatorSpec]:
        return self._allocators.get(_base_name(callee))

    def is_safe_read(self, callee: str, position: int) -> bool:
        """Check if passing a value at ``position`` to ``callee`` cannot leak it."""
        name = _base_name(callee)
        if name not in self._safe_reads:
            return False
        positions = self._safe_reads[name]
        return positions is None or position in positions

    def is_release(self, callee: str, position: int = 0) -> bool:
        """Check if ``callee`` releases the value passed at ``position``."""
        return position == 0 and _base_name(callee) in self._releases

    # -------------------------------------------------------------------------
    # Allocation sites
    # -------------------------------------------------------------------------

    def classify(self, func: Function, index: int, call: Call) -> Optional[AllocationSite]:
        """
        Check if a call is an allocation and describe it.

        Args:
            func: The function containing the call
            index: SSA index of the call
            call: The call statement

        Returns:
            AllocationSite, or None when the callee is not an allocator
        """
        spec = self.allocator(call.callee)
        if spec is None:
            return None

        estimated = self._estimate_bytes(func, call, spec)
        return AllocationSite(
            index=index,
            callee=call.callee,
            kind=spec.kind,
            size_known=estimated is not None,
            estimated_bytes=estimated,
        )

    def find_sites(self, func: Function, kind: Optional[AllocationKind] = None) -> list[AllocationSite]:
        """Find every allocation site in a function, optionally of one kind."""
        sites = []
        for index, stmt in func.indexed():
            if isinstance(stmt, Call):
                site = self.classify(func, index, stmt)
                if site is not None and (kind is None or site.kind is kind):
                    sites.append(site)
        return sites

    def _estimate_bytes(self, func: Function, call: Call, spec: AllocatorSpec) -> Optional[int]:
        """Estimate an allocation's size; None means unknown (never guessed)."""
        if spec.sum_field_sizes:
            total = 0
            for operand in call.args:
                size = _item_size(func.operand_type(operand))
                if size is None:
                    return None
                total += size
            return total

        if spec.size_argument is None or len(call.args) <= spec.size_argument:
            return None

        dims: list[int] = []
        for operand in call.args[spec.size_argument:]:
            extent = _resolve_extent(func, operand)
            if extent is None:
                return None
            dims.extend(extent)
        if not dims:
            return None

        count = int(np.prod(np.array(dims, dtype=object)))
        item = _item_size(_element_type(call.result_type)) or np.dtype(spec.element_dtype).itemsize
        return count * item

    # -------------------------------------------------------------------------
    # Uses
    # -------------------------------------------------------------------------

    def find_uses(self, func: Function, index: int) -> list[ValueUse]:
        """
        Classify every read of SSA value ``index``.

        Every statement but the definition is scanned, in index order. A use
        at a lower index is reached through a backward jump.
        """
        uses: list[ValueUse] = []
        for position, stmt in func.indexed():
            if position == index:
                continue
            if isinstance(stmt, Return):
                if stmt.value is not None and mentions(stmt.value, index):
                    uses.append(ValueUse(position, UseKind.RETURN))
            elif isinstance(stmt, GlobalStore):
                if mentions(stmt.value, index):
                    uses.append(ValueUse(position, UseKind.GLOBAL_STORE, callee=stmt.symbol))
            elif isinstance(stmt, Call):
                for arg_pos, operand in enumerate(stmt.args):
                    if not mentions(operand, index):
                        continue
                    uses.append(self._classify_argument(position, stmt.callee, arg_pos, operand))
            elif isinstance(stmt, ConditionalBranch):
                if mentions(stmt.condition, index):
                    uses.append(ValueUse(position, UseKind.CONDITION))
        return uses

    def _classify_argument(self, index: int, callee: str, position: int, operand: Any) -> ValueUse:
        # A value nested inside a tuple argument is packed into a new object
        direct = isinstance(operand, SSARef)
        if direct and self.is_release(callee, position):
            return ValueUse(index, UseKind.RELEASE, callee, position)
        if direct and self.is_safe_read(callee, position):
            return ValueUse(index, UseKind.SAFE_READ, callee, position)
        return ValueUse(index, UseKind.LEAKING_CALL, callee, position)


# =============================================================================
# Size Helpers
# =============================================================================


def _element_type(result_type: Type) -> Optional[Type]:
    if isinstance(result_type, ContainerType):
        return result_type.element_type
    return None


def _item_size(t: Optional[Type]) -> Optional[int]:
    """Byte size of one scalar of type ``t`` (None when not a known scalar)."""
    if t is None:
        return None
    dtype = DTYPE_BY_TYPE_NAME.get(str(t))
    if dtype is None:
        return None
    return np.dtype(dtype).itemsize


def _resolve_extent(func: Function, operand: Any) -> Optional[list[int]]:
    """Resolve a dimension operand to a list of non-negative extents."""
    if isinstance(operand, tuple):
        dims: list[int] = []
        for item in operand:
            extent = _resolve_extent(func, item)
            if extent is None:
                return None
            dims.extend(extent)
        return dims

    value = operand
    if isinstance(operand, SSARef):
        stmt = func.statement(operand.index)
        if not isinstance(stmt, Literal):
            return None
        value = stmt.value

    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return [value]


DEFAULT_CLASSIFIER = AllocationClassifier()
