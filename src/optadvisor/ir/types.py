"""
Type model for the analysis IR.

The frontend performs full type inference and annotates every SSA value with
one of the types defined here. The model is a closed set of variants:

- ConcreteType: a leaf type with a known runtime layout (Int64, Float64, ...)
- AbstractType: a named category that only concrete types instantiate
- UnionType: one of several member types
- TopType: the type of anything (``Any``)
- ContainerType: a parameterized type such as ``Vector[Float64]``

Subtyping is nominal. Every named type carries the full set of names of its
ancestors, so subtype checks never need a global hierarchy lookup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable


# =============================================================================
# Type Representation
# =============================================================================


class Type(ABC):
    """
    Base class for all IR types.

    Types are immutable and compare structurally.
    """

    @abstractmethod
    def __str__(self) -> str:
        """Return a human-readable string representation of the type."""
        pass

    def is_concrete(self) -> bool:
        """Check if values of this type have a single known runtime type."""
        return False

    def is_abstract(self) -> bool:
        """Abstract, union and top types all require dynamic dispatch."""
        return not self.is_concrete()

    def is_subtype_of(self, other: Type) -> bool:
        """Check if every value of this type is also a value of ``other``."""
        return is_subtype(self, other)

    def intersects(self, other: Type) -> bool:
        """Check if this type and ``other`` may describe a common value."""
        return types_intersect(self, other)


@dataclass(frozen=True, slots=True)
class ConcreteType(Type):
    """
    A leaf type with a known runtime representation.

    Attributes:
        name: Type name (e.g. "Int64")
        supertypes: Names of every ancestor of this type
    """

    name: str
    supertypes: frozenset[str] = field(default_factory=frozenset)

    def __str__(self) -> str:
        return self.name

    def is_concrete(self) -> bool:
        return True

    @classmethod
    def derived(cls, name: str, *parents: Type) -> ConcreteType:
        """Create a concrete type below the given parents."""
        return cls(name, _ancestry(parents))


@dataclass(frozen=True, slots=True)
class AbstractType(Type):
    """
    A named abstract category (Number, Integer, Array, ...).

    Attributes:
        name: Category name
        supertypes: Names of every ancestor category
    """

    name: str
    supertypes: frozenset[str] = field(default_factory=frozenset)

    def __str__(self) -> str:
        return self.name

    @classmethod
    def derived(cls, name: str, *parents: Type) -> AbstractType:
        """Create an abstract type below the given parents."""
        return cls(name, _ancestry(parents))


@dataclass(frozen=True, slots=True)
class UnionType(Type):
    """A value that is one of several member types."""

    members: frozenset[Type]

    def __str__(self) -> str:
        names = sorted(str(member) for member in self.members)
        return f"Union[{', '.join(names)}]"

    @classmethod
    def of(cls, *members: Type) -> Type:
        """Build a union, flattening nested unions and collapsing singletons."""
        flat: set[Type] = set()
        for member in members:
            if isinstance(member, UnionType):
                flat.update(member.members)
            else:
                flat.add(member)
        if any(isinstance(m, TopType) for m in flat):
            return ANY_TYPE
        if len(flat) == 1:
            return next(iter(flat))
        return cls(frozenset(flat))


@dataclass(frozen=True, slots=True)
class TopType(Type):
    """
    The top type that contains every value.

    Used when the frontend could not infer anything more precise.
    """

    def __str__(self) -> str:
        return "Any"


@dataclass(frozen=True, slots=True)
class ContainerType(Type):
    """
    A parameterized container type.

    Examples: Vector[Float64], Matrix[Int32], Vector[Number]

    Attributes:
        name: Container name
        type_args: Type arguments, in declaration order
        supertypes: Names of every ancestor of the container
    """

    name: str
    type_args: tuple[Type, ...] = ()
    supertypes: frozenset[str] = field(default_factory=frozenset)

    def __str__(self) -> str:
        if not self.type_args:
            return self.name
        args_str = ", ".join(str(arg) for arg in self.type_args)
        return f"{self.name}[{args_str}]"

    def is_concrete(self) -> bool:
        return all(arg.is_concrete() for arg in self.type_args)

    @property
    def element_type(self) -> Type | None:
        """The first type argument, if any."""
        return self.type_args[0] if self.type_args else None

    def with_args(self, *type_args: Type) -> ContainerType:
        """Return the same container with different type arguments."""
        return ContainerType(self.name, tuple(type_args), self.supertypes)


# =============================================================================
# Type Relations
# =============================================================================


def _ancestry(parents: Iterable[Type]) -> frozenset[str]:
    names: set[str] = set()
    for parent in parents:
        names.update(_names_of(parent))
    return frozenset(names)


def _names_of(t: Type) -> frozenset[str]:
    """A type's own name plus all of its ancestors' names."""
    if isinstance(t, (ConcreteType, AbstractType, ContainerType)):
        return t.supertypes | {t.name}
    return frozenset()


def is_subtype(sub: Type, sup: Type) -> bool:
    """
    Check whether ``sub`` is a subtype of ``sup``.

    Containers are invariant in their type arguments.
    """
    if isinstance(sup, TopType) or sub == sup:
        return True
    if isinstance(sub, TopType):
        return False
    if isinstance(sub, UnionType):
        return all(is_subtype(member, sup) for member in sub.members)
    if isinstance(sup, UnionType):
        return any(is_subtype(sub, member) for member in sup.members)
    if isinstance(sup, ContainerType):
        if isinstance(sub, ContainerType) and sub.name == sup.name:
            return sub.type_args == sup.type_args
        return False
    if isinstance(sup, (ConcreteType, AbstractType)):
        return sup.name in _names_of(sub)
    return False


def types_intersect(a: Type, b: Type) -> bool:
    """
    Conservative containment test used for method candidate selection.

    Two types intersect when one is a subtype of the other. Unions intersect
    when any member does, and same-named containers intersect when their type
    arguments pairwise intersect. The test errs towards ``True``.
    """
    if isinstance(a, TopType) or isinstance(b, TopType):
        return True
    if isinstance(a, UnionType):
        return any(types_intersect(member, b) for member in a.members)
    if isinstance(b, UnionType):
        return any(types_intersect(a, member) for member in b.members)
    if isinstance(a, ContainerType) and isinstance(b, ContainerType) and a.name == b.name:
        if len(a.type_args) != len(b.type_args):
            return False
        return all(types_intersect(x, y) for x, y in zip(a.type_args, b.type_args))
    return is_subtype(a, b) or is_subtype(b, a)


def type_of_value(value: object) -> Type:
    """Concrete type of an immediate Python value appearing in the IR."""
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return BOOL_TYPE
    if isinstance(value, int):
        return INT64_TYPE
    if isinstance(value, float):
        return FLOAT64_TYPE
    if isinstance(value, str):
        return STRING_TYPE
    if value is None:
        return NOTHING_TYPE
    if isinstance(value, tuple):
        return TUPLE_TYPE
    return ANY_TYPE


# =============================================================================
# Standard Hierarchy
# =============================================================================

ANY_TYPE = TopType()

NUMBER_TYPE = AbstractType("Number")
REAL_TYPE = AbstractType.derived("Real", NUMBER_TYPE)
INTEGER_TYPE = AbstractType.derived("Integer", REAL_TYPE)
SIGNED_TYPE = AbstractType.derived("Signed", INTEGER_TYPE)
UNSIGNED_TYPE = AbstractType.derived("Unsigned", INTEGER_TYPE)
FLOATING_TYPE = AbstractType.derived("Floating", REAL_TYPE)
ARRAY_TYPE = AbstractType("Array")

INT8_TYPE = ConcreteType.derived("Int8", SIGNED_TYPE)
INT16_TYPE = ConcreteType.derived("Int16", SIGNED_TYPE)
INT32_TYPE = ConcreteType.derived("Int32", SIGNED_TYPE)
INT64_TYPE = ConcreteType.derived("Int64", SIGNED_TYPE)
UINT8_TYPE = ConcreteType.derived("UInt8", UNSIGNED_TYPE)
UINT32_TYPE = ConcreteType.derived("UInt32", UNSIGNED_TYPE)
UINT64_TYPE = ConcreteType.derived("UInt64", UNSIGNED_TYPE)
FLOAT16_TYPE = ConcreteType.derived("Float16", FLOATING_TYPE)
FLOAT32_TYPE = ConcreteType.derived("Float32", FLOATING_TYPE)
FLOAT64_TYPE = ConcreteType.derived("Float64", FLOATING_TYPE)
BOOL_TYPE = ConcreteType.derived("Bool", INTEGER_TYPE)
STRING_TYPE = ConcreteType("String")
NOTHING_TYPE = ConcreteType("Nothing")
TUPLE_TYPE = ConcreteType("Tuple")


def vector_of(element: Type) -> ContainerType:
    """One-dimensional array type with the given element type."""
    return ContainerType("Vector", (element,), frozenset({"Array"}))


def matrix_of(element: Type) -> ContainerType:
    """Two-dimensional array type with the given element type."""
    return ContainerType("Matrix", (element,), frozenset({"Array"}))
