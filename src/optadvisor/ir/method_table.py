"""
Read-only method table supplied by the frontend.

The method table maps a callee symbol to every method signature defined for
it. Devirtualization uses it to find the candidate targets of a dynamically
dispatched call; monomorphization uses it to find the concrete instantiations
observed for a function's abstract parameters.

The engine never mutates a method table, so one instance can be shared by
concurrent analyses.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from optadvisor.ir.types import ANY_TYPE, Type


@dataclass(frozen=True, slots=True)
class MethodSignature:
    """
    One method definition.

    Attributes:
        name: The generic function (callee symbol) this method belongs to
        parameter_types: Declared parameter types; index 0 is the receiver
        return_type: Declared return type
    """

    name: str
    parameter_types: tuple[Type, ...] = ()
    return_type: Type = ANY_TYPE

    @property
    def receiver_type(self) -> Optional[Type]:
        return self.parameter_types[0] if self.parameter_types else None

    def parameter(self, position: int) -> Optional[Type]:
        """Declared type at 1-based ``position``, or None if out of range."""
        if 1 <= position <= len(self.parameter_types):
            return self.parameter_types[position - 1]
        return None

    def __str__(self) -> str:
        params = ", ".join(str(t) for t in self.parameter_types)
        return f"{self.name}({params}) -> {self.return_type}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "parameter_types": [str(t) for t in self.parameter_types],
            "return_type": str(self.return_type),
        }


class MethodTable:
    """
    Immutable mapping of callee symbol to method signatures.

    Example:
        table = MethodTable.from_signatures([
            MethodSignature("speak", (DOG,)),
            MethodSignature("speak", (CAT,)),
        ])
        table.lookup("speak")  # -> (speak(Dog), speak(Cat))
    """

    __slots__ = ("_methods",)

    def __init__(self, methods: Optional[Mapping[str, Iterable[MethodSignature]]] = None) -> None:
        frozen = {name: tuple(sigs) for name, sigs in (methods or {}).items()}
        self._methods: Mapping[str, tuple[MethodSignature, ...]] = MappingProxyType(frozen)

    @classmethod
    def from_signatures(cls, signatures: Iterable[MethodSignature]) -> MethodTable:
        """Build a table by grouping signatures on their name."""
        grouped: dict[str, list[MethodSignature]] = {}
        for sig in signatures:
            grouped.setdefault(sig.name, []).append(sig)
        return cls(grouped)

    def lookup(self, symbol: str) -> tuple[MethodSignature, ...]:
        """All signatures for ``symbol``; empty when the symbol is unknown."""
        return self._methods.get(symbol, ())

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._methods

    def __iter__(self) -> Iterator[str]:
        return iter(self._methods)

    def __len__(self) -> int:
        return len(self._methods)

    def __repr__(self) -> str:
        total = sum(len(sigs) for sigs in self._methods.values())
        return f"MethodTable({len(self._methods)} symbols, {total} methods)"


EMPTY_METHOD_TABLE = MethodTable()
