"""
Monomorphization analysis.

Finds the parameters of a function signature that force dynamic dispatch
and the concrete types each one is instantiated with:

    process(x::Number) -> process_specialized_1(Int64), process_specialized_2(Float64)

A parameter counts as abstract when its declared type is not concrete, or
when it is a container whose type argument is not concrete (one level deep,
e.g. ``Vector[Number]``). Instantiations come from the method table entries
of the same function name. When none are observed, a curated table of
common concrete members is used instead and the parameter is flagged as a
suggestion rather than an observed fact.
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

from optadvisor.config import DEFAULT_CONFIG, AnalysisConfig
from optadvisor.ir.method_table import EMPTY_METHOD_TABLE, MethodTable
from optadvisor.ir.nodes import FunctionSignature
from optadvisor.ir.types import (
    ARRAY_TYPE,
    FLOAT32_TYPE,
    FLOAT64_TYPE,
    FLOATING_TYPE,
    INT32_TYPE,
    INT64_TYPE,
    INTEGER_TYPE,
    NUMBER_TYPE,
    SIGNED_TYPE,
    UINT32_TYPE,
    UINT64_TYPE,
    UNSIGNED_TYPE,
    ContainerType,
    Type,
    UnionType,
    is_subtype,
    matrix_of,
    vector_of,
)

logger = logging.getLogger(__name__)


# Common concrete members of the standard abstract categories
SUGGESTED_INSTANTIATIONS: dict[Type, tuple[Type, ...]] = {
    NUMBER_TYPE: (INT64_TYPE, FLOAT64_TYPE, INT32_TYPE, FLOAT32_TYPE),
    INTEGER_TYPE: (INT64_TYPE, INT32_TYPE, UINT64_TYPE),
    SIGNED_TYPE: (INT64_TYPE, INT32_TYPE),
    UNSIGNED_TYPE: (UINT64_TYPE, UINT32_TYPE),
    FLOATING_TYPE: (FLOAT64_TYPE, FLOAT32_TYPE),
    ARRAY_TYPE: (vector_of(FLOAT64_TYPE), matrix_of(FLOAT64_TYPE)),
}


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True, slots=True)
class AbstractParameter:
    """
    A parameter (or container type argument) that is not concrete.

    Attributes:
        position: 1-based parameter position
        declared_type: The abstract type (the type argument for nested ones)
        concrete_instantiations: Concrete types the parameter may take
        type_argument_index: Index into the container's type arguments, or
            None for a top-level abstract parameter
        container_type: The enclosing container for nested parameters
        is_suggestion: True if instantiations come from the suggestion table
    """

    position: int
    declared_type: Type
    concrete_instantiations: tuple[Type, ...] = ()
    type_argument_index: Optional[int] = None
    container_type: Optional[ContainerType] = None
    is_suggestion: bool = False

    @property
    def can_monomorphize(self) -> bool:
        return bool(self.concrete_instantiations)

    def __str__(self) -> str:
        where = f"${self.position}"
        if self.type_argument_index is not None:
            where += f" ({self.container_type} arg {self.type_argument_index})"
        return f"{where}::{self.declared_type}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "declared_type": str(self.declared_type),
            "concrete_instantiations": sorted(str(t) for t in self.concrete_instantiations),
            "type_argument_index": self.type_argument_index,
            "container_type": str(self.container_type) if self.container_type else None,
            "is_suggestion": self.is_suggestion,
        }


@dataclass(frozen=True, slots=True)
class MonomorphizedVariant:
    """One fully concrete specialization of a function."""

    name: str
    concrete_args: tuple[Type, ...]

    def __str__(self) -> str:
        return f"{self.name}({', '.join(str(t) for t in self.concrete_args)})"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "concrete_args": [str(t) for t in self.concrete_args]}


@dataclass(frozen=True, slots=True)
class MonomorphizationReport:
    """
    Monomorphization result for one function signature.

    ``required_variants`` is always the full Cartesian product of the
    instantiation set sizes; ``variants`` lists at most
    ``max_enumerated_variants`` of them.
    """

    parameters: tuple[AbstractParameter, ...] = ()
    variants: tuple[MonomorphizedVariant, ...] = ()
    can_fully_monomorphize: bool = False
    required_variants: int = 1

    @property
    def is_empty(self) -> bool:
        return not self.parameters

    @property
    def has_abstract_types(self) -> bool:
        return bool(self.parameters)

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameters": [p.to_dict() for p in self.parameters],
            "variants": [v.to_dict() for v in self.variants],
            "can_fully_monomorphize": self.can_fully_monomorphize,
            "required_variants": self.required_variants,
        }


# =============================================================================
# Analyzer
# =============================================================================


class MonomorphizationAnalyzer:
    """
    Finds abstract parameters and enumerates concrete variants.

    Usage:
        analyzer = MonomorphizationAnalyzer(method_table, config)
        report = analyzer.analyze(func.signature)
    """

    def __init__(
        self,
        method_table: MethodTable = EMPTY_METHOD_TABLE,
        config: AnalysisConfig = DEFAULT_CONFIG,
    ) -> None:
        self.method_table = method_table
        self.config = config

    def analyze(self, signature: FunctionSignature) -> MonomorphizationReport:
        """
        Analyze a function signature.

        Args:
            signature: Function name and declared parameter types

        Returns:
            MonomorphizationReport
        """
        parameters = self.find_abstract_parameters(signature)
        if not parameters:
            return MonomorphizationReport()

        can_fully = all(p.can_monomorphize for p in parameters)
        required = math.prod(len(p.concrete_instantiations) for p in parameters)
        variants = self.enumerate_variants(signature, parameters) if can_fully else []

        logger.debug(
            f"{signature.name}: {len(parameters)} abstract parameter(s), {required} variant(s)"
        )
        return MonomorphizationReport(
            parameters=tuple(parameters),
            variants=tuple(variants),
            can_fully_monomorphize=can_fully,
            required_variants=required,
        )

    def find_abstract_parameters(self, signature: FunctionSignature) -> list[AbstractParameter]:
        parameters = []
        for position, declared in enumerate(signature.parameter_types, start=1):
            if declared.is_concrete():
                continue

            if isinstance(declared, ContainerType):
                for arg_index, type_arg in enumerate(declared.type_args):
                    if type_arg.is_concrete():
                        continue
                    parameters.append(
                        self._instantiate(signature.name, position, type_arg, arg_index, declared)
                    )
            else:
                parameters.append(self._instantiate(signature.name, position, declared))
        return parameters

    def enumerate_variants(
        self,
        signature: FunctionSignature,
        parameters: list[AbstractParameter],
    ) -> list[MonomorphizedVariant]:
        """List concrete variants in parameter order, up to the configured cap."""
        combinations = itertools.product(*(p.concrete_instantiations for p in parameters))
        variants = []
        for number, choice in enumerate(
            itertools.islice(combinations, self.config.max_enumerated_variants), start=1
        ):
            args = list(signature.parameter_types)
            # Type arguments substituted so far, per container parameter slot
            nested: dict[int, list[Type]] = {}
            for param, concrete in zip(parameters, choice):
                slot = param.position - 1
                container = param.container_type
                if param.type_argument_index is None or container is None:
                    args[slot] = concrete
                    continue
                type_args = nested.setdefault(slot, list(container.type_args))
                type_args[param.type_argument_index] = concrete
                args[slot] = container.with_args(*type_args)
            variants.append(MonomorphizedVariant(f"{signature.name}_specialized_{number}", tuple(args)))
        return variants

    # -------------------------------------------------------------------------
    # Instantiations
    # -------------------------------------------------------------------------

    def _instantiate(
        self,
        name: str,
        position: int,
        declared: Type,
        arg_index: Optional[int] = None,
        container: Optional[ContainerType] = None,
    ) -> AbstractParameter:
        observed = self._observed(name, position, declared, arg_index, container)
        if observed:
            return AbstractParameter(position, declared, observed, arg_index, container)
        return AbstractParameter(
            position,
            declared,
            suggest_instantiations(declared),
            arg_index,
            container,
            is_suggestion=True,
        )

    def _observed(
        self,
        name: str,
        position: int,
        declared: Type,
        arg_index: Optional[int],
        container: Optional[ContainerType],
    ) -> tuple[Type, ...]:
        found: list[Type] = []
        for sig in self.method_table.lookup(name):
            candidate = sig.parameter(position)
            if candidate is None:
                continue
            if container is not None:
                if not isinstance(candidate, ContainerType) or candidate.name != container.name:
                    continue
                if arg_index is None or arg_index >= len(candidate.type_args):
                    continue
                candidate = candidate.type_args[arg_index]
            if candidate.is_concrete() and is_subtype(candidate, declared) and candidate not in found:
                found.append(candidate)
        return _ordered(found)


def suggest_instantiations(declared: Type) -> tuple[Type, ...]:
    """
    Common concrete members of an abstract type.

    Every category of the suggestion table that lies at or below ``declared``
    contributes its members; the concrete members of a union are used as-is.
    """
    found: list[Type] = []
    if isinstance(declared, UnionType):
        found.extend(m for m in declared.members if m.is_concrete())
    for category, members in SUGGESTED_INSTANTIATIONS.items():
        if is_subtype(category, declared):
            found.extend(m for m in members if m not in found)
    return _ordered(found)


def _ordered(types: list[Type]) -> tuple[Type, ...]:
    return tuple(sorted(set(types), key=str))


def analyze_monomorphization(
    signature: FunctionSignature,
    method_table: MethodTable = EMPTY_METHOD_TABLE,
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> MonomorphizationReport:
    """
    Convenience function to run monomorphization analysis.

    Args:
        signature: Function name and declared parameter types
        method_table: Read-only table of method signatures
        config: Analysis configuration

    Returns:
        MonomorphizationReport
    """
    return MonomorphizationAnalyzer(method_table, config).analyze(signature)
