"""
Devirtualization analysis.

A call whose receiver (``args[0]``) has a non-concrete inferred type is
dispatched dynamically. Looking up the callee in the method table and
keeping every signature whose receiver type intersects the inferred type
gives a conservative candidate set, from which a strategy follows:

- exactly one candidate: call it directly
- a handful of candidates: a type switch over the candidates
- none, or too many: leave the dynamic dispatch in place

A symbol missing from the method table is reported with strategy ``none``
and no candidates; it is never an error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from optadvisor.analysis.const_prop import ConstantPropagator
from optadvisor.config import DEFAULT_CONFIG, AnalysisConfig
from optadvisor.ir.method_table import EMPTY_METHOD_TABLE, MethodSignature, MethodTable
from optadvisor.ir.nodes import Call, Function, SSARef
from optadvisor.ir.types import ANY_TYPE, Type, type_of_value, types_intersect

logger = logging.getLogger(__name__)

SPEEDUP_PER_SITE = 5.0  # percent
MAX_SPEEDUP = 30.0  # percent


class DevirtStrategy(Enum):
    """How a dynamically dispatched call can be lowered."""

    DIRECT = "direct"
    SWITCH = "switch"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class VirtualCallSite:
    """
    A dynamically dispatched call.

    Attributes:
        index: SSA index of the call
        callee: Called symbol
        receiver_type: Inferred type of the receiver operand
        candidate_targets: Method signatures the call may dispatch to
        strategy: Lowering strategy for the call
        in_loop: True if the call lies inside a loop (hot path)
    """

    index: int
    callee: str
    receiver_type: Type
    candidate_targets: tuple[MethodSignature, ...] = ()
    strategy: DevirtStrategy = DevirtStrategy.NONE
    in_loop: bool = False

    @property
    def can_devirtualize(self) -> bool:
        return self.strategy is not DevirtStrategy.NONE

    def __str__(self) -> str:
        return f"#{self.index} {self.callee}({self.receiver_type}): {self.strategy.value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "callee": self.callee,
            "receiver_type": str(self.receiver_type),
            "candidate_targets": sorted(str(sig) for sig in self.candidate_targets),
            "strategy": self.strategy.value,
            "can_devirtualize": self.can_devirtualize,
            "in_loop": self.in_loop,
        }


@dataclass(frozen=True, slots=True)
class DevirtualizationReport:
    """Devirtualization result for one function."""

    sites: tuple[VirtualCallSite, ...] = ()
    total_call_sites: int = 0
    devirtualizable_count: int = 0
    estimated_speedup: float = 0.0  # percent

    @property
    def is_empty(self) -> bool:
        return not self.sites

    @property
    def unresolved(self) -> tuple[VirtualCallSite, ...]:
        return tuple(s for s in self.sites if not s.can_devirtualize)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sites": [s.to_dict() for s in self.sites],
            "total_call_sites": self.total_call_sites,
            "devirtualizable_count": self.devirtualizable_count,
            "estimated_speedup": self.estimated_speedup,
        }


def choose_strategy(candidate_count: int, switch_max_targets: int = 4) -> DevirtStrategy:
    """Map a candidate count to a lowering strategy."""
    if candidate_count == 1:
        return DevirtStrategy.DIRECT
    if 2 <= candidate_count <= switch_max_targets:
        return DevirtStrategy.SWITCH
    return DevirtStrategy.NONE


class Devirtualizer:
    """
    Finds dynamically dispatched calls and their candidate targets.

    Receiver operands that constant propagation resolves are narrowed to the
    constant's concrete type before the dispatch check.

    Usage:
        devirtualizer = Devirtualizer(method_table, config)
        report = devirtualizer.analyze(func)
    """

    def __init__(
        self,
        method_table: MethodTable = EMPTY_METHOD_TABLE,
        config: AnalysisConfig = DEFAULT_CONFIG,
    ) -> None:
        self.method_table = method_table
        self.config = config

    def analyze(self, func: Function) -> DevirtualizationReport:
        """
        Run devirtualization analysis on a function.

        Args:
            func: The function to analyze

        Returns:
            DevirtualizationReport with one entry per dynamic call site
        """
        bindings = ConstantPropagator(self.config).resolve(func)
        loops = func.loop_spans()

        sites = []
        total = 0
        for index, stmt in func.indexed():
            if not isinstance(stmt, Call):
                continue
            total += 1
            site = self._analyze_call(func, index, stmt, bindings, loops)
            if site is not None:
                sites.append(site)

        devirtualizable = sum(1 for s in sites if s.can_devirtualize)
        speedup = min(devirtualizable * SPEEDUP_PER_SITE, MAX_SPEEDUP)

        logger.debug(f"{func.name}: {len(sites)} virtual call(s), {devirtualizable} devirtualizable")
        return DevirtualizationReport(
            sites=tuple(sites),
            total_call_sites=total,
            devirtualizable_count=devirtualizable,
            estimated_speedup=speedup,
        )

    def receiver_type(self, func: Function, call: Call, bindings: dict[int, Any]) -> Optional[Type]:
        """Inferred receiver type, narrowed by a resolved constant; None without a receiver."""
        if not call.args:
            return None
        receiver = call.receiver
        if isinstance(receiver, SSARef) and receiver.index in bindings:
            narrowed = type_of_value(bindings[receiver.index])
            if narrowed is not ANY_TYPE:
                return narrowed
        return func.operand_type(receiver)

    def candidates(self, callee: str, receiver_type: Type) -> tuple[MethodSignature, ...]:
        """Method signatures for ``callee`` whose receiver may match ``receiver_type``."""
        found: list[MethodSignature] = []
        for sig in self.method_table.lookup(callee):
            declared = sig.receiver_type
            if declared is None or sig in found:
                continue
            if types_intersect(declared, receiver_type):
                found.append(sig)
        return tuple(found)

    def _analyze_call(
        self,
        func: Function,
        index: int,
        call: Call,
        bindings: dict[int, Any],
        loops: list[tuple[int, int]],
    ) -> Optional[VirtualCallSite]:
        receiver_type = self.receiver_type(func, call, bindings)
        if receiver_type is None or receiver_type.is_concrete():
            return None

        targets = self.candidates(call.callee, receiver_type)
        return VirtualCallSite(
            index=index,
            callee=call.callee,
            receiver_type=receiver_type,
            candidate_targets=targets,
            strategy=choose_strategy(len(targets), self.config.switch_max_targets),
            in_loop=any(start <= index <= end for start, end in loops),
        )


def analyze_devirtualization(
    func: Function,
    method_table: MethodTable = EMPTY_METHOD_TABLE,
    config: AnalysisConfig = DEFAULT_CONFIG,
) -> DevirtualizationReport:
    """
    Convenience function to run devirtualization analysis on a function.

    Args:
        func: The function to analyze
        method_table: Read-only table of method signatures
        config: Analysis configuration

    Returns:
        DevirtualizationReport
    """
    return Devirtualizer(method_table, config).analyze(func)
