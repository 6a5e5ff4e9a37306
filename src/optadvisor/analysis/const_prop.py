"""
Constant propagation and dead-branch detection.

A single forward pass resolves every SSA value that is statically known:

1. Literals
2. Reads of immutable globals whose value the frontend resolved
3. Calls to allow-listed pure operations whose operands are all known,
   folded eagerly by ``ConstEvaluator``

Every conditional branch whose condition resolves to a literal boolean has
one dead arm. The size of that arm is estimated by counting statements up to
the next control transfer, bounded by ``dead_branch_lookahead``; the count
may be lower than the real arm size but never higher.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from optadvisor.analysis.const_evaluator import ConstEvalError, ConstEvaluator
from optadvisor.config import DEFAULT_CONFIG, AnalysisConfig
from optadvisor.ir.nodes import (
    ArgRef,
    Call,
    ConditionalBranch,
    Function,
    GlobalRead,
    Literal,
    Return,
    SSARef,
    UnconditionalJump,
    iter_refs,
)
from optadvisor.ir.types import Type, type_of_value
from optadvisor.utils.errors import IRLocation

logger = logging.getLogger(__name__)


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True, slots=True)
class ConstantRecord:
    """
    An SSA value with a statically known value.

    Attributes:
        index: SSA index of the value
        value: The resolved value
        type: Declared type of the value
        is_global_immutable: True if the value comes from a constant global
        use_count: Number of operands in later statements that read it
    """

    index: int
    value: Any
    type: Type
    is_global_immutable: bool = False
    use_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "value": _plain(self.value),
            "type": str(self.type),
            "is_global_immutable": self.is_global_immutable,
            "use_count": self.use_count,
        }


@dataclass(frozen=True, slots=True)
class DeadBranchRecord:
    """
    A conditional branch with a statically known condition.

    Attributes:
        index: Index of the branch statement
        condition_value: The resolved condition
        eliminated_arm: The condition value under which the dead arm would run
        statements_eliminated: Lower bound on the dead arm's size
    """

    index: int
    condition_value: bool
    eliminated_arm: bool
    statements_eliminated: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "condition_value": self.condition_value,
            "eliminated_arm": self.eliminated_arm,
            "statements_eliminated": self.statements_eliminated,
        }


@dataclass(frozen=True, slots=True)
class ConstantReport:
    """Result of constant propagation over one function."""

    constants: tuple[ConstantRecord, ...] = ()
    dead_branches: tuple[DeadBranchRecord, ...] = ()
    foldable_count: int = 0
    estimated_reduction: float = 0.0  # percent of statements in dead arms
    specialization_opportunities: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.constants and not self.dead_branches

    @property
    def dead_statement_count(self) -> int:
        return sum(db.statements_eliminated for db in self.dead_branches)

    def constant_at(self, index: int) -> Optional[ConstantRecord]:
        for record in self.constants:
            if record.index == index:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "constants": [c.to_dict() for c in self.constants],
            "dead_branches": [d.to_dict() for d in self.dead_branches],
            "foldable_count": self.foldable_count,
            "estimated_reduction": self.estimated_reduction,
            "specialization_opportunities": list(self.specialization_opportunities),
        }


def _plain(value: Any) -> Any:
    if isinstance(value, (bool, int, float, str)) or value is None:
        return value
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    return repr(value)


# =============================================================================
# Constant Propagator
# =============================================================================


class ConstantPropagator:
    """
    Resolves constant SSA values and detects dead branches.

    Usage:
        propagator = ConstantPropagator(config)
        report = propagator.analyze(func)
        bindings = propagator.resolve(func)   # {ssa_index: value}
    """

    def __init__(
        self,
        config: AnalysisConfig = DEFAULT_CONFIG,
        evaluator: Optional[ConstEvaluator] = None,
    ) -> None:
        self.config = config
        self.evaluator = evaluator or ConstEvaluator()

    def resolve(self, func: Function) -> dict[int, Any]:
        """
        Resolve every statically known SSA value.

        Args:
            func: The function to analyze

        Returns:
            Mapping of SSA index to resolved value
        """
        bindings, _ = self._propagate(func)
        return bindings

    def analyze(self, func: Function) -> ConstantReport:
        """
        Run constant propagation and dead-branch detection.

        Args:
            func: The function to analyze

        Returns:
            ConstantReport with constants, dead branches and suggestions
        """
        bindings, folded = self._propagate(func)
        use_counts = _count_uses(func)

        constants = []
        for index, value in bindings.items():
            stmt = func.statement(index)
            constants.append(
                ConstantRecord(
                    index=index,
                    value=value,
                    type=_record_type(stmt, value),
                    is_global_immutable=isinstance(stmt, GlobalRead),
                    use_count=use_counts.get(index, 0),
                )
            )

        dead_branches = []
        for index, stmt in func.indexed():
            if not isinstance(stmt, ConditionalBranch):
                continue
            condition = self._resolve_operand(stmt.condition, bindings)
            # Only a real boolean decides a branch; 0/1 integers do not
            if not isinstance(condition, bool):
                continue
            dead_branches.append(self._dead_branch(func, index, stmt, condition))

        total = len(func)
        eliminated = sum(db.statements_eliminated for db in dead_branches)
        reduction = (eliminated / total) * 100.0 if total else 0.0

        report = ConstantReport(
            constants=tuple(constants),
            dead_branches=tuple(dead_branches),
            foldable_count=folded,
            estimated_reduction=reduction,
            specialization_opportunities=tuple(_suggest_specializations(func, constants)),
        )
        logger.debug(
            f"{func.name}: {len(constants)} constant(s), {len(dead_branches)} dead branch(es)"
        )
        return report

    # -------------------------------------------------------------------------
    # Propagation
    # -------------------------------------------------------------------------

    def _propagate(self, func: Function) -> tuple[dict[int, Any], int]:
        bindings: dict[int, Any] = {}
        folded = 0

        for index, stmt in func.indexed():
            if isinstance(stmt, Literal):
                bindings[index] = stmt.value

            elif isinstance(stmt, GlobalRead):
                if stmt.is_immutable and stmt.is_resolved:
                    bindings[index] = stmt.value

            elif isinstance(stmt, Call):
                if not self.evaluator.is_pure(stmt.callee):
                    continue
                args = [self._resolve_operand(a, bindings) for a in stmt.args]
                if any(a is _UNKNOWN for a in args):
                    continue
                try:
                    bindings[index] = self.evaluator.evaluate(
                        stmt.callee, args, IRLocation(func.name, index)
                    )
                    folded += 1
                except ConstEvalError as e:
                    logger.debug(f"not folding #{index}: {e.message}")

        return bindings, folded

    def _resolve_operand(self, operand: Any, bindings: dict[int, Any]) -> Any:
        if isinstance(operand, SSARef):
            return bindings.get(operand.index, _UNKNOWN)
        if isinstance(operand, ArgRef):
            return _UNKNOWN
        if isinstance(operand, tuple):
            items = tuple(self._resolve_operand(item, bindings) for item in operand)
            return _UNKNOWN if any(i is _UNKNOWN for i in items) else items
        return operand

    # -------------------------------------------------------------------------
    # Dead branches
    # -------------------------------------------------------------------------

    def _dead_branch(
        self,
        func: Function,
        index: int,
        branch: ConditionalBranch,
        condition: bool,
    ) -> DeadBranchRecord:
        taken_fallthrough = condition == branch.fallthrough_is_true
        if not taken_fallthrough or branch.target is None:
            # Fallthrough arm is dead; it starts right after the branch
            eliminated = self._count_until_transfer(func, index + 1)
        elif self._is_separate_arm(func, index, branch.target):
            eliminated = self._count_until_transfer(func, branch.target)
        else:
            # The live fallthrough runs into the target, so nothing is dead
            eliminated = 0

        return DeadBranchRecord(
            index=index,
            condition_value=condition,
            eliminated_arm=not condition,
            statements_eliminated=eliminated,
        )

    def _is_separate_arm(self, func: Function, index: int, target: int) -> bool:
        """Whether only ``index`` reaches the forward ``target`` arm."""
        if target <= index + 1:
            return False
        if not isinstance(func.statement(target - 1), (UnconditionalJump, Return)):
            return False
        # Another jump into the arm keeps it alive
        return all(
            stmt.jump_target() != target
            for position, stmt in func.indexed()
            if position != index
        )

    def _count_until_transfer(self, func: Function, start: int) -> int:
        limit = self.config.dead_branch_lookahead
        # A jump target past the start is a join point reachable from live code
        join_points = func.jump_targets()
        count = 0
        for position, stmt in func.indexed(start=start):
            if count >= limit or stmt.is_control_transfer():
                break
            if position != start and position in join_points:
                break
            count += 1
        return count


class _UnknownValue:
    def __repr__(self) -> str:
        return "<unknown>"


_UNKNOWN = _UnknownValue()


def _count_uses(func: Function) -> dict[int, int]:
    counts: dict[int, int] = {}
    for _, stmt in func.indexed():
        for operand in stmt.operands():
            for r in iter_refs(operand):
                counts[r.index] = counts.get(r.index, 0) + 1
    return counts


def _record_type(stmt: Any, value: Any) -> Type:
    declared = stmt.declared_type
    if declared.is_concrete():
        return declared
    return type_of_value(value)


def _suggest_specializations(func: Function, constants: list[ConstantRecord]) -> list[str]:
    suggestions = []

    global_consts = [c for c in constants if c.is_global_immutable]
    if global_consts:
        suggestions.append(
            f"Function uses {len(global_consts)} global constant(s); "
            "consider a specialized version with the constants inlined"
        )
        for record in global_consts:
            suggestions.append(f"Specialize on: {record.value!r} :: {record.type}")

    for position, param in enumerate(func.parameter_types, start=1):
        if not param.is_concrete():
            suggestions.append(
                f"Parameter {position} has abstract type {param}; "
                "consider specializing on concrete types"
            )

    return suggestions


def analyze_constants(func: Function, config: AnalysisConfig = DEFAULT_CONFIG) -> ConstantReport:
    """
    Convenience function to run constant propagation on a function.

    Args:
        func: The function to analyze
        config: Analysis configuration

    Returns:
        ConstantReport
    """
    return ConstantPropagator(config).analyze(func)
