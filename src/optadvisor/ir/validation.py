"""
Ingestion-time structural validation of function IR.

The frontend guarantees well-formed IR; this module checks that guarantee
once, before any analysis runs. Malformed input is the only condition under
which the engine raises instead of degrading to a conservative result.
"""

from __future__ import annotations

from typing import Any

from optadvisor.ir.nodes import (
    ArgRef,
    Call,
    ConditionalBranch,
    Function,
    GlobalRead,
    GlobalStore,
    Literal,
    Return,
    SSARef,
    Statement,
    StatementVisitor,
    UnconditionalJump,
)
from optadvisor.ir.types import Type
from optadvisor.utils.errors import IRLocation, MalformedIRError


class IRValidator(StatementVisitor):
    """Collects every structural problem in a function."""

    def __init__(self) -> None:
        self._func: Function | None = None
        self._problems: list[str] = []

    def validate(self, func: Function) -> list[str]:
        """
        Check a function and return a list of problems (empty when valid).

        Args:
            func: The function to check

        Returns:
            Human-readable descriptions of each violation
        """
        self._func = func
        self._problems = []

        for position, param in enumerate(func.parameter_types, start=1):
            if not isinstance(param, Type):
                self._problems.append(f"parameter {position} has no IR type: {param!r}")

        for index, stmt in enumerate(func.statements, start=1):
            if not isinstance(stmt, Statement):
                self._problems.append(f"#{index}: not a statement: {stmt!r}")
                continue
            self.visit(stmt, index)

        return self._problems

    def visit_literal(self, stmt: Literal, index: int) -> None:
        if stmt.type is not None and not isinstance(stmt.type, Type):
            self._problems.append(f"#{index}: literal type is not an IR type")

    def visit_global_read(self, stmt: GlobalRead, index: int) -> None:
        if not isinstance(stmt.type, Type):
            self._problems.append(f"#{index}: global '{stmt.symbol}' type is not an IR type")

    def visit_global_store(self, stmt: GlobalStore, index: int) -> None:
        self._check_operand(stmt.value, index)

    def visit_call(self, stmt: Call, index: int) -> None:
        if not isinstance(stmt.result_type, Type):
            self._problems.append(f"#{index}: call to '{stmt.callee}' has no IR result type")
        for operand in stmt.args:
            self._check_operand(operand, index)

    def visit_conditional_branch(self, stmt: ConditionalBranch, index: int) -> None:
        self._check_operand(stmt.condition, index)
        if stmt.target is not None:
            self._check_target(stmt.target, index)

    def visit_unconditional_jump(self, stmt: UnconditionalJump, index: int) -> None:
        self._check_target(stmt.target, index)

    def visit_return(self, stmt: Return, index: int) -> None:
        if stmt.value is not None:
            self._check_operand(stmt.value, index)

    def _check_operand(self, operand: Any, index: int) -> None:
        assert self._func is not None
        if isinstance(operand, tuple):
            for item in operand:
                self._check_operand(item, index)
            return

        if isinstance(operand, SSARef):
            count = len(self._func.statements)
            if not 1 <= operand.index <= count:
                self._problems.append(f"#{index}: dangling SSA reference {operand} (1..{count})")
                return
            if operand.index == index:
                self._problems.append(f"#{index}: statement refers to its own value")
                return
            target = self._func.statements[operand.index - 1]
            if isinstance(target, Statement) and not target.produces_value:
                self._problems.append(
                    f"#{index}: {operand} refers to a statement that produces no value"
                )

        elif isinstance(operand, ArgRef):
            count = len(self._func.parameter_types)
            if not 1 <= operand.position <= count:
                self._problems.append(f"#{index}: argument {operand} out of range (1..{count})")

    def _check_target(self, target: Any, index: int) -> None:
        assert self._func is not None
        count = len(self._func.statements)
        if not isinstance(target, int) or isinstance(target, bool) or not 1 <= target <= count:
            self._problems.append(f"#{index}: jump target {target!r} out of range (1..{count})")


def validate_function(func: Function) -> Function:
    """
    Validate a function and return it unchanged.

    Raises:
        MalformedIRError: If any structural invariant is violated
    """
    problems = IRValidator().validate(func)
    if problems:
        raise MalformedIRError(
            f"malformed IR: {len(problems)} problem(s)",
            IRLocation(func.name),
            problems,
        )
    return func


def is_well_formed(func: Function) -> bool:
    """Check a function without raising."""
    return not IRValidator().validate(func)
