"""
Statement and function definitions for the analysis IR.

A function body is an ordered, 1-indexed sequence of statements in SSA form.
Each statement implicitly defines the SSA value whose id equals its own index;
only Literal, GlobalRead and Call actually produce a value.

Statement operands are one of:
- SSARef: the value produced by an earlier statement
- ArgRef: a function parameter (1-based)
- an immediate Python literal (int, float, bool, str, None, or a tuple)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Iterator, Optional, Sequence

from optadvisor.ir.types import ANY_TYPE, Type, type_of_value


# =============================================================================
# Operands
# =============================================================================


@dataclass(frozen=True, slots=True)
class SSARef:
    """Reference to the SSA value defined by statement ``index``."""

    index: int

    def __str__(self) -> str:
        return f"%{self.index}"


@dataclass(frozen=True, slots=True)
class ArgRef:
    """Reference to the function parameter at 1-based ``position``."""

    position: int

    def __str__(self) -> str:
        return f"$arg{self.position}"


def ref(index: int) -> SSARef:
    """Shorthand for building an SSA reference."""
    return SSARef(index)


def arg(position: int) -> ArgRef:
    """Shorthand for building a parameter reference."""
    return ArgRef(position)


def iter_refs(operand: Any) -> Iterator[SSARef]:
    """Yield every SSA reference contained in an operand (tuples are searched)."""
    if isinstance(operand, SSARef):
        yield operand
    elif isinstance(operand, tuple):
        for item in operand:
            yield from iter_refs(item)


def mentions(operand: Any, index: int) -> bool:
    """Check if an operand refers to the SSA value ``index``."""
    return any(r.index == index for r in iter_refs(operand))


class _Unresolved:
    """Marker for a global binding whose value the frontend could not resolve."""

    _instance: ClassVar[Optional[_Unresolved]] = None

    def __new__(cls) -> _Unresolved:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNRESOLVED"


UNRESOLVED = _Unresolved()


# =============================================================================
# Statements
# =============================================================================


class Statement(ABC):
    """Base class for all IR statements."""

    produces_value: ClassVar[bool] = False

    @abstractmethod
    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        """Accept a visitor; ``index`` is this statement's position."""
        pass

    def operands(self) -> tuple[Any, ...]:
        """All operands read by this statement, in order."""
        return ()

    def is_control_transfer(self) -> bool:
        """Branches, jumps and returns end straight-line code."""
        return False

    def jump_target(self) -> Optional[int]:
        """Index this statement may transfer control to, if any."""
        return None

    @property
    def declared_type(self) -> Type:
        """Type of the SSA value this statement defines."""
        return ANY_TYPE


@dataclass(frozen=True, slots=True)
class Literal(Statement):
    """A literal constant value."""

    produces_value: ClassVar[bool] = True

    value: Any
    type: Optional[Type] = None

    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        return visitor.visit_literal(self, index)

    @property
    def declared_type(self) -> Type:
        return self.type if self.type is not None else type_of_value(self.value)

    def __str__(self) -> str:
        return f"literal {self.value!r}::{self.declared_type}"


@dataclass(frozen=True, slots=True)
class GlobalRead(Statement):
    """
    A read of a global binding.

    Attributes:
        symbol: Global name
        type: Declared type of the binding
        is_immutable: True if the binding is a constant
        value: Resolved value, or UNRESOLVED when the frontend does not know it
    """

    produces_value: ClassVar[bool] = True

    symbol: str
    type: Type = ANY_TYPE
    is_immutable: bool = False
    value: Any = UNRESOLVED

    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        return visitor.visit_global_read(self, index)

    @property
    def declared_type(self) -> Type:
        return self.type

    @property
    def is_resolved(self) -> bool:
        return self.value is not UNRESOLVED

    def __str__(self) -> str:
        const = "const " if self.is_immutable else ""
        return f"global {const}{self.symbol}::{self.type}"


@dataclass(frozen=True, slots=True)
class GlobalStore(Statement):
    """A write of ``value`` into the global binding ``symbol``."""

    symbol: str
    value: Any

    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        return visitor.visit_global_store(self, index)

    def operands(self) -> tuple[Any, ...]:
        return (self.value,)

    def __str__(self) -> str:
        return f"global {self.symbol} = {self.value}"


@dataclass(frozen=True, slots=True)
class Call(Statement):
    """
    A call of ``callee`` with ``args``.

    The receiver of a method call is conventionally ``args[0]``.
    """

    produces_value: ClassVar[bool] = True

    callee: str
    args: tuple[Any, ...] = ()
    result_type: Type = ANY_TYPE

    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        return visitor.visit_call(self, index)

    def operands(self) -> tuple[Any, ...]:
        return tuple(self.args)

    @property
    def declared_type(self) -> Type:
        return self.result_type

    @property
    def receiver(self) -> Any:
        return self.args[0] if self.args else None

    def __str__(self) -> str:
        args_str = ", ".join(str(a) if isinstance(a, (SSARef, ArgRef)) else repr(a) for a in self.args)
        return f"{self.callee}({args_str})::{self.result_type}"


@dataclass(frozen=True, slots=True)
class ConditionalBranch(Statement):
    """
    Two-way branch on ``condition``.

    When ``fallthrough_is_true`` the next statement runs if the condition
    holds and control moves to ``target`` otherwise; the roles swap when it
    is False. ``target`` may be unknown (None).
    """

    condition: Any
    fallthrough_is_true: bool = True
    target: Optional[int] = None

    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        return visitor.visit_conditional_branch(self, index)

    def operands(self) -> tuple[Any, ...]:
        return (self.condition,)

    def is_control_transfer(self) -> bool:
        return True

    def jump_target(self) -> Optional[int]:
        return self.target

    def __str__(self) -> str:
        dest = f" else goto #{self.target}" if self.target is not None else ""
        return f"branch {self.condition}{dest}"


@dataclass(frozen=True, slots=True)
class UnconditionalJump(Statement):
    """Unconditional transfer of control to ``target``."""

    target: int

    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        return visitor.visit_unconditional_jump(self, index)

    def is_control_transfer(self) -> bool:
        return True

    def jump_target(self) -> Optional[int]:
        return self.target

    def __str__(self) -> str:
        return f"goto #{self.target}"


@dataclass(frozen=True, slots=True)
class Return(Statement):
    """Return from the function, optionally with a value."""

    value: Any = None

    def accept(self, visitor: StatementVisitor, index: int) -> Any:
        return visitor.visit_return(self, index)

    def operands(self) -> tuple[Any, ...]:
        return () if self.value is None else (self.value,)

    def is_control_transfer(self) -> bool:
        return True

    def __str__(self) -> str:
        return "return" if self.value is None else f"return {self.value}"


# =============================================================================
# Visitor
# =============================================================================


class StatementVisitor:
    """
    Visitor base class for statement traversal.

    Subclass this and override specific visit_* methods as needed; the
    defaults do nothing.
    """

    def visit(self, stmt: Statement, index: int) -> Any:
        """Dispatch to the appropriate visit method."""
        return stmt.accept(self, index)

    def visit_function(self, func: Function) -> None:
        for index, stmt in func.indexed():
            self.visit(stmt, index)

    def visit_literal(self, stmt: Literal, index: int) -> Any:
        pass

    def visit_global_read(self, stmt: GlobalRead, index: int) -> Any:
        pass

    def visit_global_store(self, stmt: GlobalStore, index: int) -> Any:
        pass

    def visit_call(self, stmt: Call, index: int) -> Any:
        pass

    def visit_conditional_branch(self, stmt: ConditionalBranch, index: int) -> Any:
        pass

    def visit_unconditional_jump(self, stmt: UnconditionalJump, index: int) -> Any:
        pass

    def visit_return(self, stmt: Return, index: int) -> Any:
        pass


# =============================================================================
# Functions
# =============================================================================


@dataclass(frozen=True, slots=True)
class FunctionSignature:
    """A function name with its ordered parameter types."""

    name: str
    parameter_types: tuple[Type, ...] = ()

    def __str__(self) -> str:
        params = ", ".join(str(t) for t in self.parameter_types)
        return f"{self.name}({params})"


@dataclass(frozen=True, slots=True)
class Function:
    """
    The unit of analysis: one function specialized on one argument signature.

    Attributes:
        name: Function name
        parameter_types: Declared parameter types, in order
        statements: The body, addressed 1-based by SSA index
    """

    name: str
    parameter_types: tuple[Type, ...] = ()
    statements: tuple[Statement, ...] = ()

    def __post_init__(self) -> None:
        # Accept lists from the frontend but keep the snapshot immutable
        object.__setattr__(self, "parameter_types", tuple(self.parameter_types))
        object.__setattr__(self, "statements", tuple(self.statements))

    def __len__(self) -> int:
        return len(self.statements)

    def statement(self, index: int) -> Statement:
        """Return the statement at 1-based ``index``."""
        if not 1 <= index <= len(self.statements):
            raise IndexError(f"statement index {index} out of range 1..{len(self.statements)}")
        return self.statements[index - 1]

    def indexed(self, start: int = 1) -> Iterator[tuple[int, Statement]]:
        """Iterate over ``(index, statement)`` pairs beginning at ``start``."""
        for offset, stmt in enumerate(self.statements[max(start, 1) - 1:]):
            yield max(start, 1) + offset, stmt

    def operand_type(self, operand: Any) -> Type:
        """Declared type of an operand."""
        if isinstance(operand, SSARef):
            return self.statement(operand.index).declared_type
        if isinstance(operand, ArgRef):
            return self.parameter_types[operand.position - 1]
        return type_of_value(operand)

    @property
    def signature(self) -> FunctionSignature:
        return FunctionSignature(self.name, self.parameter_types)

    def jump_targets(self) -> frozenset[int]:
        """Indices that some branch or jump can transfer control to."""
        return frozenset(
            target for _, stmt in self.indexed()
            if (target := stmt.jump_target()) is not None
        )

    def loop_spans(self) -> list[tuple[int, int]]:
        """``(header, latch)`` ranges closed by a backward branch or jump."""
        spans = []
        for index, stmt in self.indexed():
            target = stmt.jump_target()
            if target is not None and target <= index:
                spans.append((target, index))
        return spans

    def in_loop(self, index: int) -> bool:
        """Check if a statement lies within some loop span."""
        return any(start <= index <= end for start, end in self.loop_spans())

    def pretty(self) -> str:
        """Render the function as an indexed listing."""
        lines = [f"function {self.signature}"]
        for index, stmt in self.indexed():
            lines.append(f"  #{index}: {stmt}")
        return "\n".join(lines)


def make_function(
    name: str,
    statements: Sequence[Statement],
    parameter_types: Sequence[Type] = (),
) -> Function:
    """Convenience constructor used by frontends and tests."""
    return Function(name=name, parameter_types=tuple(parameter_types), statements=tuple(statements))
