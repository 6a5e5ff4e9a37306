"""
Compile-time evaluator for pure calls over constant operands.

Only callees on the ``PURE_FUNCTIONS`` allow-list are ever evaluated, and
each entry checks its operand types and arity before running. There is no
fallback to general evaluation: an unlisted callee, an operand of the wrong
type, or any arithmetic error raises ``ConstEvalError``, which constant
propagation treats as "not constant".

Features:
- Arithmetic with truncating integer division and remainder
- Comparison and boolean operators
- A fixed set of ``math`` functions
- Integer results are kept within the 64-bit range of the IR's ``Int64``
"""

from __future__ import annotations

import math
import operator
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from optadvisor.utils.errors import IRLocation


class ConstEvalError(Exception):
    """Raised when a call cannot be evaluated at analysis time."""

    def __init__(
        self,
        message: str,
        location: Optional[IRLocation] = None,
    ) -> None:
        self.message = message
        self.location = location
        super().__init__(message)


INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
MAX_INT_EXPONENT = 63


# =============================================================================
# Operand Checks
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_comparable(value: Any) -> bool:
    return _is_number(value) or _is_bool(value) or isinstance(value, str)


# =============================================================================
# Implementations
# =============================================================================


def _div(a: float, b: float) -> float:
    if b == 0:
        raise ZeroDivisionError("division by zero")
    return a / b


def _trunc_div(a: int, b: int) -> int:
    if b == 0:
        raise ZeroDivisionError("integer division by zero")
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _rem(a: float, b: float) -> float:
    if b == 0:
        raise ZeroDivisionError("remainder by zero")
    if _is_integer(a) and _is_integer(b):
        return a - b * _trunc_div(a, b)
    return math.fmod(a, b)


def _mod(a: float, b: float) -> float:
    if b == 0:
        raise ZeroDivisionError("modulo by zero")
    return a % b


def _pow(a: float, b: float) -> float:
    if _is_integer(a) and _is_integer(b):
        if b < 0:
            raise ValueError("negative integer exponent")
        if b > MAX_INT_EXPONENT and abs(a) > 1:
            raise OverflowError("integer power out of range")
    return math.pow(a, b) if isinstance(a, float) or isinstance(b, float) else a**b


def _cmp(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(a: Any, b: Any) -> bool:
        # Mixed str/number ordering has no meaning
        if isinstance(a, str) != isinstance(b, str):
            if op in (operator.eq, operator.ne):
                return op is operator.ne
            raise TypeError("cannot order a string against a number")
        return bool(op(a, b))

    return compare


@dataclass(frozen=True, slots=True)
class PureFunction:
    """
    One allow-listed pure operation.

    Attributes:
        impl: The Python implementation
        min_args: Fewest accepted operands
        max_args: Most accepted operands
        check: Predicate every operand must satisfy
    """

    impl: Callable[..., Any]
    min_args: int
    max_args: int
    check: Callable[[Any], bool] = _is_number


PURE_FUNCTIONS: dict[str, PureFunction] = {
    # Arithmetic
    "+": PureFunction(operator.add, 2, 2),
    "-": PureFunction(lambda a, b=None: -a if b is None else a - b, 1, 2),
    "*": PureFunction(operator.mul, 2, 2),
    "/": PureFunction(_div, 2, 2),
    "div": PureFunction(_trunc_div, 2, 2, _is_integer),
    "%": PureFunction(_rem, 2, 2),
    "rem": PureFunction(_rem, 2, 2),
    "mod": PureFunction(_mod, 2, 2),
    "^": PureFunction(_pow, 2, 2),
    "abs": PureFunction(abs, 1, 1),
    "min": PureFunction(min, 2, 2),
    "max": PureFunction(max, 2, 2),
    # Comparison
    "==": PureFunction(_cmp(operator.eq), 2, 2, _is_comparable),
    "!=": PureFunction(_cmp(operator.ne), 2, 2, _is_comparable),
    "<": PureFunction(_cmp(operator.lt), 2, 2, _is_comparable),
    "<=": PureFunction(_cmp(operator.le), 2, 2, _is_comparable),
    ">": PureFunction(_cmp(operator.gt), 2, 2, _is_comparable),
    ">=": PureFunction(_cmp(operator.ge), 2, 2, _is_comparable),
    # Boolean
    "!": PureFunction(operator.not_, 1, 1, _is_bool),
    "&": PureFunction(operator.and_, 2, 2, _is_bool),
    "|": PureFunction(operator.or_, 2, 2, _is_bool),
    "xor": PureFunction(operator.xor, 2, 2, _is_bool),
    # Math functions
    "sqrt": PureFunction(math.sqrt, 1, 1),
    "exp": PureFunction(math.exp, 1, 1),
    "log": PureFunction(math.log, 1, 1),
    "log2": PureFunction(math.log2, 1, 1),
    "log10": PureFunction(math.log10, 1, 1),
    "sin": PureFunction(math.sin, 1, 1),
    "cos": PureFunction(math.cos, 1, 1),
    "tan": PureFunction(math.tan, 1, 1),
    "atan": PureFunction(math.atan, 1, 1),
    "atan2": PureFunction(math.atan2, 2, 2),
    "hypot": PureFunction(math.hypot, 2, 2),
    "floor": PureFunction(math.floor, 1, 1),
    "ceil": PureFunction(math.ceil, 1, 1),
    "round": PureFunction(round, 1, 1),
}


# =============================================================================
# Evaluator
# =============================================================================


class ConstEvaluator:
    """
    Evaluates allow-listed calls whose operands are all known constants.

    Usage:
        evaluator = ConstEvaluator()
        value = evaluator.evaluate("+", (1, 2))       # -> 3
        evaluator.can_evaluate("println", ("hi",))    # -> False
    """

    def __init__(self, functions: Optional[dict[str, PureFunction]] = None) -> None:
        self.functions: dict[str, PureFunction] = dict(PURE_FUNCTIONS if functions is None else functions)

    def is_pure(self, callee: str) -> bool:
        return callee.split(".")[-1] in self.functions

    def evaluate(
        self,
        callee: str,
        args: Sequence[Any],
        location: Optional[IRLocation] = None,
    ) -> Any:
        """
        Evaluate a pure call.

        Args:
            callee: The operation name
            args: Constant operand values
            location: Statement location for error reporting

        Returns:
            The computed value

        Raises:
            ConstEvalError: If the call is not allow-listed or evaluation fails
        """
        name = callee.split(".")[-1]
        fn = self.functions.get(name)
        if fn is None:
            raise ConstEvalError(f"Function '{callee}' is not a pure operation", location)

        if not fn.min_args <= len(args) <= fn.max_args:
            raise ConstEvalError(
                f"'{callee}' expects {fn.min_args}..{fn.max_args} operands, got {len(args)}",
                location,
            )
        for value in args:
            if not fn.check(value):
                raise ConstEvalError(f"'{callee}' cannot fold operand {value!r}", location)

        try:
            result = fn.impl(*args)
        except (ArithmeticError, ValueError, TypeError) as e:
            raise ConstEvalError(f"Error evaluating {callee}{tuple(args)}: {e}", location) from e

        if _is_integer(result) and not INT64_MIN <= result <= INT64_MAX:
            raise ConstEvalError(f"{callee}{tuple(args)} overflows Int64", location)
        return result

    def can_evaluate(self, callee: str, args: Sequence[Any]) -> bool:
        """Check if a call folds to a constant."""
        try:
            self.evaluate(callee, args)
            return True
        except ConstEvalError:
            return False


def evaluate_const(callee: str, args: Sequence[Any]) -> Any:
    """
    Convenience function to fold one pure call.

    Raises:
        ConstEvalError: If the call cannot be folded
    """
    return ConstEvaluator().evaluate(callee, args)
