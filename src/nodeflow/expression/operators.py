"""Operator and custom function registry for condition expressions.

Operators carry a priority, an associativity and an arity (``places``).
The evaluator pops ``places`` values from its stack, the first popped being
the right-hand operand, and pushes the result back as a literal token.

Built-in operators:
- Logical (arity=2): ||, &&
- Comparison (arity=2): ==, !=, <, >, <=, >=
- Arithmetic (arity=2): +, -, *, /, %, ^
- Prefix (arity=1): unary minus, !

Comparison policy: both operands are coerced to numbers when possible
(numeric-looking strings included, bools excluded); otherwise both sides are
compared as strings.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from nodeflow.core.exceptions import (
    IncorrectExpressionError,
    IncorrectParameterCountError,
)
from nodeflow.expression.tokens import Token, literal

Number = Union[int, float]

# Registry key of prefix minus; the lexer maps "-" in prefix position to it.
UNARY_MINUS = "neg"


# =============================================================================
# Value coercion
# =============================================================================


def to_number(value: Any) -> Optional[Number]:
    """Return value as int/float, or None if it does not look numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        # "nan" and "inf" stay strings
        return number if math.isfinite(number) else None
    return None


def to_text(value: Any) -> str:
    """Render a value for string comparison."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def to_bool(value: Any) -> bool:
    """Truthiness used by the logical operators."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered in ("false", ""):
            return False
        number = to_number(lowered)
        if number is not None:
            return number != 0
        return True
    return bool(value)


def compare(left: Any, right: Any) -> int:
    """Three-way comparison: numeric first, then string."""
    a, b = to_number(left), to_number(right)
    if a is not None and b is not None:
        return (a > b) - (a < b)
    x, y = to_text(left), to_text(right)
    return (x > y) - (x < y)


def _numeric(symbol: str, value: Any) -> Number:
    number = to_number(value)
    if number is None:
        raise IncorrectExpressionError(
            f"Operator '{symbol}' requires numeric operands, got {value!r}"
        )
    return number


# =============================================================================
# Operator / function definitions
# =============================================================================


@dataclass
class Operator:
    """Definition of an expression operator.

    Attributes:
        symbol: Registry key, also the text matched by the lexer
        priority: Higher binds tighter
        right_associative: Equal-priority operators stay on the stack
        places: Number of operands consumed
        function: Called with the operands in left-to-right order
    """
    symbol: str
    priority: int
    right_associative: bool
    places: int
    function: Callable[..., Any]

    @property
    def is_prefix(self) -> bool:
        return self.places == 1 and self.right_associative

    def execute(self, stack: List[Token]) -> Token:
        if len(stack) < self.places:
            raise IncorrectExpressionError(
                f"Operator '{self.symbol}' needs {self.places} operand(s), "
                f"{len(stack)} available"
            )
        args = [stack.pop().value for _ in range(self.places)]
        args.reverse()
        return literal(self.function(*args))


@dataclass
class CustomFunction:
    """A named callback callable from expressions.

    ``required_params`` is declared at registration; calls with fewer
    arguments fail, extra arguments are passed through.
    """
    name: str
    function: Callable[..., Any]
    required_params: int = 0

    def execute(self, stack: List[Token], param_count: int) -> Token:
        if param_count < self.required_params:
            raise IncorrectParameterCountError(
                f"Incorrect number of function parameters, "
                f"[{self.required_params}] needed, [{param_count}] passed",
                context={"function": self.name},
            )
        if len(stack) < param_count:
            raise IncorrectExpressionError(
                f"Function '{self.name}' expects {param_count} argument(s) on the stack",
            )

        args: List[Any] = []
        for _ in range(param_count):
            args.insert(0, stack.pop().value)

        return literal(self.function(*args))


# =============================================================================
# Operator implementations
# =============================================================================


def _or(a: Any, b: Any) -> bool:
    return to_bool(a) or to_bool(b)


def _and(a: Any, b: Any) -> bool:
    return to_bool(a) and to_bool(b)


def _eq(a: Any, b: Any) -> bool:
    return compare(a, b) == 0


def _neq(a: Any, b: Any) -> bool:
    return compare(a, b) != 0


def _lt(a: Any, b: Any) -> bool:
    return compare(a, b) < 0


def _gt(a: Any, b: Any) -> bool:
    return compare(a, b) > 0


def _lte(a: Any, b: Any) -> bool:
    return compare(a, b) <= 0


def _gte(a: Any, b: Any) -> bool:
    return compare(a, b) >= 0


def _add(a: Any, b: Any) -> Number:
    return _numeric("+", a) + _numeric("+", b)


def _subtract(a: Any, b: Any) -> Number:
    return _numeric("-", a) - _numeric("-", b)


def _multiply(a: Any, b: Any) -> Number:
    return _numeric("*", a) * _numeric("*", b)


def _divide(a: Any, b: Any) -> Number:
    divisor = _numeric("/", b)
    if divisor == 0:
        raise IncorrectExpressionError("Division by zero")
    return _numeric("/", a) / divisor


def _modulo(a: Any, b: Any) -> Number:
    divisor = _numeric("%", b)
    if divisor == 0:
        raise IncorrectExpressionError("Modulo by zero")
    return _numeric("%", a) % divisor


def _power(a: Any, b: Any) -> Number:
    return _numeric("^", a) ** _numeric("^", b)


def _negate(a: Any) -> Number:
    return -_numeric("-", a)


def _not(a: Any) -> bool:
    return not to_bool(a)


# =============================================================================
# Default registry
# =============================================================================


def default_operators() -> Dict[str, Operator]:
    """Return a fresh copy of the built-in operator table."""
    operators = [
        Operator("||", 110, False, 2, _or),
        Operator("&&", 120, False, 2, _and),
        Operator("==", 140, False, 2, _eq),
        Operator("!=", 140, False, 2, _neq),
        Operator("<", 150, False, 2, _lt),
        Operator(">", 150, False, 2, _gt),
        Operator("<=", 150, False, 2, _lte),
        Operator(">=", 150, False, 2, _gte),
        Operator("+", 170, False, 2, _add),
        Operator("-", 170, False, 2, _subtract),
        Operator("*", 180, False, 2, _multiply),
        Operator("/", 180, False, 2, _divide),
        Operator("%", 180, False, 2, _modulo),
        Operator(UNARY_MINUS, 200, True, 1, _negate),
        Operator("!", 200, True, 1, _not),
        Operator("^", 220, True, 2, _power),
    ]
    return {op.symbol: op for op in operators}
