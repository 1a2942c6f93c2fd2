"""Expression evaluator: tokens → postfix → value

Evaluation runs in two passes:
1. Infix to postfix with a shunting-yard operator stack. Operators leave
   the stack while the top binds at least as tightly (strictly tighter for
   right-associative operators); parentheses bound scope; function calls
   record how many arguments the call site passed.
2. The postfix stream is walked with a value stack. Operators and functions
   pop their operands and push the result as a literal.

Usage:
    evaluator = ExpressionEvaluator()
    evaluator.register_function("max", max, 2)
    evaluator.evaluate("(a == 1) && (max(b, 3) > 2)", {"a": 1, "b": 0})
    # True
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional

from nodeflow.core.exceptions import (
    IncorrectExpressionError,
    UnknownFunctionError,
    UnknownOperatorError,
    UnknownVariableError,
)
from nodeflow.expression.lexer import tokenize
from nodeflow.expression.operators import CustomFunction, Operator, default_operators
from nodeflow.expression.tokens import Token, TokenType, literal


class ExpressionEvaluator:
    """Evaluates infix condition expressions.

    Operators and functions registered on an instance are shared by every
    call; ``evaluate`` also accepts per-call functions which shadow them.
    """

    def __init__(self) -> None:
        self.operators: Dict[str, Operator] = default_operators()
        self.functions: Dict[str, CustomFunction] = {}

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_function(
        self, name: str, function: Callable[..., Any], required_params: int = 0
    ) -> "ExpressionEvaluator":
        """Register a custom function with an explicit required-parameter count."""
        if required_params < 0:
            raise ValueError("required_params cannot be negative")
        self.functions[name] = CustomFunction(name, function, required_params)
        return self

    def register_operator(self, operator: Operator) -> "ExpressionEvaluator":
        """Register (or replace) an operator."""
        self.operators[operator.symbol] = operator
        return self

    # -------------------------------------------------------------------------
    # Parsing
    # -------------------------------------------------------------------------

    def tokenize(self, expression: str) -> List[Token]:
        if not expression or not expression.strip():
            raise IncorrectExpressionError("Empty expression")
        return tokenize(expression, self.operators.keys())

    def to_postfix(self, tokens: List[Token]) -> List[Token]:
        """Convert an infix token stream to postfix (reverse Polish) order."""
        output: List[Token] = []
        stack: List[Token] = []
        # One argument counter per open function call
        arg_counts: List[int] = []

        for index, token in enumerate(tokens):
            previous = tokens[index - 1] if index > 0 else None

            # First token inside "f(" means the call has at least one argument
            if (
                previous is not None
                and previous.type is TokenType.LEFT_PAREN
                and index >= 2
                and tokens[index - 2].type is TokenType.FUNCTION
                and token.type is not TokenType.RIGHT_PAREN
            ):
                arg_counts[-1] = 1

            if token.type in (TokenType.LITERAL, TokenType.VARIABLE):
                output.append(token)

            elif token.type is TokenType.FUNCTION:
                stack.append(token)
                arg_counts.append(0)

            elif token.type is TokenType.LEFT_PAREN:
                stack.append(token)

            elif token.type is TokenType.COMMA:
                self._pop_until_left_paren(stack, output, "Misplaced comma")
                if len(stack) < 2 or stack[-2].type is not TokenType.FUNCTION:
                    raise IncorrectExpressionError(
                        f"Comma outside of a function call at position {token.position}"
                    )
                arg_counts[-1] += 1

            elif token.type is TokenType.RIGHT_PAREN:
                self._pop_until_left_paren(stack, output, "Mismatched parentheses")
                stack.pop()
                if stack and stack[-1].type is TokenType.FUNCTION:
                    function = stack.pop()
                    function.param_count = arg_counts.pop()
                    output.append(function)

            elif token.type is TokenType.OPERATOR:
                operator = self._operator(token)
                if not operator.is_prefix:
                    while stack and stack[-1].type is TokenType.OPERATOR:
                        top = self._operator(stack[-1])
                        if operator.right_associative:
                            if not operator.priority < top.priority:
                                break
                        elif not operator.priority <= top.priority:
                            break
                        output.append(stack.pop())
                stack.append(token)

        while stack:
            token = stack.pop()
            if token.type in (TokenType.LEFT_PAREN, TokenType.FUNCTION):
                raise IncorrectExpressionError("Mismatched parentheses")
            output.append(token)

        return output

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate_token(
        self,
        expression: str,
        variables: Optional[Mapping[str, Any]] = None,
        functions: Optional[Mapping[str, CustomFunction]] = None,
    ) -> Token:
        """Evaluate an expression and return the resulting literal token.

        Raises:
            ExpressionError: If the expression is malformed or references an
                unknown operator, function or variable.
        """
        variables = variables or {}
        postfix = self.to_postfix(self.tokenize(expression))

        stack: List[Token] = []
        for token in postfix:
            if token.type is TokenType.LITERAL:
                stack.append(token)

            elif token.type is TokenType.VARIABLE:
                if token.value not in variables:
                    raise UnknownVariableError(
                        f"Unknown variable '{token.value}'",
                        context={"expression": expression},
                    )
                stack.append(literal(variables[token.value]))

            elif token.type is TokenType.OPERATOR:
                stack.append(self._operator(token).execute(stack))

            elif token.type is TokenType.FUNCTION:
                function = self._function(token, functions)
                stack.append(function.execute(stack, token.param_count or 0))

        if len(stack) != 1:
            raise IncorrectExpressionError(
                f"Incorrect expression '{expression}'",
                context={"remaining_operands": len(stack)},
            )
        return stack[0]

    def evaluate(
        self,
        expression: str,
        variables: Optional[Mapping[str, Any]] = None,
        functions: Optional[Mapping[str, CustomFunction]] = None,
    ) -> Any:
        """Evaluate an expression and return its value."""
        return self.evaluate_token(expression, variables, functions).value

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _operator(self, token: Token) -> Operator:
        operator = self.operators.get(token.value)
        if operator is None:
            raise UnknownOperatorError(f"Unknown operator '{token.value}'")
        return operator

    def _function(
        self, token: Token, extra: Optional[Mapping[str, CustomFunction]]
    ) -> CustomFunction:
        if extra and token.value in extra:
            return extra[token.value]
        function = self.functions.get(token.value)
        if function is None:
            raise UnknownFunctionError(f"Unknown function '{token.value}'")
        return function

    @staticmethod
    def _pop_until_left_paren(stack: List[Token], output: List[Token], error: str) -> None:
        while stack and stack[-1].type is not TokenType.LEFT_PAREN:
            output.append(stack.pop())
        if not stack:
            raise IncorrectExpressionError(error)
