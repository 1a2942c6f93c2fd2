"""Condition expression language: lexer, operators and shunting-yard evaluator."""

from nodeflow.expression.evaluator import ExpressionEvaluator
from nodeflow.expression.operators import CustomFunction, Operator, default_operators
from nodeflow.expression.tokens import Token, TokenType

__all__ = [
    "ExpressionEvaluator",
    "CustomFunction",
    "Operator",
    "default_operators",
    "Token",
    "TokenType",
]
