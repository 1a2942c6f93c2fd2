"""Tests for ExpressionEvaluator.

Tests cover:
- Postfix conversion (precedence, associativity, parentheses)
- Function calls and argument counting
- Variable resolution
- Malformed expressions
"""

import pytest

from nodeflow.core.exceptions import (
    ExpressionError,
    IncorrectExpressionError,
    IncorrectParameterCountError,
    UnknownFunctionError,
    UnknownOperatorError,
    UnknownVariableError,
)
from nodeflow.expression.evaluator import ExpressionEvaluator
from nodeflow.expression.operators import UNARY_MINUS, CustomFunction, Operator
from nodeflow.expression.tokens import TokenType


@pytest.fixture
def evaluator():
    return ExpressionEvaluator()


def postfix(evaluator, expression):
    return [t.value for t in evaluator.to_postfix(evaluator.tokenize(expression))]


# -----------------------------------------------------------------------------
# Postfix conversion
# -----------------------------------------------------------------------------


class TestToPostfix:
    def test_precedence(self, evaluator):
        assert postfix(evaluator, "a || b && c") == ["a", "b", "c", "&&", "||"]

    def test_left_associative(self, evaluator):
        assert postfix(evaluator, "a - b - c") == ["a", "b", "-", "c", "-"]

    def test_right_associative(self, evaluator):
        assert postfix(evaluator, "a ^ b ^ c") == ["a", "b", "c", "^", "^"]

    def test_parentheses_override_precedence(self, evaluator):
        assert postfix(evaluator, "(a || b) && c") == ["a", "b", "||", "c", "&&"]

    def test_comparison_binds_tighter_than_logic(self, evaluator):
        assert postfix(evaluator, "x == 1 || y > 2") == ["x", 1, "==", "y", 2, ">", "||"]

    def test_prefix_operator_does_not_pop(self, evaluator):
        assert postfix(evaluator, "a * -b") == ["a", "b", UNARY_MINUS, "*"]

    def test_function_records_argument_count(self, evaluator):
        tokens = evaluator.to_postfix(evaluator.tokenize("f(a, b + 1, c)"))
        function = tokens[-1]
        assert function.type is TokenType.FUNCTION
        assert function.param_count == 3

    def test_empty_call_has_zero_arguments(self, evaluator):
        tokens = evaluator.to_postfix(evaluator.tokenize("f()"))
        assert tokens[-1].param_count == 0

    def test_nested_calls(self, evaluator):
        tokens = evaluator.to_postfix(evaluator.tokenize("f(g(1, 2), 3)"))
        counts = {t.value: t.param_count for t in tokens if t.type is TokenType.FUNCTION}
        assert counts == {"g": 2, "f": 2}

    @pytest.mark.parametrize("expression", ["(a && b", "a && b)", "f(1"])
    def test_mismatched_parentheses(self, evaluator, expression):
        with pytest.raises(IncorrectExpressionError):
            evaluator.to_postfix(evaluator.tokenize(expression))

    def test_comma_outside_call(self, evaluator):
        with pytest.raises(IncorrectExpressionError):
            evaluator.to_postfix(evaluator.tokenize("(a, b)"))


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------


class TestEvaluate:
    @pytest.mark.parametrize("expression,expected", [
        ("1 + 2 * 3", 7),
        ("(1 + 2) * 3", 9),
        ("10 - 4 - 3", 3),
        ("2 ^ 3 ^ 2", 512),
        ("-2 ^ 2", -4),
        ("7 % 4", 3),
        ("10 / 4", 2.5),
        ("-(3 - 5)", 2),
    ])
    def test_arithmetic(self, evaluator, expression, expected):
        assert evaluator.evaluate(expression) == expected

    @pytest.mark.parametrize("expression,expected", [
        ("1 == 1", True),
        ("1 != 1", False),
        ("'10' > 9", True),
        ("'abc' == 'abc'", True),
        ("'abc' < 'abd'", True),
        ("true == 'true'", True),
        ("true && false", False),
        ("true || false", True),
        ("!false", True),
        ("!(1 > 2) && 3 >= 3", True),
    ])
    def test_logic_and_comparison(self, evaluator, expression, expected):
        assert evaluator.evaluate(expression) is expected

    def test_variables(self, evaluator):
        variables = {"amount": 1500, "status": "approved"}
        assert evaluator.evaluate("amount >= 1000 && status == 'approved'", variables) is True
        assert evaluator.evaluate("$amount < 1000", variables) is False

    def test_numeric_string_variable(self, evaluator):
        assert evaluator.evaluate("score > 2.5", {"score": "3"}) is True

    def test_unknown_variable(self, evaluator):
        with pytest.raises(UnknownVariableError):
            evaluator.evaluate("missing == 1")

    def test_evaluate_token_returns_literal(self, evaluator):
        token = evaluator.evaluate_token("1 < 2")
        assert token.type is TokenType.LITERAL
        assert token.value is True

    @pytest.mark.parametrize("expression", ["", "   "])
    def test_empty_expression(self, evaluator, expression):
        with pytest.raises(IncorrectExpressionError):
            evaluator.evaluate(expression)

    @pytest.mark.parametrize("expression", ["1 2", "&& 1", "1 ||"])
    def test_operand_count_errors(self, evaluator, expression):
        with pytest.raises(IncorrectExpressionError):
            evaluator.evaluate(expression)

    def test_unknown_character(self, evaluator):
        with pytest.raises(UnknownOperatorError):
            evaluator.evaluate("a @ b", {"a": 1, "b": 2})

    def test_errors_share_base(self, evaluator):
        with pytest.raises(ExpressionError):
            evaluator.evaluate("(1")


# -----------------------------------------------------------------------------
# Functions
# -----------------------------------------------------------------------------


class TestFunctions:
    def test_registered_function(self, evaluator):
        evaluator.register_function("max", max, 2)
        assert evaluator.evaluate("max(b, 3) > 2", {"b": 0}) is True

    def test_arguments_in_call_order(self, evaluator):
        evaluator.register_function("sub", lambda a, b: a - b, 2)
        assert evaluator.evaluate("sub(10, 3)") == 7

    def test_function_inside_expression(self, evaluator):
        evaluator.register_function("double", lambda x: x * 2, 1)
        assert evaluator.evaluate("1 + double(2 + 3) * 2") == 21

    def test_too_few_arguments(self, evaluator):
        evaluator.register_function("pair", lambda a, b: a, 2)
        with pytest.raises(IncorrectParameterCountError):
            evaluator.evaluate("pair(1)")

    def test_zero_argument_function(self, evaluator):
        evaluator.register_function("limit", lambda: 100)
        assert evaluator.evaluate("limit() == 100") is True

    def test_unknown_function(self, evaluator):
        with pytest.raises(UnknownFunctionError):
            evaluator.evaluate("nope(1)")

    def test_per_call_function_shadows_registered(self, evaluator):
        evaluator.register_function("flag", lambda: "global")
        local = {"flag": CustomFunction("flag", lambda: "local")}
        assert evaluator.evaluate("flag()", functions=local) == "local"
        assert evaluator.evaluate("flag()") == "global"

    def test_negative_required_params_rejected(self, evaluator):
        with pytest.raises(ValueError):
            evaluator.register_function("bad", lambda: None, -1)


class TestCustomOperators:
    def test_register_operator(self, evaluator):
        evaluator.register_operator(Operator("~=", 140, False, 2, lambda a, b: str(a).lower() == str(b).lower()))
        assert evaluator.evaluate("'ABC' ~= 'abc'") is True
