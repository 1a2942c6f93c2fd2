"""Tests for condition group rendering and evaluation."""

import pytest

from nodeflow.core.exceptions import UnknownVariableError
from nodeflow.core.models import Condition, ConditionGroup
from nodeflow.execution.conditions import (
    ConditionEvaluator,
    render_conditions,
    render_group,
)


def cond(operand1, operator, operand2, sort_order=0, cid=1):
    return Condition(
        id=cid,
        group_id=1,
        operand1=operand1,
        operator=operator,
        operand2=operand2,
        sort_order=sort_order,
    )


def group(*conditions, gid=1):
    return ConditionGroup(id=gid, node_id=1, conditions=list(conditions))


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


class TestRendering:
    def test_single_condition(self):
        assert render_conditions([group(cond("amount", ">=", "1000"))]) == "(amount >= 1000)"

    def test_or_within_and_across(self):
        groups = [
            group(cond("a", "==", "1"), cond("b", "==", "2")),
            group(cond("c", ">", "3"), gid=2),
        ]
        assert render_conditions(groups) == "(a == 1 || b == 2) && (c > 3)"

    def test_no_groups_renders_nothing(self):
        assert render_conditions([]) is None

    def test_empty_groups_are_skipped(self):
        assert render_group(group()) is None
        groups = [group(), group(cond("x", "!=", "0"), gid=2)]
        assert render_conditions(groups) == "(x != 0)"


class TestEvaluation:
    def test_no_conditions_pass(self, evaluator):
        assert evaluator.evaluate([]) is True
        assert evaluator.evaluate([group()]) is True

    def test_or_inside_group(self, evaluator):
        groups = [group(cond("a", "==", "1"), cond("b", "==", "2"))]
        assert evaluator.evaluate(groups, {"a": 0, "b": 2}) is True
        assert evaluator.evaluate(groups, {"a": 0, "b": 0}) is False

    def test_and_across_groups(self, evaluator):
        groups = [
            group(cond("a", "==", "1")),
            group(cond("b", "==", "2"), gid=2),
        ]
        assert evaluator.evaluate(groups, {"a": 1, "b": 2}) is True
        assert evaluator.evaluate(groups, {"a": 1, "b": 3}) is False

    def test_string_operands(self, evaluator):
        groups = [group(cond("status", "==", "'approved'"))]
        assert evaluator.evaluate(groups, {"status": "approved"}) is True

    def test_unknown_variable_propagates(self, evaluator):
        with pytest.raises(UnknownVariableError):
            evaluator.evaluate([group(cond("missing", "==", "1"))], {})


class TestStructuredEquivalence:
    """Rendering then evaluating agrees with evaluating the groups directly."""

    GROUPS = [
        [group(cond("a", "==", "1"), cond("b", ">", "5"))],
        [group(cond("a", "==", "1")), group(cond("b", "<=", "5"), gid=2)],
        [group(), group(cond("c", "!=", "'x'"), gid=2)],
        [
            group(cond("a", ">=", "2"), cond("c", "==", "'y'")),
            group(cond("b", "%", "2"), gid=2),
        ],
    ]

    VARIABLES = [
        {"a": 1, "b": 6, "c": "x"},
        {"a": 2, "b": 5, "c": "y"},
        {"a": 0, "b": 0, "c": "z"},
        {"a": "1", "b": "7", "c": "x"},
    ]

    @pytest.mark.parametrize("groups", GROUPS)
    @pytest.mark.parametrize("variables", VARIABLES)
    def test_same_result(self, evaluator, groups, variables):
        assert evaluator.evaluate(groups, variables) == evaluator.evaluate_structured(groups, variables)
