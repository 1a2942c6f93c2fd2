"""Node condition evaluation.

A node's conditions are stored as ordered groups of comparisons. Conditions
inside a group are OR-ed, groups are AND-ed. The groups are rendered to one
expression string and handed to the expression evaluator:

    "(c1 || c2) && (c3)"

where every condition renders as "{operand1} {operator} {operand2}".
A node without conditions always passes.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from nodeflow.core.models import Condition, ConditionGroup
from nodeflow.expression.evaluator import ExpressionEvaluator
from nodeflow.expression.operators import CustomFunction, to_bool


def render_condition(condition: Condition) -> str:
    """Render one condition row."""
    return condition.render()


def render_group(group: ConditionGroup) -> Optional[str]:
    """Render the OR-joined conditions of a group, or None if it has none."""
    if not group.conditions:
        return None
    return " || ".join(render_condition(c) for c in group.conditions)


def render_conditions(groups: Iterable[ConditionGroup]) -> Optional[str]:
    """Render condition groups to a single expression.

    Returns None when no group has any condition.
    """
    rendered = [render_group(g) for g in groups]
    expressions = [f"({r})" for r in rendered if r is not None]
    if not expressions:
        return None
    return " && ".join(expressions)


class ConditionEvaluator:
    """Evaluate node condition groups.

    Usage:
        evaluator = ConditionEvaluator()
        evaluator.evaluate(groups, {"amount": 1500})
        # True if every group has at least one true condition
    """

    def __init__(self, expression_evaluator: Optional[ExpressionEvaluator] = None):
        self.expression_evaluator = expression_evaluator or ExpressionEvaluator()

    def evaluate(
        self,
        groups: List[ConditionGroup],
        variables: Optional[Mapping[str, Any]] = None,
        functions: Optional[Mapping[str, CustomFunction]] = None,
    ) -> bool:
        """Evaluate the rendered expression of the groups.

        Raises:
            ExpressionError: If a condition does not parse or evaluate.
        """
        expression = render_conditions(groups)
        if expression is None:
            return True
        return to_bool(
            self.expression_evaluator.evaluate(expression, variables, functions)
        )

    def evaluate_structured(
        self,
        groups: List[ConditionGroup],
        variables: Optional[Mapping[str, Any]] = None,
        functions: Optional[Mapping[str, CustomFunction]] = None,
    ) -> bool:
        """Evaluate condition by condition instead of through the rendered string.

        Gives the same answer as ``evaluate``; every condition is evaluated,
        so an invalid condition fails even when an earlier one already
        decided its group.
        """
        group_results = []
        for group in groups:
            if not group.conditions:
                continue
            results = [
                to_bool(
                    self.expression_evaluator.evaluate(
                        render_condition(c), variables, functions
                    )
                )
                for c in group.conditions
            ]
            group_results.append(any(results))
        return all(group_results)
