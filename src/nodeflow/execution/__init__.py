"""Workflow execution engine."""

from nodeflow.execution.engine import WorkflowEngine, ExecutionContext, DEFAULT_MAX_STEPS
from nodeflow.execution.conditions import ConditionEvaluator, render_conditions
from nodeflow.execution.actions import ActionRegistry

__all__ = [
    "WorkflowEngine",
    "ExecutionContext",
    "DEFAULT_MAX_STEPS",
    "ConditionEvaluator",
    "render_conditions",
    "ActionRegistry",
]
