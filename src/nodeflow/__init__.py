"""nodeflow - workflow graph traversal with condition expressions."""

from typing import TYPE_CHECKING

__all__ = ["Settings", "WorkflowEngine", "ExecutionContext", "ExpressionEvaluator"]

if TYPE_CHECKING:
    from .config.settings import Settings
    from .execution.engine import ExecutionContext, WorkflowEngine
    from .expression.evaluator import ExpressionEvaluator


def __getattr__(name: str):
    if name == "Settings":
        from .config.settings import Settings

        return Settings
    if name in ("WorkflowEngine", "ExecutionContext"):
        from .execution import engine

        return getattr(engine, name)
    if name == "ExpressionEvaluator":
        from .expression.evaluator import ExpressionEvaluator

        return ExpressionEvaluator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
