"""Named node actions.

Actions are stored against nodes as an ``action_function`` name plus up to
five string parameters. ``ActionRegistry`` maps those names to callables and
is the default ``ActionHandler`` of the engine. Actions whose name is not
registered are logged and skipped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List

from nodeflow.core.models import Action, Node
from nodeflow.utils.logging import get_logger

if TYPE_CHECKING:
    from nodeflow.execution.engine import ExecutionContext

logger = get_logger(__name__)

ActionFunction = Callable[..., Any]


class ActionRegistry:
    """Dispatches actions to registered callables.

    Registered callables receive the execution context, then the action's
    parameters in order:

        registry = ActionRegistry()
        registry.register("notify", lambda ctx, channel: send(channel, ctx.instance.id))
    """

    def __init__(self) -> None:
        self._functions: Dict[str, ActionFunction] = {}

    def register(self, name: str, function: ActionFunction) -> "ActionRegistry":
        self._functions[name] = function
        return self

    def names(self) -> List[str]:
        return sorted(self._functions)

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def __call__(self, action: Action, node: Node, context: "ExecutionContext") -> None:
        function = self._functions.get(action.action_function)
        if function is None:
            logger.warning(
                "No handler registered for action %s of node %s",
                action.action_function,
                node.name,
                extra={"action_id": action.id, "node_id": node.id},
            )
            return

        logger.info(
            "Run action %s for node %s",
            action.action_function,
            node.name,
            extra={"action_id": action.id, "node_id": node.id},
        )
        function(context, *action.params)
