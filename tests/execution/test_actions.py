"""Tests for ActionRegistry."""

import logging

from nodeflow.core.models import Action, Instance, Node, Workflow
from nodeflow.execution.actions import ActionRegistry
from nodeflow.execution.engine import ExecutionContext


def make_context():
    return ExecutionContext(
        workflow=Workflow(id=1, name="W"),
        instance=Instance(id=2, workflow_id=1, entity_id="E-1", user_id=1),
    )


NODE = Node(id=3, workflow_id=1, name="Notify")


class TestActionRegistry:
    def test_dispatches_params_in_order(self):
        received = []
        registry = ActionRegistry().register("notify", lambda ctx, *params: received.append(params))
        action = Action(id=1, node_id=3, action_function="notify", params=["a", "b", "c"])

        registry(action, NODE, make_context())

        assert received == [("a", "b", "c")]

    def test_context_is_passed_first(self):
        received = []
        registry = ActionRegistry().register("who", lambda ctx: received.append(ctx.instance.entity_id))

        registry(Action(id=1, node_id=3, action_function="who"), NODE, make_context())

        assert received == ["E-1"]

    def test_unknown_action_logs_warning(self, caplog):
        registry = ActionRegistry()

        with caplog.at_level(logging.WARNING, logger="nodeflow.execution.actions"):
            registry(Action(id=1, node_id=3, action_function="missing"), NODE, make_context())

        assert "No handler registered for action missing" in caplog.text

    def test_names_and_membership(self):
        registry = ActionRegistry().register("b", print).register("a", print)

        assert registry.names() == ["a", "b"]
        assert "a" in registry
        assert "c" not in registry
