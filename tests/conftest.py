"""Shared test fixtures.

``WorkflowBuilder`` authors small graphs through the store API so engine tests
read as a list of nodes, paths and conditions.
"""

from typing import List, Optional, Tuple

import pytest

from nodeflow.core.models import Instance, Node, NodeStatus, NodeTaskType, NodeType
from nodeflow.execution.actions import ActionRegistry
from nodeflow.execution.engine import ExecutionContext, WorkflowEngine
from nodeflow.storage.repository import InMemoryWorkflowStore


class WorkflowBuilder:
    """Builds one workflow (with a single reviewer role) inside a store."""

    def __init__(self, store):
        self.store = store
        self.workflow = store.create_workflow("Test workflow")
        self.role = store.create_role(self.workflow.id, "Reviewer")

    def node(
        self,
        name: str,
        type: NodeType = NodeType.INTERMEDIATE,
        task_type: NodeTaskType = NodeTaskType.SCRIPT_SERVICE,
        active: bool = True,
    ) -> Node:
        role_id = self.role.id if task_type is NodeTaskType.USER else None
        return self.store.create_node(
            self.workflow.id,
            name,
            type=type,
            task_type=task_type,
            status=NodeStatus.ACTIVE if active else NodeStatus.DISABLED,
            role_id=role_id,
        )

    def start(self, name: str = "Start") -> Node:
        return self.node(name, type=NodeType.START)

    def end(self, name: str = "End") -> Node:
        return self.node(name, type=NodeType.END)

    def user(self, name: str, active: bool = True) -> Node:
        return self.node(name, task_type=NodeTaskType.USER, active=active)

    def decision(self, name: str) -> Node:
        return self.node(name, task_type=NodeTaskType.DECISION)

    def path(self, source: Node, target: Node, is_default: bool = False, sort_order: int = 0):
        return self.store.create_path(
            self.workflow.id,
            source.id,
            target.id,
            is_default=is_default,
            sort_order=sort_order,
        )

    def chain(self, *nodes: Node) -> None:
        for source, target in zip(nodes, nodes[1:]):
            self.path(source, target)

    def condition(self, node: Node, *conditions: Tuple[str, str, str], sort_order: int = 0) -> None:
        """Attach one OR-group made of the given (operand1, operator, operand2) rows."""
        group = self.store.create_condition_group(node.id, sort_order=sort_order)
        for index, (operand1, operator, operand2) in enumerate(conditions):
            self.store.create_condition(group.id, operand1, operator, operand2, sort_order=index)

    def action(self, node: Node, name: str, *params: str, sort_order: int = 0) -> None:
        self.store.create_action(node.id, name, list(params), sort_order=sort_order)

    def instance(self, actors: List[int] = ()) -> Instance:
        instance = self.store.create_instance(self.workflow.id, "ENTITY-1", user_id=1)
        for user_id in actors:
            self.store.assign_role_user(instance.id, self.role.id, user_id)
        return instance

    def context(
        self,
        instance: Optional[Instance] = None,
        current_node: Optional[Node] = None,
        **variables,
    ) -> ExecutionContext:
        return ExecutionContext(
            workflow=self.workflow,
            instance=instance or self.instance(),
            current_node=current_node,
            variables=variables,
        )


@pytest.fixture
def store():
    return InMemoryWorkflowStore()


@pytest.fixture
def builder(store):
    return WorkflowBuilder(store)


@pytest.fixture
def calls():
    """Labels recorded by the ``record`` action, in execution order."""
    return []


@pytest.fixture
def registry(calls):
    registry = ActionRegistry()
    registry.register("record", lambda context, label: calls.append(label))
    return registry


@pytest.fixture
def engine(store, registry):
    return WorkflowEngine(store, store, store, actions=store, action_handler=registry)
