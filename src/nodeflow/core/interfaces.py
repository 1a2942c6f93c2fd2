"""Interfaces (Protocols) the execution engine depends on.

The engine never talks to a database directly. It is composed from these
narrow readers and writers, which keeps it easy to mock in tests and lets
any persistence layer drive it.

Implementations:
- SQLiteWorkflowStore: SQLite-backed storage
- InMemoryWorkflowStore: For testing
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from nodeflow.core.models import (
        Action,
        ConditionGroup,
        DecisionBranch,
        Instance,
        Node,
        NodePath,
        Result,
        RoleUser,
        Task,
    )
    from nodeflow.execution.engine import ExecutionContext


# -----------------------------------------------------------------------------
# Graph queries
# -----------------------------------------------------------------------------


@runtime_checkable
class GraphReader(Protocol):
    """Read access to the nodes and paths of a workflow."""

    def get_start_node(self, workflow_id: int) -> Optional["Node"]:
        """Return the start node of the workflow, or None."""
        ...

    def get_end_node(self, workflow_id: int) -> Optional["Node"]:
        """Return an end node of the workflow, or None."""
        ...

    def get_next_node(self, workflow_id: int, source_node_id: int) -> Optional["Node"]:
        """Return the target of the first outgoing path (sort_order, then id)."""
        ...

    def get_decision_branches(
        self, workflow_id: int, decision_node_id: int
    ) -> List["DecisionBranch"]:
        """Return the outgoing paths of a decision node ordered by sort_order."""
        ...

    def get_node_paths(self, workflow_id: int) -> List["NodePath"]:
        """Return every path of the workflow."""
        ...


@runtime_checkable
class ConditionReader(Protocol):
    """Read access to node condition groups."""

    def get_condition_groups(self, node_id: int) -> List["ConditionGroup"]:
        """Return condition groups ordered by sort_order, conditions ordered within."""
        ...


@runtime_checkable
class ActionReader(Protocol):
    """Read access to node actions."""

    def get_node_actions(self, node_id: int) -> List["Action"]:
        """Return the node's actions ordered by sort_order."""
        ...


# -----------------------------------------------------------------------------
# Task persistence
# -----------------------------------------------------------------------------


@runtime_checkable
class TaskWriter(Protocol):
    """Actor resolution and task persistence for user nodes."""

    def get_workflow_role_actors(self, instance_id: int, role_id: int) -> List["RoleUser"]:
        """Return the users bound to a role for an instance."""
        ...

    def create_task(self, instance: "Instance", node: "Node", user_id: int) -> "Task":
        """Persist a new processing task and return it."""
        ...

    def get_node_outcome_result(self, instance_id: int, node_id: int) -> Optional[str]:
        """Return the outcome code of the most recently completed task, or None."""
        ...

    def get_node_last_result(self, instance_id: int, node_id: int) -> Optional["Result"]:
        """Return the most recent result recorded for the node, or None."""
        ...


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------


@runtime_checkable
class ActionHandler(Protocol):
    """Runs one action on behalf of the engine."""

    def __call__(self, action: "Action", node: "Node", context: "ExecutionContext") -> None:
        ...
