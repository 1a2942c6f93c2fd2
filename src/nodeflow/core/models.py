"""Workflow graph and runtime models.

This module defines the entities the engine reads and writes:
- Definition: Workflow, Role, Node, NodePath, ConditionGroup, Condition, Action, Outcome
- Runtime: Instance, Task, RoleUser, Result
- Read models: DecisionBranch (a path joined with its target node)

Enum values are the single-letter codes stored in the workflow tables, so a
row can be validated straight into a model.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current time used for every stored timestamp."""
    return datetime.now(timezone.utc)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------


class WorkflowStatus(str, Enum):
    """Whether a workflow (or node) may be used."""
    ACTIVE = "A"
    DISABLED = "D"


# Nodes share the workflow status codes
NodeStatus = WorkflowStatus


class NodeType(str, Enum):
    """Structural position of a node in the graph."""
    START = "S"
    INTERMEDIATE = "I"
    END = "E"


class NodeTaskType(str, Enum):
    """What happens when the engine reaches a node."""
    USER = "U"
    DECISION = "D"
    SCRIPT_SERVICE = "S"


class InstanceStatus(str, Enum):
    """Lifecycle of an instance or a task."""
    PROCESSING = "I"
    COMPLETED = "T"
    CANCELLED = "C"


TaskStatus = InstanceStatus


class CancelTrigger(str, Enum):
    """Who cancelled a task."""
    USER = "U"
    SYSTEM = "S"


# -----------------------------------------------------------------------------
# Node classification
# -----------------------------------------------------------------------------


def is_start_node(node_type: Union[NodeType, str, None]) -> bool:
    """Whether the given type is for a start node."""
    return node_type == NodeType.START


def is_end_node(node_type: Union[NodeType, str, None]) -> bool:
    """Whether the given type is for an end node."""
    return node_type == NodeType.END


def is_user_node(task_type: Union[NodeTaskType, str, None]) -> bool:
    """Whether the given task type is for a user node."""
    return task_type == NodeTaskType.USER


def is_decision_node(task_type: Union[NodeTaskType, str, None]) -> bool:
    """Whether the given task type is for a decision node."""
    return task_type == NodeTaskType.DECISION


def is_script_service_node(task_type: Union[NodeTaskType, str, None]) -> bool:
    """Whether the given task type is for a script/service node."""
    return task_type == NodeTaskType.SCRIPT_SERVICE


# -----------------------------------------------------------------------------
# Definition entities
# -----------------------------------------------------------------------------


class Entity(BaseModel):
    """Base class for stored records."""

    model_config = {"extra": "forbid"}


class Workflow(Entity):
    """Root of a graph."""
    id: int
    name: str
    description: str = ""
    status: WorkflowStatus = WorkflowStatus.ACTIVE

    @field_validator("name")
    @classmethod
    def validate_name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("workflow name cannot be empty")
        return v.strip()


class Role(Entity):
    """A workflow role that user nodes are assigned to."""
    id: int
    workflow_id: int
    name: str
    description: str = ""


class Node(Entity):
    """A vertex in a workflow graph.

    ``type`` and ``task_type`` are independent: a start node may also carry a
    script/service task type, so Start/End framing is checked first.
    """
    id: int
    workflow_id: int
    name: str
    type: NodeType = NodeType.INTERMEDIATE
    task_type: NodeTaskType = NodeTaskType.USER
    status: NodeStatus = NodeStatus.ACTIVE
    role_id: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.status is NodeStatus.ACTIVE


class NodePath(Entity):
    """Directed, orderable edge between two nodes."""
    id: int
    workflow_id: int
    source_node_id: int
    target_node_id: int
    name: Optional[str] = None
    is_default: bool = False
    sort_order: int = 0


class Condition(Entity):
    """One comparison; operands are literals or variable references."""
    id: int
    group_id: int
    operand1: str
    operator: str
    operand2: str
    sort_order: int = 0

    def render(self) -> str:
        return f"{self.operand1} {self.operator} {self.operand2}"


class ConditionGroup(Entity):
    """OR-group of conditions attached to a node."""
    id: int
    node_id: int
    sort_order: int = 0
    conditions: List[Condition] = Field(default_factory=list)


class Action(Entity):
    """A named action run when a node executes."""
    id: int
    node_id: int
    action_function: str
    params: List[str] = Field(default_factory=list)
    sort_order: int = 0

    @field_validator("params")
    @classmethod
    def validate_param_count(cls, v: List[str]) -> List[str]:
        if len(v) > 5:
            raise ValueError("an action accepts at most 5 parameters")
        return v


class Outcome(Entity):
    """A named terminal choice for a user node (e.g. approve / reject)."""
    id: int
    node_id: int
    code: str
    name: str = ""


# -----------------------------------------------------------------------------
# Runtime entities
# -----------------------------------------------------------------------------


class Instance(Entity):
    """One running execution of a workflow against a business entity."""
    id: int
    workflow_id: int
    entity_id: str
    entity_name: Optional[str] = None
    description: str = ""
    user_id: int
    status: InstanceStatus = InstanceStatus.PROCESSING
    start_date: datetime = Field(default_factory=utcnow)
    end_date: Optional[datetime] = None


class Task(Entity):
    """Pending or finished human work for a user node."""
    id: int
    instance_id: int
    node_id: int
    user_id: int
    status: TaskStatus = TaskStatus.PROCESSING
    cancel_trigger: CancelTrigger = CancelTrigger.USER
    outcome_id: Optional[int] = None
    comment: Optional[str] = None
    start_date: datetime = Field(default_factory=utcnow)
    end_date: Optional[datetime] = None


class RoleUser(Entity):
    """Binds a user to a workflow role for one instance."""
    id: int
    instance_id: int
    role_id: int
    user_id: int


class Result(Entity):
    """A value recorded by a node's execution within an instance."""
    id: int
    instance_id: int
    node_id: int
    value: Optional[str] = None
    datatype: str = "string"
    task_type: NodeTaskType = NodeTaskType.SCRIPT_SERVICE
    date: datetime = Field(default_factory=utcnow)


# -----------------------------------------------------------------------------
# Read models
# -----------------------------------------------------------------------------


class DecisionBranch(Entity):
    """An outgoing path of a decision node joined with its target node."""
    path: NodePath
    target: Node

    @property
    def is_default(self) -> bool:
        return self.path.is_default

    @property
    def sort_order(self) -> int:
        return self.path.sort_order
