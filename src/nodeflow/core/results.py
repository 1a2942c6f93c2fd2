"""Outcome value objects returned by the execution engine.

Node-level results are produced by one node handler and consumed by the
traversal loop; ``WorkflowResult`` is what ``WorkflowEngine.execute`` returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from nodeflow.core.models import Node, Task


class ExecutionState(str, Enum):
    """States of one traversal call."""
    IDLE = "idle"
    RUNNING = "running"
    AWAITING_USER = "awaiting_user"
    COMPLETED = "completed"
    HALTED = "halted"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionState.AWAITING_USER,
            ExecutionState.COMPLETED,
            ExecutionState.HALTED,
        )


class HaltReason(str, Enum):
    """Why a traversal stopped without reaching an end node."""
    NO_START_NODE = "no_start_node"
    NO_NEXT_NODE = "no_next_node"
    NO_ACTORS = "no_actors"
    NO_BRANCH = "no_branch"
    CONDITIONS_NOT_MET = "conditions_not_met"


@dataclass(frozen=True)
class UserNodeResult:
    """Result of executing a user node."""
    end_reached: bool = False
    tasks: Tuple[Task, ...] = ()


@dataclass(frozen=True)
class DecisionResult:
    """Result of executing a decision node: the chosen branch target, if any."""
    next_node: Optional[Node] = None


@dataclass(frozen=True)
class ScriptServiceResult:
    """Result of executing a script/service node."""
    end_reached: bool = False
    success: bool = False


@dataclass(frozen=True)
class WorkflowResult:
    """Result of one ``WorkflowEngine.execute`` call."""
    end_reached: bool
    state: ExecutionState
    halt_reason: Optional[HaltReason] = None
    path: Tuple[int, ...] = ()
    tasks: Tuple[Task, ...] = ()
    last_node: Optional[Node] = None

    @property
    def completed(self) -> bool:
        return self.state is ExecutionState.COMPLETED

    @property
    def awaiting_user(self) -> bool:
        return self.state is ExecutionState.AWAITING_USER

    @property
    def halted(self) -> bool:
        return self.state is ExecutionState.HALTED
