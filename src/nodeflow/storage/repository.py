"""Workflow store implementations.

This module provides storage backends for workflow graphs and their runtime
records. Both satisfy every engine protocol (GraphReader, ConditionReader,
ActionReader, TaskWriter) and share one authoring API:
- SQLiteWorkflowStore: Persistent SQLite storage
- InMemoryWorkflowStore: In-memory storage for testing
"""

from __future__ import annotations

import itertools
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from nodeflow.core.exceptions import RecordNotFoundError, WorkflowValidationError
from nodeflow.core.models import (
    Action,
    CancelTrigger,
    Condition,
    ConditionGroup,
    DecisionBranch,
    Instance,
    InstanceStatus,
    Node,
    NodePath,
    NodeStatus,
    NodeTaskType,
    NodeType,
    Outcome,
    Result,
    Role,
    RoleUser,
    Task,
    TaskStatus,
    Workflow,
    WorkflowStatus,
    utcnow,
)
from nodeflow.utils.logging import get_logger

logger = get_logger(__name__)

MAX_ACTION_PARAMS = 5


# -----------------------------------------------------------------------------
# Schema
# -----------------------------------------------------------------------------

SCHEMA = """
CREATE TABLE IF NOT EXISTS workflows (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    status TEXT NOT NULL DEFAULT 'A'
);

CREATE TABLE IF NOT EXISTS workflow_roles (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    FOREIGN KEY (workflow_id) REFERENCES workflows(id)
);

CREATE TABLE IF NOT EXISTS workflow_nodes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'I',
    task_type TEXT NOT NULL DEFAULT 'U',
    status TEXT NOT NULL DEFAULT 'A',
    role_id INTEGER,
    FOREIGN KEY (workflow_id) REFERENCES workflows(id),
    FOREIGN KEY (role_id) REFERENCES workflow_roles(id)
);

CREATE INDEX IF NOT EXISTS idx_nodes_workflow_type ON workflow_nodes(workflow_id, type);

CREATE TABLE IF NOT EXISTS workflow_node_paths (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id INTEGER NOT NULL,
    source_node_id INTEGER NOT NULL,
    target_node_id INTEGER NOT NULL,
    name TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (workflow_id) REFERENCES workflows(id),
    FOREIGN KEY (source_node_id) REFERENCES workflow_nodes(id),
    FOREIGN KEY (target_node_id) REFERENCES workflow_nodes(id)
);

CREATE INDEX IF NOT EXISTS idx_paths_source ON workflow_node_paths(workflow_id, source_node_id);

CREATE TABLE IF NOT EXISTS workflow_condition_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    node_id INTEGER NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (node_id) REFERENCES workflow_nodes(id)
);

CREATE TABLE IF NOT EXISTS workflow_conditions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id INTEGER NOT NULL,
    operand1 TEXT NOT NULL,
    operator TEXT NOT NULL,
    operand2 TEXT NOT NULL,
    sort_order INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (group_id) REFERENCES workflow_condition_groups(id)
);

CREATE TABLE IF NOT EXISTS workflow_actions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    node_id INTEGER NOT NULL,
    action_function TEXT NOT NULL,
    param1 TEXT,
    param2 TEXT,
    param3 TEXT,
    param4 TEXT,
    param5 TEXT,
    sort_order INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (node_id) REFERENCES workflow_nodes(id)
);

CREATE TABLE IF NOT EXISTS workflow_outcomes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    node_id INTEGER NOT NULL,
    code TEXT NOT NULL,
    name TEXT DEFAULT '',
    FOREIGN KEY (node_id) REFERENCES workflow_nodes(id)
);

CREATE TABLE IF NOT EXISTS workflow_instances (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id INTEGER NOT NULL,
    entity_id TEXT NOT NULL,
    entity_name TEXT,
    description TEXT DEFAULT '',
    user_id INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'I',
    start_date TEXT NOT NULL,
    end_date TEXT,
    FOREIGN KEY (workflow_id) REFERENCES workflows(id)
);

CREATE TABLE IF NOT EXISTS workflow_tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    instance_id INTEGER NOT NULL,
    node_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'I',
    cancel_trigger TEXT NOT NULL DEFAULT 'U',
    outcome_id INTEGER,
    comment TEXT,
    start_date TEXT NOT NULL,
    end_date TEXT,
    FOREIGN KEY (instance_id) REFERENCES workflow_instances(id),
    FOREIGN KEY (node_id) REFERENCES workflow_nodes(id),
    FOREIGN KEY (outcome_id) REFERENCES workflow_outcomes(id)
);

CREATE INDEX IF NOT EXISTS idx_tasks_instance_node ON workflow_tasks(instance_id, node_id);

CREATE TABLE IF NOT EXISTS workflow_role_users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    instance_id INTEGER NOT NULL,
    role_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    FOREIGN KEY (instance_id) REFERENCES workflow_instances(id),
    FOREIGN KEY (role_id) REFERENCES workflow_roles(id)
);

CREATE TABLE IF NOT EXISTS workflow_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    instance_id INTEGER NOT NULL,
    node_id INTEGER NOT NULL,
    value TEXT,
    datatype TEXT NOT NULL DEFAULT 'string',
    task_type TEXT NOT NULL DEFAULT 'S',
    date TEXT NOT NULL,
    FOREIGN KEY (instance_id) REFERENCES workflow_instances(id),
    FOREIGN KEY (node_id) REFERENCES workflow_nodes(id)
);

CREATE INDEX IF NOT EXISTS idx_results_instance_node ON workflow_results(instance_id, node_id);
"""


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a timestamp to aware UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None or value.utcoffset() is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    # UTC and fixed-width so stored timestamps sort lexically in time order
    if value is None:
        return None
    return _utc(value).isoformat(timespec="microseconds")


def _check_params(params: Sequence[str]) -> List[str]:
    if len(params) > MAX_ACTION_PARAMS:
        raise WorkflowValidationError(
            f"An action accepts at most {MAX_ACTION_PARAMS} parameters",
            context={"params": list(params)},
        )
    return [str(p) for p in params]


def _duplicate_default_error(workflow_id: int, source_node_id: int) -> WorkflowValidationError:
    return WorkflowValidationError(
        "Source node already has a default path",
        context={"workflow_id": workflow_id, "source_node_id": source_node_id},
    )


# -----------------------------------------------------------------------------
# SQLite Store
# -----------------------------------------------------------------------------


class SQLiteWorkflowStore:
    """SQLite-backed workflow store.

    Tables mirror the entities of ``nodeflow.core.models``; enum columns hold
    the single-letter codes and timestamps are ISO-8601 strings.

    Usage:
        store = SQLiteWorkflowStore("workflows.db")
        workflow = store.create_workflow("Leave request")
        start = store.create_node(workflow.id, "Start", type=NodeType.START)
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        """Initialize store.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
        """
        self.db_path = str(db_path)
        self._is_memory = self.db_path == ":memory:"
        self._persistent_conn: Optional[sqlite3.Connection] = None

        # For in-memory databases, keep a persistent connection
        if self._is_memory:
            self._persistent_conn = self._create_connection()

        self._init_schema()

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, roll back on error."""
        if self._is_memory and self._persistent_conn:
            try:
                yield self._persistent_conn
                self._persistent_conn.commit()
            except Exception:
                self._persistent_conn.rollback()
                raise
        else:
            conn = self._create_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def _init_schema(self) -> None:
        with self._connection() as conn:
            conn.executescript(SCHEMA)

    def close(self) -> None:
        if self._persistent_conn is not None:
            self._persistent_conn.close()
            self._persistent_conn = None

    @staticmethod
    def _require(conn: sqlite3.Connection, table: str, record_id: int, label: str) -> sqlite3.Row:
        row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            raise RecordNotFoundError(f"{label} not found", context={"id": record_id})
        return row

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    @staticmethod
    def _row_to_node(row: sqlite3.Row) -> Node:
        return Node.model_validate(dict(row))

    @staticmethod
    def _row_to_path(row: sqlite3.Row) -> NodePath:
        data = dict(row)
        data["is_default"] = bool(data["is_default"])
        return NodePath.model_validate(data)

    @staticmethod
    def _row_to_action(row: sqlite3.Row) -> Action:
        data = dict(row)
        params = [data.pop(f"param{i}") for i in range(1, MAX_ACTION_PARAMS + 1)]
        data["params"] = [p for p in params if p is not None]
        return Action.model_validate(data)

    # -------------------------------------------------------------------------
    # Authoring
    # -------------------------------------------------------------------------

    def create_workflow(
        self,
        name: str,
        description: str = "",
        status: WorkflowStatus = WorkflowStatus.ACTIVE,
    ) -> Workflow:
        # Validate before touching the database
        Workflow(id=0, name=name, description=description, status=status)
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO workflows (name, description, status) VALUES (?, ?, ?)",
                (name.strip(), description, WorkflowStatus(status).value),
            )
            row = self._require(conn, "workflows", cursor.lastrowid, "Workflow")
        return Workflow.model_validate(dict(row))

    def create_role(self, workflow_id: int, name: str, description: str = "") -> Role:
        with self._connection() as conn:
            self._require(conn, "workflows", workflow_id, "Workflow")
            cursor = conn.execute(
                "INSERT INTO workflow_roles (workflow_id, name, description) VALUES (?, ?, ?)",
                (workflow_id, name, description),
            )
            row = self._require(conn, "workflow_roles", cursor.lastrowid, "Role")
        return Role.model_validate(dict(row))

    def create_node(
        self,
        workflow_id: int,
        name: str,
        type: NodeType = NodeType.INTERMEDIATE,
        task_type: NodeTaskType = NodeTaskType.USER,
        status: NodeStatus = NodeStatus.ACTIVE,
        role_id: Optional[int] = None,
    ) -> Node:
        with self._connection() as conn:
            self._require(conn, "workflows", workflow_id, "Workflow")
            if role_id is not None:
                self._require(conn, "workflow_roles", role_id, "Role")
            cursor = conn.execute(
                """
                INSERT INTO workflow_nodes (workflow_id, name, type, task_type, status, role_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    workflow_id,
                    name,
                    NodeType(type).value,
                    NodeTaskType(task_type).value,
                    NodeStatus(status).value,
                    role_id,
                ),
            )
            row = self._require(conn, "workflow_nodes", cursor.lastrowid, "Node")
        return self._row_to_node(row)

    def create_path(
        self,
        workflow_id: int,
        source_node_id: int,
        target_node_id: int,
        name: Optional[str] = None,
        is_default: bool = False,
        sort_order: int = 0,
    ) -> NodePath:
        """Create a path between two nodes of a workflow.

        Raises:
            RecordNotFoundError: If the workflow or either node does not exist.
            WorkflowValidationError: If a node belongs to another workflow, or
                ``is_default`` is set and the source already has a default path.
        """
        with self._connection() as conn:
            self._require(conn, "workflows", workflow_id, "Workflow")
            for node_id in (source_node_id, target_node_id):
                node = self._require(conn, "workflow_nodes", node_id, "Node")
                if node["workflow_id"] != workflow_id:
                    raise WorkflowValidationError(
                        "Path endpoints must belong to the path's workflow",
                        context={"workflow_id": workflow_id, "node_id": node_id},
                    )
            if is_default:
                existing = conn.execute(
                    """
                    SELECT id FROM workflow_node_paths
                    WHERE workflow_id = ? AND source_node_id = ? AND is_default = 1
                    """,
                    (workflow_id, source_node_id),
                ).fetchone()
                if existing is not None:
                    raise _duplicate_default_error(workflow_id, source_node_id)
            cursor = conn.execute(
                """
                INSERT INTO workflow_node_paths (
                    workflow_id, source_node_id, target_node_id, name, is_default, sort_order
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (workflow_id, source_node_id, target_node_id, name, int(is_default), sort_order),
            )
            row = self._require(conn, "workflow_node_paths", cursor.lastrowid, "Path")
        return self._row_to_path(row)

    def create_condition_group(self, node_id: int, sort_order: int = 0) -> ConditionGroup:
        with self._connection() as conn:
            self._require(conn, "workflow_nodes", node_id, "Node")
            cursor = conn.execute(
                "INSERT INTO workflow_condition_groups (node_id, sort_order) VALUES (?, ?)",
                (node_id, sort_order),
            )
        return ConditionGroup(id=cursor.lastrowid, node_id=node_id, sort_order=sort_order)

    def create_condition(
        self,
        group_id: int,
        operand1: str,
        operator: str,
        operand2: str,
        sort_order: int = 0,
    ) -> Condition:
        with self._connection() as conn:
            self._require(conn, "workflow_condition_groups", group_id, "Condition group")
            cursor = conn.execute(
                """
                INSERT INTO workflow_conditions (group_id, operand1, operator, operand2, sort_order)
                VALUES (?, ?, ?, ?, ?)
                """,
                (group_id, operand1, operator, operand2, sort_order),
            )
            row = self._require(conn, "workflow_conditions", cursor.lastrowid, "Condition")
        return Condition.model_validate(dict(row))

    def create_action(
        self,
        node_id: int,
        action_function: str,
        params: Sequence[str] = (),
        sort_order: int = 0,
    ) -> Action:
        values = _check_params(params)
        padded = values + [None] * (MAX_ACTION_PARAMS - len(values))
        with self._connection() as conn:
            self._require(conn, "workflow_nodes", node_id, "Node")
            cursor = conn.execute(
                """
                INSERT INTO workflow_actions (
                    node_id, action_function, param1, param2, param3, param4, param5, sort_order
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (node_id, action_function, *padded, sort_order),
            )
            row = self._require(conn, "workflow_actions", cursor.lastrowid, "Action")
        return self._row_to_action(row)

    def create_outcome(self, node_id: int, code: str, name: str = "") -> Outcome:
        with self._connection() as conn:
            self._require(conn, "workflow_nodes", node_id, "Node")
            cursor = conn.execute(
                "INSERT INTO workflow_outcomes (node_id, code, name) VALUES (?, ?, ?)",
                (node_id, code, name),
            )
        return Outcome(id=cursor.lastrowid, node_id=node_id, code=code, name=name)

    # -------------------------------------------------------------------------
    # Instances, tasks and results
    # -------------------------------------------------------------------------

    def create_instance(
        self,
        workflow_id: int,
        entity_id: str,
        user_id: int,
        entity_name: Optional[str] = None,
        description: str = "",
    ) -> Instance:
        with self._connection() as conn:
            self._require(conn, "workflows", workflow_id, "Workflow")
            cursor = conn.execute(
                """
                INSERT INTO workflow_instances (
                    workflow_id, entity_id, entity_name, description, user_id, status, start_date
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    workflow_id,
                    entity_id,
                    entity_name,
                    description,
                    user_id,
                    InstanceStatus.PROCESSING.value,
                    _timestamp(utcnow()),
                ),
            )
            row = self._require(conn, "workflow_instances", cursor.lastrowid, "Instance")
        return Instance.model_validate(dict(row))

    def update_instance_status(self, instance_id: int, status: InstanceStatus) -> Instance:
        """Set an instance's status; leaving Processing stamps the end date."""
        status = InstanceStatus(status)
        end_date = None if status is InstanceStatus.PROCESSING else _timestamp(utcnow())
        with self._connection() as conn:
            self._require(conn, "workflow_instances", instance_id, "Instance")
            conn.execute(
                "UPDATE workflow_instances SET status = ?, end_date = ? WHERE id = ?",
                (status.value, end_date, instance_id),
            )
            row = self._require(conn, "workflow_instances", instance_id, "Instance")
        return Instance.model_validate(dict(row))

    def assign_role_user(self, instance_id: int, role_id: int, user_id: int) -> RoleUser:
        with self._connection() as conn:
            self._require(conn, "workflow_instances", instance_id, "Instance")
            self._require(conn, "workflow_roles", role_id, "Role")
            cursor = conn.execute(
                "INSERT INTO workflow_role_users (instance_id, role_id, user_id) VALUES (?, ?, ?)",
                (instance_id, role_id, user_id),
            )
        return RoleUser(id=cursor.lastrowid, instance_id=instance_id, role_id=role_id, user_id=user_id)

    def create_task(self, instance: Instance, node: Node, user_id: int) -> Task:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO workflow_tasks (
                    instance_id, node_id, user_id, status, cancel_trigger, start_date
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    instance.id,
                    node.id,
                    user_id,
                    TaskStatus.PROCESSING.value,
                    CancelTrigger.USER.value,
                    _timestamp(utcnow()),
                ),
            )
            row = self._require(conn, "workflow_tasks", cursor.lastrowid, "Task")
        logger.debug(
            "Created task",
            extra={"task_id": row["id"], "instance_id": instance.id, "node_id": node.id},
        )
        return Task.model_validate(dict(row))

    def complete_task(
        self,
        task_id: int,
        outcome_id: Optional[int] = None,
        comment: Optional[str] = None,
        end_date: Optional[datetime] = None,
    ) -> Task:
        """Mark a task completed, optionally with the chosen outcome.

        Raises:
            RecordNotFoundError: If the task or outcome does not exist.
            WorkflowValidationError: If the outcome belongs to another node.
        """
        with self._connection() as conn:
            task = self._require(conn, "workflow_tasks", task_id, "Task")
            if outcome_id is not None:
                outcome = self._require(conn, "workflow_outcomes", outcome_id, "Outcome")
                if outcome["node_id"] != task["node_id"]:
                    raise WorkflowValidationError(
                        "Outcome does not belong to the task's node",
                        context={"task_id": task_id, "outcome_id": outcome_id},
                    )
            conn.execute(
                """
                UPDATE workflow_tasks
                SET status = ?, outcome_id = ?, comment = ?, end_date = ?
                WHERE id = ?
                """,
                (
                    TaskStatus.COMPLETED.value,
                    outcome_id,
                    comment,
                    _timestamp(end_date or utcnow()),
                    task_id,
                ),
            )
            row = self._require(conn, "workflow_tasks", task_id, "Task")
        return Task.model_validate(dict(row))

    def cancel_task(
        self,
        task_id: int,
        trigger: CancelTrigger = CancelTrigger.USER,
        comment: Optional[str] = None,
    ) -> Task:
        with self._connection() as conn:
            self._require(conn, "workflow_tasks", task_id, "Task")
            conn.execute(
                """
                UPDATE workflow_tasks
                SET status = ?, cancel_trigger = ?, comment = ?, end_date = ?
                WHERE id = ?
                """,
                (
                    TaskStatus.CANCELLED.value,
                    CancelTrigger(trigger).value,
                    comment,
                    _timestamp(utcnow()),
                    task_id,
                ),
            )
            row = self._require(conn, "workflow_tasks", task_id, "Task")
        return Task.model_validate(dict(row))

    def record_result(
        self,
        instance_id: int,
        node_id: int,
        value: Any,
        datatype: str = "string",
        task_type: NodeTaskType = NodeTaskType.SCRIPT_SERVICE,
        date: Optional[datetime] = None,
    ) -> Result:
        with self._connection() as conn:
            self._require(conn, "workflow_instances", instance_id, "Instance")
            self._require(conn, "workflow_nodes", node_id, "Node")
            cursor = conn.execute(
                """
                INSERT INTO workflow_results (instance_id, node_id, value, datatype, task_type, date)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    instance_id,
                    node_id,
                    None if value is None else str(value),
                    datatype,
                    NodeTaskType(task_type).value,
                    _timestamp(date or utcnow()),
                ),
            )
            row = self._require(conn, "workflow_results", cursor.lastrowid, "Result")
        return Result.model_validate(dict(row))

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _get(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        with self._connection() as conn:
            row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return dict(row) if row else None

    def get_workflow(self, workflow_id: int) -> Optional[Workflow]:
        row = self._get("workflows", workflow_id)
        return Workflow.model_validate(row) if row else None

    def get_node(self, node_id: int) -> Optional[Node]:
        row = self._get("workflow_nodes", node_id)
        return Node.model_validate(row) if row else None

    def get_instance(self, instance_id: int) -> Optional[Instance]:
        row = self._get("workflow_instances", instance_id)
        return Instance.model_validate(row) if row else None

    def get_task(self, task_id: int) -> Optional[Task]:
        row = self._get("workflow_tasks", task_id)
        return Task.model_validate(row) if row else None

    def list_tasks(self, instance_id: int, status: Optional[TaskStatus] = None) -> List[Task]:
        query = "SELECT * FROM workflow_tasks WHERE instance_id = ?"
        params: List[Any] = [instance_id]
        if status is not None:
            query += " AND status = ?"
            params.append(TaskStatus(status).value)
        query += " ORDER BY id"
        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [Task.model_validate(dict(r)) for r in rows]

    def get_current_node(self, instance_id: int) -> Optional[Node]:
        """Return the node of the instance's latest processing task, or None."""
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT n.* FROM workflow_tasks t
                JOIN workflow_nodes n ON n.id = t.node_id
                WHERE t.instance_id = ? AND t.status = ?
                ORDER BY t.start_date DESC, t.id DESC
                LIMIT 1
                """,
                (instance_id, TaskStatus.PROCESSING.value),
            ).fetchone()
        return self._row_to_node(row) if row else None

    # -------------------------------------------------------------------------
    # GraphReader
    # -------------------------------------------------------------------------

    def _node_of_type(self, workflow_id: int, node_type: NodeType) -> Optional[Node]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM workflow_nodes WHERE workflow_id = ? AND type = ? ORDER BY id LIMIT 1",
                (workflow_id, node_type.value),
            ).fetchone()
        return self._row_to_node(row) if row else None

    def get_start_node(self, workflow_id: int) -> Optional[Node]:
        return self._node_of_type(workflow_id, NodeType.START)

    def get_end_node(self, workflow_id: int) -> Optional[Node]:
        return self._node_of_type(workflow_id, NodeType.END)

    def get_next_node(self, workflow_id: int, source_node_id: int) -> Optional[Node]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT n.* FROM workflow_node_paths p
                JOIN workflow_nodes n ON n.id = p.target_node_id
                WHERE p.workflow_id = ? AND p.source_node_id = ?
                ORDER BY p.sort_order, p.id
                LIMIT 1
                """,
                (workflow_id, source_node_id),
            ).fetchone()
        return self._row_to_node(row) if row else None

    def get_decision_branches(self, workflow_id: int, decision_node_id: int) -> List[DecisionBranch]:
        with self._connection() as conn:
            paths = conn.execute(
                """
                SELECT * FROM workflow_node_paths
                WHERE workflow_id = ? AND source_node_id = ?
                ORDER BY sort_order, id
                """,
                (workflow_id, decision_node_id),
            ).fetchall()
            branches = []
            for row in paths:
                target = self._require(conn, "workflow_nodes", row["target_node_id"], "Node")
                branches.append(
                    DecisionBranch(path=self._row_to_path(row), target=self._row_to_node(target))
                )
        return branches

    def get_node_paths(self, workflow_id: int) -> List[NodePath]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM workflow_node_paths WHERE workflow_id = ? ORDER BY sort_order, id",
                (workflow_id,),
            ).fetchall()
        return [self._row_to_path(r) for r in rows]

    # -------------------------------------------------------------------------
    # ConditionReader / ActionReader
    # -------------------------------------------------------------------------

    def get_condition_groups(self, node_id: int) -> List[ConditionGroup]:
        with self._connection() as conn:
            groups = conn.execute(
                "SELECT * FROM workflow_condition_groups WHERE node_id = ? ORDER BY sort_order, id",
                (node_id,),
            ).fetchall()
            result = []
            for group in groups:
                conditions = conn.execute(
                    "SELECT * FROM workflow_conditions WHERE group_id = ? ORDER BY sort_order, id",
                    (group["id"],),
                ).fetchall()
                result.append(
                    ConditionGroup(
                        id=group["id"],
                        node_id=group["node_id"],
                        sort_order=group["sort_order"],
                        conditions=[Condition.model_validate(dict(c)) for c in conditions],
                    )
                )
        return result

    def get_node_actions(self, node_id: int) -> List[Action]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM workflow_actions WHERE node_id = ? ORDER BY sort_order, id",
                (node_id,),
            ).fetchall()
        return [self._row_to_action(r) for r in rows]

    # -------------------------------------------------------------------------
    # TaskWriter
    # -------------------------------------------------------------------------

    def get_workflow_role_actors(self, instance_id: int, role_id: int) -> List[RoleUser]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM workflow_role_users WHERE instance_id = ? AND role_id = ? ORDER BY id",
                (instance_id, role_id),
            ).fetchall()
        return [RoleUser.model_validate(dict(r)) for r in rows]

    def get_node_outcome_result(self, instance_id: int, node_id: int) -> Optional[str]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT o.code FROM workflow_tasks t
                JOIN workflow_outcomes o ON o.id = t.outcome_id AND o.node_id = t.node_id
                WHERE t.instance_id = ? AND t.node_id = ? AND t.status = ?
                ORDER BY t.end_date DESC, t.id DESC
                LIMIT 1
                """,
                (instance_id, node_id, TaskStatus.COMPLETED.value),
            ).fetchone()
        return row["code"] if row else None

    def get_node_last_result(self, instance_id: int, node_id: int) -> Optional[Result]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM workflow_results
                WHERE instance_id = ? AND node_id = ?
                ORDER BY date DESC, id DESC
                LIMIT 1
                """,
                (instance_id, node_id),
            ).fetchone()
        return Result.model_validate(dict(row)) if row else None


# -----------------------------------------------------------------------------
# In-Memory Store
# -----------------------------------------------------------------------------


def _ordered(items: Iterable[Any]) -> List[Any]:
    return sorted(items, key=lambda item: (item.sort_order, item.id))


class InMemoryWorkflowStore:
    """In-memory workflow store for testing.

    This provides the same interface as SQLiteWorkflowStore
    but stores everything in memory. Useful for unit tests.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self._workflows: Dict[int, Workflow] = {}
        self._roles: Dict[int, Role] = {}
        self._nodes: Dict[int, Node] = {}
        self._paths: Dict[int, NodePath] = {}
        self._groups: Dict[int, ConditionGroup] = {}
        self._conditions: Dict[int, Condition] = {}
        self._actions: Dict[int, Action] = {}
        self._outcomes: Dict[int, Outcome] = {}
        self._instances: Dict[int, Instance] = {}
        self._tasks: Dict[int, Task] = {}
        self._role_users: Dict[int, RoleUser] = {}
        self._results: Dict[int, Result] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    @staticmethod
    def _require(records: Dict[int, Any], record_id: int, label: str) -> Any:
        record = records.get(record_id)
        if record is None:
            raise RecordNotFoundError(f"{label} not found", context={"id": record_id})
        return record

    # -------------------------------------------------------------------------
    # Authoring
    # -------------------------------------------------------------------------

    def create_workflow(
        self,
        name: str,
        description: str = "",
        status: WorkflowStatus = WorkflowStatus.ACTIVE,
    ) -> Workflow:
        workflow = Workflow(id=self._next_id(), name=name, description=description, status=status)
        self._workflows[workflow.id] = workflow
        return workflow.model_copy()

    def create_role(self, workflow_id: int, name: str, description: str = "") -> Role:
        self._require(self._workflows, workflow_id, "Workflow")
        role = Role(id=self._next_id(), workflow_id=workflow_id, name=name, description=description)
        self._roles[role.id] = role
        return role

    def create_node(
        self,
        workflow_id: int,
        name: str,
        type: NodeType = NodeType.INTERMEDIATE,
        task_type: NodeTaskType = NodeTaskType.USER,
        status: NodeStatus = NodeStatus.ACTIVE,
        role_id: Optional[int] = None,
    ) -> Node:
        self._require(self._workflows, workflow_id, "Workflow")
        if role_id is not None:
            self._require(self._roles, role_id, "Role")
        node = Node(
            id=self._next_id(),
            workflow_id=workflow_id,
            name=name,
            type=type,
            task_type=task_type,
            status=status,
            role_id=role_id,
        )
        self._nodes[node.id] = node
        return node.model_copy()

    def create_path(
        self,
        workflow_id: int,
        source_node_id: int,
        target_node_id: int,
        name: Optional[str] = None,
        is_default: bool = False,
        sort_order: int = 0,
    ) -> NodePath:
        self._require(self._workflows, workflow_id, "Workflow")
        for node_id in (source_node_id, target_node_id):
            node = self._require(self._nodes, node_id, "Node")
            if node.workflow_id != workflow_id:
                raise WorkflowValidationError(
                    "Path endpoints must belong to the path's workflow",
                    context={"workflow_id": workflow_id, "node_id": node_id},
                )
        if is_default and any(
            p.is_default
            for p in self._paths.values()
            if p.workflow_id == workflow_id and p.source_node_id == source_node_id
        ):
            raise _duplicate_default_error(workflow_id, source_node_id)
        path = NodePath(
            id=self._next_id(),
            workflow_id=workflow_id,
            source_node_id=source_node_id,
            target_node_id=target_node_id,
            name=name,
            is_default=is_default,
            sort_order=sort_order,
        )
        self._paths[path.id] = path
        return path

    def create_condition_group(self, node_id: int, sort_order: int = 0) -> ConditionGroup:
        self._require(self._nodes, node_id, "Node")
        group = ConditionGroup(id=self._next_id(), node_id=node_id, sort_order=sort_order)
        self._groups[group.id] = group
        return group

    def create_condition(
        self,
        group_id: int,
        operand1: str,
        operator: str,
        operand2: str,
        sort_order: int = 0,
    ) -> Condition:
        self._require(self._groups, group_id, "Condition group")
        condition = Condition(
            id=self._next_id(),
            group_id=group_id,
            operand1=operand1,
            operator=operator,
            operand2=operand2,
            sort_order=sort_order,
        )
        self._conditions[condition.id] = condition
        return condition

    def create_action(
        self,
        node_id: int,
        action_function: str,
        params: Sequence[str] = (),
        sort_order: int = 0,
    ) -> Action:
        values = _check_params(params)
        self._require(self._nodes, node_id, "Node")
        action = Action(
            id=self._next_id(),
            node_id=node_id,
            action_function=action_function,
            params=values,
            sort_order=sort_order,
        )
        self._actions[action.id] = action
        return action

    def create_outcome(self, node_id: int, code: str, name: str = "") -> Outcome:
        self._require(self._nodes, node_id, "Node")
        outcome = Outcome(id=self._next_id(), node_id=node_id, code=code, name=name)
        self._outcomes[outcome.id] = outcome
        return outcome

    # -------------------------------------------------------------------------
    # Instances, tasks and results
    # -------------------------------------------------------------------------

    def create_instance(
        self,
        workflow_id: int,
        entity_id: str,
        user_id: int,
        entity_name: Optional[str] = None,
        description: str = "",
    ) -> Instance:
        self._require(self._workflows, workflow_id, "Workflow")
        instance = Instance(
            id=self._next_id(),
            workflow_id=workflow_id,
            entity_id=entity_id,
            entity_name=entity_name,
            description=description,
            user_id=user_id,
        )
        self._instances[instance.id] = instance
        return instance.model_copy()

    def update_instance_status(self, instance_id: int, status: InstanceStatus) -> Instance:
        instance = self._require(self._instances, instance_id, "Instance")
        status = InstanceStatus(status)
        instance.status = status
        instance.end_date = None if status is InstanceStatus.PROCESSING else utcnow()
        return instance.model_copy()

    def assign_role_user(self, instance_id: int, role_id: int, user_id: int) -> RoleUser:
        self._require(self._instances, instance_id, "Instance")
        self._require(self._roles, role_id, "Role")
        role_user = RoleUser(
            id=self._next_id(), instance_id=instance_id, role_id=role_id, user_id=user_id
        )
        self._role_users[role_user.id] = role_user
        return role_user

    def create_task(self, instance: Instance, node: Node, user_id: int) -> Task:
        task = Task(id=self._next_id(), instance_id=instance.id, node_id=node.id, user_id=user_id)
        self._tasks[task.id] = task
        logger.debug(
            "Created task",
            extra={"task_id": task.id, "instance_id": instance.id, "node_id": node.id},
        )
        return task.model_copy()

    def complete_task(
        self,
        task_id: int,
        outcome_id: Optional[int] = None,
        comment: Optional[str] = None,
        end_date: Optional[datetime] = None,
    ) -> Task:
        task = self._require(self._tasks, task_id, "Task")
        if outcome_id is not None:
            outcome = self._require(self._outcomes, outcome_id, "Outcome")
            if outcome.node_id != task.node_id:
                raise WorkflowValidationError(
                    "Outcome does not belong to the task's node",
                    context={"task_id": task_id, "outcome_id": outcome_id},
                )
        task.status = TaskStatus.COMPLETED
        task.outcome_id = outcome_id
        task.comment = comment
        task.end_date = _utc(end_date) or utcnow()
        return task.model_copy()

    def cancel_task(
        self,
        task_id: int,
        trigger: CancelTrigger = CancelTrigger.USER,
        comment: Optional[str] = None,
    ) -> Task:
        task = self._require(self._tasks, task_id, "Task")
        task.status = TaskStatus.CANCELLED
        task.cancel_trigger = CancelTrigger(trigger)
        task.comment = comment
        task.end_date = utcnow()
        return task.model_copy()

    def record_result(
        self,
        instance_id: int,
        node_id: int,
        value: Any,
        datatype: str = "string",
        task_type: NodeTaskType = NodeTaskType.SCRIPT_SERVICE,
        date: Optional[datetime] = None,
    ) -> Result:
        self._require(self._instances, instance_id, "Instance")
        self._require(self._nodes, node_id, "Node")
        result = Result(
            id=self._next_id(),
            instance_id=instance_id,
            node_id=node_id,
            value=None if value is None else str(value),
            datatype=datatype,
            task_type=task_type,
            date=_utc(date) or utcnow(),
        )
        self._results[result.id] = result
        return result

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_workflow(self, workflow_id: int) -> Optional[Workflow]:
        workflow = self._workflows.get(workflow_id)
        return workflow.model_copy() if workflow else None

    def get_node(self, node_id: int) -> Optional[Node]:
        node = self._nodes.get(node_id)
        return node.model_copy() if node else None

    def get_instance(self, instance_id: int) -> Optional[Instance]:
        instance = self._instances.get(instance_id)
        return instance.model_copy() if instance else None

    def get_task(self, task_id: int) -> Optional[Task]:
        task = self._tasks.get(task_id)
        return task.model_copy() if task else None

    def list_tasks(self, instance_id: int, status: Optional[TaskStatus] = None) -> List[Task]:
        tasks = [
            t.model_copy()
            for t in self._tasks.values()
            if t.instance_id == instance_id
            and (status is None or t.status is TaskStatus(status))
        ]
        return sorted(tasks, key=lambda t: t.id)

    def get_current_node(self, instance_id: int) -> Optional[Node]:
        processing = [
            t
            for t in self._tasks.values()
            if t.instance_id == instance_id and t.status is TaskStatus.PROCESSING
        ]
        if not processing:
            return None
        latest = max(processing, key=lambda t: (t.start_date, t.id))
        node = self._nodes.get(latest.node_id)
        return node.model_copy() if node else None

    # -------------------------------------------------------------------------
    # GraphReader
    # -------------------------------------------------------------------------

    def _node_of_type(self, workflow_id: int, node_type: NodeType) -> Optional[Node]:
        matches = [
            n for n in self._nodes.values()
            if n.workflow_id == workflow_id and n.type is node_type
        ]
        return min(matches, key=lambda n: n.id).model_copy() if matches else None

    def get_start_node(self, workflow_id: int) -> Optional[Node]:
        return self._node_of_type(workflow_id, NodeType.START)

    def get_end_node(self, workflow_id: int) -> Optional[Node]:
        return self._node_of_type(workflow_id, NodeType.END)

    def _outgoing(self, workflow_id: int, source_node_id: int) -> List[NodePath]:
        return _ordered(
            p for p in self._paths.values()
            if p.workflow_id == workflow_id and p.source_node_id == source_node_id
        )

    def get_next_node(self, workflow_id: int, source_node_id: int) -> Optional[Node]:
        paths = self._outgoing(workflow_id, source_node_id)
        if not paths:
            return None
        node = self._nodes.get(paths[0].target_node_id)
        return node.model_copy() if node else None

    def get_decision_branches(self, workflow_id: int, decision_node_id: int) -> List[DecisionBranch]:
        return [
            DecisionBranch(
                path=p,
                target=self._require(self._nodes, p.target_node_id, "Node").model_copy(),
            )
            for p in self._outgoing(workflow_id, decision_node_id)
        ]

    def get_node_paths(self, workflow_id: int) -> List[NodePath]:
        return _ordered(p for p in self._paths.values() if p.workflow_id == workflow_id)

    # -------------------------------------------------------------------------
    # ConditionReader / ActionReader
    # -------------------------------------------------------------------------

    def get_condition_groups(self, node_id: int) -> List[ConditionGroup]:
        groups = _ordered(g for g in self._groups.values() if g.node_id == node_id)
        return [
            group.model_copy(
                update={
                    "conditions": _ordered(
                        c for c in self._conditions.values() if c.group_id == group.id
                    )
                }
            )
            for group in groups
        ]

    def get_node_actions(self, node_id: int) -> List[Action]:
        return _ordered(a for a in self._actions.values() if a.node_id == node_id)

    # -------------------------------------------------------------------------
    # TaskWriter
    # -------------------------------------------------------------------------

    def get_workflow_role_actors(self, instance_id: int, role_id: int) -> List[RoleUser]:
        return sorted(
            (
                ru for ru in self._role_users.values()
                if ru.instance_id == instance_id and ru.role_id == role_id
            ),
            key=lambda ru: ru.id,
        )

    def get_node_outcome_result(self, instance_id: int, node_id: int) -> Optional[str]:
        completed = [
            t for t in self._tasks.values()
            if t.instance_id == instance_id
            and t.node_id == node_id
            and t.status is TaskStatus.COMPLETED
            and t.outcome_id in self._outcomes
            and self._outcomes[t.outcome_id].node_id == node_id
        ]
        if not completed:
            return None
        latest = max(completed, key=lambda t: (t.end_date, t.id))
        return self._outcomes[latest.outcome_id].code

    def get_node_last_result(self, instance_id: int, node_id: int) -> Optional[Result]:
        results = [
            r for r in self._results.values()
            if r.instance_id == instance_id and r.node_id == node_id
        ]
        if not results:
            return None
        return max(results, key=lambda r: (r.date, r.id))
