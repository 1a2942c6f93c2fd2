"""Workflow traversal engine.

This module walks one running instance through its workflow graph.

The engine loop, per visited node:
1. Inactive nodes are passed through to their next node.
2. Start nodes evaluate their conditions, run their actions when the
   conditions pass, and advance.
3. End nodes behave like start nodes, then run the end-node extension point
   and complete the traversal.
4. User nodes create one task per role actor and suspend the traversal.
5. Decision nodes pick a branch (first passing target in order, else the
   default) and continue past the chosen target.
6. Script/service nodes halt when their conditions fail, otherwise run their
   actions and advance.

A traversal that cannot continue (no start node, no next node, no actors, no
branch, failed conditions) halts; halting is reported through the result, not
raised. Expression errors and storage errors propagate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from nodeflow.core.exceptions import (
    ExecutionError,
    IncorrectExpressionError,
    TraversalLimitError,
)
from nodeflow.core.interfaces import (
    ActionHandler,
    ActionReader,
    ConditionReader,
    GraphReader,
    TaskWriter,
)
from nodeflow.core.models import (
    Instance,
    Node,
    Workflow,
    is_decision_node,
    is_end_node,
    is_script_service_node,
    is_start_node,
    is_user_node,
)
from nodeflow.core.results import (
    DecisionResult,
    ExecutionState,
    HaltReason,
    ScriptServiceResult,
    UserNodeResult,
    WorkflowResult,
)
from nodeflow.execution.actions import ActionRegistry
from nodeflow.execution.conditions import ConditionEvaluator
from nodeflow.expression.evaluator import ExpressionEvaluator
from nodeflow.expression.operators import CustomFunction
from nodeflow.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_STEPS = 1000


def _node_id(function: str, value: Any) -> int:
    """Coerce a function argument to a node id."""
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise IncorrectExpressionError(
            f"{function}() expects a node id, got {value!r}",
            context={"function": function, "argument": value},
        ) from exc


@dataclass
class ExecutionContext:
    """Transient state for one traversal call.

    ``current_node`` is where traversal resumes; None starts at the
    workflow's start node. The engine updates it as it walks and clears it
    when the traversal suspends or halts.
    """
    workflow: Workflow
    instance: Instance
    current_node: Optional[Node] = None
    variables: Dict[str, Any] = field(default_factory=dict)


class WorkflowEngine:
    """Executes workflow instances against injected readers and writers.

    Usage:
        store = SQLiteWorkflowStore("workflows.db")
        engine = WorkflowEngine(store, store, store, actions=store)
        result = engine.execute(ExecutionContext(workflow, instance))
        if result.awaiting_user:
            notify(result.tasks)
    """

    def __init__(
        self,
        graph: GraphReader,
        conditions: ConditionReader,
        tasks: TaskWriter,
        actions: Optional[ActionReader] = None,
        action_handler: Optional[ActionHandler] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
    ):
        """Initialize the engine.

        Args:
            graph: Node and path queries.
            conditions: Condition group queries.
            tasks: Actor resolution and task persistence.
            actions: Node action queries. Without it, nodes run no actions.
            action_handler: Runs one action. Defaults to an empty ActionRegistry.
            evaluator: Expression evaluator shared by every condition.
            max_steps: Visited-node limit for a single traversal call.
        """
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.graph = graph
        self.conditions = conditions
        self.tasks = tasks
        self.actions = actions
        self.action_handler = action_handler or ActionRegistry()
        self.condition_evaluator = ConditionEvaluator(evaluator)
        self.max_steps = max_steps

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def execute(self, context: ExecutionContext) -> WorkflowResult:
        """Run the instance until it suspends, completes or halts.

        Raises:
            TraversalLimitError: If more than ``max_steps`` nodes are visited.
            ExpressionError: If a node condition is malformed.
        """
        workflow_id = context.workflow.id
        log_extra = {"workflow_id": workflow_id, "instance_id": context.instance.id}

        node = context.current_node
        if node is None:
            node = self.graph.get_start_node(workflow_id)
            if node is None:
                logger.error("Workflow has no start node", extra=log_extra)
                return WorkflowResult(
                    end_reached=False,
                    state=ExecutionState.HALTED,
                    halt_reason=HaltReason.NO_START_NODE,
                )

        state = ExecutionState.RUNNING
        path: List[int] = []
        last_node: Optional[Node] = None
        steps = 0

        while state is ExecutionState.RUNNING:
            if node is None:
                logger.warning(
                    "No next node after %s",
                    last_node.name if last_node else "<none>",
                    extra=log_extra,
                )
                return self._halt(context, HaltReason.NO_NEXT_NODE, path, last_node)

            steps = self._visit(node, steps, path, context)
            last_node = node

            if not node.is_active:
                logger.debug("Skip inactive node %s", node.name, extra=log_extra)
                node = self.graph.get_next_node(workflow_id, node.id)
                continue

            if is_start_node(node.type):
                self._run_node(node, context)
                node = self.graph.get_next_node(workflow_id, node.id)
                continue

            if is_end_node(node.type):
                self._run_node(node, context)
                self.execute_end_node_actions(node, context)
                state = ExecutionState.COMPLETED
                logger.info("Workflow end reached at %s", node.name, extra=log_extra)
                break

            if is_user_node(node.task_type):
                user_result = self._execute_user_node(node, context)
                if not user_result.tasks:
                    return self._halt(context, HaltReason.NO_ACTORS, path, node)
                context.current_node = None
                return WorkflowResult(
                    end_reached=user_result.end_reached,
                    state=ExecutionState.AWAITING_USER,
                    path=tuple(path),
                    tasks=user_result.tasks,
                    last_node=node,
                )

            if is_decision_node(node.task_type):
                decision = self._execute_decision_node(node, context)
                if decision.next_node is None:
                    return self._halt(context, HaltReason.NO_BRANCH, path, node)
                chosen = decision.next_node
                steps = self._visit(chosen, steps, path, context)
                last_node = chosen
                self._run_actions(chosen, context)
                node = self.graph.get_next_node(workflow_id, chosen.id)
                continue

            if is_script_service_node(node.task_type):
                script_result = self._execute_script_service_node(node, context)
                if not script_result.success:
                    return self._halt(context, HaltReason.CONDITIONS_NOT_MET, path, node)
                node = self.graph.get_next_node(workflow_id, node.id)
                continue

            raise ExecutionError(
                f"Unhandled task type for node {node.name}",
                context={"node_id": node.id, "task_type": node.task_type},
            )

        return WorkflowResult(
            end_reached=True,
            state=state,
            path=tuple(path),
            last_node=last_node,
        )

    def _visit(
        self, node: Node, steps: int, path: List[int], context: ExecutionContext
    ) -> int:
        steps += 1
        if steps > self.max_steps:
            raise TraversalLimitError(
                f"Traversal exceeded {self.max_steps} steps",
                context={
                    "workflow_id": context.workflow.id,
                    "instance_id": context.instance.id,
                    "node_id": node.id,
                },
            )
        path.append(node.id)
        context.current_node = node
        return steps

    def _halt(
        self,
        context: ExecutionContext,
        reason: HaltReason,
        path: List[int],
        last_node: Optional[Node],
    ) -> WorkflowResult:
        logger.warning(
            "Workflow halted: %s",
            reason.value,
            extra={
                "workflow_id": context.workflow.id,
                "instance_id": context.instance.id,
                "node_id": last_node.id if last_node else None,
            },
        )
        context.current_node = None
        return WorkflowResult(
            end_reached=False,
            state=ExecutionState.HALTED,
            halt_reason=reason,
            path=tuple(path),
            last_node=last_node,
        )

    # -------------------------------------------------------------------------
    # Node handlers
    # -------------------------------------------------------------------------

    def _execute_user_node(self, node: Node, context: ExecutionContext) -> UserNodeResult:
        if node.role_id is None:
            logger.warning("User node %s has no role", node.name, extra={"node_id": node.id})
            return UserNodeResult()

        actors = self.tasks.get_workflow_role_actors(context.instance.id, node.role_id)
        if not actors:
            logger.warning(
                "No actors for role %s on node %s",
                node.role_id,
                node.name,
                extra={"node_id": node.id, "instance_id": context.instance.id},
            )
            return UserNodeResult()

        created = tuple(
            self.tasks.create_task(context.instance, node, actor.user_id)
            for actor in actors
        )
        logger.info(
            "Created %d task(s) for node %s",
            len(created),
            node.name,
            extra={"node_id": node.id, "instance_id": context.instance.id},
        )
        return UserNodeResult(end_reached=False, tasks=created)

    def _execute_decision_node(self, node: Node, context: ExecutionContext) -> DecisionResult:
        branches = self.graph.get_decision_branches(context.workflow.id, node.id)
        if not branches:
            return DecisionResult()

        if len(branches) == 1:
            return DecisionResult(next_node=branches[0].target)

        default: Optional[Node] = None
        for branch in branches:
            target = branch.target
            if not target.is_active:
                continue
            if branch.is_default and default is None:
                default = target
            if self._conditions_pass(target, context):
                logger.debug(
                    "Decision %s chose %s",
                    node.name,
                    target.name,
                    extra={"node_id": node.id, "target_id": target.id},
                )
                return DecisionResult(next_node=target)

        if default is not None:
            logger.debug(
                "Decision %s fell back to default %s",
                node.name,
                default.name,
                extra={"node_id": node.id, "target_id": default.id},
            )
        return DecisionResult(next_node=default)

    def _execute_script_service_node(
        self, node: Node, context: ExecutionContext
    ) -> ScriptServiceResult:
        if not self._conditions_pass(node, context):
            return ScriptServiceResult(end_reached=False, success=False)
        self._run_actions(node, context)
        return ScriptServiceResult(end_reached=False, success=True)

    def execute_end_node_actions(self, node: Node, context: ExecutionContext) -> None:
        """Extension point run once an end node has executed. No-op by default."""

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _run_node(self, node: Node, context: ExecutionContext) -> None:
        if self._conditions_pass(node, context):
            self._run_actions(node, context)

    def _run_actions(self, node: Node, context: ExecutionContext) -> None:
        if self.actions is None:
            return
        for action in self.actions.get_node_actions(node.id):
            self.action_handler(action, node, context)

    def _conditions_pass(self, node: Node, context: ExecutionContext) -> bool:
        groups = self.conditions.get_condition_groups(node.id)
        return self.condition_evaluator.evaluate(
            groups, context.variables, self._instance_functions(context)
        )

    def _instance_functions(self, context: ExecutionContext) -> Dict[str, CustomFunction]:
        instance_id = context.instance.id

        def outcome(node_id: Any) -> Optional[str]:
            return self.tasks.get_node_outcome_result(instance_id, _node_id("outcome", node_id))

        def result(node_id: Any) -> Optional[str]:
            last = self.tasks.get_node_last_result(instance_id, _node_id("result", node_id))
            return last.value if last is not None else None

        return {
            "outcome": CustomFunction("outcome", outcome, 1),
            "result": CustomFunction("result", result, 1),
        }
