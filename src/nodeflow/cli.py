"""Command line entrypoint.

    nodeflow eval "amount >= 1000 && !flagged" --var amount=1500 --var flagged=false
    nodeflow run --instance 3 --db workflows.db
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from nodeflow.config.settings import Settings
from nodeflow.core.exceptions import ConfigurationError, NodeflowError, RecordNotFoundError
from nodeflow.core.models import InstanceStatus
from nodeflow.core.results import WorkflowResult
from nodeflow.execution.engine import ExecutionContext, WorkflowEngine
from nodeflow.expression.evaluator import ExpressionEvaluator
from nodeflow.expression.operators import to_number, to_text
from nodeflow.storage.repository import SQLiteWorkflowStore
from nodeflow.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def parse_value(text: str) -> Any:
    """Interpret a command line value as bool, number or string."""
    lowered = text.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    number = to_number(text)
    return text if number is None else number


def parse_variables(pairs: Optional[List[str]]) -> Dict[str, Any]:
    variables: Dict[str, Any] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise ConfigurationError(f"Expected NAME=VALUE, got '{pair}'")
        variables[name.strip()] = parse_value(value)
    return variables


def load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError("Invalid settings", context={"errors": exc.errors()}) from exc


def summarize(result: WorkflowResult) -> Dict[str, Any]:
    return {
        "state": result.state.value,
        "end_reached": result.end_reached,
        "halt_reason": result.halt_reason.value if result.halt_reason else None,
        "path": list(result.path),
        "tasks": [task.model_dump(mode="json") for task in result.tasks],
        "last_node": result.last_node.id if result.last_node else None,
    }


def cmd_eval(args: argparse.Namespace) -> int:
    value = ExpressionEvaluator().evaluate(args.expression, parse_variables(args.var))
    print(to_text(value))
    return 0


def cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    store = SQLiteWorkflowStore(args.db or settings.db_path)

    instance = store.get_instance(args.instance)
    if instance is None:
        raise RecordNotFoundError("Instance not found", context={"id": args.instance})
    workflow = store.get_workflow(instance.workflow_id)
    if workflow is None:
        raise RecordNotFoundError("Workflow not found", context={"id": instance.workflow_id})

    current = None
    if args.node is not None:
        current = store.get_node(args.node)
        if current is None or current.workflow_id != workflow.id:
            raise RecordNotFoundError(
                "Node not found in workflow",
                context={"id": args.node, "workflow_id": workflow.id},
            )

    engine = WorkflowEngine(
        store,
        store,
        store,
        actions=store,
        max_steps=args.max_steps or settings.max_steps,
    )
    context = ExecutionContext(
        workflow=workflow,
        instance=instance,
        current_node=current,
        variables=parse_variables(args.var),
    )
    result = engine.execute(context)

    if result.completed:
        store.update_instance_status(instance.id, InstanceStatus.COMPLETED)
        logger.info("Instance completed", extra={"instance_id": instance.id})

    print(json.dumps(summarize(result), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nodeflow", description="Workflow engine CLI")
    parser.add_argument("--log-level", help="Override NODEFLOW_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    eval_parser = subparsers.add_parser("eval", help="Evaluate a condition expression")
    eval_parser.add_argument("expression")
    eval_parser.add_argument("--var", action="append", metavar="NAME=VALUE")

    run_parser = subparsers.add_parser("run", help="Execute a stored workflow instance")
    run_parser.add_argument("--instance", type=int, required=True)
    run_parser.add_argument("--node", type=int, help="Resume at this node instead of the start")
    run_parser.add_argument("--var", action="append", metavar="NAME=VALUE")
    run_parser.add_argument("--db", help="SQLite database path (default: NODEFLOW_DB_PATH)")
    run_parser.add_argument("--max-steps", type=int)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        configure_logging(
            level=args.log_level or settings.log_level,
            json_logs=settings.json_logs,
        )
        if args.command == "eval":
            return cmd_eval(args)
        return cmd_run(args, settings)
    except NodeflowError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
