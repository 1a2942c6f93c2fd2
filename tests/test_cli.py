"""Tests for the nodeflow command line."""

import json

import pytest

from nodeflow.cli import main, parse_value, parse_variables
from nodeflow.core.exceptions import ConfigurationError
from nodeflow.core.models import InstanceStatus, NodeTaskType, NodeType
from nodeflow.storage.repository import SQLiteWorkflowStore


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("NODEFLOW_DB_PATH", "NODEFLOW_MAX_STEPS", "NODEFLOW_LOG_LEVEL", "NODEFLOW_JSON_LOGS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "cli.db")


class TestParsing:
    @pytest.mark.parametrize("text,expected", [
        ("true", True),
        ("False", False),
        ("12", 12),
        ("2.5", 2.5),
        ("approved", "approved"),
    ])
    def test_parse_value(self, text, expected):
        assert parse_value(text) == expected

    def test_parse_variables(self):
        assert parse_variables(["a=1", "name=Ada Lovelace"]) == {"a": 1, "name": "Ada Lovelace"}

    def test_malformed_variable(self):
        with pytest.raises(ConfigurationError):
            parse_variables(["novalue"])


class TestEvalCommand:
    def test_prints_value(self, capsys):
        code = main(["eval", "amount >= 1000 && !flagged", "--var", "amount=1500", "--var", "flagged=false"])

        assert code == 0
        assert capsys.readouterr().out.strip() == "true"

    def test_arithmetic(self, capsys):
        assert main(["eval", "(1 + 2) * 3"]) == 0
        assert capsys.readouterr().out.strip() == "9"

    def test_invalid_expression_exits_with_error(self, capsys):
        code = main(["eval", "(1 + 2"])

        assert code == 1
        assert "error:" in capsys.readouterr().err


class TestRunCommand:
    def _workflow(self, db_path, with_review):
        store = SQLiteWorkflowStore(db_path)
        workflow = store.create_workflow("CLI")
        role = store.create_role(workflow.id, "Reviewer")
        start = store.create_node(workflow.id, "Start", type=NodeType.START)
        end = store.create_node(workflow.id, "End", type=NodeType.END)
        if with_review:
            review = store.create_node(workflow.id, "Review", task_type=NodeTaskType.USER, role_id=role.id)
            store.create_path(workflow.id, start.id, review.id)
            store.create_path(workflow.id, review.id, end.id)
        else:
            store.create_path(workflow.id, start.id, end.id)
        instance = store.create_instance(workflow.id, "E-1", user_id=1)
        store.assign_role_user(instance.id, role.id, 42)
        return store, instance

    def test_completes_and_marks_instance(self, db_path, capsys):
        store, instance = self._workflow(db_path, with_review=False)

        code = main(["run", "--instance", str(instance.id), "--db", db_path])

        summary = json.loads(capsys.readouterr().out)
        assert code == 0
        assert summary["state"] == "completed"
        assert summary["end_reached"] is True
        assert store.get_instance(instance.id).status is InstanceStatus.COMPLETED

    def test_suspends_on_user_node(self, db_path, capsys, monkeypatch):
        store, instance = self._workflow(db_path, with_review=True)
        monkeypatch.setenv("NODEFLOW_DB_PATH", db_path)

        code = main(["run", "--instance", str(instance.id)])

        summary = json.loads(capsys.readouterr().out)
        assert code == 0
        assert summary["state"] == "awaiting_user"
        assert [t["user_id"] for t in summary["tasks"]] == [42]
        assert store.get_instance(instance.id).status is InstanceStatus.PROCESSING

    def test_unknown_instance(self, db_path, capsys):
        code = main(["run", "--instance", "999", "--db", db_path])

        assert code == 1
        assert "Instance not found" in capsys.readouterr().err

    def test_unknown_resume_node(self, db_path, capsys):
        _, instance = self._workflow(db_path, with_review=False)

        code = main(["run", "--instance", str(instance.id), "--node", "999", "--db", db_path])

        assert code == 1
        assert "Node not found" in capsys.readouterr().err
