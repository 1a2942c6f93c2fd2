"""Tests for logging helpers."""

import json
import logging

from nodeflow.core.models import NodeTaskType
from nodeflow.utils.logging import JsonLogFormatter, configure_logging, get_logger


def make_record(**extra):
    record = logging.LogRecord("nodeflow.test", logging.WARNING, __file__, 1, "halted at %s", ("Review",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonLogFormatter:
    def test_basic_fields(self):
        payload = json.loads(JsonLogFormatter().format(make_record()))
        assert payload["level"] == "WARNING"
        assert payload["logger"] == "nodeflow.test"
        assert payload["message"] == "halted at Review"
        assert "lineno" not in payload

    def test_extra_fields(self):
        payload = json.loads(
            JsonLogFormatter().format(make_record(node_id=4, task_type=NodeTaskType.USER))
        )
        assert payload["node_id"] == 4
        assert payload["task_type"] == "U"

    def test_static_fields(self):
        payload = json.loads(JsonLogFormatter({"service": "nodeflow"}).format(make_record()))
        assert payload["service"] == "nodeflow"


def test_configure_logging_keeps_existing_handlers():
    root = logging.getLogger()
    sentinel = logging.NullHandler()
    original = list(root.handlers)
    root.addHandler(sentinel)
    try:
        configure_logging(level="DEBUG", json_logs=True)
        assert [h for h in root.handlers if h not in original] == [sentinel]
    finally:
        root.removeHandler(sentinel)


def test_get_logger():
    assert get_logger("nodeflow.x") is logging.getLogger("nodeflow.x")
