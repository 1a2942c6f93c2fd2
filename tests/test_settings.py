"""Tests for environment-backed settings."""

import pytest
from pydantic import ValidationError

from nodeflow.config.settings import Settings


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("NODEFLOW_DB_PATH", "DB_PATH", "NODEFLOW_MAX_STEPS", "NODEFLOW_LOG_LEVEL", "LOG_LEVEL", "NODEFLOW_JSON_LOGS"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings()
    assert settings.db_path == "nodeflow.db"
    assert settings.max_steps == 1000
    assert settings.log_level == "INFO"
    assert settings.json_logs is False


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("NODEFLOW_DB_PATH", "/tmp/flows.db")
    monkeypatch.setenv("NODEFLOW_MAX_STEPS", "50")
    monkeypatch.setenv("NODEFLOW_LOG_LEVEL", "debug")
    monkeypatch.setenv("NODEFLOW_JSON_LOGS", "true")

    settings = Settings()

    assert settings.db_path == "/tmp/flows.db"
    assert settings.max_steps == 50
    assert settings.log_level == "DEBUG"
    assert settings.json_logs is True


def test_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("NODEFLOW_MAX_STEPS=7\n")
    assert Settings().max_steps == 7


@pytest.mark.parametrize("name,value", [
    ("NODEFLOW_LOG_LEVEL", "LOUD"),
    ("NODEFLOW_MAX_STEPS", "0"),
])
def test_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValidationError):
        Settings()
