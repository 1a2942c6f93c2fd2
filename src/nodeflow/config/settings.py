"""Application settings.

All configuration is sourced from environment variables (and optionally `.env`).
"""

from __future__ import annotations

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed environment-backed settings for nodeflow."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    db_path: str = Field(
        default="nodeflow.db",
        validation_alias=AliasChoices("NODEFLOW_DB_PATH", "DB_PATH"),
    )
    max_steps: int = Field(
        default=1000,
        ge=1,
        validation_alias=AliasChoices("NODEFLOW_MAX_STEPS"),
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("NODEFLOW_LOG_LEVEL", "LOG_LEVEL"),
    )
    json_logs: bool = Field(
        default=False,
        validation_alias=AliasChoices("NODEFLOW_JSON_LOGS"),
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level
