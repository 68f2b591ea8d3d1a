"""Logging configuration settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LoggingSettings(BaseSettings):
    """Structured logging configuration.

    Environment variables use LOG_ prefix.
    Example: LOG_LEVEL=INFO, LOG_JSON=true, LOG_FILE_PATH=/var/log/notify.jsonl
    """

    service_name: str = Field(
        default="notify-service",
        description="Service name to include in log records (static field in JSON)",
    )
    level: LogLevel = Field(
        default="INFO",
        description="Root logger level (DEBUG|INFO|WARNING|ERROR|CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        alias="json",
        description="Enable JSON Lines (JSONL) formatted structured logs",
    )
    console_level: LogLevel | None = Field(
        default=None,
        description="Console handler log level. If None, uses root level.",
    )
    console_enabled: bool = Field(default=True, description="Enable console/stderr logging")
    file_path: Path | None = Field(
        default=None,
        description="Path to a rotating JSONL log file. None disables file logging.",
    )
    file_max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    file_backup_count: int = Field(default=5, ge=0, le=100)
    include_context: bool = Field(
        default=True,
        description="Inject ContextVar-based log context into every record",
    )
    capture_warnings: bool = Field(default=True)
    logger_levels: dict[str, LogLevel] = Field(
        default_factory=lambda: {
            "httpx": "WARNING",
            "httpcore": "WARNING",
            "aiosmtplib": "WARNING",
            "sqlalchemy.engine": "WARNING",
            "taskiq": "INFO",
        },
        description="Per-logger levels for chatty transports, e.g. LOG_LOGGER_LEVELS='{\"httpx\": \"DEBUG\"}'",
    )

    @field_validator("level", "console_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str | None) -> str | None:
        """Accept lowercase level names from the environment."""
        return v.upper() if isinstance(v, str) else v

    def to_logging_kwargs(self) -> dict[str, Any]:
        """Return kwargs suitable for configure_logging(...)."""
        return {
            "service_name": self.service_name,
            "log_level": self.level,
            "json_logs": self.json_logs,
            "console_level": self.console_level or self.level,
            "console_enabled": self.console_enabled,
            "file_path": str(self.file_path) if self.file_path else None,
            "file_max_bytes": self.file_max_bytes,
            "file_backup_count": self.file_backup_count,
            "include_context": self.include_context,
            "capture_warnings": self.capture_warnings,
            "logger_levels": dict(self.logger_levels),
        }

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        env_ignore_empty=True,
    )
