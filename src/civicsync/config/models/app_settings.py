"""``[app]`` and ``[logging]`` sections."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from civicsync.shared.constants import Application, Logging

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class AppSettings(BaseModel):
    """Identity of the running client and the current user."""

    name: str = Field(default=Application.NAME, description="Application name")
    version: str = Field(default=Application.VERSION, description="Application version")
    description: str = Field(
        default=Application.DESCRIPTION,
        description="One-line description shown by --help",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    user_id: str = Field(
        default=Application.DEFAULT_USER_ID,
        description="Identity of the current user",
    )


class LoggingSettings(BaseModel):
    """Where log records go and how verbose they are."""

    level: str = Field(default=Logging.DEFAULT_LEVEL, description="Logging level")
    file: str | None = Field(default=None, description="Log file path (JSON lines)")
    max_bytes: int = Field(
        default=Logging.MAX_BYTES,
        gt=0,
        description="Rotate the log file after this many bytes",
    )
    backup_count: int = Field(
        default=Logging.BACKUP_COUNT,
        ge=0,
        description="Rotated log files kept on disk",
    )
    console_output: bool = Field(default=True, description="Enable rich console logging")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in _LOG_LEVELS:
            msg = f"Invalid log level: {v}. Must be one of {', '.join(_LOG_LEVELS)}"
            raise ValueError(msg)
        return level


__all__ = [
    "AppSettings",
    "LoggingSettings",
]
