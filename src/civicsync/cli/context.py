"""Per-invocation CLI state.

The app callback parses the global options once and stores them here;
command handlers read them back to choose between rich tables and the
JSON envelope, and to size log output.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    """Levels accepted by ``--log-level``."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class CliContext(BaseModel):
    """Global options of one civicsync invocation.

    Attributes:
        verbose: Number of ``-v`` flags; any value above zero means DEBUG
        log_level: Level requested with ``--log-level``
        json_output: Emit the JSON envelope instead of rich output
    """

    model_config = ConfigDict(frozen=True)

    verbose: int = Field(default=0, ge=0)
    log_level: LogLevel = LogLevel.WARNING
    json_output: bool = False

    def is_verbose(self) -> bool:
        return self.verbose > 0

    def get_effective_log_level(self) -> str:
        """Level name handed to the logger; ``-v`` overrides ``--log-level``."""
        return LogLevel.DEBUG.value if self.is_verbose() else self.log_level.value

    @property
    def logging_level(self) -> int:
        return logging.getLevelName(self.get_effective_log_level())

    def is_json_output_enabled(self) -> bool:
        return self.json_output

    def with_json_output(self) -> CliContext:
        """Copy of this context with JSON output switched on."""
        return self.model_copy(update={"json_output": True})


_current: ContextVar[CliContext | None] = ContextVar("civicsync_cli_context", default=None)


def get_cli_context() -> CliContext:
    """Context of the running invocation.

    Handlers called without the app callback (tests, direct calls) get the
    defaults.
    """
    return _current.get() or CliContext()


def set_cli_context(context: CliContext) -> None:
    _current.set(context)


def clear_cli_context() -> None:
    _current.set(None)
