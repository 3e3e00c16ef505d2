"""Turn exceptions escaping a command into an exit code and a message.

Domain failures keep their message with a short label; anything else is
reported as unexpected. The message goes to stderr, or into the JSON
envelope on stdout when ``--json`` is active.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

from civicsync.cli.json_formatter import format_json_output
from civicsync.shared.errors import (
    ApplicationError,
    CivicSyncError,
    CliError,
    DomainError,
    InfrastructureError,
    create_cli_error,
    create_cli_output_error,
)

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130

_LABELS: tuple[tuple[type[CivicSyncError], str], ...] = (
    (ApplicationError, "Application error"),
    (InfrastructureError, "Infrastructure error"),
    (DomainError, "Domain error"),
)


def _label_for(error: CivicSyncError) -> str:
    for error_type, label in _LABELS:
        if isinstance(error, error_type):
            return label
    return "Error"


def to_cli_error(error: BaseException, command: str) -> CliError:
    """Wrap ``error`` in a :class:`CliError` carrying the exit code."""
    if isinstance(error, CliError):
        return error
    if isinstance(error, CivicSyncError):
        return create_cli_error(
            f"{_label_for(error)}: {error.message}",
            command=command,
            original_error=error,
        )
    if isinstance(error, KeyboardInterrupt):
        return create_cli_error(
            "Command interrupted by user",
            command=command,
            exit_code=EXIT_INTERRUPTED,
        )
    return create_cli_error(
        f"Unexpected error: {error}",
        command=command,
        original_error=error if isinstance(error, Exception) else None,
    )


def handle_cli_error(
    error: BaseException,
    command: str,
    *,
    json_output: bool = False,
) -> int:
    """Log and report ``error`` for ``command``; return the exit code."""
    cli_error = to_cli_error(error, command)
    details: dict[str, Any] = {
        "command": command,
        "error_type": type(error).__name__,
        "error_code": cli_error.code.value,
    }
    if isinstance(error, KeyboardInterrupt):
        logger.warning("Command %s interrupted", command, extra={"context": details})
    else:
        logger.error("%s failed: %s", command, cli_error.message, extra={"context": details})

    if json_output:
        _write_json(cli_error, command, details)
    else:
        sys.stderr.write(f"Error: {cli_error.message}\n")
    return cli_error.exit_code


def _write_json(cli_error: CliError, command: str, details: dict[str, Any]) -> None:
    payload = {**details, "exit_code": cli_error.exit_code}
    try:
        sys.stdout.buffer.write(
            format_json_output(False, command, data=payload, errors=[cli_error.message]),
        )
        sys.stdout.buffer.write(b"\n")
        sys.stdout.buffer.flush()
    except (OSError, UnicodeEncodeError, TypeError) as e:
        output_error = create_cli_output_error(
            f"Failed to write JSON output: {e}",
            command=command,
            output_type="json",
            original_error=e,
        )
        logger.exception("%s", output_error.message)
        sys.stderr.write(f"Error: {cli_error.message}\n")


__all__ = ["EXIT_INTERRUPTED", "handle_cli_error", "to_cli_error"]
