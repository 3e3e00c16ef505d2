"""Config command handler for civicsync CLI."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from civicsync.cli.context import get_cli_context
from civicsync.cli.json_formatter import format_json_output
from civicsync.config.loader import get_config, load_settings
from civicsync.config.models.settings import Settings
from civicsync.shared.constants import CLICommands, CLIDefaults, CLIMessages

logger = logging.getLogger(__name__)


def _flatten(section: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    rows: list[tuple[str, Any]] = []
    for name, value in section.items():
        path = f"{prefix}.{name}" if prefix else name
        if isinstance(value, dict):
            rows.extend(_flatten(value, path))
        else:
            rows.append((path, value))
    return rows


def collect_config_data(config_file: Path | None = None) -> dict[str, Any]:
    """Return the effective settings as JSON-compatible data."""
    settings: Settings = load_settings(config_file) if config_file else get_config()
    return settings.model_dump(mode="json")


def handle_config_command(config_file: Path | None = None, console: Console | None = None) -> int:
    """Show the effective configuration.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    console = console or Console()
    logger.info(CLIMessages.Info.COMMAND_STARTED.format(command=CLICommands.CONFIG))
    context = get_cli_context()

    try:
        data = collect_config_data(config_file)
    except Exception as e:  # noqa: BLE001
        logger.exception("Failed to load configuration")
        if context.is_json_output_enabled():
            sys.stdout.buffer.write(
                format_json_output(success=False, command=CLICommands.CONFIG, errors=[str(e)]),
            )
            sys.stdout.buffer.write(b"\n")
        else:
            console.print(CLIMessages.Error.CONFIG.format(e=e))
        return CLIDefaults.EXIT_ERROR

    if context.is_json_output_enabled():
        sys.stdout.buffer.write(format_json_output(success=True, command=CLICommands.CONFIG, data=data))
        sys.stdout.buffer.write(b"\n")
        sys.stdout.buffer.flush()
        return CLIDefaults.EXIT_SUCCESS

    table = Table(title="civicsync configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for path, value in _flatten(data):
        table.add_row(path, str(value))
    console.print(table)

    logger.info(CLIMessages.Info.COMMAND_COMPLETED.format(command=CLICommands.CONFIG))
    return CLIDefaults.EXIT_SUCCESS


__all__ = ["collect_config_data", "handle_config_command"]
