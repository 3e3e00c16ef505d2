"""
Reusable Typer Options Module

This module provides reusable Typer options shared by the main callback
and the commands.
"""

from __future__ import annotations

import typer

from civicsync.shared.constants import CLIHelp

# Verbose option - count-based for multiple -v flags
verbose_option = typer.Option(
    "--verbose",
    "-v",
    count=True,
    help="Enable verbose output (equivalent to --log-level DEBUG).",
)


# Log level option - enum-based with case-insensitive choices
log_level_option = typer.Option(
    "--log-level",
    case_sensitive=False,
    help="Set the logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Default: WARNING.",
)


# JSON output option - flag-based
json_output_option = typer.Option(
    "--json",
    help=CLIHelp.JSON_HELP,
)


# Version option - for main app only
version_option = typer.Option(
    "--version",
    "-V",
    help="Show version information and exit.",
    is_eager=True,
)
