"""
civicsync Typer CLI Application

Small command-line surface over the cache/realtime core: inspect the
effective configuration and run an optimistic vote demo against the
in-memory data store.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from civicsync.cli.config_handler import handle_config_command
from civicsync.cli.context import CliContext, LogLevel, get_cli_context, set_cli_context
from civicsync.cli.demo_handler import handle_demo_command
from civicsync.cli.options import (
    json_output_option,
    log_level_option,
    verbose_option,
    version_option,
)
from civicsync.shared.constants import Application, CLICommands, CLIDefaults, CLIHelp
from civicsync.shared.logging import setup_structured_logger

__version__ = Application.VERSION


def version_callback(value: bool) -> None:
    """Print version information and exit."""
    if value:
        typer.echo(CLIHelp.VERSION_TEXT.format(version=__version__))
        raise typer.Exit


def main_callback(
    verbose: int,
    log_level: LogLevel,
    json_output: bool,
    version: bool,
) -> None:
    """Set up the CLI context and logging before any command runs."""
    if version:
        version_callback(value=True)

    context = CliContext(
        verbose=verbose,
        log_level=log_level,
        json_output=json_output,
    )
    set_cli_context(context)
    setup_structured_logger(
        level=context.get_effective_log_level(),
        use_rich_console=not context.is_json_output_enabled(),
    )


def _enable_json_output(json_output: bool) -> None:
    if json_output:
        context = get_cli_context()
        set_cli_context(context.with_json_output())


def _exit_with(code: int) -> None:
    if code != CLIDefaults.EXIT_SUCCESS:
        raise typer.Exit(code)


app = typer.Typer(
    name=CLIHelp.APP_NAME,
    help=CLIHelp.APP_DESCRIPTION,
    add_completion=False,
    rich_markup_mode=CLIHelp.APP_STYLE,
    no_args_is_help=True,
    invoke_without_command=True,
)


@app.callback()
def main(
    verbose: Annotated[int, verbose_option] = 0,
    log_level: Annotated[LogLevel, log_level_option] = LogLevel.WARNING,
    json_output: Annotated[bool, json_output_option] = False,
    version: Annotated[bool, version_option] = False,
) -> None:
    """Main CLI callback with error handling."""
    try:
        main_callback(verbose, log_level, json_output, version)
    except typer.Exit:
        raise
    except Exception as e:
        from civicsync.cli.error_handler import handle_cli_error

        exit_code = handle_cli_error(e, "main-callback", json_output=json_output)
        raise typer.Exit(exit_code) from e


@app.command(CLICommands.CONFIG)
def config_command_typer(
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        "-c",
        help=CLIHelp.CONFIG_FILE_HELP,
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help=CLIHelp.JSON_HELP,
    ),
) -> None:
    """
    Show the effective configuration.

    Settings are read from the given TOML file, or from the default
    locations and CIVICSYNC_* environment variables.

    Examples:
        civicsync config
        civicsync config --config-file civicsync.toml --json
    """
    _enable_json_output(json_output)
    _exit_with(handle_config_command(config_file))


@app.command(CLICommands.DEMO)
def demo_command_typer(
    fail: bool = typer.Option(
        False,
        "--fail",
        help=CLIHelp.DEMO_FAIL_HELP,
    ),
    votes: int = typer.Option(
        10,
        "--votes",
        min=0,
        help=CLIHelp.DEMO_VOTES_HELP,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help=CLIHelp.JSON_HELP,
    ),
) -> None:
    """
    Run an optimistic vote against an in-memory store.

    The vote count moves up immediately; with --fail every send attempt
    fails and the count returns to its original value after the retries.

    Examples:
        civicsync demo
        civicsync demo --fail --votes 10
    """
    _enable_json_output(json_output)
    _exit_with(handle_demo_command(fail=fail, votes=votes))


__all__ = ["app", "main_callback", "version_callback"]
