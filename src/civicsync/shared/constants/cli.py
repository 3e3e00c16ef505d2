"""
CLI Configuration Constants

This module contains command names, help texts and message templates for
the command-line interface.
"""

from .system import Application


class CLICommands:
    """Command names."""

    CONFIG = "config"
    DEMO = "demo"


class CLIDefaults:
    """Exit codes."""

    EXIT_SUCCESS = 0
    EXIT_ERROR = 1


class CLIHelp:
    """Help texts."""

    APP_NAME = Application.NAME
    APP_DESCRIPTION = "Inspect and exercise the civicsync cache/realtime core."
    APP_STYLE = "rich"
    VERSION_TEXT = "civicsync {version}"
    CONFIG_HELP = "Show the effective configuration."
    CONFIG_FILE_HELP = "Path to a TOML configuration file."
    DEMO_HELP = "Run an optimistic vote against an in-memory store."
    DEMO_FAIL_HELP = "Make the store fail so the vote is rolled back."
    DEMO_VOTES_HELP = "Initial vote count of the demo campaign."
    JSON_HELP = "Output results in JSON format."


class CLIMessages:
    """CLI message templates."""

    class Error:
        """Error message templates."""

        CONFIG = "[red]Failed to load configuration: {e}[/red]"
        DEMO = "[red]Demo failed: {e}[/red]"

    class Info:
        """Informational message templates."""

        SPECULATIVE = "Speculative vote count: [bold]{count}[/bold]"
        FINAL = "Final vote count: [bold]{count}[/bold]"
        ROLLED_BACK = "[yellow]Vote rolled back: {message}[/yellow]"
        CONFIRMED = "[green]Vote confirmed by the store[/green]"
        REALTIME = "Realtime: {merged} merged, {buffered} buffered, {deduplicated} duplicates dropped"
        COMMAND_STARTED = "Starting {command} command"
        COMMAND_COMPLETED = "Completed {command} command"


__all__ = ["CLICommands", "CLIDefaults", "CLIHelp", "CLIMessages"]
