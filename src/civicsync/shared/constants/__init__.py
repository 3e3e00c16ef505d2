"""
civicsync Constants Module

This module provides centralized constants for the civicsync package.
All magic values and configuration defaults are defined here to ensure
consistency across the codebase.
"""

from .cache import (
    TEMP_ID_PREFIX,
    BackgroundIntervals,
    CacheFamily,
    GcTime,
    Operations,
    StaleTime,
)
from .cli import CLICommands, CLIDefaults, CLIHelp, CLIMessages
from .logging import Logging
from .network import RetryDefaults
from .realtime import (
    DEFAULT_SCHEMA,
    BufferDefaults,
    DedupDefaults,
    ReconnectDefaults,
    Topics,
)
from .system import (
    BASE_MINUTE,
    BASE_SECOND,
    MS_PER_SECOND,
    Application,
)

__all__ = [
    "BASE_MINUTE",
    "BASE_SECOND",
    "DEFAULT_SCHEMA",
    "MS_PER_SECOND",
    "TEMP_ID_PREFIX",
    "Application",
    "BackgroundIntervals",
    "BufferDefaults",
    "CLICommands",
    "CLIDefaults",
    "CLIHelp",
    "CLIMessages",
    "CacheFamily",
    "DedupDefaults",
    "GcTime",
    "Logging",
    "Operations",
    "ReconnectDefaults",
    "RetryDefaults",
    "StaleTime",
    "Topics",
]
