"""civicsync Configuration Module

This module provides unified access to configuration models and settings
management for civicsync.

- Settings: Main configuration facade
- Loader functions: get_config, load_settings, reload_config, update_and_save_config
- Domain models: App, Logging, Cache, Retry, Realtime, Background settings
"""

from __future__ import annotations

from .loader import (
    SettingsLoader,
    get_config,
    load_settings,
    reload_config,
    update_and_save_config,
)
from .models import (
    AppSettings,
    BackgroundSettings,
    CacheSettings,
    FreshnessWindow,
    LoggingSettings,
    RealtimeSettings,
    RetrySettings,
    Settings,
)

__all__ = [
    "AppSettings",
    "BackgroundSettings",
    "CacheSettings",
    "FreshnessWindow",
    "LoggingSettings",
    "RealtimeSettings",
    "RetrySettings",
    "Settings",
    "SettingsLoader",
    "get_config",
    "load_settings",
    "reload_config",
    "update_and_save_config",
]
