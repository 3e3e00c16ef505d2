"""Configuration domain models.

This module provides centralized access to all configuration models.
"""

from __future__ import annotations

from .app_settings import AppSettings, LoggingSettings
from .background_settings import BackgroundSettings
from .cache_settings import CacheSettings, FreshnessWindow
from .realtime_settings import RealtimeSettings
from .retry_settings import RetrySettings
from .settings import Settings

__all__ = [
    "AppSettings",
    "BackgroundSettings",
    "CacheSettings",
    "FreshnessWindow",
    "LoggingSettings",
    "RealtimeSettings",
    "RetrySettings",
    "Settings",
]
