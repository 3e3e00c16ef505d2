"""Top-level settings object grouping every configuration section."""

from __future__ import annotations

import logging
from pathlib import Path

import toml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from civicsync.config.models.app_settings import AppSettings, LoggingSettings
from civicsync.config.models.background_settings import BackgroundSettings
from civicsync.config.models.cache_settings import CacheSettings
from civicsync.config.models.realtime_settings import RealtimeSettings
from civicsync.config.models.retry_settings import RetrySettings
from civicsync.shared.constants import Application

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """All civicsync settings, one attribute per TOML section.

    Every nested field can be overridden from the environment, for example
    ``CIVICSYNC_RETRY__MAX_ATTEMPTS=5`` or ``CIVICSYNC_LOGGING__LEVEL=DEBUG``.
    """

    model_config = SettingsConfigDict(
        env_prefix=Application.ENV_PREFIX,
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    background: BackgroundSettings = Field(default_factory=BackgroundSettings)

    @classmethod
    def from_toml_file(cls, file_path: str | Path) -> Settings:
        """Load settings from a TOML file.

        Sections missing from the file keep their defaults (or environment
        values).
        """
        path = Path(file_path)
        if not path.exists():
            msg = f"Configuration file not found: {path}"
            raise FileNotFoundError(msg)

        sections = toml.load(path)
        logger.debug("Loaded configuration sections: %s", sorted(sections))
        return cls(**sections)

    def to_toml_file(self, file_path: str | Path) -> None:
        """Write every section, defaults included, to ``file_path``."""
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            toml.dump(self.model_dump(exclude_none=True), f)
