"""Tests for the Settings model and its section models."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from civicsync.config.models.app_settings import LoggingSettings
from civicsync.config.models.cache_settings import CacheSettings, FreshnessWindow
from civicsync.config.models.retry_settings import RetrySettings
from civicsync.config.models.settings import Settings


@pytest.fixture
def temp_config(tmp_path: Path) -> Path:
    """Create temporary config file."""
    config_file = tmp_path / "config.toml"
    config_file.write_text(
        """
[app]
user_id = "alice"

[retry]
max_attempts = 4
base_delay = 0.5

[cache.comments]
stale_time = 60
gc_time = 90
""",
        encoding="utf-8",
    )
    return config_file


class TestSettingsDefaults:
    """Default values mirror the documented freshness and retry defaults."""

    def test_cache_windows(self) -> None:
        cache = Settings().cache
        assert (cache.campaigns.stale_time, cache.campaigns.gc_time) == (300, 600)
        assert (cache.comments.stale_time, cache.comments.gc_time) == (120, 300)
        assert (cache.geographic.stale_time, cache.geographic.gc_time) == (600, 900)

    def test_retry_defaults(self) -> None:
        retry = Settings().retry
        assert retry.max_attempts == 3
        assert retry.base_delay == 1.0
        assert retry.max_delay == 30.0

    def test_realtime_defaults(self) -> None:
        realtime = Settings().realtime
        assert realtime.max_reconnect_attempts == 5
        assert realtime.dedup_window == 2.0
        assert realtime.buffer_safety_timeout == 30.0

    def test_background_defaults(self) -> None:
        background = Settings().background
        assert background.cleanup_interval == 300
        assert background.critical_max_age == 30


class TestSettingsSources:
    """TOML and environment sources."""

    def test_from_toml_file(self, temp_config: Path) -> None:
        settings = Settings.from_toml_file(temp_config)
        assert settings.app.user_id == "alice"
        assert settings.retry.max_attempts == 4
        assert settings.retry.base_delay == 0.5
        assert settings.cache.comments.gc_time == 90
        # Sections missing from the file keep their defaults
        assert settings.cache.campaigns.stale_time == 300

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Settings.from_toml_file(tmp_path / "missing.toml")

    def test_toml_round_trip(self, tmp_path: Path) -> None:
        original = Settings(retry=RetrySettings(max_attempts=7))
        path = tmp_path / "nested" / "config.toml"
        original.to_toml_file(path)
        assert Settings.from_toml_file(path).retry.max_attempts == 7

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CIVICSYNC_RETRY__MAX_ATTEMPTS", "5")
        monkeypatch.setenv("CIVICSYNC_LOGGING__LEVEL", "debug")
        settings = Settings()
        assert settings.retry.max_attempts == 5
        assert settings.logging.level == "DEBUG"


class TestSectionValidation:
    """Cross-field validation of section models."""

    def test_gc_before_stale_rejected(self) -> None:
        with pytest.raises(ValidationError, match="gc_time"):
            FreshnessWindow(stale_time=60, gc_time=30)

    def test_max_delay_below_base_rejected(self) -> None:
        with pytest.raises(ValidationError, match="max_delay"):
            RetrySettings(base_delay=5.0, max_delay=1.0)

    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RetrySettings(max_attempts=0)

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log level"):
            LoggingSettings(level="LOUD")

    def test_window_for_unknown_family(self) -> None:
        with pytest.raises(ValueError, match="Unknown cache family"):
            CacheSettings().window_for("weather")
