"""Settings resolution for civicsync.

Sources, lowest precedence first:

1. field defaults of the settings models
2. a ``civicsync.toml`` file (explicit path, or the first one found in the
   working directory, ``./config`` or ``~/.civicsync``)
3. a ``.env`` file in the working directory
4. ``CIVICSYNC_*`` environment variables

The resolved :class:`Settings` is cached process-wide by
:class:`SettingsLoader`; ``reload_config`` re-reads every source.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv

from civicsync.config.models.settings import Settings
from civicsync.shared.constants import Application
from civicsync.shared.errors import (
    ApplicationError,
    ErrorCode,
    ErrorContext,
    InfrastructureError,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "civicsync.toml"
DEFAULT_CONFIG_PATH = Path(CONFIG_FILE_NAME)

SettingsUpdater = Callable[[Settings], None]


def config_search_paths() -> list[Path]:
    """Locations probed for a config file when none is given."""
    return [
        DEFAULT_CONFIG_PATH,
        Path("config") / CONFIG_FILE_NAME,
        Path.home() / Application.HOME_DIR / CONFIG_FILE_NAME,
    ]


def _load_env_file(env_file: Path = Path(".env")) -> None:
    """Export a ``.env`` file into the environment without overriding it.

    Raises:
        InfrastructureError: If the file exists but cannot be read
    """
    if not env_file.exists():
        return

    context = ErrorContext(operation="load_env", additional_data={"file_name": env_file.name})
    try:
        load_dotenv(env_file, override=False)
    except PermissionError as e:
        raise InfrastructureError(
            ErrorCode.FILE_PERMISSION_DENIED,
            f"Permission denied reading {env_file}",
            context,
            e,
        ) from e
    except (OSError, ValueError) as e:
        raise InfrastructureError(
            ErrorCode.FILE_READ_ERROR,
            f"Failed to read {env_file}: {e}",
            context,
            e,
        ) from e


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Resolve settings from every source; see the module docstring."""
    _load_env_file()

    if config_path:
        return Settings.from_toml_file(config_path)

    for candidate in config_search_paths():
        if candidate.exists():
            logger.debug("Using configuration file %s", candidate)
            return Settings.from_toml_file(candidate)

    return Settings()


class SettingsLoader:
    """Process-wide cache of the resolved settings.

    Access is guarded by a re-entrant lock; the first ``get_config`` call
    pays for loading and later calls return the same object.
    """

    def __init__(self) -> None:
        self._settings: Settings | None = None
        self._lock = threading.RLock()

    def get_config(self) -> Settings:
        if self._settings is None:
            with self._lock:
                if self._settings is None:
                    self._settings = load_settings()
        return self._settings

    def reload_config(self) -> Settings:
        with self._lock:
            self._settings = load_settings()
            return self._settings

    def reset(self) -> None:
        """Forget the cached settings; the next access loads them again."""
        with self._lock:
            self._settings = None

    def update_and_save_config(
        self,
        updater: SettingsUpdater,
        config_path: Path | str = DEFAULT_CONFIG_PATH,
    ) -> None:
        """Apply ``updater`` to a copy, validate, write it and make it current.

        The cached settings are replaced only when the copy validates and
        the file is written.

        Raises:
            ApplicationError: If the update does not validate or cannot be saved
        """
        config_path = Path(config_path)
        with self._lock:
            candidate = self.get_config().model_copy(deep=True)
            try:
                updater(candidate)
                validated = Settings.model_validate(candidate.model_dump())
                validated.to_toml_file(config_path)
            except Exception as e:
                logger.exception("Could not save configuration to %s", config_path)
                raise ApplicationError(
                    ErrorCode.CONFIG_ERROR,
                    f"Configuration update failed: {e}",
                    ErrorContext(
                        operation="update_and_save_config",
                        additional_data={"config_path": str(config_path)},
                    ),
                    e,
                ) from e
            self._settings = validated
        logger.info("Configuration saved to %s", config_path)


_loader = SettingsLoader()


def get_config() -> Settings:
    return _loader.get_config()


def reload_config() -> Settings:
    return _loader.reload_config()


def update_and_save_config(
    updater: SettingsUpdater,
    config_path: Path | str = DEFAULT_CONFIG_PATH,
) -> None:
    _loader.update_and_save_config(updater, config_path)


__all__ = [
    "CONFIG_FILE_NAME",
    "SettingsLoader",
    "config_search_paths",
    "get_config",
    "load_settings",
    "reload_config",
    "update_and_save_config",
]
