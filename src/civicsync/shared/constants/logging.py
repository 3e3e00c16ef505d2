"""Logging configuration constants."""


class Logging:
    """Logging defaults."""

    DEFAULT_LEVEL = "INFO"
    DEFAULT_FILE_PATH = "logs/civicsync.log"
    MAX_BYTES = 10 * 1024 * 1024  # 10MB
    BACKUP_COUNT = 5
    LOGGER_NAME = "civicsync"


__all__ = ["Logging"]
