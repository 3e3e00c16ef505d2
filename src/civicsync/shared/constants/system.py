"""Base system constants."""

# Base time units (seconds)
BASE_SECOND = 1
BASE_MINUTE = 60 * BASE_SECOND

# Millisecond conversion factor
MS_PER_SECOND = 1000


class Application:
    """Application identity constants."""

    NAME = "civicsync"
    VERSION = "0.1.0"
    DESCRIPTION = "Optimistic cache and realtime reconciliation core"
    ENV_PREFIX = "CIVICSYNC_"
    HOME_DIR = ".civicsync"
    DEFAULT_USER_ID = "local-user"


__all__ = [
    "BASE_MINUTE",
    "BASE_SECOND",
    "MS_PER_SECOND",
    "Application",
]
