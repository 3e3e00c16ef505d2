"""
Network Configuration Constants

This module contains constants for request retries and backoff shared by
the query and mutation paths.
"""

from .system import BASE_SECOND


class RetryDefaults:
    """Retry policy defaults."""

    MAX_ATTEMPTS = 3
    BASE_DELAY = 1.0 * BASE_SECOND
    MAX_DELAY = 30.0 * BASE_SECOND
    BACKOFF_FACTOR = 2.0


__all__ = ["RetryDefaults"]
