"""Retry/backoff policy."""

from .policy import RetryPolicy, SleepFunc

__all__ = ["RetryPolicy", "SleepFunc"]
