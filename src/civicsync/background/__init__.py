"""Background cache maintenance."""

from .manager import BackgroundCacheManager, SleepFunc

__all__ = ["BackgroundCacheManager", "SleepFunc"]
