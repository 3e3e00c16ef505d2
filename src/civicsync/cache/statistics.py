"""Counters for the query cache.

Hit/miss, fetch and invalidation counts plus the rates derived from them.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheMetrics:
    """Raw counters; the properties derive rates from them."""

    cache_hits: int = 0
    cache_misses: int = 0

    fetches: int = 0
    fetch_errors: int = 0
    cancelled_fetches: int = 0
    discarded_results: int = 0
    fetch_time: float = 0.0

    updates: int = 0
    update_errors: int = 0
    invalidations: int = 0
    garbage_collected: int = 0

    hits_by_operation: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    misses_by_operation: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    @property
    def cache_hit_ratio(self) -> float:
        """Hit ratio between 0.0 and 1.0."""
        total = self.cache_hits + self.cache_misses
        return self.cache_hits / total if total > 0 else 0.0

    @property
    def fetch_error_rate(self) -> float:
        """Share of fetches that failed, between 0.0 and 1.0."""
        return self.fetch_errors / self.fetches if self.fetches > 0 else 0.0

    @property
    def average_fetch_time(self) -> float:
        """Mean duration of completed fetches in seconds."""
        completed = self.fetches - self.cancelled_fetches
        return self.fetch_time / completed if completed > 0 else 0.0


class CacheStatisticsCollector:
    """Fed by QueryCache; read by the background manager."""

    def __init__(self) -> None:
        self.metrics = CacheMetrics()
        self.session_start = datetime.now(timezone.utc)
        logger.debug("CacheStatisticsCollector initialized")

    def record_cache_operation(
        self,
        operation: str,
        hit: bool,
        key: str | None = None,
    ) -> None:
        """Record a cache read.

        Args:
            operation: Query operation name (e.g. ``campaigns.getById``)
            hit: Whether fresh or stale data was available
            key: Cache key used
        """
        if hit:
            self.metrics.cache_hits += 1
            self.metrics.hits_by_operation[operation] += 1
        else:
            self.metrics.cache_misses += 1
            self.metrics.misses_by_operation[operation] += 1

        logger.debug("Recorded cache read: %s, hit=%s, key=%s", operation, hit, key)

    def record_fetch(
        self,
        success: bool,
        duration: float | None = None,
        *,
        cancelled: bool = False,
    ) -> None:
        """Record the outcome of a fetch.

        Args:
            success: Whether the fetcher returned a value
            duration: Duration of the fetch in seconds
            cancelled: Whether the fetch was cancelled before completing
        """
        self.metrics.fetches += 1
        if cancelled:
            self.metrics.cancelled_fetches += 1
            return
        if not success:
            self.metrics.fetch_errors += 1
        if duration is not None:
            self.metrics.fetch_time += duration

    def record_discarded_result(self) -> None:
        """Record a fetch result dropped because a newer write superseded it."""
        self.metrics.discarded_results += 1

    def record_update(self, success: bool = True) -> None:
        """Record a set_data call."""
        self.metrics.updates += 1
        if not success:
            self.metrics.update_errors += 1

    def record_invalidation(self, count: int) -> None:
        """Record entries marked stale by one invalidate call."""
        self.metrics.invalidations += count

    def record_garbage_collected(self, count: int) -> None:
        """Record entries removed by garbage collection."""
        self.metrics.garbage_collected += count

    def get_cache_hit_ratio(self) -> float:
        """Hit ratio as a percentage."""
        return self.metrics.cache_hit_ratio * 100.0

    def get_summary(self) -> dict[str, Any]:
        """Counters grouped as ``session_info``, ``cache_metrics`` and ``by_operation``."""
        elapsed = datetime.now(timezone.utc) - self.session_start

        return {
            "session_info": {
                "start_time": self.session_start.isoformat(),
                "duration_seconds": elapsed.total_seconds(),
            },
            "cache_metrics": {
                "cache_hits": self.metrics.cache_hits,
                "cache_misses": self.metrics.cache_misses,
                "cache_hit_ratio": self.metrics.cache_hit_ratio,
                "fetches": self.metrics.fetches,
                "fetch_errors": self.metrics.fetch_errors,
                "fetch_error_rate": self.metrics.fetch_error_rate,
                "cancelled_fetches": self.metrics.cancelled_fetches,
                "discarded_results": self.metrics.discarded_results,
                "average_fetch_time": self.metrics.average_fetch_time,
                "updates": self.metrics.updates,
                "update_errors": self.metrics.update_errors,
                "invalidations": self.metrics.invalidations,
                "garbage_collected": self.metrics.garbage_collected,
            },
            "by_operation": {
                "hits": dict(self.metrics.hits_by_operation),
                "misses": dict(self.metrics.misses_by_operation),
            },
        }

    def reset(self) -> None:
        """Zero every counter and restart the session clock."""
        self.metrics = CacheMetrics()
        self.session_start = datetime.now(timezone.utc)
        logger.debug("CacheStatisticsCollector reset")


__all__ = ["CacheMetrics", "CacheStatisticsCollector"]
