"""Background cache maintenance.

Periodic jobs unrelated to any single mutation:

- cleanup: garbage-collect unobserved entries past their gc window
- refresh: refetch observed entries that went stale
- stale check: refresh critical queries older than ``critical_max_age``
- stats: log hit rate and entry counts at INFO

Disabling the manager only affects freshness latency, never consistency.
Job failures are logged and never propagate.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from civicsync.cache.query_cache import QueryCache
from civicsync.config.models.background_settings import BackgroundSettings
from civicsync.mutations.campaigns import active_campaigns_search
from civicsync.shared.constants import Operations
from civicsync.shared.errors import ApplicationError, ErrorCode, ErrorContext
from civicsync.shared.logging import log_operation_error, log_operation_success

if TYPE_CHECKING:
    from civicsync.mutations.campaigns import CampaignOperations

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class BackgroundCacheManager:
    """Timer-driven prefetch, refresh and pruning of the query cache.

    Args:
        cache: Shared query cache
        operations: Campaign operations used for prefetching
        settings: Intervals and switches
        sleep: Awaitable sleep between job runs
    """

    def __init__(
        self,
        cache: QueryCache,
        operations: CampaignOperations | None = None,
        settings: BackgroundSettings | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self.cache = cache
        self.operations = operations
        self.settings = settings or BackgroundSettings()
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._tasks: list[asyncio.Task[None]] = []
        self._runs: dict[str, int] = {"cleanup": 0, "refresh": 0, "stale_check": 0, "stats": 0}
        self._errors = 0

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def start(self) -> None:
        """Prefetch common data and start the periodic jobs."""
        if not self.settings.enabled:
            logger.info("Background cache maintenance is disabled")
            return
        if self.is_running:
            return

        if self.settings.prefetch_on_start:
            await self.prefetch_common_data()

        loop = asyncio.get_running_loop()
        jobs: list[tuple[str, float, Callable[[], int]]] = [
            ("cleanup", self.settings.cleanup_interval, self.perform_cleanup),
            ("refresh", self.settings.refresh_interval, self.perform_refresh),
            ("stale_check", self.settings.stale_check_interval, self.perform_stale_check),
            ("stats", self.settings.stats_interval, self.report_cache_stats),
        ]
        self._tasks = [
            loop.create_task(self._run_periodically(name, interval, job), name=f"cache-{name}")
            for name, interval, job in jobs
        ]
        logger.info("Background cache maintenance started (%d jobs)", len(self._tasks))

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Background cache maintenance stopped")

    async def _run_periodically(
        self,
        name: str,
        interval: float,
        job: Callable[[], int],
    ) -> None:
        while True:
            await self._sleep(interval)
            self._run_job(name, job)

    def _run_job(self, name: str, job: Callable[[], int]) -> int:
        started = time.perf_counter()
        try:
            count = job()
        except Exception as e:  # noqa: BLE001
            self._errors += 1
            error = ApplicationError(
                code=ErrorCode.BACKGROUND_TASK_FAILED,
                message=f"Background {name} failed: {e!s}",
                context=ErrorContext(operation=f"background_{name}"),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation=f"background_{name}")
            return 0

        self._runs[name] += 1
        log_operation_success(
            logger=logger,
            operation=f"background_{name}",
            duration_ms=(time.perf_counter() - started) * 1000,
            result_info={"entries": count},
        )
        return count

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def perform_cleanup(self) -> int:
        """Remove unobserved entries idle past their gc window."""
        return self.cache.collect_garbage()

    def perform_refresh(self) -> int:
        """Refetch observed entries that are stale and not already fetching."""
        now = self.cache.now()
        started = 0
        for entry in self.cache.entries():
            if entry.observers and entry.is_stale(now) and not entry.is_fetching:
                if self.cache.refetch(entry.key) is not None:
                    started += 1
        return started

    def perform_stale_check(self) -> int:
        """Invalidate observed critical queries older than ``critical_max_age``."""
        now = self.cache.now()
        aged = [
            entry.key
            for entry in self.cache.entries()
            if entry.key.operation in Operations.CRITICAL
            and entry.observers
            and (entry.age(now) or 0.0) >= self.settings.critical_max_age
        ]
        if aged:
            self.cache.invalidate(aged)
        return len(aged)

    def report_cache_stats(self) -> int:
        """Log the current cache statistics; returns the active entry count."""
        stats = self.get_cache_stats()
        logger.info(
            "Cache: %.1f%% hit rate, %d active of %d entries",
            stats["hit_rate"],
            stats["active_queries"],
            stats["total_queries"],
            extra={"operation": "cache_stats", "result_info": stats},
        )
        return stats["active_queries"]

    async def prefetch_common_data(self) -> None:
        """Warm the active campaigns search."""
        if self.operations is None:
            return
        context = ErrorContext(operation="prefetch_common_data")
        try:
            await self.operations.prefetch_search_results(active_campaigns_search())
        except Exception as e:  # noqa: BLE001
            self._errors += 1
            error = ApplicationError(
                code=ErrorCode.BACKGROUND_TASK_FAILED,
                message=f"Prefetching common data failed: {e!s}",
                context=context,
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation="prefetch_common_data")

    async def force_refresh_all(self) -> int:
        """Invalidate every entry and wait for observed ones to refetch."""
        tasks = self.cache.invalidate(None)
        results = await asyncio.gather(*tasks, return_exceptions=True)
        failed = sum(1 for r in results if isinstance(r, BaseException))
        if failed:
            logger.warning("Forced refresh: %d of %d refetches failed", failed, len(tasks))
        return len(tasks)

    def get_cache_stats(self) -> dict[str, Any]:
        """Aggregate entry states and the cache hit rate."""
        now = self.cache.now()
        entries = self.cache.entries()
        return {
            "total_queries": len(entries),
            "active_queries": sum(1 for e in entries if e.observers),
            "stale_queries": sum(1 for e in entries if e.is_stale(now)),
            "error_queries": sum(1 for e in entries if e.status == "error"),
            "loading_queries": sum(1 for e in entries if e.status == "loading"),
            "fetching_queries": sum(1 for e in entries if e.is_fetching),
            "hit_rate": self.cache.statistics.get_cache_hit_ratio(),
            "job_runs": dict(self._runs),
            "job_errors": self._errors,
        }


__all__ = ["BackgroundCacheManager", "SleepFunc"]
