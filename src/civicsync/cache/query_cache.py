"""In-memory query cache.

The cache is the single serialization point for client-visible data: every
write goes through :meth:`QueryCache.set_data`, which runs synchronously on
the event loop thread and notifies observers before returning. Fetches are
the only suspending operations; each runs as an ``asyncio.Task`` tagged
with the entry's fetch generation so a cancelled or superseded fetch can
never overwrite newer data.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator

from civicsync.cache.models import (
    CacheEntry,
    Fetcher,
    KeyPattern,
    Observer,
    QueryKey,
    family_of,
)
from civicsync.cache.statistics import CacheStatisticsCollector
from civicsync.config.models.cache_settings import CacheSettings
from civicsync.shared.errors import (
    CacheUpdateError,
    CivicSyncError,
    DomainError,
    ErrorCode,
    ErrorContext,
    InfrastructureError,
)
from civicsync.shared.logging import log_operation_error

if TYPE_CHECKING:
    from civicsync.retry.policy import RetryPolicy

logger = logging.getLogger(__name__)

Updater = Callable[[Any], Any]


class QueryCache:
    """Keyed cache of query results with staleness and observers.

    Args:
        settings: Per-family stale/gc windows
        statistics: Collector for hit/miss and fetch counters
        retry_policy: Policy wrapped around every fetcher call
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        statistics: CacheStatisticsCollector | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or CacheSettings()
        self.statistics = statistics or CacheStatisticsCollector()
        self.retry_policy = retry_policy
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._batch_depth = 0
        self._pending_notifications: dict[QueryKey, None] = {}

    # ------------------------------------------------------------------
    # Entry access
    # ------------------------------------------------------------------

    def now(self) -> float:
        return self._clock()

    def get(self, key: QueryKey) -> CacheEntry | None:
        """Return the entry for a key (no fetch, no statistics)."""
        return self._entries.get(key)

    def get_data(self, key: QueryKey) -> Any:
        """Return the cached value for a key, or None."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    def find_all(self, selector: Any = None) -> list[CacheEntry]:
        """Return entries matching a pattern, a key or a collection of both.

        ``None`` selects every entry.
        """
        if selector is None:
            return list(self._entries.values())
        if isinstance(selector, QueryKey):
            entry = self._entries.get(selector)
            return [entry] if entry is not None else []
        if isinstance(selector, KeyPattern):
            return [e for k, e in self._entries.items() if selector.matches(k)]

        found: dict[QueryKey, CacheEntry] = {}
        for item in selector:
            for entry in self.find_all(item):
                found[entry.key] = entry
        return list(found.values())

    def keys(self, selector: Any = None) -> list[QueryKey]:
        return [entry.key for entry in self.find_all(selector)]

    def _ensure_entry(self, key: QueryKey, fetcher: Fetcher | None = None) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            window = self.settings.window_for(family_of(key.operation))
            entry = CacheEntry(
                key=key,
                stale_after=window.stale_time,
                gc_after=window.gc_time,
                created_at=self.now(),
            )
            self._entries[key] = entry
        if fetcher is not None:
            entry.fetcher = fetcher
        return entry

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_data(self, key: QueryKey, updater: Updater | Any) -> Any:
        """Replace the value of a key through an updater ``prev -> next``.

        A non-callable ``updater`` is stored as the new value. Returning the
        previous value unchanged is a no-op. An updater returning None for a
        key that has no entry does not create one.

        Raises:
            CacheUpdateError: If the updater raises; the entry is left unchanged
        """
        entry = self._entries.get(key)
        previous = entry.value if entry is not None else None

        if callable(updater):
            try:
                new_value = updater(previous)
            except Exception as e:
                self.statistics.record_update(success=False)
                error = CacheUpdateError(
                    ErrorCode.CACHE_UPDATE_FAILED,
                    f"Cache updater failed for {key}: {e}",
                    ErrorContext(
                        operation="set_data",
                        additional_data={"query": key.operation},
                    ),
                    original_error=e,
                )
                log_operation_error(logger=logger, error=error, operation="set_data")
                raise error from e
        else:
            new_value = updater

        if entry is None:
            if new_value is None:
                return None
            entry = self._ensure_entry(key)
        elif new_value is previous and (entry.has_data or new_value is None):
            return previous

        entry.value = new_value
        entry.has_data = True
        entry.updated_at = self.now()
        entry.invalidated = False
        entry.error = None
        self.statistics.record_update(success=True)
        self._notify(key)
        return new_value

    # Alias matching the client cache contract name
    set = set_data

    def remove(self, key: QueryKey) -> bool:
        """Drop an entry, cancelling its in-flight fetch."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        self.cancel_outstanding(key)
        del self._entries[key]
        self._pending_notifications.pop(key, None)
        return True

    def clear(self) -> None:
        """Drop every entry, cancelling in-flight fetches."""
        for key in list(self._entries):
            self.remove(key)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def observe(
        self,
        key: QueryKey,
        callback: Observer,
        fetcher: Fetcher | None = None,
    ) -> Callable[[], None]:
        """Register an observer for a key.

        Observed entries are refetched by ``invalidate`` and kept alive by
        garbage collection.

        Returns:
            Function removing the observer
        """
        entry = self._ensure_entry(key, fetcher)
        entry.observers.append(callback)
        entry.last_observed_at = self.now()

        def unobserve() -> None:
            current = self._entries.get(key)
            if current is not None and callback in current.observers:
                current.observers.remove(callback)
                current.last_observed_at = self.now()

        return unobserve

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Coalesce observer notifications until the outermost batch exits.

        Each key is notified at most once, with its final value.
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                pending = list(self._pending_notifications)
                self._pending_notifications.clear()
                for key in pending:
                    self._dispatch(key)

    def _notify(self, key: QueryKey) -> None:
        if self._batch_depth > 0:
            self._pending_notifications[key] = None
            return
        self._dispatch(key)

    def _dispatch(self, key: QueryKey) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        for observer in list(entry.observers):
            try:
                observer(key, entry.value)
            except Exception:
                logger.exception("Cache observer failed for %s", key)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def cancel_outstanding(self, key: QueryKey) -> bool:
        """Abort the in-flight fetch of a key so its result is discarded.

        Returns:
            True if a fetch was cancelled
        """
        entry = self._entries.get(key)
        if entry is None or not entry.is_fetching:
            return False
        entry.generation += 1
        task = entry.task
        entry.task = None
        if task is not None:
            task.cancel()
        self.statistics.record_fetch(success=False, cancelled=True)
        logger.debug("Cancelled outstanding fetch for %s", key)
        return True

    async def fetch(self, key: QueryKey, fetcher: Fetcher | None = None) -> Any:
        """Fetch a key now, joining a fetch already in flight.

        Returns the current cached value if the joined fetch is cancelled.

        Raises:
            DomainError: If no fetcher is known for the key
            CivicSyncError: If the fetcher fails after retries
        """
        entry = self._ensure_entry(key, fetcher)
        task = entry.task if entry.is_fetching else self._start_fetch(entry)
        return await self._await_fetch(entry, task)

    async def _await_fetch(self, entry: CacheEntry, task: asyncio.Task[Any]) -> Any:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return entry.value
            raise

    def _start_fetch(self, entry: CacheEntry) -> asyncio.Task[Any]:
        if entry.fetcher is None:
            raise DomainError(
                ErrorCode.CACHE_FETCH_FAILED,
                f"No fetcher registered for {entry.key}",
                ErrorContext(
                    operation="fetch",
                    additional_data={"query": entry.key.operation},
                ),
            )
        task = asyncio.get_running_loop().create_task(
            self._run_fetch(entry, entry.generation, entry.fetcher),
        )
        task.add_done_callback(_consume_task_result)
        entry.task = task
        return task

    async def _run_fetch(self, entry: CacheEntry, generation: int, fetcher: Fetcher) -> Any:
        key = entry.key
        started = self.now()
        try:
            if self.retry_policy is not None:
                value = await self.retry_policy.run(fetcher, operation_name=f"fetch {key.operation}")
            else:
                value = await fetcher()
        except Exception as e:
            if not self._is_current(entry, generation):
                self.statistics.record_discarded_result()
                logger.debug("Discarded failed fetch for superseded %s", key)
                return entry.value
            entry.error = e
            entry.error_at = self.now()
            self.statistics.record_fetch(success=False, duration=self.now() - started)
            error = e if isinstance(e, CivicSyncError) else InfrastructureError(
                ErrorCode.CACHE_FETCH_FAILED,
                f"Fetch failed for {key}: {e}",
                ErrorContext(operation="fetch", additional_data={"query": key.operation}),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation="fetch")
            if error is e:
                raise
            raise error from e
        finally:
            if entry.task is asyncio.current_task():
                entry.task = None

        if not self._is_current(entry, generation):
            self.statistics.record_discarded_result()
            logger.debug("Discarded stale fetch result for %s", key)
            return entry.value

        self.statistics.record_fetch(success=True, duration=self.now() - started)
        entry.value = value
        entry.has_data = True
        entry.fetched_at = entry.updated_at = self.now()
        entry.invalidated = False
        entry.error = None
        self._notify(key)
        return value

    def _is_current(self, entry: CacheEntry, generation: int) -> bool:
        return entry.generation == generation and self._entries.get(entry.key) is entry

    async def ensure(self, key: QueryKey, fetcher: Fetcher) -> Any:
        """Return cached data (even stale) or fetch it once."""
        entry = self._ensure_entry(key, fetcher)
        if entry.has_data:
            self.statistics.record_cache_operation(key.operation, hit=True, key=str(key))
            return entry.value
        self.statistics.record_cache_operation(key.operation, hit=False, key=str(key))
        return await self.fetch(key)

    async def query(self, key: QueryKey, fetcher: Fetcher) -> Any:
        """Stale-while-revalidate read.

        With data, returns it immediately and starts a background refetch
        when stale. Without data, awaits the first fetch.
        """
        entry = self._ensure_entry(key, fetcher)
        if entry.has_data:
            self.statistics.record_cache_operation(key.operation, hit=True, key=str(key))
            if entry.is_stale(self.now()) and not entry.is_fetching:
                self._start_fetch(entry)
            return entry.value
        self.statistics.record_cache_operation(key.operation, hit=False, key=str(key))
        return await self.fetch(key)

    async def prefetch(self, key: QueryKey, fetcher: Fetcher, *, force: bool = False) -> None:
        """Warm a key unless fresh data exists. Failures are logged only."""
        entry = self._ensure_entry(key, fetcher)
        if entry.has_data and not entry.is_stale(self.now()) and not force:
            return
        try:
            await self.fetch(key)
        except Exception as e:  # noqa: BLE001
            logger.warning("Prefetch failed for %s: %s", key, e)

    def refetch(self, key: QueryKey) -> asyncio.Task[Any] | None:
        """Start a background fetch for a key with a known fetcher.

        Returns the running task (joined if one is already in flight), or
        None when there is no fetcher or no running event loop.
        """
        entry = self._entries.get(key)
        if entry is None or entry.fetcher is None:
            return None
        if entry.is_fetching:
            return entry.task
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return None
        return self._start_fetch(entry)

    def invalidate(self, selector: Any, *, refetch: bool = True) -> list[asyncio.Task[Any]]:
        """Mark matching entries stale and refetch the observed ones.

        Args:
            selector: KeyPattern, QueryKey or an iterable of them
            refetch: Start background refetches for observed entries

        Returns:
            Refetch tasks that were started or joined
        """
        matched = self.find_all(selector)
        tasks: list[asyncio.Task[Any]] = []
        for entry in matched:
            entry.invalidated = True
            if refetch and entry.observers:
                task = self.refetch(entry.key)
                if task is not None:
                    tasks.append(task)
        self.statistics.record_invalidation(len(matched))
        if matched:
            logger.debug(
                "Invalidated %d entries (%d refetching)",
                len(matched),
                len(tasks),
            )
        return tasks

    def collect_garbage(self) -> int:
        """Remove unobserved entries idle longer than their gc window."""
        now = self.now()
        expired = [key for key, entry in self._entries.items() if entry.is_collectable(now)]
        for key in expired:
            self.remove(key)
        if expired:
            self.statistics.record_garbage_collected(len(expired))
            logger.debug("Garbage collected %d cache entries", len(expired))
        return len(expired)


def _consume_task_result(task: asyncio.Task[Any]) -> None:
    # Failures are already logged by _run_fetch.
    if not task.cancelled():
        task.exception()


__all__ = ["QueryCache", "Updater"]
