"""Realtime reconciliation bridge.

Feeds push channel events into the query cache, concurrently with the
optimistic mutation coordinator:

- duplicate deliveries are dropped
- each event is merged target by target; a target with a pending mutation
  gets the event buffered instead (latest event per target wins)
- when the mutation settles, the buffered event is replayed before the
  mutation's invalidation runs, and the version rule decides whether it
  is still newer than the settled value
- a buffer whose mutation never settles is flushed after a safety timeout
- after a reconnect, realtime-backed entries are refetched, since events
  sent while disconnected are lost
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Callable

from civicsync.cache.models import KeyPattern
from civicsync.cache.query_cache import QueryCache
from civicsync.config.models.realtime_settings import RealtimeSettings
from civicsync.mutations.models import PendingMutation, TargetRef
from civicsync.mutations.registry import PendingMutationRegistry
from civicsync.realtime.deduplication import EventDeduplicator
from civicsync.realtime.models import RealtimeEvent, RealtimeTable
from civicsync.realtime.subscription_manager import SubscriptionManager
from civicsync.reconciliation.mergers import EventMerger, MergeResult, default_mergers
from civicsync.shared.constants import Operations
from civicsync.shared.errors import CivicSyncError

logger = logging.getLogger(__name__)

REALTIME_BACKED = (
    Operations.CAMPAIGN_BY_ID,
    *Operations.CAMPAIGN_LISTS,
    Operations.CAMPAIGN_COMMENTS,
)


class RealtimeReconciliationBridge:
    """Merges realtime events into the cache around pending mutations.

    Args:
        cache: Shared query cache
        registry: Registry of in-flight mutations
        subscriptions: Subscription manager delivering events
        settings: Realtime settings (dedup window, buffer timeout)
        deduplicator: Duplicate suppression (built from settings if omitted)
        mergers: Per-table mergers
        user_id: Current user
    """

    def __init__(
        self,
        cache: QueryCache,
        registry: PendingMutationRegistry,
        subscriptions: SubscriptionManager | None = None,
        settings: RealtimeSettings | None = None,
        deduplicator: EventDeduplicator | None = None,
        mergers: dict[RealtimeTable, EventMerger] | None = None,
        user_id: str | None = None,
    ) -> None:
        self.cache = cache
        self.registry = registry
        self.subscriptions = subscriptions
        self.settings = settings or RealtimeSettings()
        self.deduplicator = deduplicator or EventDeduplicator(
            window=self.settings.dedup_window,
            retention=self.settings.dedup_retention,
            prune_threshold=self.settings.dedup_prune_threshold,
        )
        self.mergers = mergers or default_mergers(user_id)

        self._buffer: dict[TargetRef, RealtimeEvent] = {}
        self._timers: dict[TargetRef, asyncio.TimerHandle] = {}
        self._subscription_keys: dict[str, list[str]] = {}
        self._seen_connected = False
        self._stats: Counter[str] = Counter()

        self._remove_settle_listener = registry.on_settle(self._on_settle)
        self._remove_connection_listener: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Follow the active campaigns feed and connection changes."""
        if self.subscriptions is None or "active" in self._subscription_keys:
            return
        self._remove_connection_listener = self.subscriptions.on_connection_change(
            self._on_connection_change,
        )
        key = await self.subscriptions.subscribe_to_active_campaigns(self.handle_event)
        self._subscription_keys["active"] = [key]
        self._seen_connected = self.subscriptions.is_connected

    async def watch_campaign(self, campaign_id: str) -> list[str]:
        """Follow row, vote, comment and participant events of one campaign."""
        if self.subscriptions is None:
            return []
        existing = self._subscription_keys.get(campaign_id)
        if existing:
            return existing
        keys = [
            await self.subscriptions.subscribe_to_campaign(campaign_id, self.handle_event),
            await self.subscriptions.subscribe_to_campaign_votes(campaign_id, self.handle_event),
            await self.subscriptions.subscribe_to_campaign_comments(
                campaign_id, self.handle_event
            ),
            await self.subscriptions.subscribe_to_campaign_participants(
                campaign_id, self.handle_event
            ),
        ]
        self._subscription_keys[campaign_id] = keys
        return keys

    def unwatch_campaign(self, campaign_id: str) -> None:
        if self.subscriptions is None:
            return
        for key in self._subscription_keys.pop(campaign_id, []):
            self.subscriptions.unsubscribe(key)

    async def stop(self) -> None:
        """Drop subscriptions, listeners and buffered events."""
        if self.subscriptions is not None:
            for keys in self._subscription_keys.values():
                for key in keys:
                    self.subscriptions.unsubscribe(key)
        self._subscription_keys.clear()
        if self._remove_connection_listener is not None:
            self._remove_connection_listener()
            self._remove_connection_listener = None
        self._remove_settle_listener()
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._buffer.clear()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def handle_event(self, event: RealtimeEvent) -> None:
        """Merge one inbound event, buffering pending targets."""
        self._stats["received"] += 1
        if self.deduplicator.is_duplicate(event):
            self._stats["deduplicated_events"] += 1
            return

        merger = self.mergers.get(event.table)
        if merger is None:
            self._stats["ignored"] += 1
            logger.debug("No merger for %s events", event.table.value)
            return

        with self.cache.batch():
            for ref in merger.targets(self.cache, event):
                if self.registry.is_pending(ref):
                    self._buffer_event(ref, event)
                else:
                    self._merge(merger, event, ref)

    def _merge(self, merger: EventMerger, event: RealtimeEvent, ref: TargetRef) -> None:
        try:
            result = merger.apply(self.cache, event, ref)
        except CivicSyncError as e:
            self._stats["merge_errors"] += 1
            logger.warning("Could not merge %s event into %s: %s", event.table.value, ref, e)
            return
        if result == MergeResult.MERGED:
            self._stats["merged"] += 1
        elif result == MergeResult.SKIPPED_STALE:
            self._stats["skipped_stale"] += 1

    def _buffer_event(self, ref: TargetRef, event: RealtimeEvent) -> None:
        self._buffer[ref] = event
        self._stats["buffered"] += 1
        logger.debug("Buffered %s event for pending %s", event.table.value, ref)
        if ref in self._timers:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timers[ref] = loop.call_later(
            self.settings.buffer_safety_timeout,
            self._flush,
            ref,
        )

    def _replay(self, ref: TargetRef) -> bool:
        handle = self._timers.pop(ref, None)
        if handle is not None:
            handle.cancel()
        event = self._buffer.pop(ref, None)
        if event is None:
            return False
        merger = self.mergers.get(event.table)
        if merger is not None:
            self._merge(merger, event, ref)
        return True

    def _on_settle(self, mutation: PendingMutation, released: list[TargetRef]) -> None:
        with self.cache.batch():
            for ref in released:
                if self._replay(ref):
                    self._stats["replayed"] += 1

    def _flush(self, ref: TargetRef) -> None:
        self._timers.pop(ref, None)
        if ref not in self._buffer:
            return
        logger.warning("Flushing buffered event for %s: mutation did not settle in time", ref)
        self._stats["flushed_on_timeout"] += 1
        self._replay(ref)

    @property
    def buffered(self) -> dict[TargetRef, RealtimeEvent]:
        return dict(self._buffer)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _on_connection_change(self, connected: bool) -> None:
        if not connected:
            return
        if self._seen_connected and self.settings.refetch_on_reconnect:
            self.refetch_realtime_backed()
        self._seen_connected = True

    def refetch_realtime_backed(self) -> list[asyncio.Task[Any]]:
        """Invalidate entries kept fresh by the push channel."""
        tasks = self.cache.invalidate([KeyPattern(op) for op in REALTIME_BACKED])
        self._stats["reconnect_refetches"] += 1
        logger.info("Refetching %d realtime-backed entries after reconnect", len(tasks))
        return tasks

    def get_stats(self) -> dict[str, Any]:
        stats = {
            name: self._stats[name]
            for name in (
                "received",
                "merged",
                "buffered",
                "replayed",
                "deduplicated_events",
                "skipped_stale",
                "flushed_on_timeout",
            )
        }
        stats["pending_buffer"] = len(self._buffer)
        stats["merge_errors"] = self._stats["merge_errors"]
        stats["reconnect_refetches"] = self._stats["reconnect_refetches"]
        return stats


__all__ = ["REALTIME_BACKED", "RealtimeReconciliationBridge"]
