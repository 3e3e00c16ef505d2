"""Duplicate realtime event suppression."""

from __future__ import annotations

import logging
import time
from typing import Callable, Hashable

from civicsync.realtime.models import RealtimeEvent
from civicsync.shared.constants import DedupDefaults

logger = logging.getLogger(__name__)


class EventDeduplicator:
    """Drops an event seen with the same identity within a short window.

    Identity is ``(table, event_type, row id, commit_timestamp)``.
    Remembered identities are pruned to those younger than ``retention``
    once more than ``prune_threshold`` are tracked.
    """

    def __init__(
        self,
        window: float = DedupDefaults.WINDOW,
        retention: float = DedupDefaults.RETENTION,
        prune_threshold: int = DedupDefaults.PRUNE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window
        self.retention = retention
        self.prune_threshold = prune_threshold
        self._clock = clock
        self._seen: dict[Hashable, float] = {}
        self.deduplicated_events = 0

    def is_duplicate(self, event: RealtimeEvent) -> bool:
        """Record the event and report whether it repeats a recent one."""
        key = event.dedup_key
        now = self._clock()
        last_seen = self._seen.get(key)
        if last_seen is not None and now - last_seen < self.window:
            self.deduplicated_events += 1
            logger.debug("Dropped duplicate event %s", key)
            return True

        self._seen[key] = now
        if len(self._seen) > self.prune_threshold:
            self._prune(now)
        return False

    def _prune(self, now: float) -> None:
        cutoff = now - self.retention
        self._seen = {k: t for k, t in self._seen.items() if t >= cutoff}

    @property
    def tracked(self) -> int:
        return len(self._seen)

    def reset(self) -> None:
        self._seen.clear()
        self.deduplicated_events = 0


__all__ = ["EventDeduplicator"]
