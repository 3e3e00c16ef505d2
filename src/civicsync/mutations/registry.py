"""Registry of in-flight optimistic mutations."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from civicsync.mutations.models import MutationStatus, PendingMutation, TargetRef

logger = logging.getLogger(__name__)

SettleListener = Callable[[PendingMutation, list[TargetRef]], None]


class PendingMutationRegistry:
    """Tracks which cache targets have a mutation in flight.

    A target stays pending until every mutation touching it has settled.
    Settle listeners run synchronously with the settled mutation and the
    targets it released (those no longer touched by any pending mutation).
    """

    def __init__(self) -> None:
        self._mutations: dict[str, PendingMutation] = {}
        self._by_target: dict[TargetRef, set[str]] = defaultdict(set)
        self._listeners: list[SettleListener] = []
        self._registered = 0
        self._confirmed = 0
        self._rolled_back = 0

    def register(self, mutation: PendingMutation) -> None:
        self._mutations[mutation.id] = mutation
        for ref in mutation.targets:
            self._by_target[ref].add(mutation.id)
        self._registered += 1
        logger.debug(
            "Registered %s mutation %s on %d targets",
            mutation.kind.value,
            mutation.id,
            len(mutation.targets),
        )

    def settle(self, mutation: PendingMutation) -> list[TargetRef]:
        """Remove a mutation that left ``pending`` and notify listeners.

        Returns:
            Targets no longer touched by any pending mutation
        """
        if self._mutations.pop(mutation.id, None) is None:
            return []
        if mutation.status == MutationStatus.CONFIRMED:
            self._confirmed += 1
        elif mutation.status == MutationStatus.ROLLED_BACK:
            self._rolled_back += 1

        released: list[TargetRef] = []
        for ref in mutation.targets:
            ids = self._by_target.get(ref)
            if ids is None:
                continue
            ids.discard(mutation.id)
            if not ids:
                del self._by_target[ref]
                released.append(ref)

        for listener in list(self._listeners):
            try:
                listener(mutation, released)
            except Exception:
                logger.exception("Settle listener failed for mutation %s", mutation.id)
        return released

    def is_pending(self, ref: TargetRef) -> bool:
        return bool(self._by_target.get(ref))

    def pending_for(self, ref: TargetRef) -> list[PendingMutation]:
        return [self._mutations[i] for i in self._by_target.get(ref, ()) if i in self._mutations]

    def pending(self) -> list[PendingMutation]:
        return list(self._mutations.values())

    def on_settle(self, listener: SettleListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def __len__(self) -> int:
        return len(self._mutations)

    def get_stats(self) -> dict[str, Any]:
        return {
            "pending": len(self._mutations),
            "pending_targets": len(self._by_target),
            "registered": self._registered,
            "confirmed": self._confirmed,
            "rolled_back": self._rolled_back,
        }


__all__ = ["PendingMutationRegistry", "SettleListener"]
