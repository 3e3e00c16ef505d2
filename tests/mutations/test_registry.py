"""Tests for the pending mutation registry."""

from __future__ import annotations

from civicsync.cache.models import QueryKey
from civicsync.mutations.models import (
    MutationKind,
    MutationStatus,
    PendingMutation,
    TargetRef,
)
from civicsync.mutations.registry import PendingMutationRegistry

DETAIL = TargetRef(QueryKey.campaign("c-1"), "c-1")
OTHER = TargetRef(QueryKey.campaign("c-2"), "c-2")


def mutation(mutation_id: str, *targets: TargetRef) -> PendingMutation:
    return PendingMutation(
        id=mutation_id,
        kind=MutationKind.VOTE,
        targets=list(targets),
        started_at=0.0,
    )


class TestPendingTargets:
    """A target is pending while any mutation touching it is in flight."""

    def test_register_marks_targets(self, registry: PendingMutationRegistry) -> None:
        registry.register(mutation("m-1", DETAIL))

        assert registry.is_pending(DETAIL)
        assert not registry.is_pending(OTHER)
        assert [m.id for m in registry.pending_for(DETAIL)] == ["m-1"]
        assert len(registry) == 1

    def test_settle_releases_targets(self, registry: PendingMutationRegistry) -> None:
        first = mutation("m-1", DETAIL, OTHER)
        registry.register(first)
        first.status = MutationStatus.CONFIRMED

        assert registry.settle(first) == [DETAIL, OTHER]
        assert not registry.is_pending(DETAIL)
        assert registry.pending() == []

    def test_overlapping_mutations(self, registry: PendingMutationRegistry) -> None:
        first = mutation("m-1", DETAIL)
        second = mutation("m-2", DETAIL, OTHER)
        registry.register(first)
        registry.register(second)

        first.status = MutationStatus.ROLLED_BACK
        assert registry.settle(first) == []
        assert registry.is_pending(DETAIL)

        second.status = MutationStatus.CONFIRMED
        assert registry.settle(second) == [DETAIL, OTHER]
        assert not registry.is_pending(DETAIL)

    def test_settle_unknown_mutation(self, registry: PendingMutationRegistry) -> None:
        assert registry.settle(mutation("never-registered", DETAIL)) == []


class TestSettleListeners:
    """on_settle() callbacks."""

    def test_listener_receives_released_targets(self, registry: PendingMutationRegistry) -> None:
        seen: list[tuple[str, list[TargetRef]]] = []
        registry.on_settle(lambda m, released: seen.append((m.id, released)))

        pending = mutation("m-1", DETAIL)
        registry.register(pending)
        registry.settle(pending)

        assert seen == [("m-1", [DETAIL])]

    def test_failing_listener_isolated(self, registry: PendingMutationRegistry) -> None:
        seen: list[str] = []

        def broken(m: PendingMutation, released: list[TargetRef]) -> None:
            raise RuntimeError("listener bug")

        registry.on_settle(broken)
        registry.on_settle(lambda m, released: seen.append(m.id))

        pending = mutation("m-1", DETAIL)
        registry.register(pending)
        registry.settle(pending)

        assert seen == ["m-1"]

    def test_remove_listener(self, registry: PendingMutationRegistry) -> None:
        seen: list[str] = []
        remove = registry.on_settle(lambda m, released: seen.append(m.id))
        remove()
        remove()

        pending = mutation("m-1", DETAIL)
        registry.register(pending)
        registry.settle(pending)

        assert seen == []


def test_stats(registry: PendingMutationRegistry) -> None:
    confirmed = mutation("m-1", DETAIL)
    rolled_back = mutation("m-2", OTHER)
    waiting = mutation("m-3", OTHER)
    for pending in (confirmed, rolled_back, waiting):
        registry.register(pending)

    confirmed.status = MutationStatus.CONFIRMED
    rolled_back.status = MutationStatus.ROLLED_BACK
    registry.settle(confirmed)
    registry.settle(rolled_back)

    assert registry.get_stats() == {
        "pending": 1,
        "pending_targets": 1,
        "registered": 3,
        "confirmed": 1,
        "rolled_back": 1,
    }
