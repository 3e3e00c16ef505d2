"""Tests for the realtime reconciliation bridge."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from civicsync.cache.models import CampaignList, QueryKey
from civicsync.cache.query_cache import QueryCache
from civicsync.config.models.realtime_settings import RealtimeSettings
from civicsync.domain.models import Campaign, CampaignStatus
from civicsync.mutations.models import MutationKind, MutationStatus, PendingMutation, TargetRef
from civicsync.mutations.registry import PendingMutationRegistry
from civicsync.realtime.models import EventType, RealtimeEvent, RealtimeTable
from civicsync.realtime.provider import InMemoryPushProvider
from civicsync.realtime.subscription_manager import SubscriptionManager
from civicsync.reconciliation.bridge import RealtimeReconciliationBridge
from civicsync.shared.constants import Operations, Topics

STAMP = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
DETAIL = QueryKey.campaign("c-1")
DETAIL_REF = TargetRef(DETAIL, "c-1")
ACTIVE = QueryKey.of(Operations.CAMPAIGN_SEARCH, {"status": "ACTIVE", "limit": 20})


def campaign(votes: int = 10, stamp: datetime = STAMP) -> Campaign:
    return Campaign(
        id="c-1",
        title="Park cleanup",
        status=CampaignStatus.ACTIVE,
        vote_count=votes,
        updated_at=stamp,
    )


def update_event(votes: int, seconds: int = 5, event_type: EventType = EventType.UPDATE) -> RealtimeEvent:
    stamp = STAMP + timedelta(seconds=seconds)
    return RealtimeEvent(
        event_type=event_type,
        table=RealtimeTable.CAMPAIGNS,
        new=campaign(votes, stamp).model_dump(mode="json", exclude={"user_vote"}),
        commit_timestamp=stamp,
    )


def pending_vote(registry: PendingMutationRegistry, *targets: TargetRef) -> PendingMutation:
    mutation = PendingMutation(
        id="m-1",
        kind=MutationKind.VOTE,
        targets=list(targets or (DETAIL_REF,)),
        started_at=0.0,
    )
    registry.register(mutation)
    return mutation


def confirm(registry: PendingMutationRegistry, mutation: PendingMutation) -> None:
    mutation.status = MutationStatus.CONFIRMED
    registry.settle(mutation)


async def settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


class TestHandleEvent:
    """Direct merging when no mutation is pending."""

    @pytest.mark.asyncio
    async def test_merges(self, bridge: RealtimeReconciliationBridge, query_cache: QueryCache) -> None:
        query_cache.set_data(DETAIL, campaign())
        bridge.handle_event(update_event(12))

        assert query_cache.get_data(DETAIL).vote_count == 12
        stats = bridge.get_stats()
        assert stats["received"] == 1
        assert stats["merged"] == 1

    @pytest.mark.asyncio
    async def test_duplicate_dropped(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        event = update_event(12)
        bridge.handle_event(event)
        bridge.handle_event(event.model_copy())

        stats = bridge.get_stats()
        assert stats["deduplicated_events"] == 1
        assert stats["merged"] == 1

    @pytest.mark.asyncio
    async def test_table_without_merger_ignored(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        bridge.handle_event(
            RealtimeEvent(
                event_type=EventType.INSERT,
                table=RealtimeTable.NOTIFICATIONS,
                new={"id": "n-1"},
            ),
        )
        assert bridge.get_stats()["merged"] == 0
        assert query_cache.get_data(DETAIL) == campaign()

    @pytest.mark.asyncio
    async def test_bad_row_counted_not_raised(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        event = update_event(12)
        broken = event.model_copy(update={"new": {**event.new, "vote_count": -1}})

        bridge.handle_event(broken)

        assert bridge.get_stats()["merge_errors"] == 1
        assert query_cache.get_data(DETAIL).vote_count == 10


class TestPendingTargets:
    """Events for targets with an in-flight mutation wait for settlement."""

    @pytest.mark.asyncio
    async def test_buffered_then_replayed(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        mutation = pending_vote(registry)
        event = update_event(12)

        bridge.handle_event(event)
        assert query_cache.get_data(DETAIL).vote_count == 10
        assert bridge.buffered == {DETAIL_REF: event}

        confirm(registry, mutation)

        assert query_cache.get_data(DETAIL).vote_count == 12
        stats = bridge.get_stats()
        assert stats["buffered"] == 1
        assert stats["replayed"] == 1
        assert stats["pending_buffer"] == 0

    @pytest.mark.asyncio
    async def test_latest_event_wins(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        mutation = pending_vote(registry)

        bridge.handle_event(update_event(11, seconds=5))
        bridge.handle_event(update_event(13, seconds=6))
        confirm(registry, mutation)

        assert query_cache.get_data(DETAIL).vote_count == 13
        assert bridge.get_stats()["merged"] == 1

    @pytest.mark.asyncio
    async def test_replay_skipped_when_already_reflected(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        mutation = pending_vote(registry)
        event = update_event(11)
        bridge.handle_event(event)

        # Confirmation carries the same commit
        query_cache.set_data(DETAIL, campaign(11, event.commit_timestamp))
        confirm(registry, mutation)

        assert query_cache.get_data(DETAIL).vote_count == 11
        assert bridge.get_stats()["skipped_stale"] == 1

    @pytest.mark.asyncio
    async def test_other_targets_merge_immediately(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        query_cache.set_data(ACTIVE, CampaignList(items=(campaign(),), total=1))
        pending_vote(registry)

        bridge.handle_event(update_event(12))

        assert query_cache.get_data(ACTIVE).items[0].vote_count == 12
        assert query_cache.get_data(DETAIL).vote_count == 10

    @pytest.mark.asyncio
    async def test_flushed_after_safety_timeout(
        self,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
    ) -> None:
        reconciliation = RealtimeReconciliationBridge(
            query_cache,
            registry,
            settings=RealtimeSettings(buffer_safety_timeout=0.01),
        )
        try:
            query_cache.set_data(DETAIL, campaign())
            pending_vote(registry)
            reconciliation.handle_event(update_event(12))

            await asyncio.sleep(0.05)

            assert query_cache.get_data(DETAIL).vote_count == 12
            assert registry.is_pending(DETAIL_REF)
            assert reconciliation.get_stats()["flushed_on_timeout"] == 1
        finally:
            await reconciliation.stop()

    @pytest.mark.asyncio
    async def test_stop_discards_buffer(
        self,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        mutation = pending_vote(registry)
        bridge.handle_event(update_event(12))

        await bridge.stop()
        confirm(registry, mutation)

        assert bridge.buffered == {}
        assert query_cache.get_data(DETAIL).vote_count == 10


class TestSubscriptions:
    """Feeds followed through the subscription manager."""

    @pytest.mark.asyncio
    async def test_start_follows_active_feed(
        self,
        bridge: RealtimeReconciliationBridge,
        subscription_manager: SubscriptionManager,
        push_provider: InMemoryPushProvider,
        query_cache: QueryCache,
    ) -> None:
        query_cache.set_data(ACTIVE, CampaignList())
        await bridge.start()
        await bridge.start()

        push_provider.publish(Topics.ACTIVE_CAMPAIGNS, update_event(1, event_type=EventType.INSERT))

        assert query_cache.get_data(ACTIVE).ids() == ["c-1"]
        assert subscription_manager.get_connection_status()["subscription_count"] == 1

    @pytest.mark.asyncio
    async def test_watch_campaign(
        self,
        bridge: RealtimeReconciliationBridge,
        subscription_manager: SubscriptionManager,
    ) -> None:
        keys = await bridge.watch_campaign("c-1")

        assert len(keys) == 4
        assert await bridge.watch_campaign("c-1") == keys
        assert sorted(subscription_manager.get_connection_status()["active_subscriptions"]) == [
            Topics.campaign("c-1"),
            Topics.campaign_comments("c-1"),
            Topics.campaign_participants("c-1"),
            Topics.campaign_votes("c-1"),
        ]

        bridge.unwatch_campaign("c-1")
        assert subscription_manager.get_connection_status()["subscription_count"] == 0

    @pytest.mark.asyncio
    async def test_participant_events_update_count(
        self,
        bridge: RealtimeReconciliationBridge,
        push_provider: InMemoryPushProvider,
        query_cache: QueryCache,
    ) -> None:
        query_cache.set_data(DETAIL, campaign())
        await bridge.watch_campaign("c-1")
        row = {"id": "p-1", "campaign_id": "c-1", "user_id": "user-2"}
        topic = Topics.campaign_participants("c-1")

        push_provider.publish(
            topic,
            RealtimeEvent(
                event_type=EventType.INSERT,
                table=RealtimeTable.CAMPAIGN_PARTICIPANTS,
                new=row,
                commit_timestamp=STAMP + timedelta(seconds=5),
            ),
        )
        assert query_cache.get_data(DETAIL).participant_count == 1

        push_provider.publish(
            topic,
            RealtimeEvent(
                event_type=EventType.DELETE,
                table=RealtimeTable.CAMPAIGN_PARTICIPANTS,
                old=row,
                commit_timestamp=STAMP + timedelta(seconds=6),
            ),
        )
        assert query_cache.get_data(DETAIL).participant_count == 0
        assert bridge.get_stats()["merged"] == 2

    @pytest.mark.asyncio
    async def test_without_subscription_manager(
        self,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
    ) -> None:
        reconciliation = RealtimeReconciliationBridge(query_cache, registry)
        await reconciliation.start()
        assert await reconciliation.watch_campaign("c-1") == []
        await reconciliation.stop()


class TestReconnect:
    """Events lost while disconnected are recovered by refetching."""

    @pytest.mark.asyncio
    async def test_refetch_after_reconnect(
        self,
        bridge: RealtimeReconciliationBridge,
        subscription_manager: SubscriptionManager,
        push_provider: InMemoryPushProvider,
        query_cache: QueryCache,
    ) -> None:
        fetched: list[int] = []

        async def fetch_detail() -> Campaign:
            fetched.append(15)
            return campaign(15, STAMP + timedelta(seconds=30))

        query_cache.set_data(DETAIL, campaign())
        query_cache.observe(DETAIL, lambda key, value: None, fetch_detail)
        await bridge.start()
        assert fetched == []

        push_provider.simulate_drop()
        push_provider.publish(Topics.ACTIVE_CAMPAIGNS, update_event(14))
        assert await subscription_manager.reconnect()
        await settle()

        assert fetched == [15]
        assert query_cache.get_data(DETAIL).vote_count == 15
        assert bridge.get_stats()["reconnect_refetches"] == 1

    @pytest.mark.asyncio
    async def test_refetch_disabled(
        self,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
        subscription_manager: SubscriptionManager,
        push_provider: InMemoryPushProvider,
    ) -> None:
        fetched: list[Any] = []

        async def fetch_detail() -> Campaign:
            fetched.append(1)
            return campaign()

        reconciliation = RealtimeReconciliationBridge(
            query_cache,
            registry,
            subscription_manager,
            settings=RealtimeSettings(refetch_on_reconnect=False),
        )
        query_cache.set_data(DETAIL, campaign())
        query_cache.observe(DETAIL, lambda key, value: None, fetch_detail)
        try:
            await reconciliation.start()
            push_provider.simulate_drop()
            assert await subscription_manager.reconnect()
            await settle()
            assert fetched == []
        finally:
            await reconciliation.stop()
