"""End-to-end scenarios across the cache, coordinator, store and push channel."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from hypothesis import given, settings
from hypothesis import strategies as st

from civicsync.cache.models import CampaignList, QueryKey
from civicsync.cache.query_cache import QueryCache
from civicsync.domain.models import Campaign, CampaignStatus, VoteType
from civicsync.gateway.memory import InMemoryDataStore, LogicalClock
from civicsync.mutations.campaigns import CampaignOperations, active_campaigns_search
from civicsync.mutations.coordinator import OptimisticMutationCoordinator
from civicsync.mutations.registry import PendingMutationRegistry
from civicsync.realtime.models import EventType, RealtimeEvent, RealtimeTable
from civicsync.realtime.provider import InMemoryPushProvider
from civicsync.realtime.subscription_manager import SubscriptionManager
from civicsync.reconciliation.bridge import RealtimeReconciliationBridge
from civicsync.retry.policy import RetryPolicy
from civicsync.shared.constants import TEMP_ID_PREFIX, Operations, Topics
from civicsync.shared.errors import ErrorCode, MutationError

ACTIVE = QueryKey.of(Operations.CAMPAIGN_SEARCH, active_campaigns_search().model_dump())
FIXED_STAMP = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def row_event(campaign: Campaign, event_type: EventType = EventType.UPDATE, **changes: Any) -> RealtimeEvent:
    changed = campaign.model_copy(update=changes)
    return RealtimeEvent(
        event_type=event_type,
        table=RealtimeTable.CAMPAIGNS,
        new=changed.model_dump(mode="json", exclude={"user_vote"}),
        commit_timestamp=changed.updated_at,
    )


@pytest_asyncio.fixture
async def live(
    bridge: RealtimeReconciliationBridge,
    operations: CampaignOperations,
    query_cache: QueryCache,
    seed,
) -> AsyncIterator[Campaign]:
    """A seeded campaign read into the detail and active list, with the bridge following it."""
    campaign = seed(vote_count=10)
    await bridge.start()
    await bridge.watch_campaign(campaign.id)
    await operations.get_by_id(campaign.id)
    await operations.search({"status": "ACTIVE"})
    yield campaign


class TestVote:
    """Voting through the whole stack."""

    @pytest.mark.asyncio
    async def test_rollback_after_retries(
        self,
        live: Campaign,
        operations: CampaignOperations,
        coordinator: OptimisticMutationCoordinator,
        query_cache: QueryCache,
        store: InMemoryDataStore,
    ) -> None:
        detail = QueryKey.campaign(live.id)
        seen: list[int] = []
        query_cache.observe(detail, lambda key, value: seen.append(value.vote_count))
        store.fail_next(ErrorCode.INTERNAL_SERVER_ERROR, times=3, operations={"vote"})

        with pytest.raises(MutationError) as exc_info:
            await operations.vote({"campaign_id": live.id, "vote_type": VoteType.SUPPORT})
        await coordinator.wait_for_refetches()

        assert seen[:2] == [11, 10]
        assert store.calls["vote"] == 3
        assert query_cache.get_data(detail).vote_count == 10
        assert query_cache.get_data(ACTIVE).items[0].vote_count == 10
        assert exc_info.value.user_message == "Something went wrong on our side. Please try again."

    @pytest.mark.asyncio
    async def test_confirmed_everywhere(
        self,
        live: Campaign,
        operations: CampaignOperations,
        coordinator: OptimisticMutationCoordinator,
        bridge: RealtimeReconciliationBridge,
        query_cache: QueryCache,
        store: InMemoryDataStore,
    ) -> None:
        detail = QueryKey.campaign(live.id)
        query_cache.observe(ACTIVE, lambda key, value: None)
        gate = store.hold("vote")

        task = asyncio.create_task(
            operations.vote({"campaign_id": live.id, "vote_type": VoteType.SUPPORT}),
        )
        await settle()
        assert query_cache.get_data(detail).vote_count == 11
        assert query_cache.get_data(ACTIVE).items[0].vote_count == 11

        gate.set()
        result = await task
        await coordinator.wait_for_refetches()

        assert result.campaign.vote_count == 11
        assert query_cache.get_data(detail).vote_count == 11
        assert query_cache.get_data(detail).user_vote is VoteType.SUPPORT
        assert query_cache.get_data(ACTIVE).items[0].vote_count == 11
        assert store.calls["search_campaigns"] == 2

        stats = bridge.get_stats()
        assert stats["buffered"] >= 1
        assert stats["deduplicated_events"] >= 1
        assert stats["pending_buffer"] == 0


class TestCreate:
    """Placeholders and realtime inserts of other rows."""

    @pytest.mark.asyncio
    async def test_concurrent_insert_during_pending_create(
        self,
        live: Campaign,
        operations: CampaignOperations,
        query_cache: QueryCache,
        store: InMemoryDataStore,
        push_provider: InMemoryPushProvider,
        seed,
    ) -> None:
        gate = store.hold("create_campaign")
        task = asyncio.create_task(
            operations.create(
                {
                    "title": "Community garden",
                    "description": "A garden for the block",
                    "status": "ACTIVE",
                },
            ),
        )
        await settle()
        assert query_cache.get_data(ACTIVE).items[0].id.startswith(TEMP_ID_PREFIX)

        other = seed(title="Bike lanes on 5th")
        push_provider.publish(Topics.ACTIVE_CAMPAIGNS, row_event(other, EventType.INSERT))
        assert other.id in query_cache.get_data(ACTIVE).ids()

        gate.set()
        created = await task

        ids = query_cache.get_data(ACTIVE).ids()
        assert ids.count(other.id) == 1
        assert ids.count(created.id) == 1
        assert not any(i.startswith(TEMP_ID_PREFIX) for i in ids)
        assert sorted(ids) == sorted([created.id, other.id, live.id])
        assert query_cache.get_data(ACTIVE).total == 3


class TestRealtime:
    """Connection loss, duplicates and events racing a mutation."""

    @pytest.mark.asyncio
    async def test_reconnect_does_not_replay(
        self,
        live: Campaign,
        subscription_manager: SubscriptionManager,
        push_provider: InMemoryPushProvider,
        query_cache: QueryCache,
    ) -> None:
        detail = QueryKey.campaign(live.id)
        query_cache.observe(detail, lambda key, value: None)
        transitions: list[bool] = []
        subscription_manager.on_connection_change(transitions.append)

        push_provider.simulate_drop()
        push_provider.publish(Topics.campaign(live.id), row_event(live, vote_count=99))
        assert await subscription_manager.reconnect()
        await settle()

        assert transitions == [False, True]
        assert push_provider.lost == 1
        assert query_cache.get_data(detail).vote_count == 10

        push_provider.publish(
            Topics.campaign(live.id),
            row_event(live, vote_count=12, updated_at=live.updated_at + timedelta(hours=1)),
        )
        assert query_cache.get_data(detail).vote_count == 12

    @pytest.mark.asyncio
    async def test_duplicate_delivery_applied_once(
        self,
        live: Campaign,
        push_provider: InMemoryPushProvider,
        query_cache: QueryCache,
    ) -> None:
        detail = QueryKey.campaign(live.id)
        seen: list[int] = []
        query_cache.observe(detail, lambda key, value: seen.append(value.vote_count))
        event = row_event(live, vote_count=15, updated_at=live.updated_at + timedelta(seconds=1))

        push_provider.publish(Topics.campaign(live.id), event)
        push_provider.publish(Topics.campaign(live.id), event)

        assert seen == [15]

    @pytest.mark.asyncio
    async def test_stale_fetch_does_not_clobber_vote(
        self,
        live: Campaign,
        operations: CampaignOperations,
        query_cache: QueryCache,
    ) -> None:
        detail = QueryKey.campaign(live.id)
        gate = asyncio.Event()

        async def slow_fetch() -> Campaign:
            await gate.wait()
            return live

        fetch = asyncio.create_task(query_cache.fetch(detail, slow_fetch))
        await settle()

        await operations.vote({"campaign_id": live.id, "vote_type": VoteType.SUPPORT})
        gate.set()
        await fetch

        assert query_cache.get_data(detail).vote_count == 11

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("offset", "expected"), [(timedelta(hours=1), 20), (timedelta(0), 11)])
    async def test_event_during_mutation_converges(
        self,
        operations: CampaignOperations,
        query_cache: QueryCache,
        registry: PendingMutationRegistry,
        store: InMemoryDataStore,
        seed,
        offset: timedelta,
        expected: int,
    ) -> None:
        campaign = seed(vote_count=10)
        detail = QueryKey.campaign(campaign.id)
        await operations.get_by_id(campaign.id)
        reconciliation = RealtimeReconciliationBridge(query_cache, registry)
        gate = store.hold("vote")

        task = asyncio.create_task(
            operations.vote({"campaign_id": campaign.id, "vote_type": VoteType.SUPPORT}),
        )
        await settle()
        stamp = campaign.updated_at + offset + timedelta(microseconds=1)
        reconciliation.handle_event(row_event(campaign, vote_count=20, updated_at=stamp))
        assert query_cache.get_data(detail).vote_count == 11

        gate.set()
        await task

        assert query_cache.get_data(detail).vote_count == expected
        await reconciliation.stop()


class TestRollbackProperty:
    """A failed vote leaves every touched entry as it was."""

    @given(
        votes=st.integers(min_value=0, max_value=10_000),
        others=st.lists(st.integers(min_value=0, max_value=500), max_size=5),
        code=st.sampled_from(
            [ErrorCode.INTERNAL_SERVER_ERROR, ErrorCode.FORBIDDEN, ErrorCode.CONFLICT],
        ),
    )
    @settings(max_examples=30, deadline=None)
    def test_state_restored(self, votes: int, others: list[int], code: ErrorCode) -> None:
        async def scenario() -> None:
            async def no_wait(delay: float) -> None:
                return None

            policy = RetryPolicy(max_attempts=3, sleep=no_wait)
            cache = QueryCache(retry_policy=policy, clock=lambda: 1000.0)
            coordinator = OptimisticMutationCoordinator(cache, PendingMutationRegistry(), retry_policy=policy)
            store = InMemoryDataStore(clock=LogicalClock(lambda: FIXED_STAMP))
            operations = CampaignOperations(cache, coordinator, store, user_id=store.user_id)

            target = store.seed_campaign(title="Target", status=CampaignStatus.ACTIVE, vote_count=votes)
            for count in others:
                store.seed_campaign(status=CampaignStatus.ACTIVE, vote_count=count)
            await operations.get_by_id(target.id)
            await operations.search({"status": "ACTIVE"})
            before = {entry.key: entry.value for entry in cache.entries()}

            store.fail_next(code, times=3, operations={"vote"})
            with pytest.raises(MutationError):
                await operations.vote({"campaign_id": target.id, "vote_type": VoteType.OPPOSE})

            assert {entry.key: entry.value for entry in cache.entries()} == before
            assert isinstance(before[ACTIVE], CampaignList)

        # runs outside the event loop pytest-asyncio may have installed
        loop = asyncio.new_event_loop()
        try:
            loop.run_until_complete(scenario())
        finally:
            loop.close()
