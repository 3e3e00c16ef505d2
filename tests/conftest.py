"""
Pytest configuration and shared fixtures for civicsync tests.

This module provides the cache, gateway, realtime and mutation fixtures
shared by the test modules. Time and sleeps are injected so tests never
wait on the wall clock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable, Iterator
from typing import Any

import pytest
import pytest_asyncio

from civicsync.cache.query_cache import QueryCache
from civicsync.cache.statistics import CacheStatisticsCollector
from civicsync.config.models.cache_settings import CacheSettings
from civicsync.config.models.realtime_settings import RealtimeSettings
from civicsync.domain.models import Campaign
from civicsync.gateway.memory import InMemoryDataStore
from civicsync.mutations.campaigns import CampaignOperations
from civicsync.mutations.coordinator import OptimisticMutationCoordinator
from civicsync.mutations.registry import PendingMutationRegistry
from civicsync.realtime.provider import InMemoryPushProvider
from civicsync.realtime.subscription_manager import SubscriptionManager
from civicsync.reconciliation.bridge import RealtimeReconciliationBridge
from civicsync.retry.policy import RetryPolicy
from civicsync.shared.constants import Logging

USER_ID = "user-1"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that records delays.

    Returns immediately unless ``gate`` is set, in which case it waits for
    the test to release the event.
    """

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.gate is not None:
            await self.gate.wait()


@pytest.fixture(autouse=True)
def reset_package_logger() -> Iterator[None]:
    """Undo handler and propagation changes made by setup_structured_logger."""
    yield
    package_logger = logging.getLogger(Logging.LOGGER_NAME)
    package_logger.handlers.clear()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def retry_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def reconnect_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def retry_policy(retry_sleep: RecordingSleep) -> RetryPolicy:
    """Three attempts, 1s base delay doubling up to 30s, no real waiting."""
    return RetryPolicy(
        max_attempts=3,
        base_delay=1.0,
        max_delay=30.0,
        backoff_factor=2.0,
        sleep=retry_sleep,
    )


@pytest.fixture
def statistics() -> CacheStatisticsCollector:
    return CacheStatisticsCollector()


@pytest.fixture
def query_cache(
    clock: FakeClock,
    retry_policy: RetryPolicy,
    statistics: CacheStatisticsCollector,
) -> QueryCache:
    return QueryCache(
        settings=CacheSettings(),
        statistics=statistics,
        retry_policy=retry_policy,
        clock=clock,
    )


@pytest.fixture
def push_provider() -> InMemoryPushProvider:
    return InMemoryPushProvider()


@pytest.fixture
def store(push_provider: InMemoryPushProvider) -> InMemoryDataStore:
    return InMemoryDataStore(provider=push_provider, user_id=USER_ID)


@pytest.fixture
def realtime_settings() -> RealtimeSettings:
    return RealtimeSettings(reconnect_max_jitter=0.0, buffer_safety_timeout=5.0)


@pytest_asyncio.fixture
async def subscription_manager(
    push_provider: InMemoryPushProvider,
    realtime_settings: RealtimeSettings,
    reconnect_sleep: RecordingSleep,
) -> AsyncGenerator[SubscriptionManager, None]:
    manager = SubscriptionManager(
        push_provider,
        settings=realtime_settings,
        sleep=reconnect_sleep,
        random_func=lambda: 0.0,
    )
    yield manager
    await manager.disconnect()
    manager.close()


@pytest.fixture
def registry() -> PendingMutationRegistry:
    return PendingMutationRegistry()


@pytest.fixture
def coordinator(
    query_cache: QueryCache,
    registry: PendingMutationRegistry,
    retry_policy: RetryPolicy,
) -> OptimisticMutationCoordinator:
    return OptimisticMutationCoordinator(query_cache, registry, retry_policy=retry_policy)


@pytest.fixture
def operations(
    query_cache: QueryCache,
    coordinator: OptimisticMutationCoordinator,
    store: InMemoryDataStore,
) -> CampaignOperations:
    return CampaignOperations(query_cache, coordinator, store, user_id=USER_ID)


@pytest_asyncio.fixture
async def bridge(
    query_cache: QueryCache,
    registry: PendingMutationRegistry,
    subscription_manager: SubscriptionManager,
    realtime_settings: RealtimeSettings,
) -> AsyncGenerator[RealtimeReconciliationBridge, None]:
    reconciliation = RealtimeReconciliationBridge(
        query_cache,
        registry,
        subscription_manager,
        settings=realtime_settings,
        user_id=USER_ID,
    )
    yield reconciliation
    await reconciliation.stop()


CAMPAIGN_DEFAULTS: dict[str, Any] = {
    "title": "Repaint the Elm Street crosswalks",
    "description": "Faded crosswalk lines near the school need repainting.",
    "status": "ACTIVE",
    "city": "Springfield",
    "state": "IL",
    "latitude": 39.78,
    "longitude": -89.65,
}


@pytest.fixture
def seed(store: InMemoryDataStore) -> Callable[..., Campaign]:
    """Seed an active, located campaign owned by the current user."""

    def _seed(**overrides: Any) -> Campaign:
        return store.seed_campaign(**{**CAMPAIGN_DEFAULTS, **overrides})

    return _seed
