"""Dependency Injection container for civicsync.

This module wires the optimistic cache core at one composition root using
dependency-injector.

The container manages:
- Settings (Singleton)
- Query cache, statistics and the shared retry policy
- Push provider and the process-wide subscription manager
- Pending mutation registry, coordinator and reconciliation bridge
- Data store gateway and campaign operations
- Background cache manager
"""

from __future__ import annotations

from dependency_injector import containers, providers

from civicsync.background.manager import BackgroundCacheManager
from civicsync.cache.query_cache import QueryCache
from civicsync.cache.statistics import CacheStatisticsCollector
from civicsync.config.loader import load_settings
from civicsync.gateway.memory import InMemoryDataStore
from civicsync.mutations.campaigns import CampaignOperations
from civicsync.mutations.coordinator import OptimisticMutationCoordinator
from civicsync.mutations.invalidation import InvalidationMap
from civicsync.mutations.registry import PendingMutationRegistry
from civicsync.realtime.provider import InMemoryPushProvider
from civicsync.realtime.subscription_manager import init_subscription_manager
from civicsync.reconciliation.bridge import RealtimeReconciliationBridge
from civicsync.retry.policy import RetryPolicy


class Container(containers.DeclarativeContainer):
    """Dependency Injection container for civicsync services.

    Every stateful service is a Singleton: one cache, one registry and one
    subscription manager per container.

    Example:
        >>> container = Container()
        >>> operations = container.campaign_operations()
        >>> campaign = await operations.get_by_id("c1")
    """

    # Configuration
    config = providers.Singleton(load_settings)

    user_id = providers.Callable(lambda config: config.app.user_id, config=config)

    # Cache
    statistics = providers.Singleton(CacheStatisticsCollector)

    retry_policy = providers.Singleton(
        RetryPolicy.from_settings,
        settings=providers.Callable(lambda config: config.retry, config=config),
    )

    query_cache = providers.Singleton(
        QueryCache,
        settings=providers.Callable(lambda config: config.cache, config=config),
        statistics=statistics,
        retry_policy=retry_policy,
    )

    # Realtime
    push_provider = providers.Singleton(InMemoryPushProvider)

    subscription_manager = providers.Singleton(
        init_subscription_manager,
        provider=push_provider,
        settings=providers.Callable(lambda config: config.realtime, config=config),
    )

    # Data store
    gateway = providers.Singleton(
        InMemoryDataStore,
        provider=push_provider,
        user_id=user_id,
    )

    # Mutations
    registry = providers.Singleton(PendingMutationRegistry)

    invalidation_map = providers.Singleton(InvalidationMap)

    coordinator = providers.Singleton(
        OptimisticMutationCoordinator,
        cache=query_cache,
        registry=registry,
        retry_policy=retry_policy,
    )

    campaign_operations = providers.Singleton(
        CampaignOperations,
        cache=query_cache,
        coordinator=coordinator,
        gateway=gateway,
        invalidation=invalidation_map,
        user_id=user_id,
    )

    # Reconciliation
    bridge = providers.Singleton(
        RealtimeReconciliationBridge,
        cache=query_cache,
        registry=registry,
        subscriptions=subscription_manager,
        settings=providers.Callable(lambda config: config.realtime, config=config),
        user_id=user_id,
    )

    # Background maintenance
    background_manager = providers.Singleton(
        BackgroundCacheManager,
        cache=query_cache,
        operations=campaign_operations,
        settings=providers.Callable(lambda config: config.background, config=config),
    )


__all__ = ["Container"]
