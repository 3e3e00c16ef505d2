"""Tests for the dependency injection container."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from dependency_injector import providers

from civicsync.config.models.app_settings import AppSettings
from civicsync.config.models.background_settings import BackgroundSettings
from civicsync.config.models.retry_settings import RetrySettings
from civicsync.config.models.settings import Settings
from civicsync.containers import Container
from civicsync.realtime.subscription_manager import (
    get_subscription_manager,
    teardown_subscription_manager,
)


@pytest_asyncio.fixture
async def container() -> AsyncIterator[Container]:
    settings = Settings(
        app=AppSettings(user_id="user-9"),
        retry=RetrySettings(max_attempts=2, base_delay=0.01, max_delay=0.02),
        background=BackgroundSettings(enabled=False),
    )
    wired = Container()
    wired.config.override(providers.Object(settings))
    yield wired
    wired.config.reset_override()
    await teardown_subscription_manager()


class TestContainer:
    """Services are wired once per container."""

    @pytest.mark.asyncio
    async def test_singletons(self, container: Container) -> None:
        assert container.query_cache() is container.query_cache()
        assert container.coordinator() is container.coordinator()
        assert container.bridge() is container.bridge()

    @pytest.mark.asyncio
    async def test_shared_collaborators(self, container: Container) -> None:
        operations = container.campaign_operations()
        coordinator = container.coordinator()
        bridge = container.bridge()

        assert operations.cache is container.query_cache()
        assert coordinator.cache is operations.cache
        assert bridge.cache is operations.cache
        assert bridge.registry is coordinator.registry
        assert bridge.subscriptions is get_subscription_manager()
        assert container.gateway().provider is container.push_provider()

    @pytest.mark.asyncio
    async def test_settings_flow_into_services(self, container: Container) -> None:
        assert container.user_id() == "user-9"
        assert container.retry_policy().max_attempts == 2
        assert container.query_cache().retry_policy is container.retry_policy()
        assert not container.background_manager().settings.enabled

    @pytest.mark.asyncio
    async def test_operations_reach_the_store(self, container: Container) -> None:
        store = container.gateway()
        seeded = store.seed_campaign(title="Library hours", status="ACTIVE")

        campaign = await container.campaign_operations().get_by_id(seeded.id)

        assert campaign.id == seeded.id
        assert campaign.title == "Library hours"
