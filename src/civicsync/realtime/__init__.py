"""Realtime push channel subscriptions."""

from .connection import ConnectionStateMachine
from .deduplication import EventDeduplicator
from .models import (
    ChannelFilter,
    ConnectionStatus,
    EventType,
    RealtimeEvent,
    RealtimeTable,
    Subscription,
)
from .provider import (
    InMemoryChannel,
    InMemoryPushProvider,
    PushChannel,
    PushChannelProvider,
)
from .subscription_manager import (
    SubscriptionManager,
    get_subscription_manager,
    init_subscription_manager,
    teardown_subscription_manager,
)

__all__ = [
    "ChannelFilter",
    "ConnectionStateMachine",
    "ConnectionStatus",
    "EventDeduplicator",
    "EventType",
    "InMemoryChannel",
    "InMemoryPushProvider",
    "PushChannel",
    "PushChannelProvider",
    "RealtimeEvent",
    "RealtimeTable",
    "Subscription",
    "SubscriptionManager",
    "get_subscription_manager",
    "init_subscription_manager",
    "teardown_subscription_manager",
]
