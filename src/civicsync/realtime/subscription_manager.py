"""Realtime subscription manager.

This module keeps the registry of topic subscriptions on top of a push
channel provider. One channel is opened per topic and shared by every
registration on that topic; the connection is opened lazily by the first
subscription and re-established with backoff after a transport drop.

Events that arrive while the manager is not connected are dropped; there
is no replay across a disconnect.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import random
import threading
import time
from collections import Counter
from typing import Any, Awaitable, Callable

from civicsync.config.loader import get_config
from civicsync.config.models.realtime_settings import RealtimeSettings
from civicsync.realtime.connection import ConnectionStateMachine
from civicsync.realtime.models import (
    ChannelFilter,
    ConnectionCallback,
    ConnectionStatus,
    EventCallback,
    RealtimeEvent,
    Subscription,
)
from civicsync.realtime.provider import (
    ALL_EVENTS,
    InMemoryPushProvider,
    PushChannel,
    PushChannelProvider,
)
from civicsync.shared.constants import Topics
from civicsync.shared.errors import (
    CivicSyncError,
    ErrorCode,
    ErrorContext,
    RealtimeError,
)
from civicsync.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class SubscriptionManager:
    """Registry of realtime subscriptions over one shared connection.

    Args:
        provider: Push channel transport
        settings: Reconnection settings
        sleep: Awaitable sleep used for reconnect backoff
        random_func: Jitter source
        clock: Monotonic clock in seconds
    """

    def __init__(
        self,
        provider: PushChannelProvider,
        settings: RealtimeSettings | None = None,
        sleep: SleepFunc | None = None,
        random_func: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.settings = settings or RealtimeSettings()
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._clock = clock

        self._state = ConnectionStateMachine(
            max_attempts=self.settings.max_reconnect_attempts,
            base_delay=self.settings.reconnect_base_delay,
            max_delay=self.settings.reconnect_max_delay,
            max_jitter=self.settings.reconnect_max_jitter,
            random_func=random_func,
            clock=clock,
        )
        self._state.on_transition(self._on_transition)

        self._subscriptions: dict[str, Subscription] = {}
        self._channels: dict[str, PushChannel] = {}
        self._listeners: list[ConnectionCallback] = []
        self._sequence = itertools.count(1)
        self._connect_task: asyncio.Task[bool] | None = None
        self._reconnect_task: asyncio.Task[bool] | None = None
        self._background: set[asyncio.Task[Any]] = set()

        self._total_events = 0
        self._events_by_type: Counter[str] = Counter()
        self._events_by_table: Counter[str] = Counter()
        self._dropped_events = 0

        self._remove_transport_callback = provider.on_transport_change(
            self._on_transport_change,
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe_to_entity(
        self,
        topic: str,
        callback: EventCallback,
        channel_filter: ChannelFilter | None = None,
    ) -> str:
        """Register a callback for a topic and open the channel lazily.

        Connection failures are not raised; the registration stays and the
        channel is opened once a reconnect succeeds.

        Returns:
            Subscription key for :meth:`unsubscribe`
        """
        key = f"{topic}#{next(self._sequence)}"
        self._subscriptions[key] = Subscription(
            key=key,
            topic=topic,
            callback=callback,
            channel_filter=channel_filter,
            created_at=self._clock(),
        )
        logger.debug("Registered subscription %s", key)

        await self._ensure_connected()
        if self._state.is_connected:
            await self._open_channel(topic)
        return key

    async def subscribe_to_campaign(self, campaign_id: str, callback: EventCallback) -> str:
        return await self.subscribe_to_entity(Topics.campaign(campaign_id), callback)

    async def subscribe_to_campaign_comments(
        self, campaign_id: str, callback: EventCallback
    ) -> str:
        return await self.subscribe_to_entity(Topics.campaign_comments(campaign_id), callback)

    async def subscribe_to_campaign_votes(self, campaign_id: str, callback: EventCallback) -> str:
        return await self.subscribe_to_entity(Topics.campaign_votes(campaign_id), callback)

    async def subscribe_to_campaign_participants(
        self, campaign_id: str, callback: EventCallback
    ) -> str:
        return await self.subscribe_to_entity(Topics.campaign_participants(campaign_id), callback)

    async def subscribe_to_active_campaigns(self, callback: EventCallback) -> str:
        return await self.subscribe_to_entity(Topics.ACTIVE_CAMPAIGNS, callback)

    def unsubscribe(self, key: str) -> bool:
        """Remove a registration; the topic channel closes with its last one."""
        subscription = self._subscriptions.pop(key, None)
        if subscription is None:
            return False
        subscription.active = False
        if not self._has_registrations(subscription.topic):
            self._close_channel_soon(subscription.topic)
        logger.debug("Removed subscription %s", key)
        return True

    def unsubscribe_all(self) -> int:
        """Remove every registration and close all channels."""
        count = len(self._subscriptions)
        for subscription in self._subscriptions.values():
            subscription.active = False
        self._subscriptions.clear()
        for topic in list(self._channels):
            self._close_channel_soon(topic)
        return count

    def _has_registrations(self, topic: str) -> bool:
        return any(s.topic == topic for s in self._subscriptions.values())

    def _topics(self) -> list[str]:
        return list(dict.fromkeys(s.topic for s in self._subscriptions.values()))

    async def _open_channel(self, topic: str) -> None:
        if topic in self._channels or not self._has_registrations(topic):
            return
        filters = {s.channel_filter for s in self._subscriptions.values() if s.topic == topic}
        channel_filter = filters.pop() if len(filters) == 1 else None
        try:
            channel = await self.provider.subscribe(topic, channel_filter)
        except Exception as e:
            error = e if isinstance(e, CivicSyncError) else RealtimeError(
                ErrorCode.REALTIME_SUBSCRIPTION_FAILED,
                f"Failed to open channel {topic}: {e}",
                ErrorContext(operation="open_channel", additional_data={"topic": topic}),
                original_error=e,
            )
            log_operation_error(logger=logger, error=error, operation="open_channel")
            return
        channel.on(ALL_EVENTS, lambda event, _topic=topic: self._dispatch(_topic, event))
        self._channels[topic] = channel

    def _close_channel_soon(self, topic: str) -> None:
        channel = self._channels.pop(topic, None)
        if channel is None:
            return
        self._spawn(channel.close(), f"close channel {topic}")

    def _spawn(self, coro: Awaitable[Any], description: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: nothing to schedule on; drop the coroutine cleanly
            close = getattr(coro, "close", None)
            if close is not None:
                close()
            logger.debug("Skipped %s outside an event loop", description)
            return
        task = loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _dispatch(self, topic: str, event: RealtimeEvent) -> None:
        if not self._state.is_connected:
            self._dropped_events += 1
            return

        self._total_events += 1
        self._events_by_type[event.event_type.value] += 1
        self._events_by_table[event.table.value] += 1

        for subscription in list(self._subscriptions.values()):
            if subscription.topic != topic or not subscription.active:
                continue
            if subscription.channel_filter and not subscription.channel_filter.accepts(event):
                continue
            try:
                subscription.callback(event)
                subscription.delivered += 1
            except Exception:
                logger.exception("Subscription callback failed for %s", subscription.key)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def on_connection_change(self, callback: ConnectionCallback) -> Callable[[], None]:
        """Register a listener called with True/False on every change of
        connectedness. The current status is not replayed on registration.

        Returns:
            Function removing the listener
        """
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _on_transition(self, previous: ConnectionStatus, current: ConnectionStatus) -> None:
        was_connected = previous == ConnectionStatus.CONNECTED
        is_connected = current == ConnectionStatus.CONNECTED
        if was_connected == is_connected:
            return
        for listener in list(self._listeners):
            try:
                listener(is_connected)
            except Exception:
                logger.exception("Connection listener failed")

    def _on_transport_change(self, connected: bool, error: BaseException | None) -> None:
        if connected or not self._state.is_connected:
            return
        logger.warning("Push transport dropped: %s", error)
        self._channels.clear()
        self._state.transition(ConnectionStatus.DISCONNECTED)
        self._start_reconnect()

    def _in_flight(self) -> asyncio.Task[bool] | None:
        for task in (self._connect_task, self._reconnect_task):
            if task is not None and not task.done():
                return task
        return None

    async def _await_connection(self, task: asyncio.Task[bool]) -> bool:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return False
            raise

    async def _ensure_connected(self) -> None:
        if self._state.state == ConnectionStatus.DISCONNECTED and self._in_flight() is None:
            self._state.transition(ConnectionStatus.CONNECTING)
            self._connect_task = asyncio.get_running_loop().create_task(self._connect())
        if self._state.state == ConnectionStatus.CONNECTING and self._connect_task is not None:
            await self._await_connection(self._connect_task)

    async def _connect(self) -> bool:
        try:
            await self.provider.connect()
        except Exception as e:  # noqa: BLE001
            logger.warning("Initial push connection failed: %s", e)
            self._state.transition(ConnectionStatus.DISCONNECTED)
            self._start_reconnect()
            return False
        self._state.transition(ConnectionStatus.CONNECTED)
        await self._reopen_channels()
        return True

    def _start_reconnect(self) -> asyncio.Task[bool] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; staying disconnected")
            return None
        self._state.transition(ConnectionStatus.RECONNECTING)
        self._reconnect_task = loop.create_task(self._reconnect_loop())
        return self._reconnect_task

    async def _reconnect_loop(self) -> bool:
        while True:
            delay = self._state.next_reconnect_delay()
            if delay is None:
                self._state.transition(ConnectionStatus.DISCONNECTED)
                error = RealtimeError(
                    ErrorCode.REALTIME_CONNECTION_FAILED,
                    "Giving up reconnecting to the push transport",
                    ErrorContext(
                        operation="reconnect",
                        additional_data={"attempts": self._state.max_attempts},
                    ),
                )
                log_operation_error(logger=logger, error=error, operation="reconnect")
                return False

            logger.info(
                "Reconnecting in %.2fs (attempt %d/%d)",
                delay,
                self._state.attempts,
                self._state.max_attempts,
            )
            await self._sleep(delay)
            try:
                await self.provider.connect()
            except Exception as e:  # noqa: BLE001
                logger.warning("Reconnect attempt %d failed: %s", self._state.attempts, e)
                continue

            self._state.transition(ConnectionStatus.CONNECTED)
            await self._reopen_channels()
            logger.info("Reconnected to push transport")
            return True

    async def _reopen_channels(self) -> None:
        for topic in self._topics():
            await self._open_channel(topic)

    async def reconnect(self) -> bool:
        """Force a disconnect/reconnect cycle keeping all registrations.

        Idempotent while a connect or reconnect is already in progress: the
        in-flight attempt is awaited instead.

        Returns:
            Whether the manager ended up connected
        """
        in_flight = self._in_flight()
        if in_flight is not None:
            return await self._await_connection(in_flight)

        if self._state.is_connected:
            for topic in list(self._channels):
                self._close_channel_soon(topic)
            await self.provider.disconnect()
            self._state.transition(ConnectionStatus.DISCONNECTED)

        task = self._start_reconnect()
        if task is None:
            return False
        return await self._await_connection(task)

    async def disconnect(self) -> None:
        """Explicitly disconnect and drop every registration.

        The manager does not reconnect on its own afterwards; a later
        subscription connects again lazily.
        """
        for task in (self._connect_task, self._reconnect_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._connect_task = None
        self._reconnect_task = None

        self.unsubscribe_all()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        await self.provider.disconnect()
        if self._state.state != ConnectionStatus.DISCONNECTED:
            self._state.transition(ConnectionStatus.DISCONNECTED)
        logger.info("Realtime subscriptions disconnected")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._state.state

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    def get_connection_status(self) -> dict[str, Any]:
        """Connection summary from in-memory state only."""
        return {
            "is_connected": self._state.is_connected,
            "status": self._state.state.value,
            "active_subscriptions": self._topics(),
            "subscription_count": len(self._subscriptions),
        }

    def get_metrics(self) -> dict[str, Any]:
        """Event and reconnection counters."""
        return {
            "total_events": self._total_events,
            "events_by_type": dict(self._events_by_type),
            "events_by_table": dict(self._events_by_table),
            "dropped_events": self._dropped_events,
            "reconnect_attempts": self._state.reconnect_attempts,
            "successful_reconnects": self._state.successful_reconnects,
            "connected_since": self._state.connected_since,
            "uptime": self._state.uptime(),
        }

    def close(self) -> None:
        """Detach from the provider's transport callbacks."""
        self._remove_transport_callback()


# Process-wide instance
_manager: SubscriptionManager | None = None
_manager_lock = threading.Lock()


def init_subscription_manager(
    provider: PushChannelProvider | None = None,
    settings: RealtimeSettings | None = None,
    **kwargs: Any,
) -> SubscriptionManager:
    """Create (or replace) the process-wide subscription manager."""
    global _manager  # noqa: PLW0603
    with _manager_lock:
        if _manager is not None:
            _manager.close()
        _manager = SubscriptionManager(
            provider or InMemoryPushProvider(),
            settings=settings,
            **kwargs,
        )
        return _manager


def get_subscription_manager() -> SubscriptionManager:
    """Return the process-wide subscription manager, creating it on first use."""
    global _manager  # noqa: PLW0603
    if _manager is None:
        with _manager_lock:
            if _manager is None:
                _manager = SubscriptionManager(
                    InMemoryPushProvider(),
                    settings=get_config().realtime,
                )
    return _manager


async def teardown_subscription_manager() -> None:
    """Disconnect and forget the process-wide subscription manager."""
    global _manager  # noqa: PLW0603
    with _manager_lock:
        manager, _manager = _manager, None
    if manager is not None:
        await manager.disconnect()
        manager.close()


__all__ = [
    "SubscriptionManager",
    "get_subscription_manager",
    "init_subscription_manager",
    "teardown_subscription_manager",
]
