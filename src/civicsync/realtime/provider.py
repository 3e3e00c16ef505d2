"""Push channel provider interfaces and an in-memory implementation.

The transport itself is external; this module only fixes the contract the
subscription manager relies on:

- ``await provider.connect()`` / ``await provider.disconnect()``
- ``await provider.subscribe(topic, channel_filter) -> PushChannel``
- ``channel.on(event_type, callback)`` where ``"*"`` receives every event
- ``provider.on_transport_change(callback)`` for transport up/down reports
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Callable, Protocol

from civicsync.realtime.models import ChannelFilter, EventCallback, RealtimeEvent
from civicsync.shared.errors import ErrorCode, ErrorContext, RealtimeError

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"

TransportCallback = Callable[[bool, "BaseException | None"], None]


class PushChannel(Protocol):
    """One topic subscription on the transport."""

    topic: str

    def on(self, event_type: str, callback: EventCallback) -> PushChannel:
        """Register a handler for an event type (``"*"`` for all)."""
        ...

    async def close(self) -> None:
        """Leave the topic."""
        ...


class PushChannelProvider(Protocol):
    """Transport able to open topic channels."""

    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def subscribe(
        self,
        topic: str,
        channel_filter: ChannelFilter | None = None,
    ) -> PushChannel:
        ...

    def on_transport_change(self, callback: TransportCallback) -> Callable[[], None]:
        ...


class InMemoryChannel:
    """Channel of the in-memory provider."""

    def __init__(
        self,
        provider: InMemoryPushProvider,
        topic: str,
        channel_filter: ChannelFilter | None = None,
    ) -> None:
        self.topic = topic
        self.channel_filter = channel_filter
        self.closed = False
        self._provider = provider
        self._handlers: dict[str, list[EventCallback]] = defaultdict(list)

    def on(self, event_type: str, callback: EventCallback) -> InMemoryChannel:
        self._handlers[event_type].append(callback)
        return self

    def deliver(self, event: RealtimeEvent) -> int:
        """Hand an event to matching handlers; returns handler calls made."""
        if self.closed:
            return 0
        if self.channel_filter is not None and not self.channel_filter.accepts(event):
            return 0
        handlers = self._handlers.get(event.event_type.value, []) + self._handlers.get(
            ALL_EVENTS, []
        )
        for handler in handlers:
            handler(event)
        return len(handlers)

    async def close(self) -> None:
        self.closed = True
        self._provider._remove_channel(self)


class InMemoryPushProvider:
    """Loopback push transport for tests, the demo and local wiring.

    Publishing to a topic delivers synchronously to its open channels while
    the transport is up; events published while it is down are lost.

    Attributes:
        connect_failures: Number of upcoming ``connect`` calls that fail
        published: Events published
        delivered: Handler invocations made
        lost: Events published while the transport was down
    """

    def __init__(self, connect_latency: float = 0.0) -> None:
        self.connect_latency = connect_latency
        self.connected = False
        self.connect_failures = 0
        self.connect_calls = 0
        self.published = 0
        self.delivered = 0
        self.lost = 0
        self._channels: dict[str, list[InMemoryChannel]] = defaultdict(list)
        self._transport_callbacks: list[TransportCallback] = []

    async def connect(self) -> None:
        self.connect_calls += 1
        await asyncio.sleep(self.connect_latency)
        if self.connect_failures > 0:
            self.connect_failures -= 1
            raise RealtimeError(
                ErrorCode.REALTIME_CONNECTION_FAILED,
                "Push transport refused the connection",
                ErrorContext(operation="connect"),
            )
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False
        for channel in self.channels():
            channel.closed = True
        self._channels.clear()

    async def subscribe(
        self,
        topic: str,
        channel_filter: ChannelFilter | None = None,
    ) -> InMemoryChannel:
        if not self.connected:
            raise RealtimeError(
                ErrorCode.REALTIME_SUBSCRIPTION_FAILED,
                f"Cannot join {topic}: transport is not connected",
                ErrorContext(operation="subscribe", additional_data={"topic": topic}),
            )
        channel = InMemoryChannel(self, topic, channel_filter)
        self._channels[topic].append(channel)
        return channel

    def on_transport_change(self, callback: TransportCallback) -> Callable[[], None]:
        self._transport_callbacks.append(callback)

        def remove() -> None:
            if callback in self._transport_callbacks:
                self._transport_callbacks.remove(callback)

        return remove

    def publish(self, topic: str, event: RealtimeEvent) -> int:
        """Publish an event to a topic; returns handler calls made."""
        self.published += 1
        if not self.connected:
            self.lost += 1
            return 0
        calls = 0
        for channel in list(self._channels.get(topic, [])):
            calls += channel.deliver(event)
        self.delivered += calls
        return calls

    def simulate_drop(self, error: BaseException | None = None) -> None:
        """Drop the transport and report it to transport listeners."""
        self.connected = False
        for channel in self.channels():
            channel.closed = True
        self._channels.clear()
        logger.debug("Simulated transport drop: %s", error)
        for callback in list(self._transport_callbacks):
            callback(False, error)

    def channels(self, topic: str | None = None) -> list[InMemoryChannel]:
        if topic is not None:
            return list(self._channels.get(topic, []))
        return [channel for group in self._channels.values() for channel in group]

    def _remove_channel(self, channel: InMemoryChannel) -> None:
        group = self._channels.get(channel.topic)
        if group and channel in group:
            group.remove(channel)
            if not group:
                del self._channels[channel.topic]


__all__ = [
    "ALL_EVENTS",
    "InMemoryChannel",
    "InMemoryPushProvider",
    "PushChannel",
    "PushChannelProvider",
    "TransportCallback",
]
