"""Realtime event and connection models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from civicsync.shared.constants import DEFAULT_SCHEMA


class EventType(str, Enum):
    """Row change kinds delivered by the push channel."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class RealtimeTable(str, Enum):
    """Tables with realtime publication enabled."""

    CAMPAIGNS = "campaigns"
    CAMPAIGN_PARTICIPANTS = "campaign_participants"
    VOTES = "votes"
    COMMENTS = "comments"
    NOTIFICATIONS = "notifications"


class ConnectionStatus(str, Enum):
    """State of the underlying push channel connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class RealtimeEvent(BaseModel):
    """Inbound row change notification.

    Immutable; ``new`` is absent for DELETE and ``old`` for INSERT.

    Attributes:
        event_type: INSERT, UPDATE or DELETE
        table: Source table
        new: Row image after the change
        old: Row image before the change
        commit_timestamp: Commit time of the change, used for ordering
        schema_name: Database schema of the table
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_type: EventType
    table: RealtimeTable
    new: Optional[dict[str, Any]] = None
    old: Optional[dict[str, Any]] = None
    commit_timestamp: Optional[datetime] = None
    schema_name: str = Field(default=DEFAULT_SCHEMA, alias="schema")

    @property
    def row(self) -> dict[str, Any]:
        """The most recent row image available."""
        return self.new or self.old or {}

    @property
    def record_id(self) -> str | None:
        value = (self.new or {}).get("id") or (self.old or {}).get("id")
        return str(value) if value is not None else None

    @property
    def dedup_key(self) -> tuple[str, str, str | None, str | None]:
        """Identity of the change for duplicate suppression."""
        stamp = self.commit_timestamp.isoformat() if self.commit_timestamp else None
        return (self.table.value, self.event_type.value, self.record_id, stamp)


EventCallback = Callable[[RealtimeEvent], None]
ConnectionCallback = Callable[[bool], None]


@dataclass(frozen=True)
class ChannelFilter:
    """Server-side filter of a channel (e.g. ``id=eq.123``)."""

    table: RealtimeTable | None = None
    event: EventType | None = None
    filter: str | None = None
    schema_name: str = DEFAULT_SCHEMA

    def accepts(self, event: RealtimeEvent) -> bool:
        if self.table is not None and event.table != self.table:
            return False
        if self.event is not None and event.event_type != self.event:
            return False
        if self.filter:
            column, _, expected = self.filter.partition("=eq.")
            if str(event.row.get(column)) != expected:
                return False
        return True


@dataclass
class Subscription:
    """One registered listener on a topic."""

    key: str
    topic: str
    callback: EventCallback
    channel_filter: ChannelFilter | None = None
    active: bool = True
    created_at: float = 0.0
    delivered: int = field(default=0)


__all__ = [
    "ChannelFilter",
    "ConnectionCallback",
    "ConnectionStatus",
    "EventCallback",
    "EventType",
    "RealtimeEvent",
    "RealtimeTable",
    "Subscription",
]
