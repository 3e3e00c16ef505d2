"""Realtime channel configuration models.

This module contains reconnection, deduplication and event buffering
settings of the push channel layer.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from civicsync.shared.constants import (
    DEFAULT_SCHEMA,
    BufferDefaults,
    DedupDefaults,
    ReconnectDefaults,
)


class RealtimeSettings(BaseModel):
    """Realtime subscription and reconciliation configuration."""

    schema_name: str = Field(
        default=DEFAULT_SCHEMA,
        description="Database schema the push channel listens on",
    )
    max_reconnect_attempts: int = Field(
        default=ReconnectDefaults.MAX_ATTEMPTS,
        ge=0,
        description="Reconnect attempts before giving up",
    )
    reconnect_base_delay: float = Field(
        default=ReconnectDefaults.BASE_DELAY,
        ge=0,
        description="Base reconnect delay in seconds",
    )
    reconnect_max_delay: float = Field(
        default=ReconnectDefaults.MAX_DELAY,
        ge=0,
        description="Maximum reconnect delay in seconds",
    )
    reconnect_max_jitter: float = Field(
        default=ReconnectDefaults.MAX_JITTER,
        ge=0,
        description="Maximum random jitter added to each reconnect delay",
    )
    dedup_window: float = Field(
        default=DedupDefaults.WINDOW,
        gt=0,
        description="Seconds within which identical events are dropped",
    )
    dedup_retention: float = Field(
        default=DedupDefaults.RETENTION,
        gt=0,
        description="Seconds a seen event is remembered once pruning starts",
    )
    dedup_prune_threshold: int = Field(
        default=DedupDefaults.PRUNE_THRESHOLD,
        gt=0,
        description="Tracked event count that triggers pruning",
    )
    buffer_safety_timeout: float = Field(
        default=BufferDefaults.SAFETY_TIMEOUT,
        gt=0,
        description="Seconds before a buffered event is flushed without settlement",
    )
    refetch_on_reconnect: bool = Field(
        default=True,
        description="Invalidate realtime-backed queries after a reconnect",
    )


__all__ = ["RealtimeSettings"]
