"""
Realtime Channel Constants

This module contains topic naming, reconnection and deduplication defaults
for the push channel layer.
"""

from __future__ import annotations

from .system import BASE_SECOND


class ReconnectDefaults:
    """Reconnection backoff defaults."""

    MAX_ATTEMPTS = 5
    BASE_DELAY = 1.0 * BASE_SECOND
    MAX_DELAY = 30.0 * BASE_SECOND
    MAX_JITTER = 1.0 * BASE_SECOND


class DedupDefaults:
    """Duplicate event suppression defaults."""

    WINDOW = 2.0 * BASE_SECOND
    RETENTION = 10.0 * BASE_SECOND
    PRUNE_THRESHOLD = 1000


class BufferDefaults:
    """Pending-mutation event buffer defaults."""

    SAFETY_TIMEOUT = 30.0 * BASE_SECOND


class Topics:
    """Topic name templates."""

    CAMPAIGN = "campaign:{campaign_id}"
    CAMPAIGN_COMMENTS = "campaign:{campaign_id}:comments"
    CAMPAIGN_VOTES = "campaign:{campaign_id}:votes"
    CAMPAIGN_PARTICIPANTS = "campaign:{campaign_id}:participants"
    ACTIVE_CAMPAIGNS = "campaigns:active"

    @classmethod
    def campaign(cls, campaign_id: str) -> str:
        return cls.CAMPAIGN.format(campaign_id=campaign_id)

    @classmethod
    def campaign_comments(cls, campaign_id: str) -> str:
        return cls.CAMPAIGN_COMMENTS.format(campaign_id=campaign_id)

    @classmethod
    def campaign_votes(cls, campaign_id: str) -> str:
        return cls.CAMPAIGN_VOTES.format(campaign_id=campaign_id)

    @classmethod
    def campaign_participants(cls, campaign_id: str) -> str:
        return cls.CAMPAIGN_PARTICIPANTS.format(campaign_id=campaign_id)


DEFAULT_SCHEMA = "public"


__all__ = [
    "DEFAULT_SCHEMA",
    "BufferDefaults",
    "DedupDefaults",
    "ReconnectDefaults",
    "Topics",
]
