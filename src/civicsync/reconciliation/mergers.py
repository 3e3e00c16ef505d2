"""Typed realtime event mergers.

One merger per realtime table. A merger lists the cache targets an event
touches and merges the event into one target at a time through the cache
``set_data`` contract, so the bridge can hold back targets with a pending
mutation and merge the rest.

Version rule: an event whose ``commit_timestamp`` is not newer than the
cached entity's ``updated_at`` is already reflected and is skipped.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any

from civicsync.cache.filters import list_membership, page_limit
from civicsync.cache.models import KeyPattern, QueryKey, QueryKind, adapter_for
from civicsync.cache.query_cache import QueryCache
from civicsync.domain.conversion import ModelConverter
from civicsync.domain.models import Campaign, Comment, VoteType
from civicsync.mutations.models import TargetRef
from civicsync.realtime.models import EventType, RealtimeEvent, RealtimeTable
from civicsync.shared.constants import Operations

logger = logging.getLogger(__name__)


class MergeResult(str, Enum):
    MERGED = "merged"
    SKIPPED_STALE = "skipped_stale"
    NOOP = "noop"


def is_newer(event: RealtimeEvent, version: datetime | None) -> bool:
    """Whether ``event`` is newer than an entity at ``version``."""
    if event.commit_timestamp is None or version is None:
        return True
    return event.commit_timestamp > version


def campaign_targets(cache: QueryCache, campaign_id: str) -> list[TargetRef]:
    """Detail and list entries with data that may hold a campaign."""
    refs: list[TargetRef] = []
    detail = cache.get(QueryKey.campaign(campaign_id))
    if detail is not None and detail.has_data:
        refs.append(TargetRef(detail.key, campaign_id))
    for entry in cache.find_all([KeyPattern(op) for op in Operations.CAMPAIGN_LISTS]):
        if entry.has_data:
            refs.append(TargetRef(entry.key, campaign_id))
    return refs


class EventMerger:
    """Base class of the per-table mergers."""

    table: RealtimeTable

    def targets(self, cache: QueryCache, event: RealtimeEvent) -> list[TargetRef]:
        raise NotImplementedError

    def apply(self, cache: QueryCache, event: RealtimeEvent, ref: TargetRef) -> MergeResult:
        raise NotImplementedError


class CampaignMerger(EventMerger):
    """Merges campaign row changes into detail and list entries.

    List membership is re-evaluated against each list's params, so a
    campaign whose status leaves a filtered list is removed from it.
    """

    table = RealtimeTable.CAMPAIGNS

    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id

    def targets(self, cache: QueryCache, event: RealtimeEvent) -> list[TargetRef]:
        campaign_id = event.record_id
        if campaign_id is None:
            return []
        return campaign_targets(cache, campaign_id)

    def apply(self, cache: QueryCache, event: RealtimeEvent, ref: TargetRef) -> MergeResult:
        adapter = adapter_for(ref.key.kind)
        if adapter is None:
            return MergeResult.NOOP
        entity, _ = adapter.get_entity(cache.get_data(ref.key), ref.entity_id)
        if entity is not None and not is_newer(event, entity.updated_at):
            return MergeResult.SKIPPED_STALE

        if event.event_type == EventType.DELETE:
            if entity is None:
                return MergeResult.NOOP
            cache.set_data(ref.key, lambda value: adapter.remove_entity(value, ref.entity_id))
            return MergeResult.MERGED

        campaign = self._row_to_campaign(event, entity)

        if ref.key.kind == QueryKind.CAMPAIGN_DETAIL:
            if entity is None:
                return MergeResult.NOOP
            cache.set_data(ref.key, lambda value: adapter.put_entity(value, campaign))
            return MergeResult.MERGED

        member = list_membership(ref.key, campaign, user_id=self.user_id)
        if member is False:
            if entity is None:
                return MergeResult.NOOP
            cache.set_data(ref.key, lambda value: adapter.remove_entity(value, ref.entity_id))
        elif member is True or entity is not None:
            limit = page_limit(ref.key)
            cache.set_data(
                ref.key, lambda value: adapter.put_entity(value, campaign, limit=limit)
            )
        else:
            return MergeResult.NOOP
        return MergeResult.MERGED

    def _row_to_campaign(self, event: RealtimeEvent, current: Campaign | None) -> Campaign:
        row: dict[str, Any] = dict(event.new or {})
        if current is not None:
            # Columns absent from the row image (user_vote) keep cached values
            row = {**current.model_dump(), **row}
        return ModelConverter.to_model(row, Campaign, operation="realtime.campaigns")


class VoteMerger(EventMerger):
    """Applies vote inserts and deletes as ``vote_count`` deltas."""

    table = RealtimeTable.VOTES

    _DELTAS = {EventType.INSERT: 1, EventType.DELETE: -1, EventType.UPDATE: 0}

    def __init__(self, user_id: str | None = None) -> None:
        self.user_id = user_id

    def targets(self, cache: QueryCache, event: RealtimeEvent) -> list[TargetRef]:
        campaign_id = event.row.get("campaign_id")
        if not campaign_id:
            return []
        return campaign_targets(cache, str(campaign_id))

    def apply(self, cache: QueryCache, event: RealtimeEvent, ref: TargetRef) -> MergeResult:
        adapter = adapter_for(ref.key.kind)
        if adapter is None:
            return MergeResult.NOOP
        entity, _ = adapter.get_entity(cache.get_data(ref.key), ref.entity_id)
        if entity is None:
            return MergeResult.NOOP
        if not is_newer(event, entity.updated_at):
            return MergeResult.SKIPPED_STALE

        update: dict[str, Any] = {
            "vote_count": max(entity.vote_count + self._DELTAS[event.event_type], 0),
            "updated_at": event.commit_timestamp or entity.updated_at,
        }
        if self.user_id is not None and event.row.get("user_id") == self.user_id:
            vote_type = (event.new or {}).get("type")
            update["user_vote"] = VoteType(vote_type) if vote_type else None
        merged = entity.model_copy(update=update)
        cache.set_data(ref.key, lambda value: adapter.put_entity(value, merged))
        return MergeResult.MERGED


class ParticipantMerger(EventMerger):
    """Adjusts ``participant_count`` when users join or leave a campaign."""

    table = RealtimeTable.CAMPAIGN_PARTICIPANTS

    _DELTAS = {EventType.INSERT: 1, EventType.DELETE: -1}

    def targets(self, cache: QueryCache, event: RealtimeEvent) -> list[TargetRef]:
        campaign_id = event.row.get("campaign_id")
        if not campaign_id or event.event_type not in self._DELTAS:
            return []
        return campaign_targets(cache, str(campaign_id))

    def apply(self, cache: QueryCache, event: RealtimeEvent, ref: TargetRef) -> MergeResult:
        adapter = adapter_for(ref.key.kind)
        if adapter is None or event.event_type not in self._DELTAS:
            return MergeResult.NOOP
        entity, _ = adapter.get_entity(cache.get_data(ref.key), ref.entity_id)
        if entity is None:
            return MergeResult.NOOP
        if not is_newer(event, entity.updated_at):
            return MergeResult.SKIPPED_STALE

        count = max(entity.participant_count + self._DELTAS[event.event_type], 0)
        merged = entity.model_copy(
            update={
                "participant_count": count,
                "updated_at": event.commit_timestamp or entity.updated_at,
            },
        )
        cache.set_data(ref.key, lambda value: adapter.put_entity(value, merged))
        return MergeResult.MERGED


class CommentMerger(EventMerger):
    """Merges comment rows into threads and counts into campaigns."""

    table = RealtimeTable.COMMENTS

    _DELTAS = {EventType.INSERT: 1, EventType.DELETE: -1, EventType.UPDATE: 0}

    def targets(self, cache: QueryCache, event: RealtimeEvent) -> list[TargetRef]:
        campaign_id = event.row.get("campaign_id")
        comment_id = event.record_id
        if not campaign_id or comment_id is None:
            return []
        refs: list[TargetRef] = []
        thread = cache.get(QueryKey.comments(str(campaign_id)))
        if thread is not None and thread.has_data:
            refs.append(TargetRef(thread.key, comment_id))
        if event.event_type != EventType.UPDATE:
            refs.extend(campaign_targets(cache, str(campaign_id)))
        return refs

    def apply(self, cache: QueryCache, event: RealtimeEvent, ref: TargetRef) -> MergeResult:
        if ref.key.kind == QueryKind.COMMENT_LIST:
            return self._apply_thread(cache, event, ref)
        return self._apply_count(cache, event, ref)

    def _apply_thread(self, cache: QueryCache, event: RealtimeEvent, ref: TargetRef) -> MergeResult:
        adapter = adapter_for(ref.key.kind)
        if adapter is None:
            return MergeResult.NOOP
        entity, _ = adapter.get_entity(cache.get_data(ref.key), ref.entity_id)
        if entity is not None and not is_newer(event, entity.updated_at or entity.created_at):
            return MergeResult.SKIPPED_STALE

        if event.event_type == EventType.DELETE:
            if entity is None:
                return MergeResult.NOOP
            cache.set_data(ref.key, lambda value: adapter.remove_entity(value, ref.entity_id))
            return MergeResult.MERGED

        comment = ModelConverter.to_model(event.new or {}, Comment, operation="realtime.comments")
        cache.set_data(ref.key, lambda value: adapter.put_entity(value, comment))
        return MergeResult.MERGED

    def _apply_count(self, cache: QueryCache, event: RealtimeEvent, ref: TargetRef) -> MergeResult:
        adapter = adapter_for(ref.key.kind)
        if adapter is None:
            return MergeResult.NOOP
        entity, _ = adapter.get_entity(cache.get_data(ref.key), ref.entity_id)
        if entity is None:
            return MergeResult.NOOP
        if not is_newer(event, entity.updated_at):
            return MergeResult.SKIPPED_STALE
        merged = entity.model_copy(
            update={
                "comment_count": max(entity.comment_count + self._DELTAS[event.event_type], 0),
                "updated_at": event.commit_timestamp or entity.updated_at,
            },
        )
        cache.set_data(ref.key, lambda value: adapter.put_entity(value, merged))
        return MergeResult.MERGED


def default_mergers(user_id: str | None = None) -> dict[RealtimeTable, EventMerger]:
    return {
        RealtimeTable.CAMPAIGNS: CampaignMerger(user_id),
        RealtimeTable.VOTES: VoteMerger(user_id),
        RealtimeTable.CAMPAIGN_PARTICIPANTS: ParticipantMerger(),
        RealtimeTable.COMMENTS: CommentMerger(),
    }


__all__ = [
    "CampaignMerger",
    "CommentMerger",
    "EventMerger",
    "MergeResult",
    "ParticipantMerger",
    "VoteMerger",
    "campaign_targets",
    "default_mergers",
    "is_newer",
]
