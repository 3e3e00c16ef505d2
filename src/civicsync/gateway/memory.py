"""In-memory data store.

Reference implementation of :class:`DataStoreGateway` used by the tests,
the CLI demo and the default container wiring. Every write:

- stamps ``updated_at`` from a strictly increasing clock, so row versions
  and commit timestamps are totally ordered
- publishes the row change on the push provider, the way database
  replication would for every connected client (including the writer)
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from civicsync.cache.models import CampaignList, CommentList
from civicsync.domain.models import (
    Campaign,
    CampaignCreateInput,
    CampaignDeleteInput,
    CampaignSearchInput,
    CampaignStatus,
    CampaignUpdateInput,
    Comment,
    CommentCreateInput,
    MyCampaignsInput,
    NearbyInput,
    Vote,
    VoteInput,
    VoteResult,
)
from civicsync.realtime.models import EventType, RealtimeEvent, RealtimeTable
from civicsync.realtime.provider import InMemoryPushProvider
from civicsync.shared.constants import Topics
from civicsync.shared.errors import ErrorCode, ErrorContext, GatewayError

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0


@dataclass
class _InjectedFailure:
    code: ErrorCode
    remaining: int
    retry_after: float | None = None
    operations: frozenset[str] | None = None

    def applies_to(self, operation: str) -> bool:
        return self.operations is None or operation in self.operations


class LogicalClock:
    """Wall clock that never returns the same instant twice."""

    def __init__(self, now: Callable[[], datetime] | None = None) -> None:
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._last: datetime | None = None

    def tick(self) -> datetime:
        current = self._now()
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current


def _distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


class InMemoryDataStore:
    """Campaign store kept in dictionaries.

    Args:
        provider: Push provider receiving row change events (optional)
        user_id: Identity of the calling user
        latency: Seconds each request waits before running
        clock: Logical clock for row versions
    """

    def __init__(
        self,
        provider: InMemoryPushProvider | None = None,
        user_id: str = "user-1",
        latency: float = 0.0,
        clock: LogicalClock | None = None,
    ) -> None:
        self.provider = provider
        self.user_id = user_id
        self.latency = latency
        self.clock = clock or LogicalClock()
        self.calls: Counter[str] = Counter()

        self._campaigns: dict[str, Campaign] = {}
        self._votes: dict[tuple[str, str], Vote] = {}
        self._comments: dict[str, Comment] = {}
        self._failures: deque[_InjectedFailure] = deque()
        self._gates: dict[str, asyncio.Event] = {}

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------

    def fail_next(
        self,
        code: ErrorCode,
        times: int = 1,
        *,
        retry_after: float | None = None,
        operations: set[str] | None = None,
    ) -> None:
        """Make the next ``times`` matching requests fail with ``code``."""
        self._failures.append(
            _InjectedFailure(
                code=code,
                remaining=times,
                retry_after=retry_after,
                operations=frozenset(operations) if operations else None,
            ),
        )

    def hold(self, operation: str) -> asyncio.Event:
        """Block requests of ``operation`` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def seed_campaign(self, **fields: Any) -> Campaign:
        """Insert a campaign directly, without publishing an event."""
        stamp = self.clock.tick()
        fields.setdefault("id", self._new_id())
        fields.setdefault("title", f"Campaign {fields['id']}")
        fields.setdefault("creator_id", self.user_id)
        fields.setdefault("created_at", stamp)
        fields.setdefault("updated_at", stamp)
        campaign = Campaign.model_validate(fields)
        self._campaigns[campaign.id] = campaign
        return campaign

    def seed_comment(self, **fields: Any) -> Comment:
        stamp = self.clock.tick()
        fields.setdefault("id", self._new_id())
        fields.setdefault("author_id", self.user_id)
        fields.setdefault("created_at", stamp)
        fields.setdefault("updated_at", stamp)
        comment = Comment.model_validate(fields)
        self._comments[comment.id] = comment
        return comment

    def campaign_row(self, campaign_id: str) -> Campaign | None:
        return self._campaigns.get(campaign_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_id(self) -> str:
        return uuid.uuid4().hex[:12]

    async def _request(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()

        for failure in list(self._failures):
            if failure.remaining > 0 and failure.applies_to(operation):
                failure.remaining -= 1
                if failure.remaining == 0:
                    self._failures.remove(failure)
                logger.debug("Injected %s failure for %s", failure.code.value, operation)
                raise GatewayError(
                    failure.code,
                    f"{operation} failed with {failure.code.value}",
                    ErrorContext(operation=operation),
                    retry_after=failure.retry_after,
                )

    def _not_found(self, operation: str, campaign_id: str) -> GatewayError:
        return GatewayError(
            ErrorCode.NOT_FOUND,
            f"Campaign {campaign_id} not found",
            ErrorContext(operation=operation, additional_data={"campaign_id": campaign_id}),
        )

    def _require_campaign(self, operation: str, campaign_id: str) -> Campaign:
        campaign = self._campaigns.get(campaign_id)
        if campaign is None:
            raise self._not_found(operation, campaign_id)
        return campaign

    def _require_owner(self, operation: str, campaign: Campaign) -> None:
        if campaign.creator_id != self.user_id:
            raise GatewayError(
                ErrorCode.FORBIDDEN,
                "Only the creator can modify this campaign",
                ErrorContext(operation=operation, additional_data={"campaign_id": campaign.id}),
            )

    def _for_user(self, campaign: Campaign) -> Campaign:
        vote = self._votes.get((campaign.id, self.user_id))
        return campaign.model_copy(update={"user_vote": vote.type if vote else None})

    def _publish(
        self,
        topics: list[str],
        table: RealtimeTable,
        event_type: EventType,
        new: Any | None,
        old: Any | None,
        stamp: datetime,
    ) -> None:
        if self.provider is None:
            return
        event = RealtimeEvent(
            event_type=event_type,
            table=table,
            new=new.model_dump(mode="json", exclude={"user_vote"}) if new is not None else None,
            old=old.model_dump(mode="json", exclude={"user_vote"}) if old is not None else None,
            commit_timestamp=stamp,
        )
        for topic in topics:
            self.provider.publish(topic, event)

    def _publish_campaign(
        self,
        event_type: EventType,
        new: Campaign | None,
        old: Campaign | None,
        stamp: datetime,
    ) -> None:
        campaign_id = (new or old).id  # type: ignore[union-attr]
        self._publish(
            [Topics.ACTIVE_CAMPAIGNS, Topics.campaign(campaign_id)],
            RealtimeTable.CAMPAIGNS,
            event_type,
            new,
            old,
            stamp,
        )

    def _as_list(self, campaigns: list[Campaign], limit: int) -> CampaignList:
        ordered = sorted(
            campaigns,
            key=lambda c: c.created_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return CampaignList(
            items=tuple(self._for_user(c) for c in ordered[:limit]),
            total=len(ordered),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_campaign(self, campaign_id: str) -> Campaign:
        await self._request("get_campaign")
        return self._for_user(self._require_campaign("get_campaign", campaign_id))

    async def search_campaigns(self, params: CampaignSearchInput) -> CampaignList:
        await self._request("search_campaigns")
        needle = (params.query or "").lower()
        matches = [
            c
            for c in self._campaigns.values()
            if (not needle or needle in c.title.lower() or needle in c.description.lower())
            and (params.status is None or c.status == params.status)
            and (params.city is None or c.city == params.city)
            and (params.state is None or c.state == params.state)
        ]
        return self._as_list(matches, params.limit)

    async def get_my_campaigns(self, params: MyCampaignsInput) -> CampaignList:
        await self._request("get_my_campaigns")
        matches = [
            c
            for c in self._campaigns.values()
            if c.creator_id == self.user_id
            and (params.status is None or c.status == params.status)
        ]
        return self._as_list(matches, params.limit)

    async def find_nearby(self, params: NearbyInput) -> CampaignList:
        await self._request("find_nearby")
        located = [
            c
            for c in self._campaigns.values()
            if c.latitude is not None and c.longitude is not None
        ]
        located.sort(
            key=lambda c: _distance_km(
                params.latitude,
                params.longitude,
                c.latitude,  # type: ignore[arg-type]
                c.longitude,  # type: ignore[arg-type]
            ),
        )
        nearest = located[: params.limit]
        return CampaignList(
            items=tuple(self._for_user(c) for c in nearest),
            total=len(located),
        )

    async def get_city_stats(self, city: str) -> dict[str, Any]:
        await self._request("get_city_stats")
        in_city = [c for c in self._campaigns.values() if c.city == city]
        return {
            "city": city,
            "total_campaigns": len(in_city),
            "active_campaigns": sum(1 for c in in_city if c.status == CampaignStatus.ACTIVE),
            "total_votes": sum(c.vote_count for c in in_city),
        }

    async def list_comments(self, campaign_id: str) -> CommentList:
        await self._request("list_comments")
        self._require_campaign("list_comments", campaign_id)
        thread = sorted(
            (c for c in self._comments.values() if c.campaign_id == campaign_id),
            key=lambda c: c.created_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return CommentList(items=tuple(thread), total=len(thread))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_campaign(self, params: CampaignCreateInput) -> Campaign:
        await self._request("create_campaign")
        stamp = self.clock.tick()
        campaign = Campaign(
            id=self._new_id(),
            creator_id=self.user_id,
            created_at=stamp,
            updated_at=stamp,
            **params.model_dump(),
        )
        self._campaigns[campaign.id] = campaign
        self._publish_campaign(EventType.INSERT, campaign, None, stamp)
        return self._for_user(campaign)

    async def update_campaign(self, params: CampaignUpdateInput) -> Campaign:
        await self._request("update_campaign")
        current = self._require_campaign("update_campaign", params.id)
        self._require_owner("update_campaign", current)
        stamp = self.clock.tick()
        updated = current.model_copy(update={**params.changes(), "updated_at": stamp})
        self._campaigns[updated.id] = updated
        self._publish_campaign(EventType.UPDATE, updated, current, stamp)
        return self._for_user(updated)

    async def delete_campaign(self, params: CampaignDeleteInput) -> Campaign:
        await self._request("delete_campaign")
        current = self._require_campaign("delete_campaign", params.id)
        self._require_owner("delete_campaign", current)
        stamp = self.clock.tick()
        del self._campaigns[current.id]
        self._publish_campaign(EventType.DELETE, None, current, stamp)
        return current

    async def vote(self, params: VoteInput) -> VoteResult:
        await self._request("vote")
        current = self._require_campaign("vote", params.campaign_id)
        stamp = self.clock.tick()
        previous = self._votes.get((current.id, self.user_id))

        vote = Vote(
            id=previous.id if previous else self._new_id(),
            campaign_id=current.id,
            user_id=self.user_id,
            type=params.vote_type,
            created_at=previous.created_at if previous else stamp,
        )
        self._votes[(current.id, self.user_id)] = vote
        updated = current.model_copy(
            update={
                "vote_count": current.vote_count + (0 if previous else 1),
                "updated_at": stamp,
            },
        )
        self._campaigns[updated.id] = updated

        self._publish(
            [Topics.campaign_votes(current.id)],
            RealtimeTable.VOTES,
            EventType.UPDATE if previous else EventType.INSERT,
            vote,
            previous,
            stamp,
        )
        self._publish_campaign(EventType.UPDATE, updated, current, stamp)
        return VoteResult(vote=vote, campaign=self._for_user(updated))

    async def add_comment(self, params: CommentCreateInput) -> Comment:
        await self._request("add_comment")
        current = self._require_campaign("add_comment", params.campaign_id)
        stamp = self.clock.tick()
        comment = Comment(
            id=self._new_id(),
            campaign_id=current.id,
            author_id=self.user_id,
            content=params.content,
            created_at=stamp,
            updated_at=stamp,
        )
        self._comments[comment.id] = comment
        updated = current.model_copy(
            update={"comment_count": current.comment_count + 1, "updated_at": stamp},
        )
        self._campaigns[updated.id] = updated

        self._publish(
            [Topics.campaign_comments(current.id)],
            RealtimeTable.COMMENTS,
            EventType.INSERT,
            comment,
            None,
            stamp,
        )
        self._publish_campaign(EventType.UPDATE, updated, current, stamp)
        return comment


__all__ = ["InMemoryDataStore", "LogicalClock"]
