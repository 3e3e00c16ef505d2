"""Client-visible campaign queries and optimistic mutations.

Queries read through the shared cache (stale-while-revalidate). Every
mutation runs through the optimistic coordinator with a plan declaring its
targets, speculative edit, confirmation and invalidation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Mapping

from civicsync.cache.filters import list_membership
from civicsync.cache.models import (
    CampaignList,
    CommentList,
    KeyPattern,
    QueryKey,
    adapter_for,
)
from civicsync.cache.query_cache import QueryCache
from civicsync.domain.conversion import ModelConverter
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
    VoteInput,
    VoteResult,
)
from civicsync.gateway.protocol import DataStoreGateway
from civicsync.mutations.coordinator import OptimisticMutationCoordinator
from civicsync.mutations.invalidation import InvalidationMap
from civicsync.mutations.models import MutationKind, MutationPlan, Resolution, TargetRef
from civicsync.shared.constants import MS_PER_SECOND, TEMP_ID_PREFIX, Operations

logger = logging.getLogger(__name__)

InputData = Mapping[str, Any]


class CampaignOperations:
    """Campaign query and mutation API over the shared cache.

    Args:
        cache: Shared query cache
        coordinator: Optimistic mutation coordinator
        gateway: Data store gateway
        invalidation: Mutation kind to key pattern mapping
        user_id: Current user, used to place rows in "my campaigns" lists
    """

    def __init__(
        self,
        cache: QueryCache,
        coordinator: OptimisticMutationCoordinator,
        gateway: DataStoreGateway,
        invalidation: InvalidationMap | None = None,
        user_id: str | None = None,
    ) -> None:
        self.cache = cache
        self.coordinator = coordinator
        self.gateway = gateway
        self.invalidation = invalidation or InvalidationMap()
        self.user_id = user_id
        self._last_temp_ms = 0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_by_id(self, campaign_id: str) -> Campaign:
        key = QueryKey.campaign(campaign_id)
        return await self.cache.query(key, lambda: self.gateway.get_campaign(campaign_id))

    async def search(self, params: CampaignSearchInput | InputData | None = None) -> CampaignList:
        search = ModelConverter.to_model(
            params or {}, CampaignSearchInput, operation=Operations.CAMPAIGN_SEARCH
        )
        key = QueryKey.of(Operations.CAMPAIGN_SEARCH, search.model_dump())
        return await self.cache.query(key, lambda: self.gateway.search_campaigns(search))

    async def get_my_campaigns(
        self, params: MyCampaignsInput | InputData | None = None
    ) -> CampaignList:
        mine = ModelConverter.to_model(params or {}, MyCampaignsInput, operation=Operations.MY_CAMPAIGNS)
        key = QueryKey.of(Operations.MY_CAMPAIGNS, mine.model_dump())
        return await self.cache.query(key, lambda: self.gateway.get_my_campaigns(mine))

    async def find_nearby(self, params: NearbyInput | InputData) -> CampaignList:
        nearby = ModelConverter.to_model(params, NearbyInput, operation=Operations.CAMPAIGNS_NEARBY)
        key = QueryKey.of(Operations.CAMPAIGNS_NEARBY, nearby.model_dump())
        return await self.cache.query(key, lambda: self.gateway.find_nearby(nearby))

    async def get_city_stats(self, city: str) -> dict[str, Any]:
        key = QueryKey.of(Operations.CITY_STATS, {"city": city})
        return await self.cache.query(key, lambda: self.gateway.get_city_stats(city))

    async def get_comments(self, campaign_id: str) -> CommentList:
        key = QueryKey.comments(campaign_id)
        return await self.cache.query(key, lambda: self.gateway.list_comments(campaign_id))

    async def prefetch_campaign(self, campaign_id: str) -> None:
        await self.cache.prefetch(
            QueryKey.campaign(campaign_id),
            lambda: self.gateway.get_campaign(campaign_id),
        )

    async def prefetch_search_results(
        self, params: CampaignSearchInput | InputData | None = None
    ) -> None:
        search = ModelConverter.to_model(
            params or {}, CampaignSearchInput, operation=Operations.CAMPAIGN_SEARCH
        )
        await self.cache.prefetch(
            QueryKey.of(Operations.CAMPAIGN_SEARCH, search.model_dump()),
            lambda: self.gateway.search_campaigns(search),
        )

    async def refresh_campaign_data(self, campaign_id: str) -> None:
        """Invalidate and refetch a campaign and its comment thread."""
        tasks = self.cache.invalidate(
            [QueryKey.campaign(campaign_id), QueryKey.comments(campaign_id)],
        )
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def _campaign_refs(self, campaign_id: str) -> list[TargetRef]:
        """Cached detail and list entries currently holding the campaign."""
        refs: list[TargetRef] = []
        detail = QueryKey.campaign(campaign_id)
        entry = self.cache.get(detail)
        if entry is not None and entry.has_data and entry.value is not None:
            refs.append(TargetRef(detail, campaign_id))

        list_adapter = adapter_for(QueryKey.of(Operations.CAMPAIGN_SEARCH).kind)
        lists = self.cache.find_all([KeyPattern(op) for op in Operations.CAMPAIGN_LISTS])
        for entry in lists:
            if not entry.has_data or list_adapter is None:
                continue
            entity, _ = list_adapter.get_entity(entry.value, campaign_id)
            if entity is not None:
                refs.append(TargetRef(entry.key, campaign_id))
        return refs

    def _new_list_refs(self, placeholder: Campaign) -> list[TargetRef]:
        """Cached lists a newly created campaign is placed into."""
        refs: list[TargetRef] = []
        patterns = [KeyPattern(Operations.CAMPAIGN_SEARCH), KeyPattern(Operations.MY_CAMPAIGNS)]
        for entry in self.cache.find_all(patterns):
            if not entry.has_data:
                continue
            member = list_membership(entry.key, placeholder, user_id=self.user_id)
            if member or (member is None and entry.key.operation == Operations.MY_CAMPAIGNS):
                refs.append(TargetRef(entry.key, placeholder.id))
        return refs

    def _temporary_id(self) -> str:
        now_ms = int(time.time() * MS_PER_SECOND)
        self._last_temp_ms = max(now_ms, self._last_temp_ms + 1)
        return f"{TEMP_ID_PREFIX}{self._last_temp_ms}"

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, params: CampaignCreateInput | InputData) -> Campaign:
        """Create a campaign, showing it in matching lists right away."""
        create = ModelConverter.to_model(params, CampaignCreateInput, operation="campaigns.create")
        placeholder = Campaign(
            id=self._temporary_id(),
            creator_id=self.user_id,
            created_at=datetime.now(timezone.utc),
            **create.model_dump(),
        )

        plan: MutationPlan[CampaignCreateInput, Campaign] = MutationPlan(
            kind=MutationKind.CREATE_CAMPAIGN,
            send=self.gateway.create_campaign,
            targets=lambda _: self._new_list_refs(placeholder),
            speculate=lambda ref, entity, _: placeholder,
            confirm=lambda ref, entity, _, result: result,
            invalidate=lambda _, result: self.invalidation.selectors(
                MutationKind.CREATE_CAMPAIGN,
            ),
        )
        campaign = await self.coordinator.mutate(plan, create)
        self.cache.set_data(QueryKey.campaign(campaign.id), campaign)
        return campaign

    async def update(self, params: CampaignUpdateInput | InputData) -> Campaign:
        update = ModelConverter.to_model(params, CampaignUpdateInput, operation="campaigns.update")

        def speculate(ref: TargetRef, entity: Campaign | None, p: CampaignUpdateInput) -> Any:
            if entity is None:
                return Resolution.KEEP
            return entity.model_copy(update=p.changes())

        plan: MutationPlan[CampaignUpdateInput, Campaign] = MutationPlan(
            kind=MutationKind.UPDATE_CAMPAIGN,
            send=self.gateway.update_campaign,
            targets=lambda p: self._campaign_refs(p.id),
            speculate=speculate,
            confirm=lambda ref, entity, _, result: result,
            invalidate=lambda p, _: self.invalidation.selectors(
                MutationKind.UPDATE_CAMPAIGN,
                campaign_id=p.id,
                update_type=p.update_type,
            ),
        )
        return await self.coordinator.mutate(plan, update)

    async def delete(self, params: CampaignDeleteInput | InputData | str) -> Campaign:
        if isinstance(params, str):
            params = {"id": params}
        delete = ModelConverter.to_model(params, CampaignDeleteInput, operation="campaigns.delete")

        plan: MutationPlan[CampaignDeleteInput, Campaign] = MutationPlan(
            kind=MutationKind.DELETE_CAMPAIGN,
            send=self.gateway.delete_campaign,
            targets=lambda p: self._campaign_refs(p.id),
            speculate=lambda ref, entity, _: Resolution.REMOVE,
            confirm=lambda ref, entity, _, result: Resolution.REMOVE,
            invalidate=lambda p, _: self.invalidation.selectors(
                MutationKind.DELETE_CAMPAIGN,
                campaign_id=p.id,
            ),
        )
        return await self.coordinator.mutate(plan, delete)

    async def vote(self, params: VoteInput | InputData) -> VoteResult:
        """Vote on a campaign.

        The speculative edit always counts a new vote (+1), whatever the
        user's previous vote was; the confirmed campaign replaces it.
        """
        vote = ModelConverter.to_model(params, VoteInput, operation="campaigns.vote")

        def speculate(ref: TargetRef, entity: Campaign | None, p: VoteInput) -> Any:
            if entity is None:
                return Resolution.KEEP
            return entity.model_copy(
                update={"vote_count": entity.vote_count + 1, "user_vote": p.vote_type},
            )

        plan: MutationPlan[VoteInput, VoteResult] = MutationPlan(
            kind=MutationKind.VOTE,
            send=self.gateway.vote,
            targets=lambda p: self._campaign_refs(p.campaign_id),
            speculate=speculate,
            confirm=lambda ref, entity, _, result: result.campaign,
            invalidate=lambda p, _: self.invalidation.selectors(
                MutationKind.VOTE,
                campaign_id=p.campaign_id,
            ),
        )
        return await self.coordinator.mutate(plan, vote)

    async def add_comment(self, params: CommentCreateInput | InputData) -> Comment:
        """Add a comment, prepending it to the cached thread right away."""
        create = ModelConverter.to_model(params, CommentCreateInput, operation="comments.create")
        thread = QueryKey.comments(create.campaign_id)
        now = datetime.now(timezone.utc)
        placeholder = Comment(
            id=self._temporary_id(),
            campaign_id=create.campaign_id,
            author_id=self.user_id or "",
            content=create.content,
            created_at=now,
        )

        def targets(p: CommentCreateInput) -> list[TargetRef]:
            refs = self._campaign_refs(p.campaign_id)
            entry = self.cache.get(thread)
            if entry is not None and entry.has_data:
                refs.insert(0, TargetRef(thread, placeholder.id))
            return refs

        def speculate(ref: TargetRef, entity: Any, p: CommentCreateInput) -> Any:
            if ref.key == thread:
                return placeholder
            if entity is None:
                return Resolution.KEEP
            return entity.model_copy(update={"comment_count": entity.comment_count + 1})

        def confirm(ref: TargetRef, entity: Any, p: CommentCreateInput, result: Comment) -> Any:
            if ref.key == thread:
                return result
            if entity is None or (
                entity.updated_at is not None and entity.updated_at >= result.created_at
            ):
                return Resolution.KEEP
            # Stamp the commit time of the counted comment as the version
            return entity.model_copy(update={"updated_at": result.created_at})

        plan: MutationPlan[CommentCreateInput, Comment] = MutationPlan(
            kind=MutationKind.ADD_COMMENT,
            send=self.gateway.add_comment,
            targets=targets,
            speculate=speculate,
            confirm=confirm,
            invalidate=lambda p, _: self.invalidation.selectors(
                MutationKind.ADD_COMMENT,
                campaign_id=p.campaign_id,
            ),
        )
        return await self.coordinator.mutate(plan, create)


def active_campaigns_search() -> CampaignSearchInput:
    """Search input of the "active campaigns" feed."""
    return CampaignSearchInput(status=CampaignStatus.ACTIVE)


__all__ = ["CampaignOperations", "active_campaigns_search"]
