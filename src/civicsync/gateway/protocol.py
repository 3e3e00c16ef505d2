"""Data store gateway contract.

Every method either returns the authoritative entity (or list) or raises a
:class:`~civicsync.shared.errors.GatewayError` whose ``code`` decides retry
eligibility.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from civicsync.cache.models import CampaignList, CommentList
from civicsync.domain.models import (
    Campaign,
    CampaignCreateInput,
    CampaignDeleteInput,
    CampaignSearchInput,
    CampaignUpdateInput,
    Comment,
    CommentCreateInput,
    MyCampaignsInput,
    NearbyInput,
    VoteInput,
    VoteResult,
)


@runtime_checkable
class DataStoreGateway(Protocol):
    """Async request/response surface of the campaign data store."""

    async def get_campaign(self, campaign_id: str) -> Campaign:
        ...

    async def search_campaigns(self, params: CampaignSearchInput) -> CampaignList:
        ...

    async def get_my_campaigns(self, params: MyCampaignsInput) -> CampaignList:
        ...

    async def find_nearby(self, params: NearbyInput) -> CampaignList:
        ...

    async def get_city_stats(self, city: str) -> dict[str, Any]:
        ...

    async def create_campaign(self, params: CampaignCreateInput) -> Campaign:
        ...

    async def update_campaign(self, params: CampaignUpdateInput) -> Campaign:
        ...

    async def delete_campaign(self, params: CampaignDeleteInput) -> Campaign:
        """Delete a campaign and return the removed row."""
        ...

    async def vote(self, params: VoteInput) -> VoteResult:
        ...

    async def list_comments(self, campaign_id: str) -> CommentList:
        ...

    async def add_comment(self, params: CommentCreateInput) -> Comment:
        ...


__all__ = ["DataStoreGateway"]
