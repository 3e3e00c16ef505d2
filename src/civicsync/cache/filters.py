"""List membership rules for campaign list queries.

Decides whether a campaign row belongs in the value of a cached list key,
from the key's params alone. Used when a new or changed row has to be
placed into lists without refetching them. Also reads the page size a
cached list was fetched with.
"""

from __future__ import annotations

from typing import Any

from civicsync.cache.models import QueryKey
from civicsync.domain.models import Campaign
from civicsync.shared.constants import Operations


def _value(raw: Any) -> Any:
    return getattr(raw, "value", raw)


def _matches_fields(params: Any, campaign: Campaign, fields: tuple[str, ...]) -> bool:
    for name in fields:
        expected = params.get(name)
        if expected is None:
            continue
        if _value(getattr(campaign, name)) != _value(expected):
            return False
    return True


def page_limit(key: QueryKey) -> int | None:
    """Page size of a cached list, from its ``limit`` param."""
    raw = key.params.get("limit")
    return int(raw) if raw else None


def list_membership(
    key: QueryKey,
    campaign: Campaign,
    *,
    user_id: str | None = None,
) -> bool | None:
    """Return whether ``campaign`` belongs in the list cached under ``key``.

    Returns:
        True or False when the params decide membership, None when they
        cannot (ranked geographic lists, unknown owner)
    """
    params = key.params
    if key.operation == Operations.CAMPAIGN_SEARCH:
        if not _matches_fields(params, campaign, ("status", "city", "state")):
            return False
        needle = str(params.get("query") or "").lower()
        if needle and needle not in campaign.title.lower() and needle not in (
            campaign.description.lower()
        ):
            return False
        return True

    if key.operation == Operations.MY_CAMPAIGNS:
        if not _matches_fields(params, campaign, ("status",)):
            return False
        if user_id is None:
            return None
        return campaign.creator_id == user_id

    if key.operation in (Operations.CAMPAIGNS_NEARBY, Operations.CAMPAIGNS_IN_BOUNDS):
        if campaign.latitude is None or campaign.longitude is None:
            return False
        return None

    return None


__all__ = ["list_membership", "page_limit"]
