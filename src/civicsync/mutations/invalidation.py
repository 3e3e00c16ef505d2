"""Targeted invalidation after mutations.

Maps each mutation kind to the query keys it can make stale. Nothing here
clears the whole cache.
"""

from __future__ import annotations

from typing import Any

from civicsync.cache.models import KeyPattern, QueryKey
from civicsync.domain.models import UpdateType
from civicsync.mutations.models import MutationKind, Selector
from civicsync.shared.constants import Operations

_SEARCH = KeyPattern(Operations.CAMPAIGN_SEARCH)
_MINE = KeyPattern(Operations.MY_CAMPAIGNS)
_NEARBY = KeyPattern(Operations.CAMPAIGNS_NEARBY)
_BOUNDS = KeyPattern(Operations.CAMPAIGNS_IN_BOUNDS)
_CITY_STATS = KeyPattern(Operations.CITY_STATS)

_LIST_PATTERNS: dict[MutationKind, tuple[KeyPattern, ...]] = {
    MutationKind.CREATE_CAMPAIGN: (_SEARCH, _MINE, _NEARBY, _BOUNDS, _CITY_STATS),
    MutationKind.DELETE_CAMPAIGN: (_SEARCH, _MINE, _NEARBY, _BOUNDS, _CITY_STATS),
    MutationKind.VOTE: (_SEARCH, _NEARBY, _BOUNDS),
    MutationKind.ADD_COMMENT: (),
    MutationKind.UPDATE_CAMPAIGN: (),
}

_UPDATE_PATTERNS: dict[UpdateType, tuple[KeyPattern, ...]] = {
    UpdateType.STATUS: (_SEARCH, _MINE),
    UpdateType.LOCATION: (_NEARBY, _BOUNDS, _CITY_STATS),
    UpdateType.CONTENT: (_SEARCH,),
    UpdateType.ALL: (_SEARCH, _MINE, _NEARBY, _BOUNDS, _CITY_STATS),
}


class InvalidationMap:
    """Declared mapping from mutation kind to affected key patterns."""

    def selectors(
        self,
        kind: MutationKind,
        *,
        campaign_id: str | None = None,
        update_type: UpdateType | None = None,
    ) -> list[Selector]:
        """Return the keys and patterns a mutation kind invalidates."""
        selectors: list[Selector] = list(_LIST_PATTERNS[kind])

        if kind == MutationKind.UPDATE_CAMPAIGN:
            selectors.extend(_UPDATE_PATTERNS[update_type or UpdateType.ALL])

        if campaign_id is not None and kind != MutationKind.CREATE_CAMPAIGN:
            selectors.append(QueryKey.campaign(campaign_id))
            if kind == MutationKind.ADD_COMMENT:
                selectors.append(QueryKey.comments(campaign_id))
        return selectors

    def describe(self) -> dict[str, Any]:
        """Readable form of the mapping, for diagnostics."""
        table: dict[str, Any] = {
            kind.value: [str(p) for p in patterns] for kind, patterns in _LIST_PATTERNS.items()
        }
        table[MutationKind.UPDATE_CAMPAIGN.value] = {
            update_type.value: [str(p) for p in patterns]
            for update_type, patterns in _UPDATE_PATTERNS.items()
        }
        return table


__all__ = ["InvalidationMap"]
