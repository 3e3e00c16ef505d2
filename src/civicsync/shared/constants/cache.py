"""
Query Cache Constants

This module contains the operation names of the client-visible query surface
and the default freshness windows for each data family.
"""

from __future__ import annotations

from .system import BASE_MINUTE, BASE_SECOND


class Operations:
    """Operation names used as the first component of every query key."""

    CAMPAIGN_BY_ID = "campaigns.getById"
    CAMPAIGN_SEARCH = "campaigns.search"
    MY_CAMPAIGNS = "campaigns.getMyCampaigns"
    CAMPAIGNS_NEARBY = "campaigns.findNearby"
    CAMPAIGNS_IN_BOUNDS = "campaigns.findInBounds"
    CITY_STATS = "campaigns.getCityStats"
    CAMPAIGN_COMMENTS = "comments.getByCampaign"

    # List queries whose values hold campaign rows
    CAMPAIGN_LISTS = (
        CAMPAIGN_SEARCH,
        MY_CAMPAIGNS,
        CAMPAIGNS_NEARBY,
        CAMPAIGNS_IN_BOUNDS,
    )

    # Queries refreshed aggressively while observed
    CRITICAL = (CAMPAIGN_SEARCH, MY_CAMPAIGNS)


class CacheFamily:
    """Data families sharing the same stale/gc windows."""

    CAMPAIGNS = "campaigns"
    COMMENTS = "comments"
    VOTES = "votes"
    USER_PROFILE = "user_profile"
    GEOGRAPHIC = "geographic"


class StaleTime:
    """Seconds after which cached data is considered stale."""

    CAMPAIGNS = 5 * BASE_MINUTE
    COMMENTS = 2 * BASE_MINUTE
    VOTES = 30 * BASE_SECOND
    USER_PROFILE = 10 * BASE_MINUTE
    GEOGRAPHIC = 10 * BASE_MINUTE


class GcTime:
    """Seconds an unobserved entry is kept before garbage collection."""

    CAMPAIGNS = 10 * BASE_MINUTE
    COMMENTS = 5 * BASE_MINUTE
    VOTES = 2 * BASE_MINUTE
    USER_PROFILE = 30 * BASE_MINUTE
    GEOGRAPHIC = 15 * BASE_MINUTE


class BackgroundIntervals:
    """Background cache maintenance intervals in seconds."""

    CLEANUP = 5 * BASE_MINUTE
    REFRESH = 2 * BASE_MINUTE
    STALE_CHECK = 1 * BASE_MINUTE
    STATS = 5 * BASE_MINUTE
    CRITICAL_MAX_AGE = 30 * BASE_SECOND


# Prefix for speculative identifiers of not-yet-created rows
TEMP_ID_PREFIX = "temp-"


__all__ = [
    "TEMP_ID_PREFIX",
    "BackgroundIntervals",
    "CacheFamily",
    "GcTime",
    "Operations",
    "StaleTime",
]
