"""Client query cache."""

from .filters import list_membership
from .models import (
    CacheEntry,
    CampaignList,
    CommentList,
    EntityAdapter,
    KeyPattern,
    QueryKey,
    QueryKind,
    adapter_for,
    family_of,
    kind_of,
)
from .query_cache import QueryCache
from .statistics import CacheMetrics, CacheStatisticsCollector

__all__ = [
    "CacheEntry",
    "CacheMetrics",
    "CacheStatisticsCollector",
    "CampaignList",
    "CommentList",
    "EntityAdapter",
    "KeyPattern",
    "QueryCache",
    "QueryKey",
    "QueryKind",
    "adapter_for",
    "family_of",
    "kind_of",
    "list_membership",
]
