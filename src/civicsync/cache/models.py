"""Query cache data models.

This module defines the cache key types, the per-query tagged value kinds
and their typed entity adapters, and the cache entry record.

Every query operation maps to exactly one ``QueryKind``; the kind decides
the value shape stored under the key and the adapter used to read, upsert,
remove and restore a single entity inside that value.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Generic, Mapping, TypeVar, Union

from pydantic import BaseModel, ConfigDict

from civicsync.domain.models import Campaign, Comment
from civicsync.shared.cache_utils import canonical_params, fingerprint, generate_cache_key
from civicsync.shared.constants import CacheFamily, Operations
from civicsync.shared.errors import DomainError, ErrorCode, ErrorContext


@dataclass(frozen=True)
class QueryKey:
    """Identity of a cache entry: ``(operation, input fingerprint)``.

    Build keys with :meth:`of` so params are canonicalised.
    """

    operation: str
    fingerprint: str = ""
    params: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({}),
        compare=False,
        hash=False,
    )

    @classmethod
    def of(cls, operation: str, params: Mapping[str, Any] | None = None) -> QueryKey:
        normalized = canonical_params(dict(params) if params else None)
        return cls(operation, fingerprint(normalized), MappingProxyType(normalized))

    @classmethod
    def campaign(cls, campaign_id: str) -> QueryKey:
        return cls.of(Operations.CAMPAIGN_BY_ID, {"id": campaign_id})

    @classmethod
    def comments(cls, campaign_id: str) -> QueryKey:
        return cls.of(Operations.CAMPAIGN_COMMENTS, {"campaign_id": campaign_id})

    @property
    def kind(self) -> QueryKind:
        return kind_of(self.operation)

    @property
    def key_hash(self) -> str:
        """SHA-256 of the printable key."""
        return generate_cache_key(self.operation, dict(self.params))[1]

    def __str__(self) -> str:
        return f"{self.operation}:{self.fingerprint}" if self.fingerprint else self.operation


@dataclass(frozen=True)
class KeyPattern:
    """Matches keys of one operation whose params include a given subset.

    ``params=None`` matches every input of the operation.
    """

    operation: str
    params: Mapping[str, Any] | None = field(default=None, compare=False, hash=False)

    def __post_init__(self) -> None:
        if self.params is not None:
            object.__setattr__(
                self,
                "params",
                MappingProxyType(canonical_params(dict(self.params))),
            )

    @classmethod
    def exact(cls, key: QueryKey) -> KeyPattern:
        return cls(key.operation, dict(key.params))

    def matches(self, key: QueryKey) -> bool:
        if key.operation != self.operation:
            return False
        if not self.params:
            return True
        return all(key.params.get(k) == v for k, v in self.params.items())

    def __str__(self) -> str:
        if not self.params:
            return f"{self.operation}:*"
        return f"{self.operation}:{fingerprint(dict(self.params))}"


class QueryKind(str, Enum):
    """Tagged value shape stored under a query key."""

    CAMPAIGN_DETAIL = "campaign_detail"
    CAMPAIGN_LIST = "campaign_list"
    COMMENT_LIST = "comment_list"
    STATS = "stats"


QUERY_KINDS: dict[str, QueryKind] = {
    Operations.CAMPAIGN_BY_ID: QueryKind.CAMPAIGN_DETAIL,
    Operations.CAMPAIGN_SEARCH: QueryKind.CAMPAIGN_LIST,
    Operations.MY_CAMPAIGNS: QueryKind.CAMPAIGN_LIST,
    Operations.CAMPAIGNS_NEARBY: QueryKind.CAMPAIGN_LIST,
    Operations.CAMPAIGNS_IN_BOUNDS: QueryKind.CAMPAIGN_LIST,
    Operations.CITY_STATS: QueryKind.STATS,
    Operations.CAMPAIGN_COMMENTS: QueryKind.COMMENT_LIST,
}

QUERY_FAMILIES: dict[str, str] = {
    Operations.CAMPAIGN_BY_ID: CacheFamily.CAMPAIGNS,
    Operations.CAMPAIGN_SEARCH: CacheFamily.CAMPAIGNS,
    Operations.MY_CAMPAIGNS: CacheFamily.CAMPAIGNS,
    Operations.CAMPAIGNS_NEARBY: CacheFamily.GEOGRAPHIC,
    Operations.CAMPAIGNS_IN_BOUNDS: CacheFamily.GEOGRAPHIC,
    Operations.CITY_STATS: CacheFamily.GEOGRAPHIC,
    Operations.CAMPAIGN_COMMENTS: CacheFamily.COMMENTS,
}


def kind_of(operation: str) -> QueryKind:
    """Return the value kind of a query operation.

    Raises:
        DomainError: If the operation is not a known query
    """
    try:
        return QUERY_KINDS[operation]
    except KeyError as e:
        raise DomainError(
            ErrorCode.UNKNOWN_QUERY_KIND,
            f"Unknown query operation: {operation}",
            ErrorContext(operation="kind_of", additional_data={"query": operation}),
        ) from e


def family_of(operation: str) -> str:
    """Return the freshness family of a query operation."""
    return QUERY_FAMILIES.get(operation, CacheFamily.CAMPAIGNS)


class CampaignList(BaseModel):
    """Value of campaign list queries."""

    model_config = ConfigDict(frozen=True)

    items: tuple[Campaign, ...] = ()
    total: int = 0

    def ids(self) -> list[str]:
        return [item.id for item in self.items]


class CommentList(BaseModel):
    """Value of ``comments.getByCampaign``."""

    model_config = ConfigDict(frozen=True)

    items: tuple[Comment, ...] = ()
    total: int = 0

    def ids(self) -> list[str]:
        return [item.id for item in self.items]


CacheValue = Union[Campaign, CampaignList, CommentList, dict, None]

E = TypeVar("E", Campaign, Comment)
V = TypeVar("V")


class EntityAdapter(Generic[V, E]):
    """Typed single-entity access into a cached value.

    All methods are pure: they return a new value and never mutate the
    value passed in. ``None`` values (entry without data) pass through
    unchanged.
    """

    def get_entity(self, value: V | None, entity_id: str) -> tuple[E | None, int | None]:
        """Return ``(entity, index)`` or ``(None, None)``."""
        raise NotImplementedError

    def put_entity(
        self,
        value: V | None,
        entity: E,
        *,
        prepend: bool = True,
        limit: int | None = None,
    ) -> V | None:
        """Upsert an entity (replace in place or insert).

        An insert into a list keeps at most ``limit`` items; the one pushed
        off the page stays counted in ``total``.
        """
        raise NotImplementedError

    def remove_entity(self, value: V | None, entity_id: str) -> V | None:
        raise NotImplementedError

    def restore_entity(
        self,
        value: V | None,
        entity_id: str,
        prior: E | None,
        index: int | None,
    ) -> V | None:
        """Put back ``prior`` (or drop the entity when it did not exist)."""
        raise NotImplementedError

    def replace_entity(self, value: V | None, old_id: str, entity: E) -> V | None:
        """Swap the entity ``old_id`` for ``entity`` keeping its position."""
        raise NotImplementedError


class CampaignDetailAdapter(EntityAdapter[Campaign, Campaign]):
    """Adapter for ``campaigns.getById`` values."""

    def get_entity(
        self, value: Campaign | None, entity_id: str
    ) -> tuple[Campaign | None, int | None]:
        if value is not None and value.id == entity_id:
            return value, 0
        return None, None

    def put_entity(
        self,
        value: Campaign | None,
        entity: Campaign,
        *,
        prepend: bool = True,
        limit: int | None = None,
    ) -> Campaign | None:
        if value is None or value.id == entity.id:
            return entity
        return value

    def remove_entity(self, value: Campaign | None, entity_id: str) -> Campaign | None:
        if value is not None and value.id == entity_id:
            return None
        return value

    def restore_entity(
        self,
        value: Campaign | None,
        entity_id: str,
        prior: Campaign | None,
        index: int | None,
    ) -> Campaign | None:
        if value is None or value.id == entity_id:
            return prior
        return value

    def replace_entity(
        self, value: Campaign | None, old_id: str, entity: Campaign
    ) -> Campaign | None:
        if value is not None and value.id == old_id:
            return entity
        return value


L = TypeVar("L", CampaignList, CommentList)


class _ListAdapter(EntityAdapter[L, E]):
    def __init__(self, list_cls: type[L]) -> None:
        self._list_cls = list_cls

    def _build(self, items: list[E], total: int) -> L:
        return self._list_cls(items=tuple(items), total=max(total, len(items)))

    def get_entity(self, value: L | None, entity_id: str) -> tuple[E | None, int | None]:
        if value is None:
            return None, None
        for index, item in enumerate(value.items):
            if item.id == entity_id:
                return item, index
        return None, None

    def put_entity(
        self,
        value: L | None,
        entity: E,
        *,
        prepend: bool = True,
        limit: int | None = None,
    ) -> L | None:
        if value is None:
            return None
        items = list(value.items)
        _, index = self.get_entity(value, entity.id)
        if index is not None:
            items[index] = entity
            return self._build(items, value.total)
        if prepend:
            items.insert(0, entity)
        else:
            items.append(entity)
        if limit is not None:
            del items[limit:]
        return self._build(items, value.total + 1)

    def remove_entity(self, value: L | None, entity_id: str) -> L | None:
        if value is None:
            return None
        items = [item for item in value.items if item.id != entity_id]
        if len(items) == len(value.items):
            return value
        return self._build(items, max(value.total - 1, 0))

    def restore_entity(
        self,
        value: L | None,
        entity_id: str,
        prior: E | None,
        index: int | None,
    ) -> L | None:
        if value is None:
            return None
        if prior is None:
            return self.remove_entity(value, entity_id)
        items = list(value.items)
        _, current = self.get_entity(value, entity_id)
        if current is not None:
            items[current] = prior
            return self._build(items, value.total)
        position = len(items) if index is None else min(index, len(items))
        items.insert(position, prior)
        return self._build(items, value.total + 1)

    def replace_entity(self, value: L | None, old_id: str, entity: E) -> L | None:
        if value is None:
            return None
        _, old_index = self.get_entity(value, old_id)
        if old_index is None or old_id == entity.id:
            return self.put_entity(value, entity)
        _, existing = self.get_entity(value, entity.id)
        if existing is not None:
            # Already merged from the push channel; drop the placeholder
            merged = self.put_entity(value, entity)
            return self.remove_entity(merged, old_id)
        items = list(value.items)
        items[old_index] = entity
        return self._build(items, value.total)


class CampaignListAdapter(_ListAdapter[CampaignList, Campaign]):
    """Adapter for campaign list values."""

    def __init__(self) -> None:
        super().__init__(CampaignList)


class CommentListAdapter(_ListAdapter[CommentList, Comment]):
    """Adapter for comment thread values."""

    def __init__(self) -> None:
        super().__init__(CommentList)


_ADAPTERS: dict[QueryKind, EntityAdapter[Any, Any]] = {
    QueryKind.CAMPAIGN_DETAIL: CampaignDetailAdapter(),
    QueryKind.CAMPAIGN_LIST: CampaignListAdapter(),
    QueryKind.COMMENT_LIST: CommentListAdapter(),
}


def adapter_for(kind: QueryKind) -> EntityAdapter[Any, Any] | None:
    """Return the entity adapter of a kind (``None`` for STATS)."""
    return _ADAPTERS.get(kind)


Fetcher = Callable[[], Awaitable[Any]]
Observer = Callable[["QueryKey", Any], None]


@dataclass
class CacheEntry:
    """One cached query result and its freshness metadata.

    Owned by the QueryCache; other components go through get_data/set_data.
    """

    key: QueryKey
    stale_after: float
    gc_after: float
    created_at: float = 0.0
    value: Any = None
    has_data: bool = False
    fetched_at: float | None = None
    updated_at: float | None = None
    invalidated: bool = False
    error: BaseException | None = None
    error_at: float | None = None
    fetcher: Fetcher | None = None
    observers: list[Observer] = field(default_factory=list)
    generation: int = 0
    task: asyncio.Task[Any] | None = None
    last_observed_at: float | None = None

    @property
    def is_fetching(self) -> bool:
        return self.task is not None and not self.task.done()

    @property
    def observer_count(self) -> int:
        return len(self.observers)

    def age(self, now: float) -> float | None:
        """Seconds since the data was last written, or None without data."""
        if self.updated_at is None:
            return None
        return now - self.updated_at

    def is_stale(self, now: float) -> bool:
        if not self.has_data or self.invalidated:
            return True
        age = self.age(now)
        return age is None or age >= self.stale_after

    def is_collectable(self, now: float) -> bool:
        """Unobserved and idle for longer than ``gc_after``."""
        if self.observers or self.is_fetching:
            return False
        reference = max(
            t
            for t in (self.created_at, self.updated_at, self.last_observed_at, self.error_at)
            if t is not None
        )
        return now - reference >= self.gc_after

    @property
    def status(self) -> str:
        if self.is_fetching and not self.has_data:
            return "loading"
        if self.error is not None and not self.has_data:
            return "error"
        return "success" if self.has_data else "idle"


__all__ = [
    "QUERY_FAMILIES",
    "QUERY_KINDS",
    "CacheEntry",
    "CacheValue",
    "CampaignDetailAdapter",
    "CampaignList",
    "CampaignListAdapter",
    "CommentList",
    "CommentListAdapter",
    "EntityAdapter",
    "Fetcher",
    "KeyPattern",
    "Observer",
    "QueryKey",
    "QueryKind",
    "adapter_for",
    "family_of",
    "kind_of",
]
