"""Optimistic mutation data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar, Union

from civicsync.cache.models import KeyPattern, QueryKey
from civicsync.shared.constants import TEMP_ID_PREFIX


class MutationKind(str, Enum):
    """Mutation kinds with a declared invalidation mapping."""

    CREATE_CAMPAIGN = "campaigns.create"
    UPDATE_CAMPAIGN = "campaigns.update"
    DELETE_CAMPAIGN = "campaigns.delete"
    VOTE = "campaigns.vote"
    ADD_COMMENT = "comments.create"


class MutationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


class Resolution(Enum):
    """Non-entity outcomes of a speculative or confirmed edit."""

    KEEP = "keep"
    REMOVE = "remove"


@dataclass(frozen=True)
class TargetRef:
    """One entity inside one cache entry touched by a mutation."""

    key: QueryKey
    entity_id: str

    def __str__(self) -> str:
        return f"{self.key}#{self.entity_id}"


@dataclass(frozen=True)
class EntitySnapshot:
    """Pre-mutation state of a target.

    Attributes:
        value: Whole cached value of the key
        entity: The entity inside the value, or None if absent
        index: Position of the entity in a list value
    """

    value: Any
    entity: Any
    index: int | None


@dataclass
class PendingMutation:
    """One in-flight optimistic mutation."""

    id: str
    kind: MutationKind
    targets: list[TargetRef]
    started_at: float
    snapshots: dict[TargetRef, EntitySnapshot] = field(default_factory=dict)
    speculative: dict[TargetRef, Any] = field(default_factory=dict)
    status: MutationStatus = MutationStatus.PENDING
    settled_at: float | None = None
    error: BaseException | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == MutationStatus.PENDING

    def touches(self, ref: TargetRef) -> bool:
        return ref in self.targets


Outcome = Union[Any, Resolution]
Selector = Union[QueryKey, KeyPattern]

I = TypeVar("I")
R = TypeVar("R")


@dataclass(frozen=True)
class MutationPlan(Generic[I, R]):
    """Everything the coordinator needs to run one mutation kind.

    Attributes:
        kind: Mutation kind
        send: Gateway call performing the write
        targets: Cache targets the mutation touches, from its input
        speculate: Expected entity for a target (or a Resolution)
        confirm: Authoritative entity for a target from the current entity
            and the response
        invalidate: Keys and patterns to invalidate once settled
    """

    kind: MutationKind
    send: Callable[[I], Awaitable[R]]
    targets: Callable[[I], list[TargetRef]]
    speculate: Callable[[TargetRef, Any, I], Outcome]
    confirm: Callable[[TargetRef, Any, I, R], Outcome]
    invalidate: Callable[[I, R | None], Iterable[Selector]]


def is_temporary_id(entity_id: str) -> bool:
    return entity_id.startswith(TEMP_ID_PREFIX)


__all__ = [
    "EntitySnapshot",
    "MutationKind",
    "MutationPlan",
    "MutationStatus",
    "Outcome",
    "PendingMutation",
    "Resolution",
    "Selector",
    "TargetRef",
    "is_temporary_id",
]
