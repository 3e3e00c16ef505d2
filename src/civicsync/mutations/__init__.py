"""Optimistic mutations over the query cache."""

from .campaigns import CampaignOperations, active_campaigns_search
from .coordinator import OptimisticMutationCoordinator
from .invalidation import InvalidationMap
from .models import (
    EntitySnapshot,
    MutationKind,
    MutationPlan,
    MutationStatus,
    PendingMutation,
    Resolution,
    TargetRef,
    is_temporary_id,
)
from .registry import PendingMutationRegistry, SettleListener

__all__ = [
    "CampaignOperations",
    "EntitySnapshot",
    "InvalidationMap",
    "MutationKind",
    "MutationPlan",
    "MutationStatus",
    "OptimisticMutationCoordinator",
    "PendingMutation",
    "PendingMutationRegistry",
    "Resolution",
    "SettleListener",
    "TargetRef",
    "active_campaigns_search",
    "is_temporary_id",
]
