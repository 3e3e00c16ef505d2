"""Realtime event reconciliation into the query cache."""

from .bridge import REALTIME_BACKED, RealtimeReconciliationBridge
from .mergers import (
    CampaignMerger,
    CommentMerger,
    EventMerger,
    MergeResult,
    VoteMerger,
    campaign_targets,
    default_mergers,
    is_newer,
)

__all__ = [
    "REALTIME_BACKED",
    "CampaignMerger",
    "CommentMerger",
    "EventMerger",
    "MergeResult",
    "RealtimeReconciliationBridge",
    "VoteMerger",
    "campaign_targets",
    "default_mergers",
    "is_newer",
]
