"""Campaign domain models and input validation."""

from .conversion import ModelConverter
from .models import (
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
    UpdateType,
    Vote,
    VoteInput,
    VoteResult,
    VoteType,
)

__all__ = [
    "Campaign",
    "CampaignCreateInput",
    "CampaignDeleteInput",
    "CampaignSearchInput",
    "CampaignStatus",
    "CampaignUpdateInput",
    "Comment",
    "CommentCreateInput",
    "ModelConverter",
    "MyCampaignsInput",
    "NearbyInput",
    "UpdateType",
    "Vote",
    "VoteInput",
    "VoteResult",
    "VoteType",
]
