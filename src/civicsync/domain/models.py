"""Campaign domain models.

This module defines the Pydantic models for rows exchanged with the data
store gateway and for the validated inputs of every client-visible query
and mutation.

Entity models are frozen: a cached value is never mutated in place, every
change produces a new instance via ``model_copy(update=...)``. This makes a
snapshot taken before a speculative edit a plain reference.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CampaignStatus(str, Enum):
    """Lifecycle status of a campaign."""

    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class VoteType(str, Enum):
    """Vote choices."""

    SUPPORT = "SUPPORT"
    OPPOSE = "OPPOSE"
    NEUTRAL = "NEUTRAL"


class UpdateType(str, Enum):
    """Which part of a campaign an update touches.

    Drives the targeted invalidation of dependent list queries.
    """

    STATUS = "status"
    CONTENT = "content"
    LOCATION = "location"
    ALL = "all"


class EntityModel(BaseModel):
    """Base model for store rows.

    Unknown columns are ignored so newer row images from the push channel
    do not break validation.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class InputModel(BaseModel):
    """Base model for validated mutation/query inputs."""

    model_config = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)


class Campaign(EntityModel):
    """Campaign row.

    Attributes:
        id: Campaign identifier (``temp-<ms>`` while a create is pending)
        vote_count: Aggregate number of votes
        comment_count: Aggregate number of comments
        user_vote: The current user's vote, when known
        updated_at: Entity version used to order realtime events
    """

    id: str = Field(..., min_length=1, description="Campaign ID")
    title: str = Field(..., description="Campaign title")
    description: str = Field("", description="Campaign description")
    status: CampaignStatus = Field(CampaignStatus.DRAFT, description="Lifecycle status")
    city: str | None = Field(None, description="City")
    state: str | None = Field(None, description="State")
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    creator_id: str | None = Field(None, description="Creator user ID")
    participant_count: int = Field(0, ge=0)
    vote_count: int = Field(0, ge=0)
    comment_count: int = Field(0, ge=0)
    user_vote: VoteType | None = Field(None, description="Current user's vote")
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Vote(EntityModel):
    """Vote row."""

    id: str
    campaign_id: str
    user_id: str
    type: VoteType
    created_at: datetime | None = None


class Comment(EntityModel):
    """Comment row."""

    id: str
    campaign_id: str
    author_id: str
    content: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class VoteResult(EntityModel):
    """Authoritative vote response: the vote and the campaign after it."""

    vote: Vote
    campaign: Campaign


class CampaignCreateInput(InputModel):
    """Input of ``campaigns.create``."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    status: CampaignStatus = CampaignStatus.DRAFT


class CampaignUpdateInput(InputModel):
    """Input of ``campaigns.update``.

    ``update_type`` defaults to what the changed fields imply.
    """

    id: str = Field(..., min_length=1)
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=10, max_length=5000)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    status: CampaignStatus | None = None
    update_type: UpdateType | None = None

    @model_validator(mode="after")
    def infer_update_type(self) -> CampaignUpdateInput:
        """Infer update_type from the fields present when not given."""
        if self.update_type is not None:
            return self
        touched: set[UpdateType] = set()
        if self.status is not None:
            touched.add(UpdateType.STATUS)
        if self.title is not None or self.description is not None:
            touched.add(UpdateType.CONTENT)
        if any(
            v is not None for v in (self.latitude, self.longitude, self.city, self.state)
        ):
            touched.add(UpdateType.LOCATION)
        inferred = touched.pop() if len(touched) == 1 else UpdateType.ALL
        object.__setattr__(self, "update_type", inferred)
        return self

    def changes(self) -> dict[str, object]:
        """Return the campaign fields this update sets."""
        return self.model_dump(exclude={"id", "update_type"}, exclude_none=True)


class CampaignDeleteInput(InputModel):
    """Input of ``campaigns.delete``."""

    id: str = Field(..., min_length=1)


class VoteInput(InputModel):
    """Input of ``campaigns.vote``."""

    campaign_id: str = Field(..., min_length=1)
    vote_type: VoteType


class CommentCreateInput(InputModel):
    """Input of ``comments.create``."""

    campaign_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=2000)


class CampaignSearchInput(InputModel):
    """Input of ``campaigns.search``."""

    query: str | None = None
    status: CampaignStatus | None = None
    city: str | None = None
    state: str | None = None
    limit: int = Field(20, ge=1, le=100)


class MyCampaignsInput(InputModel):
    """Input of ``campaigns.getMyCampaigns``."""

    status: CampaignStatus | None = None
    limit: int = Field(20, ge=1, le=50)


class NearbyInput(InputModel):
    """Input of ``campaigns.findNearby``."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    limit: int = Field(10, ge=1, le=50)


__all__ = [
    "Campaign",
    "CampaignCreateInput",
    "CampaignDeleteInput",
    "CampaignSearchInput",
    "CampaignStatus",
    "CampaignUpdateInput",
    "Comment",
    "CommentCreateInput",
    "EntityModel",
    "InputModel",
    "MyCampaignsInput",
    "NearbyInput",
    "UpdateType",
    "Vote",
    "VoteInput",
    "VoteResult",
    "VoteType",
]
