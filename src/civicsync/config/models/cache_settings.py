"""Query cache configuration model.

This module contains the freshness windows (stale and gc durations) of the
client query cache, grouped per data family.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from civicsync.shared.constants import CacheFamily, GcTime, StaleTime


class FreshnessWindow(BaseModel):
    """Stale/gc pair for one data family (seconds)."""

    stale_time: float = Field(ge=0, description="Seconds until data is stale")
    gc_time: float = Field(gt=0, description="Seconds an unobserved entry is kept")

    @model_validator(mode="after")
    def validate_order(self) -> FreshnessWindow:
        """Ensure entries do not outlive their garbage collection window."""
        if self.gc_time < self.stale_time:
            msg = "gc_time must be greater than or equal to stale_time"
            raise ValueError(msg)
        return self


class CacheSettings(BaseModel):
    """Query cache configuration."""

    campaigns: FreshnessWindow = Field(
        default_factory=lambda: FreshnessWindow(
            stale_time=StaleTime.CAMPAIGNS,
            gc_time=GcTime.CAMPAIGNS,
        ),
    )
    comments: FreshnessWindow = Field(
        default_factory=lambda: FreshnessWindow(
            stale_time=StaleTime.COMMENTS,
            gc_time=GcTime.COMMENTS,
        ),
    )
    votes: FreshnessWindow = Field(
        default_factory=lambda: FreshnessWindow(
            stale_time=StaleTime.VOTES,
            gc_time=GcTime.VOTES,
        ),
    )
    user_profile: FreshnessWindow = Field(
        default_factory=lambda: FreshnessWindow(
            stale_time=StaleTime.USER_PROFILE,
            gc_time=GcTime.USER_PROFILE,
        ),
    )
    geographic: FreshnessWindow = Field(
        default_factory=lambda: FreshnessWindow(
            stale_time=StaleTime.GEOGRAPHIC,
            gc_time=GcTime.GEOGRAPHIC,
        ),
    )

    def window_for(self, family: str) -> FreshnessWindow:
        """Return the freshness window of a family (see CacheFamily)."""
        if family not in (
            CacheFamily.CAMPAIGNS,
            CacheFamily.COMMENTS,
            CacheFamily.VOTES,
            CacheFamily.USER_PROFILE,
            CacheFamily.GEOGRAPHIC,
        ):
            msg = f"Unknown cache family: {family}"
            raise ValueError(msg)
        window: FreshnessWindow = getattr(self, family)
        return window


__all__ = ["CacheSettings", "FreshnessWindow"]
