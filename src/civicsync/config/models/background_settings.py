"""Background cache maintenance configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field

from civicsync.shared.constants import BackgroundIntervals


class BackgroundSettings(BaseModel):
    """Background cache manager configuration."""

    enabled: bool = Field(default=True, description="Run periodic cache maintenance")
    cleanup_interval: float = Field(
        default=BackgroundIntervals.CLEANUP,
        gt=0,
        description="Seconds between unobserved-entry cleanups",
    )
    refresh_interval: float = Field(
        default=BackgroundIntervals.REFRESH,
        gt=0,
        description="Seconds between background refreshes of stale observed entries",
    )
    stale_check_interval: float = Field(
        default=BackgroundIntervals.STALE_CHECK,
        gt=0,
        description="Seconds between critical query staleness checks",
    )
    stats_interval: float = Field(
        default=BackgroundIntervals.STATS,
        gt=0,
        description="Seconds between cache statistics log records",
    )
    critical_max_age: float = Field(
        default=BackgroundIntervals.CRITICAL_MAX_AGE,
        gt=0,
        description="Age after which a critical query is refreshed",
    )
    prefetch_on_start: bool = Field(
        default=True,
        description="Prefetch common queries when the manager starts",
    )


__all__ = ["BackgroundSettings"]
