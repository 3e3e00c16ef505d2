"""Retry policy configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from civicsync.shared.constants import RetryDefaults


class RetrySettings(BaseModel):
    """Retry/backoff configuration shared by query fetches and mutation sends."""

    max_attempts: int = Field(
        default=RetryDefaults.MAX_ATTEMPTS,
        ge=1,
        description="Total attempts including the first one",
    )
    base_delay: float = Field(
        default=RetryDefaults.BASE_DELAY,
        ge=0,
        description="Delay before the first retry in seconds",
    )
    max_delay: float = Field(
        default=RetryDefaults.MAX_DELAY,
        ge=0,
        description="Upper bound for any single backoff delay in seconds",
    )
    backoff_factor: float = Field(
        default=RetryDefaults.BACKOFF_FACTOR,
        ge=1.0,
        description="Exponential backoff multiplier",
    )

    @model_validator(mode="after")
    def validate_delays(self) -> RetrySettings:
        """Ensure the cap is not below the base delay."""
        if self.max_delay < self.base_delay:
            msg = "max_delay must be greater than or equal to base_delay"
            raise ValueError(msg)
        return self


__all__ = ["RetrySettings"]
