"""Retry policy shared by query fetches and mutation sends.

One policy object decides how many attempts a gateway call gets, how long
to wait between attempts and which failures are worth retrying.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from civicsync.config.models.retry_settings import RetrySettings
from civicsync.shared.constants import RetryDefaults
from civicsync.shared.errors import (
    NON_RETRYABLE_CODES,
    CivicSyncError,
    ErrorCode,
    ErrorContext,
    GatewayError,
    InfrastructureError,
)
from civicsync.shared.logging import log_operation_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


class RetryPolicy:
    """Bounded exponential backoff with a non-retryable predicate.

    Args:
        max_attempts: Total attempts including the first one
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound for any single delay in seconds
        backoff_factor: Multiplier applied per attempt
        non_retryable: Error codes that fail immediately
        sleep: Awaitable sleep function (injectable for tests)
    """

    def __init__(
        self,
        max_attempts: int = RetryDefaults.MAX_ATTEMPTS,
        base_delay: float = RetryDefaults.BASE_DELAY,
        max_delay: float = RetryDefaults.MAX_DELAY,
        backoff_factor: float = RetryDefaults.BACKOFF_FACTOR,
        non_retryable: frozenset[ErrorCode] = NON_RETRYABLE_CODES,
        sleep: SleepFunc | None = None,
    ) -> None:
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.non_retryable = non_retryable
        self._sleep: SleepFunc = sleep or asyncio.sleep

        self._calls = 0
        self._retries = 0
        self._exhausted = 0
        self._rate_limited = 0

    @classmethod
    def from_settings(cls, settings: RetrySettings, sleep: SleepFunc | None = None) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay,
            max_delay=settings.max_delay,
            backoff_factor=settings.backoff_factor,
            sleep=sleep,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the failed attempt number ``attempt`` (0-based)."""
        return min(self.base_delay * (self.backoff_factor**attempt), self.max_delay)

    def is_retryable(self, error: BaseException) -> bool:
        """Whether a failure may succeed on another attempt.

        Typed errors are judged by code; unexpected exceptions are retried.
        """
        if isinstance(error, CivicSyncError):
            return error.code not in self.non_retryable
        return isinstance(error, Exception)

    def delay_for(self, error: BaseException, attempt: int) -> float:
        """Delay before the next attempt, honouring a capped retry_after hint."""
        if (
            isinstance(error, GatewayError)
            and error.code == ErrorCode.RATE_LIMITED
            and error.retry_after is not None
        ):
            return min(max(error.retry_after, 0.0), self.max_delay)
        return self.backoff_delay(attempt)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str = "gateway_request",
    ) -> T:
        """Run ``operation`` until it succeeds or the policy gives up.

        Raises:
            CivicSyncError: The last typed failure, unchanged
            InfrastructureError: Wrapping an unexpected last failure
        """
        self._calls += 1
        context = ErrorContext(
            operation=operation_name,
            additional_data={"max_attempts": self.max_attempts},
        )

        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except Exception as e:  # noqa: BLE001
                if isinstance(e, GatewayError) and e.code == ErrorCode.RATE_LIMITED:
                    self._rate_limited += 1

                if not self.is_retryable(e):
                    raise

                if attempt == self.max_attempts - 1:
                    self._exhausted += 1
                    final_error = self._exhausted_error(e, context)
                    log_operation_error(
                        logger=logger,
                        error=final_error,
                        operation=operation_name,
                        additional_context={"attempts": self.max_attempts},
                    )
                    if final_error is e:
                        raise
                    raise final_error from e

                delay = self.delay_for(e, attempt)
                self._retries += 1
                logger.warning(
                    "%s failed (%s), retrying in %.2fs (attempt %d/%d)",
                    operation_name,
                    e,
                    delay,
                    attempt + 1,
                    self.max_attempts,
                )
                if delay > 0:
                    await self._sleep(delay)

        msg = "unreachable: retry loop exited without result"
        raise AssertionError(msg)

    def _exhausted_error(self, error: Exception, context: ErrorContext) -> CivicSyncError:
        if isinstance(error, CivicSyncError):
            return error
        return InfrastructureError(
            code=ErrorCode.NETWORK_ERROR,
            message=f"{error} (after {self.max_attempts} attempts)",
            context=context,
            original_error=error,
        )

    def get_stats(self) -> dict[str, Any]:
        """Get counters of calls, retries and exhausted calls."""
        return {
            "calls": self._calls,
            "retries": self._retries,
            "exhausted": self._exhausted,
            "rate_limited": self._rate_limited,
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
        }

    def reset(self) -> None:
        """Reset counters."""
        self._calls = 0
        self._retries = 0
        self._exhausted = 0
        self._rate_limited = 0


__all__ = ["RetryPolicy", "SleepFunc"]
