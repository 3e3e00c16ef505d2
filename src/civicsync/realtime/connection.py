"""Push channel connection state machine.

This module tracks the connection state of the push channel and computes
reconnection backoff delays.

States and allowed transitions:

    disconnected -> connecting | reconnecting
    connecting   -> connected | disconnected
    connected    -> disconnected
    reconnecting -> connected | disconnected

A transport drop moves ``connected`` to ``disconnected`` first, so
listeners observe the loss immediately, and then into ``reconnecting``.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable

from civicsync.realtime.models import ConnectionStatus
from civicsync.shared.constants import ReconnectDefaults
from civicsync.shared.errors import ErrorCode, ErrorContext, RealtimeError

logger = logging.getLogger(__name__)

TransitionCallback = Callable[[ConnectionStatus, ConnectionStatus], None]

_ALLOWED_TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset(
        {ConnectionStatus.CONNECTING, ConnectionStatus.RECONNECTING},
    ),
    ConnectionStatus.CONNECTING: frozenset(
        {ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED},
    ),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.DISCONNECTED}),
    ConnectionStatus.RECONNECTING: frozenset(
        {ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED},
    ),
}


class ConnectionStateMachine:
    """State machine for the push channel connection.

    Args:
        max_attempts: Reconnect attempts before giving up
        base_delay: Base reconnect delay in seconds
        max_delay: Maximum reconnect delay in seconds
        max_jitter: Maximum random jitter added to each delay in seconds
        random_func: Source of uniform randoms in [0, 1)
        clock: Wall-clock-like monotonic clock in seconds
    """

    def __init__(
        self,
        max_attempts: int = ReconnectDefaults.MAX_ATTEMPTS,
        base_delay: float = ReconnectDefaults.BASE_DELAY,
        max_delay: float = ReconnectDefaults.MAX_DELAY,
        max_jitter: float = ReconnectDefaults.MAX_JITTER,
        random_func: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_jitter = max_jitter
        self._random = random_func
        self._clock = clock

        self._state = ConnectionStatus.DISCONNECTED
        self._attempts = 0
        self._callbacks: list[TransitionCallback] = []

        self.reconnect_attempts = 0
        self.successful_reconnects = 0
        self.connected_since: float | None = None

    @property
    def state(self) -> ConnectionStatus:
        """Get the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionStatus.CONNECTED

    @property
    def attempts(self) -> int:
        """Reconnect attempts made since the last successful connection."""
        return self._attempts

    def on_transition(self, callback: TransitionCallback) -> None:
        self._callbacks.append(callback)

    def can_transition(self, target: ConnectionStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self._state]

    def transition(self, target: ConnectionStatus) -> None:
        """Move to ``target`` and notify transition callbacks.

        Raises:
            RealtimeError: If the transition is not allowed
        """
        previous = self._state
        if not self.can_transition(target):
            raise RealtimeError(
                ErrorCode.REALTIME_CONNECTION_FAILED,
                f"Invalid connection transition {previous.value} -> {target.value}",
                ErrorContext(
                    operation="connection_transition",
                    additional_data={"from": previous.value, "to": target.value},
                ),
            )

        self._state = target
        if target == ConnectionStatus.CONNECTED:
            if previous == ConnectionStatus.RECONNECTING:
                self.successful_reconnects += 1
            self._attempts = 0
            self.connected_since = self._clock()
        elif previous == ConnectionStatus.CONNECTED:
            self.connected_since = None

        logger.debug("Connection state %s -> %s", previous.value, target.value)
        for callback in list(self._callbacks):
            try:
                callback(previous, target)
            except Exception:
                logger.exception("Connection transition callback failed")

    def next_reconnect_delay(self) -> float | None:
        """Consume one reconnect attempt and return its delay.

        Returns:
            ``min(base * 2**attempt + jitter, max)`` in seconds, or None
            once ``max_attempts`` have been used
        """
        if self._attempts >= self.max_attempts:
            return None
        jitter = self._random() * self.max_jitter
        delay = min(self.base_delay * (2**self._attempts) + jitter, self.max_delay)
        self._attempts += 1
        self.reconnect_attempts += 1
        return delay

    def uptime(self) -> float:
        """Seconds since the current connection was established."""
        if self.connected_since is None:
            return 0.0
        return self._clock() - self.connected_since

    def reset(self) -> None:
        """Reset counters and return to ``disconnected`` without callbacks."""
        self._state = ConnectionStatus.DISCONNECTED
        self._attempts = 0
        self.reconnect_attempts = 0
        self.successful_reconnects = 0
        self.connected_since = None

    def get_stats(self) -> dict[str, Any]:
        """Get current statistics about the connection."""
        return {
            "state": self._state.value,
            "attempts": self._attempts,
            "reconnect_attempts": self.reconnect_attempts,
            "successful_reconnects": self.successful_reconnects,
            "uptime": self.uptime(),
        }


__all__ = ["ConnectionStateMachine", "TransitionCallback"]
