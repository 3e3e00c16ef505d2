"""Tests for the push channel connection state machine."""

from __future__ import annotations

import pytest

from civicsync.realtime.connection import ConnectionStateMachine
from civicsync.realtime.models import ConnectionStatus
from civicsync.shared.errors import ErrorCode, RealtimeError


@pytest.fixture
def machine(clock) -> ConnectionStateMachine:
    return ConnectionStateMachine(
        max_attempts=5,
        base_delay=1.0,
        max_delay=30.0,
        max_jitter=1.0,
        random_func=lambda: 0.5,
        clock=clock,
    )


class TestTransitions:
    """Allowed and rejected transitions."""

    def test_connect_path(self, machine: ConnectionStateMachine) -> None:
        seen: list[tuple[ConnectionStatus, ConnectionStatus]] = []
        machine.on_transition(lambda prev, cur: seen.append((prev, cur)))

        machine.transition(ConnectionStatus.CONNECTING)
        machine.transition(ConnectionStatus.CONNECTED)

        assert machine.is_connected
        assert seen == [
            (ConnectionStatus.DISCONNECTED, ConnectionStatus.CONNECTING),
            (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED),
        ]

    @pytest.mark.parametrize(
        "target",
        [ConnectionStatus.CONNECTED, ConnectionStatus.DISCONNECTED],
    )
    def test_invalid_from_disconnected(
        self,
        machine: ConnectionStateMachine,
        target: ConnectionStatus,
    ) -> None:
        with pytest.raises(RealtimeError) as exc_info:
            machine.transition(target)
        assert exc_info.value.code is ErrorCode.REALTIME_CONNECTION_FAILED
        assert machine.state is ConnectionStatus.DISCONNECTED

    def test_connected_cannot_reconnect_directly(self, machine: ConnectionStateMachine) -> None:
        machine.transition(ConnectionStatus.CONNECTING)
        machine.transition(ConnectionStatus.CONNECTED)
        assert not machine.can_transition(ConnectionStatus.RECONNECTING)

    def test_failing_callback_does_not_block(self, machine: ConnectionStateMachine) -> None:
        def broken(prev: ConnectionStatus, cur: ConnectionStatus) -> None:
            raise RuntimeError("listener bug")

        machine.on_transition(broken)
        machine.transition(ConnectionStatus.CONNECTING)
        assert machine.state is ConnectionStatus.CONNECTING


class TestReconnectDelays:
    """Backoff with jitter and a bounded number of attempts."""

    def test_delays_with_jitter(self, machine: ConnectionStateMachine) -> None:
        delays = [machine.next_reconnect_delay() for _ in range(5)]
        assert delays == [1.5, 2.5, 4.5, 8.5, 16.5]
        assert machine.next_reconnect_delay() is None
        assert machine.reconnect_attempts == 5

    def test_delay_capped(self, clock) -> None:
        machine = ConnectionStateMachine(
            max_attempts=10,
            base_delay=1.0,
            max_delay=30.0,
            max_jitter=1.0,
            random_func=lambda: 0.99,
            clock=clock,
        )
        delays = [machine.next_reconnect_delay() for _ in range(10)]
        assert max(delays) == 30.0

    def test_success_resets_attempts(self, machine: ConnectionStateMachine) -> None:
        machine.transition(ConnectionStatus.RECONNECTING)
        machine.next_reconnect_delay()
        machine.next_reconnect_delay()
        machine.transition(ConnectionStatus.CONNECTED)

        assert machine.attempts == 0
        assert machine.successful_reconnects == 1
        assert machine.next_reconnect_delay() == 1.5


class TestStats:
    """Uptime and counters."""

    def test_uptime(self, machine: ConnectionStateMachine, clock) -> None:
        assert machine.uptime() == 0.0
        machine.transition(ConnectionStatus.CONNECTING)
        machine.transition(ConnectionStatus.CONNECTED)
        clock.advance(12)
        assert machine.uptime() == 12
        machine.transition(ConnectionStatus.DISCONNECTED)
        assert machine.connected_since is None

    def test_reset(self, machine: ConnectionStateMachine) -> None:
        machine.transition(ConnectionStatus.RECONNECTING)
        machine.next_reconnect_delay()
        machine.reset()
        stats = machine.get_stats()
        assert stats["state"] == "disconnected"
        assert stats["reconnect_attempts"] == 0
