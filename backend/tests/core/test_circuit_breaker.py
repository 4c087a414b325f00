"""Tests for the shared CircuitBreaker.

- Starts CLOSED
- Opens after failure_threshold failures
- Moves to HALF_OPEN once recovery_timeout has elapsed
- A successful probe closes the circuit; a failed one reopens it
"""

from unittest.mock import patch

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState


def make_breaker(threshold: int = 3, recovery: float = 30.0) -> CircuitBreaker:
    return CircuitBreaker(
        CircuitBreakerConfig(failure_threshold=threshold, recovery_timeout=recovery),
        name="test",
    )


class TestCircuitBreakerStates:
    def test_initial_state_is_closed(self) -> None:
        cb = make_breaker()

        assert cb.state == CircuitState.CLOSED
        assert cb.is_closed is True
        assert cb.failure_count == 0

    async def test_opens_after_threshold(self) -> None:
        cb = make_breaker(threshold=3)

        await cb.record_failure()
        await cb.record_failure()
        assert cb.is_closed is True

        await cb.record_failure()
        assert cb.is_open is True
        assert await cb.can_execute() is False

    async def test_success_resets_failure_count(self) -> None:
        cb = make_breaker(threshold=3)

        await cb.record_failure()
        await cb.record_failure()
        await cb.record_success()

        assert cb.failure_count == 0
        await cb.record_failure()
        assert cb.is_closed is True


class TestCircuitBreakerRecovery:
    async def test_half_open_after_recovery_timeout(self) -> None:
        cb = make_breaker(threshold=1, recovery=10.0)

        with patch("app.core.circuit_breaker.time.monotonic", return_value=100.0):
            await cb.record_failure()
        assert cb.is_open is True

        with patch("app.core.circuit_breaker.time.monotonic", return_value=105.0):
            assert await cb.can_execute() is False

        with patch("app.core.circuit_breaker.time.monotonic", return_value=111.0):
            assert await cb.can_execute() is True
        assert cb.state == CircuitState.HALF_OPEN

    async def test_successful_probe_closes(self) -> None:
        cb = make_breaker(threshold=1, recovery=0.0)
        await cb.record_failure()

        assert await cb.can_execute() is True
        await cb.record_success()

        assert cb.is_closed is True

    async def test_failed_probe_reopens(self) -> None:
        cb = make_breaker(threshold=1, recovery=0.0)
        await cb.record_failure()

        assert await cb.can_execute() is True
        await cb.record_failure()

        assert cb.is_open is True

    async def test_reset_closes_and_reports_snapshot(self) -> None:
        cb = make_breaker(threshold=1)
        await cb.record_failure()

        await cb.reset()

        snapshot = cb.to_dict()
        assert snapshot["state"] == "closed"
        assert snapshot["failure_count"] == 0
        assert snapshot["name"] == "test"
