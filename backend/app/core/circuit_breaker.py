"""Circuit breaker guarding calls to the AI service and Redis.

closed -> open after failure_threshold consecutive failures.
open -> half_open on the first check after recovery_timeout.
half_open -> closed on a successful probe, back to open on a failed one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int
    recovery_timeout: float


class CircuitBreaker:
    """Consecutive-failure breaker for one named dependency."""

    def __init__(self, config: CircuitBreakerConfig, name: str = "default") -> None:
        self._config = config
        self._name = name
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def is_closed(self) -> bool:
        return self._state is CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state is CircuitState.OPEN

    @property
    def seconds_until_probe(self) -> float:
        """Time left before an open circuit lets a probe through (0 otherwise)."""
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return 0.0
        remaining = self._opened_at + self._config.recovery_timeout - time.monotonic()
        return max(remaining, 0.0)

    def _move_to(self, state: CircuitState) -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        logger.log(
            logging.WARNING if state is CircuitState.OPEN else logging.INFO,
            f"Circuit {self._name} is now {state.value}",
            extra={
                "circuit_name": self._name,
                "previous_state": previous.value,
                "new_state": state.value,
                "failure_count": self._failure_count,
            },
        )

    def _trip(self) -> None:
        self._opened_at = time.monotonic()
        self._move_to(CircuitState.OPEN)

    def _close(self) -> None:
        self._failure_count = 0
        self._opened_at = None
        self._move_to(CircuitState.CLOSED)

    async def can_execute(self) -> bool:
        """Whether a call may go through now.

        An open circuit whose recovery timeout has passed becomes half-open and
        admits the caller as its probe.
        """
        async with self._lock:
            if self._state is not CircuitState.OPEN:
                return True
            if self.seconds_until_probe > 0:
                return False
            self._move_to(CircuitState.HALF_OPEN)
            return True

    async def record_success(self) -> None:
        async with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._close()
            else:
                self._failure_count = 0

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            if self._state is CircuitState.HALF_OPEN:
                self._trip()
            elif (
                self._state is CircuitState.CLOSED
                and self._failure_count >= self._config.failure_threshold
            ):
                self._trip()

    async def reset(self) -> None:
        async with self._lock:
            self._close()

    def to_dict(self) -> dict[str, Any]:
        """State snapshot for the health endpoints."""
        return {
            "name": self._name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self._config.failure_threshold,
            "recovery_timeout": self._config.recovery_timeout,
            "seconds_until_probe": round(self.seconds_until_probe, 3),
        }
