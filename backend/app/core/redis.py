"""Optional Redis connection backing the cross-process analysis leases.

Only the lease commands are exposed: SET NX EX, compare-and-delete and PING.
Every command goes through the circuit breaker; when Redis is unconfigured,
unreachable or tripped the command returns None and the lease falls back to
its in-process lock.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.core.config import get_settings
from app.core.logging import get_logger, redis_logger

logger = get_logger(__name__)

CONNECT_ATTEMPTS = 3
CONNECT_BACKOFF_SECONDS = 1.0

# KEYS[1] is deleted only while it still holds ARGV[1]
RELEASE_IF_OWNER = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisManager:
    """Holds the pool, client and breaker for the process."""

    def __init__(self) -> None:
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._circuit_breaker: CircuitBreaker | None = None
        self._available = False

    @property
    def available(self) -> bool:
        return self._available and self._client is not None

    @property
    def circuit_breaker(self) -> CircuitBreaker | None:
        return self._circuit_breaker

    async def init_redis(self) -> bool:
        """Connect when REDIS_URL is set. Returns whether Redis is usable."""
        settings = get_settings()
        if not settings.redis_url:
            logger.info("REDIS_URL not set, analysis leases are process-local")
            self._available = False
            return False

        url = str(settings.redis_url)
        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.redis_circuit_failure_threshold,
                recovery_timeout=settings.redis_circuit_recovery_timeout,
            ),
            name="redis",
        )
        self._pool = ConnectionPool.from_url(
            url,
            max_connections=settings.redis_pool_size,
            socket_connect_timeout=settings.redis_connect_timeout,
            socket_timeout=settings.redis_socket_timeout,
            retry_on_timeout=settings.redis_retry_on_timeout,
            health_check_interval=settings.redis_health_check_interval,
            decode_responses=True,
        )
        self._client = Redis(connection_pool=self._pool)

        for attempt in range(1, CONNECT_ATTEMPTS + 1):
            try:
                await self._client.ping()  # type: ignore[misc]
            except (RedisConnectionError, RedisTimeoutError) as e:
                if attempt == CONNECT_ATTEMPTS:
                    redis_logger.connection_error(e, url)
                    self._available = False
                    return False
                delay = CONNECT_BACKOFF_SECONDS * 2 ** (attempt - 1)
                logger.warning(
                    "Redis not reachable yet",
                    extra={"attempt": attempt, "delay_seconds": delay, "error": str(e)},
                )
                await asyncio.sleep(delay)
            else:
                break

        self._available = True
        redis_logger.connection_success()
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None
        self._available = False
        logger.info("Redis connections closed")

    async def _guarded(
        self,
        operation: str,
        key: str,
        command: Callable[[Redis], Awaitable[Any]],
    ) -> Any | None:
        """Run one command behind the breaker. None means Redis could not answer."""
        client, breaker = self._client, self._circuit_breaker
        if client is None or breaker is None:
            redis_logger.graceful_fallback(operation, "Redis not initialized")
            return None
        if not await breaker.can_execute():
            redis_logger.graceful_fallback(operation, "Circuit breaker open")
            return None

        started = time.monotonic()
        try:
            result = await command(client)
        except RedisTimeoutError:
            redis_logger.timeout(operation, key, get_settings().redis_socket_timeout)
        except RedisConnectionError as e:
            redis_logger.connection_error(e, str(get_settings().redis_url))
        except RedisError as e:
            logger.error(
                f"Redis {operation} failed",
                extra={
                    "operation": operation,
                    "key": key,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
        else:
            redis_logger.operation(
                operation, key, (time.monotonic() - started) * 1000, success=True
            )
            await breaker.record_success()
            return result

        redis_logger.operation(
            operation, key, (time.monotonic() - started) * 1000, success=False
        )
        await breaker.record_failure()
        return None

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """SET key value NX EX ttl. True only when this call created the key."""
        result = await self._guarded(
            "set", key, lambda r: r.set(key, value, ex=ttl_seconds, nx=True)
        )
        return bool(result)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        result = await self._guarded(
            "release", key, lambda r: r.eval(RELEASE_IF_OWNER, 1, key, value)
        )
        return bool(result)

    async def check_health(self) -> bool:
        if not self._available:
            return False
        result = await self._guarded("ping", "", lambda r: r.ping())
        return result is True or result == "PONG"


redis_manager = RedisManager()
