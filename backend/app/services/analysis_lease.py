"""Per-(engine, subject) analysis lease.

Concurrent requests for the same analysis must not both call the AI service.
The lease always takes an in-process asyncio.Lock for its key and, when Redis
is available, also a Redis key (SET NX EX with a random token, released by
compare-and-delete) so separate worker processes are serialized too.

Engines run their freshness check inside the lease, so a caller that waited
for the lease reuses the result the holder just stored.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.redis import redis_manager
from app.services.content_source import AnalysisInProgressError

logger = get_logger(__name__)

LEASE_KEY_PREFIX = "analysis-lease"
POLL_INTERVAL_SECONDS = 0.1

# key -> (lock, number of holders and waiters)
_local_locks: dict[str, tuple[asyncio.Lock, int]] = {}


def lease_key(engine: str, content_type: str, content_id: str) -> str:
    return f"{LEASE_KEY_PREFIX}:{engine}:{content_type}:{content_id}"


def _checkout_lock(key: str) -> asyncio.Lock:
    lock, users = _local_locks.get(key, (None, 0))
    if lock is None:
        lock = asyncio.Lock()
    _local_locks[key] = (lock, users + 1)
    return lock


def _return_lock(key: str) -> None:
    lock, users = _local_locks[key]
    if users <= 1:
        del _local_locks[key]
    else:
        _local_locks[key] = (lock, users - 1)


def _redis_usable() -> bool:
    breaker = redis_manager.circuit_breaker
    return redis_manager.available and (breaker is None or not breaker.is_open)


async def _acquire_redis(
    key: str, token: str, ttl_seconds: int, deadline: float
) -> bool:
    """Poll for the Redis key until the deadline.

    Returns False when Redis stopped being usable while waiting; the caller
    then continues under the local lock alone.
    """
    while True:
        if not _redis_usable():
            return False
        if await redis_manager.set_if_absent(key, token, ttl_seconds):
            return True
        if time.monotonic() >= deadline:
            raise AnalysisInProgressError(key, get_settings().analysis_lease_wait_timeout)
        await asyncio.sleep(POLL_INTERVAL_SECONDS)


@asynccontextmanager
async def analysis_lease(
    engine: str,
    content_type: str,
    content_id: str,
    wait_timeout: float | None = None,
) -> AsyncIterator[str]:
    """Hold the lease for one engine and subject.

    Raises:
        AnalysisInProgressError: If the lease is not free within wait_timeout
    """
    settings = get_settings()
    timeout = (
        wait_timeout if wait_timeout is not None else settings.analysis_lease_wait_timeout
    )
    key = lease_key(engine, content_type, content_id)
    start = time.monotonic()
    deadline = start + timeout

    lock = _checkout_lock(key)
    try:
        await asyncio.wait_for(lock.acquire(), timeout=timeout)
    except TimeoutError as e:
        _return_lock(key)
        logger.warning(
            "Analysis lease wait timed out",
            extra={"lease_key": key, "wait_timeout": timeout},
        )
        raise AnalysisInProgressError(key, timeout) from e
    except BaseException:
        _return_lock(key)
        raise

    token = uuid.uuid4().hex
    holds_redis = False
    try:
        if _redis_usable():
            try:
                holds_redis = await _acquire_redis(
                    key, token, settings.analysis_lease_ttl_seconds, deadline
                )
            except AnalysisInProgressError:
                logger.warning(
                    "Analysis lease held by another process",
                    extra={"lease_key": key, "wait_timeout": timeout},
                )
                raise

        waited_ms = (time.monotonic() - start) * 1000
        logger.debug(
            "Analysis lease acquired",
            extra={
                "lease_key": key,
                "distributed": holds_redis,
                "waited_ms": round(waited_ms, 2),
            },
        )
        yield key
    finally:
        if holds_redis:
            await redis_manager.delete_if_equals(key, token)
        lock.release()
        _return_lock(key)
