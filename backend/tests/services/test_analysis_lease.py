"""Tests for the per-(engine, subject) analysis lease."""

import asyncio
import importlib

import pytest

from app.services.analysis_lease import analysis_lease, lease_key
from app.services.content_source import AnalysisInProgressError

# app.services re-exports the analysis_lease function under the module name
lease_module = importlib.import_module("app.services.analysis_lease")


class TestLocalLease:
    async def test_serializes_same_subject(self, mock_redis_unavailable) -> None:
        order: list[str] = []

        async def hold(name: str) -> None:
            async with analysis_lease("tagging", "course", "c1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(hold("a"), hold("b"))

        assert order in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    async def test_different_subjects_run_concurrently(
        self, mock_redis_unavailable
    ) -> None:
        inside = asyncio.Event()

        async def first() -> None:
            async with analysis_lease("tagging", "course", "c1"):
                inside.set()
                await asyncio.sleep(0.05)

        async def second() -> bool:
            await inside.wait()
            async with analysis_lease("tagging", "course", "c2", wait_timeout=0.01):
                return True

        _, entered = await asyncio.gather(first(), second())
        assert entered is True

    async def test_times_out_while_held(self, mock_redis_unavailable) -> None:
        async with analysis_lease("quality", "lesson", "l1"):
            with pytest.raises(AnalysisInProgressError):
                async with analysis_lease("quality", "lesson", "l1", wait_timeout=0.01):
                    pass

    async def test_lock_map_is_cleaned_up(self, mock_redis_unavailable) -> None:
        async with analysis_lease("quiz", "lesson", "l1"):
            assert lease_key("quiz", "lesson", "l1") in lease_module._local_locks

        assert lease_key("quiz", "lesson", "l1") not in lease_module._local_locks


class TestRedisLease:
    async def test_sets_and_releases_redis_key(
        self, mock_redis_manager, mock_redis
    ) -> None:
        key = lease_key("plagiarism", "course", "c1")

        async with analysis_lease("plagiarism", "course", "c1"):
            assert await mock_redis.get(key) is not None

        assert await mock_redis.get(key) is None

    async def test_times_out_when_other_process_holds_key(
        self, mock_redis_manager, mock_redis
    ) -> None:
        key = lease_key("similarity", "course", "c1")
        await mock_redis.set(key, "other-process-token")

        with pytest.raises(AnalysisInProgressError):
            async with analysis_lease("similarity", "course", "c1", wait_timeout=0.05):
                pass

        assert await mock_redis.get(key) == b"other-process-token"
        assert key not in lease_module._local_locks
