"""Tests for the in-process job queues.

- Jobs run on worker tasks and record results and progress
- Failed attempts are retried with the policy's backoff
- Non-retryable errors fail on the first attempt
- Terminal failures keep the last error
"""

import pytest

from app.core.job_queue import (
    BackoffKind,
    Job,
    JobNotFoundError,
    JobQueue,
    JobStatus,
    QueueConfig,
    QueueRegistry,
    RetryPolicy,
    UnknownQueueError,
)


class PermanentError(Exception):
    pass


def make_queue(handler, max_attempts: int = 3, **overrides) -> JobQueue:
    config = QueueConfig(
        name=overrides.pop("name", "test-queue"),
        policy=RetryPolicy(max_attempts, 0.0),
        **overrides,
    )
    return JobQueue(config, handler)


class TestRetryPolicy:
    def test_exponential_delays(self) -> None:
        policy = RetryPolicy(3, 2.0, BackoffKind.EXPONENTIAL)

        assert [policy.delay_for(n) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_fixed_delays(self) -> None:
        policy = RetryPolicy(3, 5.0, BackoffKind.FIXED)

        assert policy.delay_for(1) == policy.delay_for(3) == 5.0


class TestJobProgress:
    def test_progress_is_clamped_and_monotonic(self) -> None:
        job = Job(id="j", name="n", queue_name="q", payload={}, max_attempts=1)

        job.report_progress(30)
        job.report_progress(10)
        assert job.progress == 30

        job.report_progress(250)
        assert job.progress == 100


class TestJobQueue:
    async def test_runs_job_and_stores_result(self) -> None:
        async def handler(job: Job) -> dict:
            job.report_progress(50)
            return {"echo": job.payload["value"]}

        queue = make_queue(handler)
        queue.start()
        try:
            job = await queue.add("echo", {"value": 7})
            finished = await queue.wait_for(job.id, timeout=2)
        finally:
            await queue.stop()

        assert finished.status == JobStatus.COMPLETED
        assert finished.result == {"echo": 7}
        assert finished.progress == 100
        assert finished.attempts_made == 1

    async def test_retries_until_success(self) -> None:
        calls: list[bool] = []

        async def handler(job: Job) -> str:
            calls.append(job.is_final_attempt)
            if len(calls) < 3:
                raise RuntimeError("transient")
            return "ok"

        queue = make_queue(handler, max_attempts=3)
        queue.start()
        try:
            job = await queue.add("flaky", {})
            finished = await queue.wait_for(job.id, timeout=2)
        finally:
            await queue.stop()

        assert finished.status == JobStatus.COMPLETED
        assert finished.attempts_made == 3
        assert calls == [False, False, True]

    async def test_fails_after_max_attempts(self) -> None:
        async def handler(job: Job) -> None:
            raise RuntimeError(f"attempt {job.attempts_made}")

        queue = make_queue(handler, max_attempts=2)
        queue.start()
        try:
            job = await queue.add("broken", {})
            finished = await queue.wait_for(job.id, timeout=2)
        finally:
            await queue.stop()

        assert finished.status == JobStatus.FAILED
        assert finished.attempts_made == 2
        assert finished.error == "attempt 2"
        assert finished.error_type == "RuntimeError"

    async def test_non_retryable_fails_immediately(self) -> None:
        async def handler(job: Job) -> None:
            raise PermanentError("missing content")

        queue = make_queue(handler, max_attempts=3, non_retryable=(PermanentError,))
        queue.start()
        try:
            job = await queue.add("missing", {})
            finished = await queue.wait_for(job.id, timeout=2)
        finally:
            await queue.stop()

        assert finished.status == JobStatus.FAILED
        assert finished.attempts_made == 1

    async def test_completed_history_is_pruned(self) -> None:
        async def handler(job: Job) -> None:
            return None

        queue = make_queue(handler, keep_completed=1)
        queue.start()
        try:
            first = await queue.add("a", {})
            await queue.wait_for(first.id, timeout=2)
            second = await queue.add("b", {})
            await queue.wait_for(second.id, timeout=2)
        finally:
            await queue.stop()

        assert queue.get_job(first.id) is None
        assert queue.get_job(second.id) is not None
        assert queue.counts()["completed"] == 1

    async def test_wait_for_unknown_job(self) -> None:
        async def handler(job: Job) -> None:
            return None

        queue = make_queue(handler)
        with pytest.raises(JobNotFoundError):
            await queue.wait_for("missing")


class TestQueueRegistry:
    async def test_register_get_and_health(self) -> None:
        async def handler(job: Job) -> None:
            return None

        registry = QueueRegistry()
        registry.register(make_queue(handler, name="alpha"))
        registry.register(make_queue(handler, name="beta"))

        assert registry.names == ["alpha", "beta"]
        assert registry.health()["alpha"]["running"] is False

        registry.start_all()
        try:
            assert all(q["running"] for q in registry.health().values())
        finally:
            await registry.stop_all()

    def test_unknown_queue(self) -> None:
        with pytest.raises(UnknownQueueError):
            QueueRegistry().get("nope")
