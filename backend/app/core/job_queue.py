"""In-process background job queues with per-queue retry policies.

Each JobQueue owns an asyncio worker pool and a RetryPolicy. A failed
attempt is re-enqueued after the policy's backoff until max_attempts is
reached; the job then fails terminally and the failure is logged at ERROR.
Exceptions listed as non-retryable fail the job on the first attempt.

ERROR LOGGING REQUIREMENTS:
- Log job enqueue and execution start at DEBUG level
- Log scheduled retries at WARNING with attempt/delay context
- Log terminal failures at ERROR level
- Log slow jobs (>1s) at WARNING level
"""

import asyncio
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from app.core.logging import get_logger, job_id_var, job_queue_logger

logger = get_logger(__name__)

SLOW_JOB_THRESHOLD_MS = 1000


class JobQueueError(Exception):
    """Base exception for job queue errors."""


class UnknownQueueError(JobQueueError):
    """Raised when a queue name is not registered."""

    def __init__(self, queue_name: str) -> None:
        super().__init__(f"Unknown job queue: {queue_name}")
        self.queue_name = queue_name


class JobNotFoundError(JobQueueError):
    """Raised when a job id is unknown or has been pruned."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class BackoffKind(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff for one queue.

    backoff_base is in seconds. With exponential backoff the delay before
    attempt n+1 is backoff_base * 2**(n-1), n being attempts already made.
    """

    max_attempts: int
    backoff_base: float
    backoff_kind: BackoffKind = BackoffKind.EXPONENTIAL

    def delay_for(self, attempts_made: int) -> float:
        if self.backoff_kind == BackoffKind.FIXED:
            return self.backoff_base
        return self.backoff_base * (2 ** max(attempts_made - 1, 0))


@dataclass(frozen=True)
class QueueConfig:
    name: str
    policy: RetryPolicy
    concurrency: int = 1
    keep_completed: int = 100
    keep_failed: int = 50
    non_retryable: tuple[type[BaseException], ...] = ()


class JobStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    DELAYED = "delayed"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    """A unit of queued work and its observable state."""

    id: str
    name: str
    queue_name: str
    payload: dict[str, Any]
    max_attempts: int
    status: JobStatus = JobStatus.WAITING
    attempts_made: int = 0
    progress: int = 0
    result: Any = None
    error: str | None = None
    error_type: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    _done: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def is_final_attempt(self) -> bool:
        """True while the attempt currently running is the last one allowed."""
        return self.attempts_made >= self.max_attempts

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def report_progress(self, value: float) -> None:
        """Record progress in percent. Never moves backwards."""
        clamped = int(max(0, min(100, round(value))))
        if clamped > self.progress:
            self.progress = clamped

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "queue": self.queue_name,
            "status": self.status.value,
            "attempts_made": self.attempts_made,
            "max_attempts": self.max_attempts,
            "progress": self.progress,
            "result": self.result,
            "error": self.error,
            "error_type": self.error_type,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


JobHandler = Callable[[Job], Awaitable[Any]]


class JobQueue:
    """Named queue with a worker pool and retry policy."""

    def __init__(self, config: QueueConfig, handler: JobHandler) -> None:
        self._config = config
        self._handler = handler
        self._pending: asyncio.Queue[str] = asyncio.Queue()
        self._jobs: dict[str, Job] = {}
        self._completed_ids: deque[str] = deque()
        self._failed_ids: deque[str] = deque()
        self._workers: list[asyncio.Task[None]] = []
        self._retry_timers: set[asyncio.Task[None]] = set()

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> QueueConfig:
        return self._config

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def add(
        self, name: str, payload: dict[str, Any], job_id: str | None = None
    ) -> Job:
        """Enqueue a job and return it immediately."""
        job = Job(
            id=job_id or str(uuid.uuid4()),
            name=name,
            queue_name=self.name,
            payload=payload,
            max_attempts=self._config.policy.max_attempts,
        )
        self._jobs[job.id] = job
        self._pending.put_nowait(job.id)
        job_queue_logger.job_enqueued(self.name, job.id, name)
        return job

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def wait_for(self, job_id: str, timeout: float | None = None) -> Job:
        """Block until the job completes or fails terminally."""
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        await asyncio.wait_for(job._done.wait(), timeout)
        return job

    def counts(self) -> dict[str, int]:
        totals = {status.value: 0 for status in JobStatus}
        for job in self._jobs.values():
            totals[job.status.value] += 1
        return totals

    def start(self) -> None:
        if self._workers:
            return
        for index in range(max(1, self._config.concurrency)):
            task = asyncio.create_task(
                self._worker(), name=f"{self.name}-worker-{index}"
            )
            self._workers.append(task)
        job_queue_logger.queue_start(self.name, len(self._workers))

    async def stop(self) -> None:
        """Cancel workers and pending retry timers.

        Jobs still waiting or delayed are left in their current state.
        """
        tasks = [*self._workers, *self._retry_timers]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._workers.clear()
        self._retry_timers.clear()
        pending = sum(1 for job in self._jobs.values() if not job.finished)
        job_queue_logger.queue_stop(self.name, pending)

    async def _worker(self) -> None:
        while True:
            job_id = await self._pending.get()
            try:
                job = self._jobs.get(job_id)
                if job is not None and not job.finished:
                    await self._run(job)
            finally:
                self._pending.task_done()

    async def _run(self, job: Job) -> None:
        job.attempts_made += 1
        job.status = JobStatus.ACTIVE
        job.started_at = datetime.now(UTC)
        job_queue_logger.job_execution_start(
            self.name, job.id, job.name, job.attempts_made
        )
        start_time = time.monotonic()
        context_token = job_id_var.set(job.id)

        try:
            result = await self._handler(job)
        except asyncio.CancelledError:
            job.status = JobStatus.WAITING
            raise
        except Exception as e:
            self._handle_failure(job, e)
            return
        finally:
            job_id_var.reset(context_token)

        duration_ms = (time.monotonic() - start_time) * 1000
        job.result = result
        job.error = None
        job.error_type = None
        job.report_progress(100)
        self._finish(job, JobStatus.COMPLETED)
        job_queue_logger.job_execution_success(
            self.name, job.id, job.name, duration_ms, job.attempts_made
        )
        if duration_ms > SLOW_JOB_THRESHOLD_MS:
            job_queue_logger.slow_job_execution(
                self.name, job.id, job.name, duration_ms, SLOW_JOB_THRESHOLD_MS
            )

    def _handle_failure(self, job: Job, error: Exception) -> None:
        job.error = str(error)
        job.error_type = type(error).__name__
        retryable = not isinstance(error, self._config.non_retryable)

        if retryable and job.attempts_made < job.max_attempts:
            delay = self._config.policy.delay_for(job.attempts_made)
            job.status = JobStatus.DELAYED
            job_queue_logger.job_retry_scheduled(
                self.name,
                job.id,
                job.name,
                job.attempts_made,
                job.max_attempts,
                delay,
                job.error,
                job.error_type,
            )
            timer = asyncio.create_task(self._requeue_after(job.id, delay))
            self._retry_timers.add(timer)
            timer.add_done_callback(self._retry_timers.discard)
            return

        self._finish(job, JobStatus.FAILED)
        job_queue_logger.job_failed(
            self.name,
            job.id,
            job.name,
            job.attempts_made,
            job.error,
            job.error_type,
            retryable,
        )

    async def _requeue_after(self, job_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        job = self._jobs.get(job_id)
        if job is not None and job.status == JobStatus.DELAYED:
            job.status = JobStatus.WAITING
            self._pending.put_nowait(job_id)

    def _finish(self, job: Job, status: JobStatus) -> None:
        job.status = status
        job.finished_at = datetime.now(UTC)
        job._done.set()

        if status == JobStatus.COMPLETED:
            self._retain(job.id, self._completed_ids, self._config.keep_completed)
        else:
            self._retain(job.id, self._failed_ids, self._config.keep_failed)

    def _retain(self, job_id: str, history: deque[str], limit: int) -> None:
        history.append(job_id)
        while len(history) > limit:
            self._jobs.pop(history.popleft(), None)


class QueueRegistry:
    """Holds the application's named queues."""

    def __init__(self) -> None:
        self._queues: dict[str, JobQueue] = {}

    def register(self, queue: JobQueue) -> JobQueue:
        self._queues[queue.name] = queue
        return queue

    def get(self, name: str) -> JobQueue:
        queue = self._queues.get(name)
        if queue is None:
            raise UnknownQueueError(name)
        return queue

    @property
    def names(self) -> list[str]:
        return list(self._queues)

    def start_all(self) -> None:
        for queue in self._queues.values():
            queue.start()

    async def stop_all(self) -> None:
        for queue in self._queues.values():
            await queue.stop()

    def health(self) -> dict[str, Any]:
        return {
            name: {"running": queue.running, "jobs": queue.counts()}
            for name, queue in self._queues.items()
        }
