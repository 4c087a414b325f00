"""Background job queues for content analysis.

Six named queues, each with its own retry policy:

- content-analysis: comprehensive and bulk runs via AnalysisCoordinator
- tag-generation, similarity-analysis, quality-assessment,
  quiz-generation, plagiarism-check: one engine each

Every job opens its own database session. Missing content and invalid
requests fail the job immediately; anything else is retried with
exponential backoff. Tagging and quality jobs only fall back to local
heuristics on their last attempt, so earlier attempts retry the AI call.

ERROR LOGGING REQUIREMENTS:
- Log job handling at DEBUG level with job and content ids
- Log enqueue calls at INFO level with the queue name and job id
- Queue-level retry and failure logging lives in app.core.job_queue
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import session_scope
from app.core.job_queue import (
    BackoffKind,
    Job,
    JobNotFoundError,
    JobQueue,
    QueueConfig,
    QueueRegistry,
    RetryPolicy,
)
from app.core.logging import get_logger
from app.integrations.ai_service import AIServiceClient, get_ai_service
from app.models.content_similarity import SimilarityType
from app.schemas.content_analysis import (
    BulkAnalysisRequest,
    ComprehensiveAnalysisRequest,
    PlagiarismCheckRequest,
    QualityAssessmentRequest,
    QuizGenerationRequest,
    TagGenerationRequest,
)
from app.services.analysis_coordinator import AnalysisCoordinator
from app.services.content_source import (
    ContentAnalysisValidationError,
    ContentNotFoundError,
)
from app.services.content_tagging import ContentTaggingService
from app.services.plagiarism_detection import PlagiarismDetectionService
from app.services.quality_assessment import QualityAssessmentService
from app.services.quiz_generation import QuizGenerationService
from app.services.similarity_detection import (
    DEFAULT_LIMIT,
    DEFAULT_MIN_SIMILARITY,
    SimilarityDetectionService,
)

logger = get_logger(__name__)

CONTENT_ANALYSIS_QUEUE = "content-analysis"
TAG_GENERATION_QUEUE = "tag-generation"
SIMILARITY_ANALYSIS_QUEUE = "similarity-analysis"
QUALITY_ASSESSMENT_QUEUE = "quality-assessment"
QUIZ_GENERATION_QUEUE = "quiz-generation"
PLAGIARISM_CHECK_QUEUE = "plagiarism-check"

COMPREHENSIVE_ANALYSIS_JOB = "comprehensive-analysis"
BULK_ANALYSIS_JOB = "bulk-content-analysis"

QUEUE_POLICIES: dict[str, RetryPolicy] = {
    CONTENT_ANALYSIS_QUEUE: RetryPolicy(3, 2.0, BackoffKind.EXPONENTIAL),
    TAG_GENERATION_QUEUE: RetryPolicy(2, 3.0, BackoffKind.EXPONENTIAL),
    SIMILARITY_ANALYSIS_QUEUE: RetryPolicy(3, 1.0, BackoffKind.EXPONENTIAL),
    QUALITY_ASSESSMENT_QUEUE: RetryPolicy(3, 2.0, BackoffKind.EXPONENTIAL),
    QUIZ_GENERATION_QUEUE: RetryPolicy(2, 5.0, BackoffKind.EXPONENTIAL),
    PLAGIARISM_CHECK_QUEUE: RetryPolicy(3, 3.0, BackoffKind.EXPONENTIAL),
}

NON_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    ContentNotFoundError,
    ContentAnalysisValidationError,
)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]
AIClientProvider = Callable[[], Awaitable[AIServiceClient]]


class AnalysisJobHandlers:
    """Job handlers bound to a session factory and an AI client provider."""

    def __init__(
        self,
        session_factory: SessionFactory = session_scope,
        ai_client_provider: AIClientProvider = get_ai_service,
    ) -> None:
        self._session_factory = session_factory
        self._ai_client_provider = ai_client_provider

    @asynccontextmanager
    async def _services(self) -> AsyncIterator[tuple[AsyncSession, AIServiceClient]]:
        ai_client = await self._ai_client_provider()
        async with self._session_factory() as session:
            yield session, ai_client

    async def content_analysis(self, job: Job) -> dict[str, Any]:
        user_id = job.payload.get("user_id")
        logger.debug(
            "Handling content analysis job",
            extra={"job_id": job.id, "job_name": job.name},
        )
        async with self._services() as (session, ai_client):
            coordinator = AnalysisCoordinator(session, ai_client)
            if job.name == COMPREHENSIVE_ANALYSIS_JOB:
                comprehensive = await coordinator.comprehensive_analysis(
                    ComprehensiveAnalysisRequest.model_validate(job.payload["request"]),
                    user_id,
                    job.report_progress,
                )
                return comprehensive.model_dump(mode="json", by_alias=True)
            if job.name == BULK_ANALYSIS_JOB:
                bulk = await coordinator.bulk_analysis(
                    BulkAnalysisRequest.model_validate(job.payload["request"]),
                    user_id,
                    job.report_progress,
                )
                return bulk.model_dump(mode="json", by_alias=True)
        raise ContentAnalysisValidationError(
            "job_name", job.name, "Unknown content analysis job"
        )

    async def tag_generation(self, job: Job) -> dict[str, Any]:
        request = TagGenerationRequest.model_validate(job.payload["request"])
        logger.debug(
            "Handling tag generation job",
            extra={"job_id": job.id, "content_id": request.content_id},
        )
        async with self._services() as (session, ai_client):
            result = await ContentTaggingService(session, ai_client).generate_tags(
                request,
                job.payload.get("user_id"),
                allow_fallback=job.is_final_attempt,
            )
            return result.model_dump(mode="json")

    async def similarity_analysis(self, job: Job) -> dict[str, Any]:
        payload = job.payload
        logger.debug(
            "Handling similarity analysis job",
            extra={"job_id": job.id, "content_id": payload["content_id"]},
        )
        async with self._services() as (session, ai_client):
            result = await SimilarityDetectionService(
                session, ai_client
            ).detect_similar_content(
                payload["content_type"],
                payload["content_id"],
                candidate_ids=payload.get("candidate_ids"),
                similarity_type=SimilarityType(
                    payload.get("similarity_type", SimilarityType.COMPREHENSIVE.value)
                ),
                min_similarity=payload.get("min_similarity", DEFAULT_MIN_SIMILARITY),
                limit=payload.get("limit", DEFAULT_LIMIT),
                force=payload.get("force", False),
            )
            return result.model_dump(mode="json")

    async def quality_assessment(self, job: Job) -> dict[str, Any]:
        request = QualityAssessmentRequest.model_validate(job.payload["request"])
        logger.debug(
            "Handling quality assessment job",
            extra={"job_id": job.id, "content_id": request.content_id},
        )
        async with self._services() as (session, ai_client):
            result = await QualityAssessmentService(
                session, ai_client
            ).assess_content_quality(
                request,
                job.payload.get("user_id"),
                allow_fallback=job.is_final_attempt,
            )
            return result.model_dump(mode="json")

    async def quiz_generation(self, job: Job) -> dict[str, Any]:
        request = QuizGenerationRequest.model_validate(job.payload["request"])
        logger.debug(
            "Handling quiz generation job",
            extra={"job_id": job.id, "lesson_id": request.lesson_id},
        )
        async with self._services() as (session, ai_client):
            result = await QuizGenerationService(session, ai_client).generate_quiz(
                request, job.payload.get("user_id")
            )
            return result.model_dump(mode="json")

    async def plagiarism_check(self, job: Job) -> dict[str, Any]:
        request = PlagiarismCheckRequest.model_validate(job.payload["request"])
        logger.debug(
            "Handling plagiarism check job",
            extra={"job_id": job.id, "content_id": request.content_id},
        )
        async with self._services() as (session, ai_client):
            result = await PlagiarismDetectionService(
                session, ai_client
            ).check_plagiarism(request, job.payload.get("user_id"))
            return result.model_dump(mode="json")


def build_registry(
    handlers: AnalysisJobHandlers | None = None,
    concurrency: int | None = None,
    policies: dict[str, RetryPolicy] | None = None,
) -> QueueRegistry:
    """Create the six analysis queues without starting their workers."""
    handlers = handlers or AnalysisJobHandlers()
    if concurrency is None:
        concurrency = get_settings().queue_worker_concurrency
    policies = {**QUEUE_POLICIES, **(policies or {})}

    handler_by_queue = {
        CONTENT_ANALYSIS_QUEUE: handlers.content_analysis,
        TAG_GENERATION_QUEUE: handlers.tag_generation,
        SIMILARITY_ANALYSIS_QUEUE: handlers.similarity_analysis,
        QUALITY_ASSESSMENT_QUEUE: handlers.quality_assessment,
        QUIZ_GENERATION_QUEUE: handlers.quiz_generation,
        PLAGIARISM_CHECK_QUEUE: handlers.plagiarism_check,
    }

    registry = QueueRegistry()
    for name, handler in handler_by_queue.items():
        registry.register(
            JobQueue(
                QueueConfig(
                    name=name,
                    policy=policies[name],
                    concurrency=concurrency,
                    non_retryable=NON_RETRYABLE_ERRORS,
                ),
                handler,
            )
        )
    return registry


# Global queue registry
analysis_queues: QueueRegistry | None = None


def init_queues(start_workers: bool = True) -> QueueRegistry:
    """Create the global queue registry and optionally start its workers."""
    global analysis_queues
    if analysis_queues is None:
        analysis_queues = build_registry()
        logger.info(
            "Analysis queues initialized",
            extra={"queues": analysis_queues.names, "start_workers": start_workers},
        )
    if start_workers:
        analysis_queues.start_all()
    return analysis_queues


async def close_queues() -> None:
    """Stop all workers and drop the global registry."""
    global analysis_queues
    if analysis_queues is not None:
        await analysis_queues.stop_all()
        analysis_queues = None


def get_queue_registry() -> QueueRegistry:
    """Return the global registry, creating it (without workers) if needed."""
    if analysis_queues is None:
        return init_queues(start_workers=False)
    return analysis_queues


async def _enqueue(
    queue_name: str,
    job_name: str,
    payload: dict[str, Any],
    registry: QueueRegistry | None = None,
) -> str:
    queue = (registry or get_queue_registry()).get(queue_name)
    job = await queue.add(job_name, payload)
    logger.info(
        "Analysis job enqueued",
        extra={"queue": queue_name, "job_id": job.id, "job_name": job_name},
    )
    return job.id


async def enqueue_comprehensive_analysis(
    request: ComprehensiveAnalysisRequest,
    user_id: str | None = None,
    registry: QueueRegistry | None = None,
) -> str:
    return await _enqueue(
        CONTENT_ANALYSIS_QUEUE,
        COMPREHENSIVE_ANALYSIS_JOB,
        {"request": request.model_dump(mode="json"), "user_id": user_id},
        registry,
    )


async def enqueue_bulk_analysis(
    request: BulkAnalysisRequest,
    user_id: str | None = None,
    registry: QueueRegistry | None = None,
) -> str:
    return await _enqueue(
        CONTENT_ANALYSIS_QUEUE,
        BULK_ANALYSIS_JOB,
        {"request": request.model_dump(mode="json"), "user_id": user_id},
        registry,
    )


async def enqueue_tag_generation(
    request: TagGenerationRequest,
    user_id: str | None = None,
    registry: QueueRegistry | None = None,
) -> str:
    return await _enqueue(
        TAG_GENERATION_QUEUE,
        "generate-tags",
        {"request": request.model_dump(mode="json"), "user_id": user_id},
        registry,
    )


async def enqueue_similarity_analysis(
    content_type: str,
    content_id: str,
    candidate_ids: list[str] | None = None,
    similarity_type: SimilarityType = SimilarityType.COMPREHENSIVE,
    min_similarity: float = DEFAULT_MIN_SIMILARITY,
    limit: int = DEFAULT_LIMIT,
    force: bool = False,
    registry: QueueRegistry | None = None,
) -> str:
    return await _enqueue(
        SIMILARITY_ANALYSIS_QUEUE,
        "detect-similarity",
        {
            "content_type": content_type,
            "content_id": content_id,
            "candidate_ids": candidate_ids,
            "similarity_type": similarity_type.value,
            "min_similarity": min_similarity,
            "limit": limit,
            "force": force,
        },
        registry,
    )


async def enqueue_quality_assessment(
    request: QualityAssessmentRequest,
    user_id: str | None = None,
    registry: QueueRegistry | None = None,
) -> str:
    return await _enqueue(
        QUALITY_ASSESSMENT_QUEUE,
        "assess-quality",
        {"request": request.model_dump(mode="json"), "user_id": user_id},
        registry,
    )


async def enqueue_quiz_generation(
    request: QuizGenerationRequest,
    user_id: str | None = None,
    registry: QueueRegistry | None = None,
) -> str:
    return await _enqueue(
        QUIZ_GENERATION_QUEUE,
        "generate-quiz",
        {"request": request.model_dump(mode="json"), "user_id": user_id},
        registry,
    )


async def enqueue_plagiarism_check(
    request: PlagiarismCheckRequest,
    user_id: str | None = None,
    registry: QueueRegistry | None = None,
) -> str:
    return await _enqueue(
        PLAGIARISM_CHECK_QUEUE,
        "check-plagiarism",
        {"request": request.model_dump(mode="json"), "user_id": user_id},
        registry,
    )


def get_job_status(
    queue_name: str, job_id: str, registry: QueueRegistry | None = None
) -> dict[str, Any]:
    """Observable state of a job: status, progress, attempts, result or error.

    Raises:
        UnknownQueueError: If the queue does not exist
        JobNotFoundError: If the job is unknown or no longer retained
    """
    job = (registry or get_queue_registry()).get(queue_name).get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job.to_dict()
