"""Tests for the analysis job queues.

- Six queues with their own retry policies
- Jobs run the engines on their own sessions and store JSON results
- Missing content fails without retries
- Tagging falls back to keywords only on the final attempt
"""

from contextlib import asynccontextmanager

import pytest

from app.core.job_queue import JobNotFoundError, JobStatus, RetryPolicy
from app.integrations.ai_service import AIServiceError
from app.models.course import ContentType
from app.schemas.content_analysis import (
    BulkAnalysisRequest,
    ComprehensiveAnalysisRequest,
    PlagiarismCheckRequest,
    QualityAssessmentRequest,
    QuizGenerationRequest,
    TagGenerationRequest,
)
from app.services import analysis_jobs
from app.services.analysis_jobs import (
    CONTENT_ANALYSIS_QUEUE,
    PLAGIARISM_CHECK_QUEUE,
    QUALITY_ASSESSMENT_QUEUE,
    QUEUE_POLICIES,
    QUIZ_GENERATION_QUEUE,
    SIMILARITY_ANALYSIS_QUEUE,
    TAG_GENERATION_QUEUE,
    AnalysisJobHandlers,
    build_registry,
)
from tests.conftest import similarity_response

MISSING_ID = "00000000-0000-0000-0000-000000000000"


@pytest.fixture
async def registry(async_session_factory, mock_ai_client):
    @asynccontextmanager
    async def session_factory():
        async with async_session_factory() as session:
            yield session

    async def ai_client_provider():
        return mock_ai_client

    registry = build_registry(
        AnalysisJobHandlers(session_factory, ai_client_provider),
        concurrency=1,
        policies={
            name: RetryPolicy(policy.max_attempts, 0.0)
            for name, policy in QUEUE_POLICIES.items()
        },
    )
    registry.start_all()
    yield registry
    await registry.stop_all()


async def finish(registry, queue_name: str, job_id: str):
    return await registry.get(queue_name).wait_for(job_id, timeout=5)


class TestBuildRegistry:
    def test_declares_six_queues(self) -> None:
        registry = build_registry(AnalysisJobHandlers(), concurrency=1)

        assert registry.names == [
            CONTENT_ANALYSIS_QUEUE,
            TAG_GENERATION_QUEUE,
            SIMILARITY_ANALYSIS_QUEUE,
            QUALITY_ASSESSMENT_QUEUE,
            QUIZ_GENERATION_QUEUE,
            PLAGIARISM_CHECK_QUEUE,
        ]
        assert registry.get(TAG_GENERATION_QUEUE).config.policy.max_attempts == 2
        assert registry.get(QUIZ_GENERATION_QUEUE).config.policy.backoff_base == 5.0

    async def test_global_registry_lifecycle(self) -> None:
        registry = analysis_jobs.init_queues(start_workers=False)
        try:
            assert analysis_jobs.get_queue_registry() is registry
            assert not any(q["running"] for q in registry.health().values())
        finally:
            await analysis_jobs.close_queues()
        assert analysis_jobs.analysis_queues is None


class TestEngineJobs:
    async def test_comprehensive_job(self, registry, lesson, mock_ai_client) -> None:
        job_id = await analysis_jobs.enqueue_comprehensive_analysis(
            ComprehensiveAnalysisRequest(
                content_type=ContentType.LESSON, content_id=lesson.id
            ),
            registry=registry,
        )

        job = await finish(registry, CONTENT_ANALYSIS_QUEUE, job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.result["errors"] == []
        assert set(job.result["results"]) >= {"tags", "quality", "quiz"}

    async def test_bulk_job(self, registry, course) -> None:
        job_id = await analysis_jobs.enqueue_bulk_analysis(
            BulkAnalysisRequest(
                content_type=ContentType.COURSE, content_ids=[course.id, MISSING_ID]
            ),
            registry=registry,
        )

        job = await finish(registry, CONTENT_ANALYSIS_QUEUE, job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.result["totalProcessed"] == 2
        assert job.result["summary"]["failed"] == 1

    async def test_missing_content_is_not_retried(self, registry) -> None:
        job_id = await analysis_jobs.enqueue_comprehensive_analysis(
            ComprehensiveAnalysisRequest(
                content_type=ContentType.COURSE, content_id=MISSING_ID
            ),
            registry=registry,
        )

        job = await finish(registry, CONTENT_ANALYSIS_QUEUE, job_id)

        assert job.status == JobStatus.FAILED
        assert job.attempts_made == 1
        assert job.error_type == "ContentNotFoundError"

    async def test_tag_job_falls_back_on_final_attempt(
        self, registry, course, mock_ai_client
    ) -> None:
        mock_ai_client.analyze_content_for_tagging.side_effect = AIServiceError("down")

        job_id = await analysis_jobs.enqueue_tag_generation(
            TagGenerationRequest(content_type=ContentType.COURSE, content_id=course.id),
            registry=registry,
        )
        job = await finish(registry, TAG_GENERATION_QUEUE, job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.attempts_made == 2
        assert job.result["fallback_used"] is True
        assert mock_ai_client.analyze_content_for_tagging.await_count == 2

    async def test_quality_job_retries_ai_failures(
        self, registry, course, mock_ai_client
    ) -> None:
        mock_ai_client.assess_content_quality.side_effect = [
            AIServiceError("busy"),
            mock_ai_client.assess_content_quality.return_value,
        ]

        job_id = await analysis_jobs.enqueue_quality_assessment(
            QualityAssessmentRequest(content_type=ContentType.COURSE, content_id=course.id),
            registry=registry,
        )
        job = await finish(registry, QUALITY_ASSESSMENT_QUEUE, job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.attempts_made == 2
        assert job.result["fallback_used"] is False
        assert job.result["overall_score"] == 82.0

    async def test_quiz_and_plagiarism_jobs(self, registry, lesson) -> None:
        quiz_id = await analysis_jobs.enqueue_quiz_generation(
            QuizGenerationRequest(lesson_id=lesson.id, question_count=3),
            registry=registry,
        )
        quiz_job = await finish(registry, QUIZ_GENERATION_QUEUE, quiz_id)
        scan_id = await analysis_jobs.enqueue_plagiarism_check(
            PlagiarismCheckRequest(content_type=ContentType.LESSON, content_id=lesson.id),
            registry=registry,
        )
        scan_job = await finish(registry, PLAGIARISM_CHECK_QUEUE, scan_id)

        assert quiz_job.result["status"] == "completed"
        assert len(quiz_job.result["questions"]) == 3
        assert scan_job.result["plagiarism_level"] == "low"

    async def test_similarity_job(self, registry, make_course, mock_ai_client) -> None:
        source = (await make_course()).id
        target = (await make_course(title="Intro to Python")).id
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {target: 0.8}
        )

        job_id = await analysis_jobs.enqueue_similarity_analysis(
            "course", source, registry=registry
        )
        job = await finish(registry, SIMILARITY_ANALYSIS_QUEUE, job_id)

        assert job.status == JobStatus.COMPLETED
        assert [item["content_id"] for item in job.result["similar"]] == [target]

    async def test_similarity_job_honours_threshold_and_limit(
        self, registry, make_course, mock_ai_client
    ) -> None:
        source = (await make_course()).id
        best = (await make_course(title="Intro to Python")).id
        runner_up = (await make_course(title="Python for Data Analysis")).id
        weak = (await make_course(title="Cooking Basics")).id
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {best: 0.9, runner_up: 0.8, weak: 0.4}
        )

        job_id = await analysis_jobs.enqueue_similarity_analysis(
            "course",
            source,
            candidate_ids=[best, runner_up, weak],
            min_similarity=0.6,
            limit=1,
            registry=registry,
        )
        job = await finish(registry, SIMILARITY_ANALYSIS_QUEUE, job_id)

        assert job.payload["min_similarity"] == 0.6
        assert job.payload["limit"] == 1
        assert job.status == JobStatus.COMPLETED
        assert [item["content_id"] for item in job.result["similar"]] == [best]
        assert job.result["compared_count"] == 3


class TestJobStatus:
    async def test_reports_job_state(self, registry, course) -> None:
        job_id = await analysis_jobs.enqueue_plagiarism_check(
            PlagiarismCheckRequest(content_type=ContentType.COURSE, content_id=course.id),
            registry=registry,
        )
        await finish(registry, PLAGIARISM_CHECK_QUEUE, job_id)

        status = analysis_jobs.get_job_status(PLAGIARISM_CHECK_QUEUE, job_id, registry)

        assert status["id"] == job_id
        assert status["status"] == "completed"
        assert status["queue"] == PLAGIARISM_CHECK_QUEUE
        assert status["result"]["content_id"] == course.id

    def test_unknown_job(self, registry) -> None:
        with pytest.raises(JobNotFoundError):
            analysis_jobs.get_job_status(CONTENT_ANALYSIS_QUEUE, "missing", registry)
