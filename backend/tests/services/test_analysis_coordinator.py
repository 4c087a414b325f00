"""Tests for AnalysisCoordinator.

- Comprehensive runs cover every requested engine in order
- A failing stage is recorded without stopping the others
- Bulk runs isolate failures per item and per analysis type
"""

import pytest

from app.integrations.ai_service import AIServiceError
from app.models.course import ContentType
from app.schemas.content_analysis import (
    AnalysisStage,
    BulkAnalysisRequest,
    BulkAnalysisType,
    ComprehensiveAnalysisRequest,
)
from app.services.analysis_coordinator import AnalysisCoordinator
from app.services.content_source import (
    ContentAnalysisValidationError,
    ContentNotFoundError,
)

MISSING_ID = "00000000-0000-0000-0000-000000000000"


class TestComprehensiveAnalysis:
    async def test_lesson_runs_all_engines(
        self, db_session, lesson, mock_ai_client
    ) -> None:
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)
        progress: list[float] = []

        result = await coordinator.comprehensive_analysis(
            ComprehensiveAnalysisRequest(
                content_type=ContentType.LESSON, content_id=lesson.id
            ),
            on_progress=progress.append,
        )

        assert result.errors == []
        assert result.results.tags is not None
        assert result.results.quality is not None
        assert result.results.plagiarism is not None
        assert result.results.quiz is not None
        assert result.results.similar_content == []
        assert progress == [10, 30, 50, 70, 90, 100]
        quiz_request = mock_ai_client.generate_quiz.await_args.args[0]
        assert quiz_request.requirements.question_count == 5

    async def test_course_skips_quiz_without_error(
        self, db_session, course, mock_ai_client
    ) -> None:
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        result = await coordinator.comprehensive_analysis(
            ComprehensiveAnalysisRequest(
                content_type=ContentType.COURSE, content_id=course.id
            )
        )

        assert result.results.quiz is None
        assert result.errors == []
        mock_ai_client.generate_quiz.assert_not_awaited()

    async def test_stage_failure_is_isolated(
        self, db_session, lesson, mock_ai_client
    ) -> None:
        lesson_id = lesson.id
        mock_ai_client.check_plagiarism.side_effect = AIServiceError("scanner offline")
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        result = await coordinator.comprehensive_analysis(
            ComprehensiveAnalysisRequest(
                content_type=ContentType.LESSON, content_id=lesson_id
            )
        )

        assert [e.type for e in result.errors] == [AnalysisStage.PLAGIARISM_CHECK.value]
        assert result.errors[0].error == "scanner offline"
        assert result.errors[0].error_type == "AIServiceError"
        assert result.results.plagiarism is None
        assert result.results.tags is not None
        assert result.results.quality is not None
        assert result.results.quiz is not None

    async def test_excluded_stages_do_not_run(
        self, db_session, lesson, mock_ai_client
    ) -> None:
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        result = await coordinator.comprehensive_analysis(
            ComprehensiveAnalysisRequest(
                content_type=ContentType.LESSON,
                content_id=lesson.id,
                include_tags=False,
                include_plagiarism=False,
                include_quiz_generation=False,
                include_similarity=False,
            )
        )

        assert result.results.quality is not None
        assert result.results.tags is None
        assert result.results.similar_content is None
        mock_ai_client.analyze_content_for_tagging.assert_not_awaited()

    async def test_force_reaches_engines(self, db_session, course, mock_ai_client) -> None:
        course_id = course.id
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)
        request = ComprehensiveAnalysisRequest(
            content_type=ContentType.COURSE, content_id=course_id
        )

        await coordinator.comprehensive_analysis(request)
        cached = await coordinator.comprehensive_analysis(request)
        forced = await coordinator.comprehensive_analysis(
            request.model_copy(update={"force": True})
        )

        assert cached.results.quality.cached is True
        assert forced.results.quality.cached is False
        assert mock_ai_client.assess_content_quality.await_count == 2

    async def test_missing_content_raises(self, db_session, mock_ai_client) -> None:
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        with pytest.raises(ContentNotFoundError):
            await coordinator.comprehensive_analysis(
                ComprehensiveAnalysisRequest(
                    content_type=ContentType.LESSON, content_id=MISSING_ID
                )
            )


class TestBulkAnalysis:
    async def test_isolates_failing_item(
        self, db_session, make_course, mock_ai_client
    ) -> None:
        first = (await make_course()).id
        second = (await make_course(title="Data Science Basics")).id
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)
        progress: list[float] = []

        result = await coordinator.bulk_analysis(
            BulkAnalysisRequest(
                content_type=ContentType.COURSE,
                content_ids=[first, MISSING_ID, second],
                analysis_types=[BulkAnalysisType.TAGS, BulkAnalysisType.QUALITY],
            ),
            on_progress=progress.append,
        )

        assert result.total_processed == 3
        assert [item.content_id for item in result.results] == [first, MISSING_ID, second]
        assert result.summary.successful == 2
        assert result.summary.failed == 1
        missing = result.results[1]
        assert [e.type for e in missing.errors] == ["tags", "quality"]
        assert all(e.error_type == "ContentNotFoundError" for e in missing.errors)
        assert set(result.results[0].results) == {"tags", "quality"}
        # three tags clear the bulk confidence floor, plus one assessment
        assert result.results[0].artifacts == 4
        assert result.summary.total_artifacts == 8
        assert progress == [33, 67, 100]

    async def test_quiz_on_course_is_an_item_error(
        self, db_session, course, mock_ai_client
    ) -> None:
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        result = await coordinator.bulk_analysis(
            BulkAnalysisRequest(
                content_type=ContentType.COURSE,
                content_ids=[course.id],
                analysis_types=[BulkAnalysisType.QUIZ, BulkAnalysisType.PLAGIARISM],
            )
        )

        item = result.results[0]
        assert [e.type for e in item.errors] == ["quiz"]
        assert item.errors[0].error_type == "ContentAnalysisValidationError"
        assert "plagiarism" in item.results
        mock_ai_client.generate_quiz.assert_not_awaited()

    async def test_serializes_with_camel_case_keys(
        self, db_session, course, mock_ai_client
    ) -> None:
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        result = await coordinator.bulk_analysis(
            BulkAnalysisRequest(content_type=ContentType.COURSE, content_ids=[course.id])
        )

        payload = result.model_dump(mode="json", by_alias=True)
        assert payload["totalProcessed"] == 1
        assert payload["results"][0]["contentId"] == course.id
        assert payload["summary"]["totalArtifacts"] == 3

    async def test_rejects_empty_request(self, db_session, mock_ai_client) -> None:
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        with pytest.raises(ContentAnalysisValidationError):
            await coordinator.bulk_analysis(
                BulkAnalysisRequest(content_type=ContentType.COURSE, content_ids=[])
            )

    async def test_rejects_oversized_request(
        self, db_session, mock_ai_client, monkeypatch
    ) -> None:
        monkeypatch.setenv("BULK_ANALYSIS_MAX_ITEMS", "2")
        coordinator = AnalysisCoordinator(db_session, mock_ai_client)

        with pytest.raises(ContentAnalysisValidationError):
            await coordinator.bulk_analysis(
                BulkAnalysisRequest(
                    content_type=ContentType.COURSE, content_ids=["a", "b", "c"]
                )
            )
        mock_ai_client.analyze_content_for_tagging.assert_not_awaited()
