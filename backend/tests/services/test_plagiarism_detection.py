"""Tests for PlagiarismDetectionService.

- Similarity percentage to level buckets
- Reuse only while the content hash is unchanged
- Failed scans are recorded and re-raised
- Statistics over completed checks
"""

import pytest
from sqlalchemy import select

from app.integrations.ai_service import AIServiceError
from app.models.course import ContentType
from app.models.plagiarism_check import (
    PlagiarismCheck,
    PlagiarismLevel,
    PlagiarismStatus,
)
from app.schemas.content_analysis import PlagiarismCheckRequest, PlagiarismQuery
from app.services.content_source import AnalysisNotFoundError
from app.services.plagiarism_detection import (
    PlagiarismDetectionService,
    map_score_to_plagiarism_level,
)
from tests.conftest import plagiarism_response


def lesson_request(lesson_id: str, **overrides) -> PlagiarismCheckRequest:
    return PlagiarismCheckRequest(
        content_type=ContentType.LESSON, content_id=lesson_id, **overrides
    )


@pytest.mark.parametrize(
    ("similarity", "level"),
    [
        (0.0, PlagiarismLevel.NONE),
        (9.9, PlagiarismLevel.NONE),
        (10.0, PlagiarismLevel.LOW),
        (29.9, PlagiarismLevel.LOW),
        (30.0, PlagiarismLevel.MODERATE),
        (59.9, PlagiarismLevel.MODERATE),
        (60.0, PlagiarismLevel.HIGH),
        (79.9, PlagiarismLevel.HIGH),
        (80.0, PlagiarismLevel.SEVERE),
    ],
)
def test_map_score_to_plagiarism_level(similarity: float, level: PlagiarismLevel) -> None:
    assert map_score_to_plagiarism_level(similarity) == level


class TestCheckPlagiarism:
    async def test_records_scan(self, db_session, lesson, mock_ai_client) -> None:
        service = PlagiarismDetectionService(db_session, mock_ai_client)

        check = await service.check_plagiarism(lesson_request(lesson.id))

        assert check.status == PlagiarismStatus.COMPLETED.value
        assert check.overall_similarity == 12.0
        assert check.plagiarism_level == PlagiarismLevel.LOW.value
        assert check.sources_checked == 42
        assert check.analysis["unique_content_percentage"] == 88.0
        assert check.scan_metadata["scan_provider"] == "scanner"
        assert check.scan_configuration["sensitivity_level"] == "medium"
        assert len(check.content_hash) == 64

    async def test_reuses_until_content_changes(
        self, db_session, lesson, mock_ai_client
    ) -> None:
        service = PlagiarismDetectionService(db_session, mock_ai_client)

        first = await service.check_plagiarism(lesson_request(lesson.id))
        second = await service.check_plagiarism(lesson_request(lesson.id))
        assert second.cached is True
        assert second.id == first.id

        lesson.content = "Entirely rewritten lesson text about closures."
        await db_session.commit()
        third = await service.check_plagiarism(lesson_request(lesson.id))

        assert third.cached is False
        assert third.content_hash != first.content_hash
        assert mock_ai_client.check_plagiarism.await_count == 2

    async def test_force_rescan(self, db_session, lesson, mock_ai_client) -> None:
        service = PlagiarismDetectionService(db_session, mock_ai_client)

        await service.check_plagiarism(lesson_request(lesson.id))
        forced = await service.check_plagiarism(lesson_request(lesson.id, force_rescan=True))

        assert forced.cached is False
        assert mock_ai_client.check_plagiarism.await_count == 2

    async def test_failure_is_recorded(self, db_session, lesson, mock_ai_client) -> None:
        mock_ai_client.check_plagiarism.side_effect = AIServiceError("scanner offline")
        service = PlagiarismDetectionService(db_session, mock_ai_client)

        with pytest.raises(AIServiceError):
            await service.check_plagiarism(lesson_request(lesson.id))

        checks, total = await service.get_plagiarism_checks(
            PlagiarismQuery(content_id=lesson.id)
        )
        assert total == 1
        assert checks[0].status == PlagiarismStatus.FAILED.value

    async def test_unexpected_error_is_recorded(
        self, db_session, lesson, mock_ai_client
    ) -> None:
        mock_ai_client.check_plagiarism.side_effect = RuntimeError("connection reset")
        service = PlagiarismDetectionService(db_session, mock_ai_client)

        with pytest.raises(RuntimeError):
            await service.check_plagiarism(lesson_request(lesson.id))

        result = await db_session.execute(
            select(PlagiarismCheck).where(PlagiarismCheck.content_id == lesson.id)
        )
        check = result.scalar_one()
        assert check.status == PlagiarismStatus.FAILED.value
        assert check.error_message == "connection reset"

    async def test_unknown_check_id(self, db_session, mock_ai_client) -> None:
        service = PlagiarismDetectionService(db_session, mock_ai_client)

        with pytest.raises(AnalysisNotFoundError):
            await service.get_plagiarism_check_by_id("missing")


class TestStatistics:
    async def test_flags_moderate_and_above(
        self, db_session, make_lesson, mock_ai_client
    ) -> None:
        service = PlagiarismDetectionService(db_session, mock_ai_client)
        clean = await make_lesson()
        copied = await make_lesson(title="Copied Lesson")
        await service.check_plagiarism(lesson_request(clean.id))
        mock_ai_client.check_plagiarism.return_value = plagiarism_response(85.0)
        await service.check_plagiarism(lesson_request(copied.id))

        stats = await service.get_plagiarism_statistics()

        assert stats.total_checks == 2
        assert stats.average_similarity == 48.5
        assert stats.level_distribution["low"] == 1
        assert stats.level_distribution["severe"] == 1
        assert stats.flagged_count == 1
        assert stats.flagged_content[0]["content_id"] == copied.id
