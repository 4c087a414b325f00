"""Tests for SimilarityDetectionService.

- Self comparison is rejected
- Candidates are scored in one AI call and filtered by min_similarity
- Fresh pairs are reused; a recalculated pair keeps one live edge
- AI failures mark the pending records failed
"""

import pytest
from sqlalchemy import select

from app.integrations.ai_service import AIServiceError
from app.models.content_similarity import ContentSimilarity, SimilarityStatus
from app.models.course import ContentType
from app.schemas.ai_service import AISimilarity, AISimilarityResponse
from app.schemas.content_analysis import SimilarityQuery, SimilarityRequest
from app.services.content_source import (
    ContentAnalysisValidationError,
    ContentNotFoundError,
)
from app.services.similarity_detection import SimilarityDetectionService
from tests.conftest import similarity_response


async def records_for(db_session, source_id: str) -> list[ContentSimilarity]:
    result = await db_session.execute(
        select(ContentSimilarity).where(ContentSimilarity.source_content_id == source_id)
    )
    return list(result.scalars().all())


class TestAnalyzeSimilarity:
    async def test_rejects_self_comparison(self, db_session, course, mock_ai_client) -> None:
        service = SimilarityDetectionService(db_session, mock_ai_client)

        with pytest.raises(ContentAnalysisValidationError):
            await service.analyze_similarity(
                SimilarityRequest(
                    source_content_type=ContentType.COURSE,
                    source_content_id=course.id,
                    target_content_type=ContentType.COURSE,
                    target_content_id=course.id,
                )
            )
        mock_ai_client.analyze_content_similarity.assert_not_awaited()

    async def test_scores_pair_and_reuses(
        self, db_session, make_course, mock_ai_client
    ) -> None:
        source = await make_course()
        target = await make_course(title="Python for Data Analysis")
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {target.id: 0.72}
        )
        service = SimilarityDetectionService(db_session, mock_ai_client)
        request = SimilarityRequest(
            source_content_type=ContentType.COURSE,
            source_content_id=source.id,
            target_content_type=ContentType.COURSE,
            target_content_id=target.id,
        )

        first = await service.analyze_similarity(request)
        second = await service.analyze_similarity(request)

        assert first.similarity_score == 0.72
        assert first.status == SimilarityStatus.CALCULATED.value
        assert second.cached is True
        assert second.id == first.id
        assert mock_ai_client.analyze_content_similarity.await_count == 1

    async def test_missing_target(self, db_session, course, mock_ai_client) -> None:
        service = SimilarityDetectionService(db_session, mock_ai_client)

        with pytest.raises(ContentNotFoundError):
            await service.analyze_similarity(
                SimilarityRequest(
                    source_content_type=ContentType.COURSE,
                    source_content_id=course.id,
                    target_content_type=ContentType.COURSE,
                    target_content_id="00000000-0000-0000-0000-000000000000",
                )
            )


class TestDetectSimilarContent:
    async def test_filters_and_orders_matches(
        self, db_session, make_course, mock_ai_client
    ) -> None:
        source = await make_course()
        close = await make_course(title="Intro to Python")
        related = await make_course(title="Python Scripting")
        unrelated = await make_course(title="Watercolor Painting")
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {close.id: 0.91, related.id: 0.55, unrelated.id: 0.05}
        )
        service = SimilarityDetectionService(db_session, mock_ai_client)

        result = await service.detect_similar_content("course", source.id)

        assert [item.content_id for item in result.similar] == [close.id, related.id]
        assert result.compared_count == 3
        assert result.reused_count == 0
        assert mock_ai_client.analyze_content_similarity.await_count == 1
        call = mock_ai_client.analyze_content_similarity.await_args.args[0]
        assert len(call.candidate_contents) == 3

    async def test_positional_scores_without_ids(
        self, db_session, make_course, mock_ai_client
    ) -> None:
        source = await make_course()
        target = await make_course(title="Intro to Python")
        mock_ai_client.analyze_content_similarity.return_value = AISimilarityResponse(
            similarities=[AISimilarity(similarity_score=0.8)]
        )
        service = SimilarityDetectionService(db_session, mock_ai_client)

        result = await service.detect_similar_content(
            "course", source.id, candidate_ids=[target.id, source.id]
        )

        assert [item.content_id for item in result.similar] == [target.id]

    async def test_reuse_and_force(self, db_session, make_course, mock_ai_client) -> None:
        source = await make_course()
        target = await make_course(title="Intro to Python")
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {target.id: 0.6}
        )
        service = SimilarityDetectionService(db_session, mock_ai_client)

        await service.detect_similar_content("course", source.id)
        reused = await service.detect_similar_content("course", source.id)
        assert reused.reused_count == 1
        assert reused.compared_count == 0

        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {target.id: 0.9}
        )
        forced = await service.detect_similar_content("course", source.id, force=True)

        assert forced.similar[0].similarity_score == 0.9
        statuses = sorted(r.status for r in await records_for(db_session, source.id))
        assert statuses == [
            SimilarityStatus.CALCULATED.value,
            SimilarityStatus.OUTDATED.value,
        ]

    async def test_failure_marks_records_failed(
        self, db_session, make_course, mock_ai_client
    ) -> None:
        source = await make_course()
        await make_course(title="Intro to Python")
        mock_ai_client.analyze_content_similarity.side_effect = AIServiceError("down")
        service = SimilarityDetectionService(db_session, mock_ai_client)

        with pytest.raises(AIServiceError):
            await service.detect_similar_content("course", source.id)

        records = await records_for(db_session, source.id)
        assert [r.status for r in records] == [SimilarityStatus.FAILED.value]
        assert records[0].error_message == "down"

    async def test_recalculation_after_failed_force_keeps_one_edge(
        self, db_session, make_course, mock_ai_client
    ) -> None:
        source = await make_course()
        target = await make_course(title="Intro to Python")
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {target.id: 0.7}
        )
        service = SimilarityDetectionService(db_session, mock_ai_client)
        await service.detect_similar_content("course", source.id)

        mock_ai_client.analyze_content_similarity.side_effect = AIServiceError("down")
        with pytest.raises(AIServiceError):
            await service.detect_similar_content("course", source.id, force=True)

        mock_ai_client.analyze_content_similarity.side_effect = None
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {target.id: 0.9}
        )
        recalculated = await service.detect_similar_content("course", source.id)

        assert recalculated.compared_count == 1
        edges = await service.get_similar_content("course", source.id)
        assert [(e.content_id, e.similarity_score) for e in edges] == [(target.id, 0.9)]
        statuses = sorted(r.status for r in await records_for(db_session, source.id))
        assert statuses == [
            SimilarityStatus.CALCULATED.value,
            SimilarityStatus.OUTDATED.value,
            SimilarityStatus.OUTDATED.value,
        ]


class TestStoredSimilarities:
    async def test_get_similar_content_both_directions(
        self, db_session, make_course, mock_ai_client
    ) -> None:
        source = await make_course()
        target = await make_course(title="Intro to Python")
        mock_ai_client.analyze_content_similarity.return_value = similarity_response(
            {target.id: 0.7}
        )
        service = SimilarityDetectionService(db_session, mock_ai_client)
        await service.detect_similar_content("course", source.id)

        from_source = await service.get_similar_content("course", source.id)
        from_target = await service.get_similar_content("course", target.id)

        assert [item.content_id for item in from_source] == [target.id]
        assert [item.content_id for item in from_target] == [source.id]
        assert from_target[0].similarity_reasons == ["shared topic"]

        records, total = await service.get_similarities(
            SimilarityQuery(source_content_id=source.id)
        )
        assert total == 1
        assert records[0].target_content_id == target.id
