"""QualityAssessmentService: content quality scoring.

Scores courses and lessons on eight dimensions through the AI service and
keeps exactly one latest assessment per item. When the AI call fails the
assessment is scored with a length heuristic instead.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include entity IDs (content_type, content_id, assessment_id) in all logs
- Log state transitions (status changes) at INFO level
- Log fallback usage at WARNING level
- Add timing logs for operations >1 second
"""

import re
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import ai_service_logger, get_logger
from app.integrations.ai_service import AIServiceClient, AIServiceError
from app.models.content_quality_assessment import (
    QUALITY_DIMENSIONS,
    AssessmentStatus,
    ContentQualityAssessment,
    QualityLevel,
)
from app.repositories.quality_assessment import QualityAssessmentRepository
from app.schemas.ai_service import (
    AIAssessmentCriteria,
    AIQualityRequest,
    AIQualityResponse,
)
from app.schemas.content_analysis import (
    QualityAssessmentRequest,
    QualityAssessmentResponse,
    QualityQuery,
    QualityStatisticsResponse,
    QualityTrendPoint,
    QualityTrendsResponse,
)
from app.services.analysis_freshness import should_reuse
from app.services.analysis_lease import analysis_lease
from app.services.content_source import (
    ContentSubject,
    load_subject,
    validate_content_type,
)

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

ENGINE_NAME = "quality"

FALLBACK_MODEL_VERSION = "fallback-v1.0"
FALLBACK_CONFIDENCE = 0.5
FALLBACK_DIMENSION_WEIGHTS = {"completeness": 0.8, "engagement": 0.9}

TOP_CONTENT_LIMIT = 10


def map_score_to_quality_level(score: float) -> QualityLevel:
    if score >= 90:
        return QualityLevel.EXCELLENT
    if score >= 80:
        return QualityLevel.GOOD
    if score >= 70:
        return QualityLevel.SATISFACTORY
    if score >= 60:
        return QualityLevel.NEEDS_IMPROVEMENT
    return QualityLevel.POOR


def count_words(text: str) -> int:
    return len([word for word in re.split(r"\s+", text) if word])


def count_sentences(text: str) -> int:
    return len([s for s in re.split(r"[.!?]+", text) if s.strip()])


def count_paragraphs(text: str) -> int:
    return len([p for p in re.split(r"\n\s*\n", text) if p.strip()])


def text_statistics(text: str) -> dict[str, float]:
    words = count_words(text)
    sentences = count_sentences(text)
    return {
        "word_count": words,
        "sentence_count": sentences,
        "paragraph_count": count_paragraphs(text),
        "average_sentence_length": words / sentences if sentences else 0,
    }


def fallback_score(subject: ContentSubject, word_count: int) -> float:
    """Length heuristic used when the AI service is unavailable."""
    score = 50.0
    if len(subject.title) > 10:
        score += 10
    if len(subject.description) > 50:
        score += 10
    if word_count > 100:
        score += 10
    if word_count > 500:
        score += 10
    return min(score, 100.0)


def to_response(
    assessment: ContentQualityAssessment, cached: bool = False
) -> QualityAssessmentResponse:
    return QualityAssessmentResponse(
        id=assessment.id,
        content_type=assessment.content_type,
        content_id=assessment.content_id,
        status=assessment.status,
        overall_score=assessment.overall_score,
        quality_level=assessment.quality_level,
        dimension_scores=assessment.scores_by_dimension(),
        analysis=assessment.analysis,
        improvements=assessment.improvements,
        metadata=assessment.assessment_metadata,
        is_latest=assessment.is_latest,
        assessed_at=assessment.assessed_at,
        cached=cached,
        fallback_used=(
            assessment.assessment_metadata.get("model_version") == FALLBACK_MODEL_VERSION
        ),
    )


class QualityAssessmentService:
    """Service for assessing content quality."""

    def __init__(self, session: AsyncSession, ai_client: AIServiceClient) -> None:
        self._session = session
        self._ai_client = ai_client
        self._repository = QualityAssessmentRepository(session)
        logger.debug("QualityAssessmentService initialized")

    async def assess_content_quality(
        self,
        request: QualityAssessmentRequest,
        user_id: str | None = None,
        allow_fallback: bool = True,
    ) -> QualityAssessmentResponse:
        """Assess one course or lesson.

        Args:
            request: Assessment options
            user_id: User requesting the assessment
            allow_fallback: Score with the length heuristic when the AI call
                fails. When False the record is marked failed and the
                AIServiceError propagates.

        Raises:
            ContentNotFoundError: If the content does not exist
            AIServiceError: If the AI call fails and allow_fallback is False
        """
        start_time = time.monotonic()
        content_type = request.content_type.value
        content_id = request.content_id
        logger.debug(
            "Assessing content quality",
            extra={
                "content_type": content_type,
                "content_id": content_id,
                "force_reassessment": request.force_reassessment,
            },
        )

        subject = await load_subject(self._session, content_type, content_id)

        async with analysis_lease(ENGINE_NAME, content_type, content_id):
            latest = await self._repository.get_latest(content_type, content_id)
            if latest is not None and should_reuse(
                completed=latest.status == AssessmentStatus.COMPLETED.value,
                completed_at=latest.assessed_at,
                force=request.force_reassessment,
            ):
                logger.info(
                    "Reusing recent quality assessment",
                    extra={"assessment_id": latest.id, "content_id": content_id},
                )
                return to_response(latest, cached=True)

            assessment = ContentQualityAssessment(
                content_type=content_type,
                content_id=content_id,
                status=AssessmentStatus.PROCESSING.value,
                requested_by=user_id,
            )
            await self._repository.add(assessment)
            await self._session.commit()
            assessment_id = assessment.id

            try:
                await self._score(assessment, subject, request, allow_fallback)
            except AIServiceError:
                # already recorded as failed by _score
                raise
            except Exception as e:
                await self._record_failure(assessment_id, content_id, e)
                raise

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Content quality assessed",
            extra={
                "assessment_id": assessment.id,
                "content_type": content_type,
                "content_id": content_id,
                "overall_score": assessment.overall_score,
                "quality_level": assessment.quality_level,
                "duration_ms": round(duration_ms, 2),
            },
        )
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow quality assessment",
                extra={"content_id": content_id, "duration_ms": round(duration_ms, 2)},
            )
        return to_response(assessment)

    async def _score(
        self,
        assessment: ContentQualityAssessment,
        subject: ContentSubject,
        request: QualityAssessmentRequest,
        allow_fallback: bool,
    ) -> None:
        """Score a PROCESSING assessment and promote it to latest."""
        content_id = assessment.content_id
        text = subject.full_text
        try:
            response = await self._ai_client.assess_content_quality(
                AIQualityRequest(
                    content=subject.to_payload(text),
                    assessment_criteria=AIAssessmentCriteria(
                        dimensions=list(QUALITY_DIMENSIONS),
                        include_readability=request.include_readability,
                        include_accessibility=request.include_accessibility,
                        include_engagement=request.include_engagement,
                        detailed_analysis=request.include_detailed_analysis,
                        generate_improvements=request.generate_suggestions,
                    ),
                )
            )
            self._apply_ai_result(assessment, response, request, text)
        except AIServiceError as e:
            if not allow_fallback:
                assessment.status = AssessmentStatus.FAILED.value
                assessment.error_message = str(e)
                await self._session.commit()
                logger.error(
                    "Quality assessment failed",
                    extra={
                        "assessment_id": assessment.id,
                        "content_id": content_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                raise
            logger.warning(
                "Quality assessment failed, using length heuristic",
                extra={
                    "assessment_id": assessment.id,
                    "content_id": content_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            ai_service_logger.graceful_fallback("assess_content_quality", str(e))
            self._apply_fallback(assessment, subject, text)

        assessment.status = AssessmentStatus.COMPLETED.value
        assessment.assessed_at = datetime.now(UTC)
        await self._repository.promote_to_latest(assessment)
        await self._session.commit()

    async def _record_failure(
        self, assessment_id: str, content_id: str, error: Exception
    ) -> None:
        """Leave the assessment FAILED instead of stuck in PROCESSING."""
        logger.error(
            "Quality assessment aborted",
            extra={
                "assessment_id": assessment_id,
                "content_id": content_id,
                "error": str(error),
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
        await self._session.rollback()
        await self._repository.mark_failed(assessment_id, str(error))
        await self._session.commit()

    def _apply_ai_result(
        self,
        assessment: ContentQualityAssessment,
        response: AIQualityResponse,
        request: QualityAssessmentRequest,
        text: str,
    ) -> None:
        assessment.overall_score = response.overall_score
        assessment.quality_level = map_score_to_quality_level(response.overall_score).value
        scores = response.dimension_scores.model_dump()
        for dimension in QUALITY_DIMENSIONS:
            setattr(assessment, f"{dimension}_score", scores[dimension])

        if request.include_detailed_analysis:
            analysis = response.analysis
            assessment.analysis = {
                "strengths": analysis.get("strengths", []),
                "weaknesses": analysis.get("weaknesses", []),
                "suggestions": analysis.get("suggestions", []),
                "readability_score": analysis.get("readability_score"),
                "complexity_level": analysis.get("complexity_level"),
                "target_audience_match": analysis.get("target_audience_match"),
                "vocabulary_level": analysis.get("vocabulary_level"),
                "grammar_score": analysis.get("grammar_score"),
                "content_length": len(text),
            }
        if request.generate_suggestions:
            assessment.improvements = list(response.improvements)

        assessment.assessment_metadata = {
            "model_version": response.model_version,
            "processing_time": response.processing_time,
            "confidence": response.confidence,
            "text_statistics": text_statistics(text),
        }

    def _apply_fallback(
        self,
        assessment: ContentQualityAssessment,
        subject: ContentSubject,
        text: str,
    ) -> None:
        stats = text_statistics(text)
        score = fallback_score(subject, int(stats["word_count"]))
        assessment.overall_score = score
        assessment.quality_level = map_score_to_quality_level(score).value
        for dimension in QUALITY_DIMENSIONS:
            weight = FALLBACK_DIMENSION_WEIGHTS.get(dimension, 1.0)
            setattr(assessment, f"{dimension}_score", score * weight)
        assessment.assessment_metadata = {
            "model_version": FALLBACK_MODEL_VERSION,
            "confidence": FALLBACK_CONFIDENCE,
            "text_statistics": stats,
        }

    async def get_quality_assessments(
        self, query: QualityQuery
    ) -> tuple[list[QualityAssessmentResponse], int]:
        assessments, total = await self._repository.query(
            content_type=query.content_type.value if query.content_type else None,
            content_id=query.content_id,
            quality_level=query.quality_level,
            min_score=query.min_score,
            max_score=query.max_score,
            latest_only=query.latest_only,
            limit=query.limit,
            offset=query.offset,
        )
        return [to_response(a) for a in assessments], total

    async def get_content_quality_trends(
        self, content_type: str, content_id: str, days: int = 30
    ) -> QualityTrendsResponse:
        """Completed assessments of one item over the last days, oldest first."""
        validate_content_type(content_type)
        since = datetime.now(UTC) - timedelta(days=days)
        assessments = await self._repository.list_completed_since(
            content_type, content_id, since
        )
        points = [
            QualityTrendPoint(
                assessed_at=a.assessed_at,
                overall_score=a.overall_score,
                quality_level=a.quality_level,
                dimension_scores=a.scores_by_dimension(),
            )
            for a in assessments
            if a.assessed_at is not None and a.overall_score is not None
        ]
        score_change = (
            round(points[-1].overall_score - points[0].overall_score, 2)
            if len(points) >= 2
            else None
        )
        return QualityTrendsResponse(
            content_type=content_type,
            content_id=content_id,
            days=days,
            points=points,
            score_change=score_change,
        )

    async def get_quality_statistics(
        self, content_type: str | None = None
    ) -> QualityStatisticsResponse:
        if content_type:
            validate_content_type(content_type)
        assessments = await self._repository.latest_completed(content_type)
        scores = [a.overall_score for a in assessments if a.overall_score is not None]

        distribution: dict[str, int] = {level.value: 0 for level in QualityLevel}
        for assessment in assessments:
            if assessment.quality_level:
                distribution[assessment.quality_level] += 1

        top_content: list[dict[str, Any]] = [
            {
                "content_type": a.content_type,
                "content_id": a.content_id,
                "score": a.overall_score,
            }
            for a in assessments[:TOP_CONTENT_LIMIT]
        ]
        return QualityStatisticsResponse(
            total_assessed=len(assessments),
            average_score=round(sum(scores) / len(scores), 2) if scores else None,
            level_distribution=distribution,
            top_content=top_content,
        )
