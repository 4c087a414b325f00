"""PlagiarismDetectionService: content originality scans.

Scans the body text of courses and lessons through the AI service. A
completed scan is reused only while the text is unchanged (same SHA-256
content hash) and the scan is inside the freshness window. Plagiarism has
no local fallback: a failed scan is marked failed and the error propagates.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include entity IDs (content_type, content_id, check_id) in all logs
- Log state transitions (status changes) at INFO level
- Add timing logs for operations >1 second
"""

import time
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.integrations.ai_service import AIServiceClient, AIServiceError
from app.models.plagiarism_check import (
    FLAGGED_PLAGIARISM_LEVELS,
    PlagiarismCheck,
    PlagiarismLevel,
    PlagiarismStatus,
)
from app.repositories.plagiarism_check import PlagiarismCheckRepository
from app.schemas.ai_service import (
    AIPlagiarismRequest,
    AIPlagiarismResponse,
    AIScanOptions,
)
from app.schemas.content_analysis import (
    PlagiarismCheckRequest,
    PlagiarismCheckResponse,
    PlagiarismQuery,
    PlagiarismStatisticsResponse,
)
from app.services.analysis_freshness import content_hash, should_reuse
from app.services.analysis_lease import analysis_lease
from app.services.content_source import (
    AnalysisNotFoundError,
    ContentSubject,
    load_subject,
)
from app.services.quality_assessment import count_words

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

ENGINE_NAME = "plagiarism"

FLAGGED_CONTENT_LIMIT = 20
DEFAULT_SCAN_PROVIDER = "internal"
DEFAULT_SCAN_VERSION = "1.0"
DEFAULT_CONFIDENCE = 0.8


def map_score_to_plagiarism_level(similarity: float) -> PlagiarismLevel:
    if similarity >= 80:
        return PlagiarismLevel.SEVERE
    if similarity >= 60:
        return PlagiarismLevel.HIGH
    if similarity >= 30:
        return PlagiarismLevel.MODERATE
    if similarity >= 10:
        return PlagiarismLevel.LOW
    return PlagiarismLevel.NONE


def to_response(check: PlagiarismCheck, cached: bool = False) -> PlagiarismCheckResponse:
    response = PlagiarismCheckResponse.model_validate(check)
    response.cached = cached
    return response


class PlagiarismDetectionService:
    """Service for plagiarism scans."""

    def __init__(self, session: AsyncSession, ai_client: AIServiceClient) -> None:
        self._session = session
        self._ai_client = ai_client
        self._repository = PlagiarismCheckRepository(session)
        logger.debug("PlagiarismDetectionService initialized")

    async def check_plagiarism(
        self, request: PlagiarismCheckRequest, user_id: str | None = None
    ) -> PlagiarismCheckResponse:
        """Scan one course or lesson.

        Raises:
            ContentNotFoundError: If the content does not exist
            AIServiceError: If the scan fails (the check is marked failed)
        """
        start_time = time.monotonic()
        content_type = request.content_type.value
        content_id = request.content_id

        subject = await load_subject(self._session, content_type, content_id)
        text = subject.body_text
        text_hash = content_hash(text)
        logger.debug(
            "Checking plagiarism",
            extra={
                "content_type": content_type,
                "content_id": content_id,
                "content_hash": text_hash,
                "force_rescan": request.force_rescan,
            },
        )

        async with analysis_lease(ENGINE_NAME, content_type, content_id):
            existing = await self._repository.latest_completed_for_hash(
                content_type, content_id, text_hash
            )
            if existing is not None and should_reuse(
                completed=existing.status == PlagiarismStatus.COMPLETED.value,
                completed_at=existing.scan_completed_at,
                force=request.force_rescan,
                stored_hash=existing.content_hash,
                current_hash=text_hash,
            ):
                logger.info(
                    "Reusing plagiarism check",
                    extra={"check_id": existing.id, "content_id": content_id},
                )
                return to_response(existing, cached=True)

            scan_options = AIScanOptions(
                check_web_sources=request.check_web_sources,
                check_academic_sources=request.check_academic_sources,
                check_internal_sources=request.check_internal_sources,
                check_student_work=request.check_student_work,
                sensitivity_level=request.sensitivity_level.value,
                excluded_sources=request.excluded_sources,
            )
            check = PlagiarismCheck(
                content_type=content_type,
                content_id=content_id,
                content_hash=text_hash,
                status=PlagiarismStatus.SCANNING.value,
                scan_started_at=datetime.now(UTC),
                requested_by=user_id,
                scan_configuration=scan_options.model_dump(mode="json"),
            )
            await self._repository.add(check)
            await self._session.commit()

            check_id = check.id
            try:
                await self._scan(check, subject, text, scan_options)
            except AIServiceError:
                # already recorded as failed by _scan
                raise
            except Exception as e:
                await self._record_failure(check_id, content_id, e)
                raise

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Plagiarism check completed",
            extra={
                "check_id": check.id,
                "content_type": content_type,
                "content_id": content_id,
                "overall_similarity": check.overall_similarity,
                "plagiarism_level": check.plagiarism_level,
                "duration_ms": round(duration_ms, 2),
            },
        )
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow plagiarism check",
                extra={"content_id": content_id, "duration_ms": round(duration_ms, 2)},
            )
        return to_response(check)

    async def _scan(
        self,
        check: PlagiarismCheck,
        subject: ContentSubject,
        text: str,
        scan_options: AIScanOptions,
    ) -> None:
        try:
            response = await self._ai_client.check_plagiarism(
                AIPlagiarismRequest(content=subject.to_payload(text), scan_options=scan_options)
            )
        except AIServiceError as e:
            check.status = PlagiarismStatus.FAILED.value
            check.error_message = str(e)
            await self._session.commit()
            logger.error(
                "Plagiarism check failed",
                extra={
                    "check_id": check.id,
                    "content_id": check.content_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise

        self._apply_ai_result(check, response, text)
        await self._session.commit()

    async def _record_failure(
        self, check_id: str, content_id: str, error: Exception
    ) -> None:
        """Leave the check FAILED instead of stuck in SCANNING."""
        logger.error(
            "Plagiarism check aborted",
            extra={
                "check_id": check_id,
                "content_id": content_id,
                "error": str(error),
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
        await self._session.rollback()
        await self._repository.mark_failed(check_id, str(error))
        await self._session.commit()

    def _apply_ai_result(
        self, check: PlagiarismCheck, response: AIPlagiarismResponse, text: str
    ) -> None:
        analysis = response.analysis
        check.status = PlagiarismStatus.COMPLETED.value
        check.scan_completed_at = datetime.now(UTC)
        check.overall_similarity = response.overall_similarity
        check.plagiarism_level = map_score_to_plagiarism_level(
            response.overall_similarity
        ).value
        check.sources_checked = response.sources_checked
        check.matches = [
            match.model_dump(mode="json", exclude_none=True) for match in response.matches
        ]
        check.analysis = {
            "unique_content_percentage": analysis.get("unique_content_percentage", 0),
            "paraphrased_content_percentage": analysis.get(
                "paraphrased_content_percentage", 0
            ),
            "direct_copy_percentage": analysis.get("direct_copy_percentage", 0),
            "citation_analysis": analysis.get("citation_analysis"),
            "recommendations": analysis.get("recommendations", []),
        }
        check.scan_metadata = {
            "text_length": len(text),
            "words_analyzed": count_words(text),
            "matches_found": len(response.matches),
            "processing_time": response.processing_time,
            "scan_provider": response.scan_provider or DEFAULT_SCAN_PROVIDER,
            "scan_version": response.scan_version or DEFAULT_SCAN_VERSION,
            "confidence": response.confidence or DEFAULT_CONFIDENCE,
        }

    async def get_plagiarism_checks(
        self, query: PlagiarismQuery
    ) -> tuple[list[PlagiarismCheckResponse], int]:
        checks, total = await self._repository.query(
            content_type=query.content_type.value if query.content_type else None,
            content_id=query.content_id,
            status=query.status,
            plagiarism_level=query.plagiarism_level,
            min_similarity=query.min_similarity,
            limit=query.limit,
            offset=query.offset,
        )
        return [to_response(c) for c in checks], total

    async def get_plagiarism_check_by_id(self, check_id: str) -> PlagiarismCheckResponse:
        check = await self._repository.get_by_id(check_id)
        if check is None:
            raise AnalysisNotFoundError("PlagiarismCheck", check_id)
        return to_response(check)

    async def get_plagiarism_statistics(self) -> PlagiarismStatisticsResponse:
        checks = await self._repository.completed()
        similarities = [c.overall_similarity or 0.0 for c in checks]

        distribution: dict[str, int] = {level.value: 0 for level in PlagiarismLevel}
        for check in checks:
            if check.plagiarism_level:
                distribution[check.plagiarism_level] += 1

        flagged = [c for c in checks if c.plagiarism_level in FLAGGED_PLAGIARISM_LEVELS]
        flagged_content: list[dict[str, Any]] = [
            {
                "content_type": c.content_type,
                "content_id": c.content_id,
                "similarity": c.overall_similarity or 0.0,
                "plagiarism_level": c.plagiarism_level,
            }
            for c in flagged[:FLAGGED_CONTENT_LIMIT]
        ]
        return PlagiarismStatisticsResponse(
            total_checks=len(checks),
            average_similarity=(
                round(sum(similarities) / len(similarities), 2) if similarities else None
            ),
            level_distribution=distribution,
            flagged_count=len(flagged),
            flagged_content=flagged_content,
        )
