"""SimilarityDetectionService: pairwise content similarity.

Scores a source item against candidate items of the same type with a single
AI call. Fresh calculated records are reused per pair; a recomputed pair
marks every earlier live record for that pair outdated. Similarity has no
local fallback: a failed AI call marks the new records failed and the error
propagates.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include entity IDs (source and target content ids) in all service logs
- Log state transitions (status changes) at INFO level
- Add timing logs for operations >1 second
"""

import time
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.logging import get_logger
from app.integrations.ai_service import AIServiceClient, AIServiceError
from app.models.content_similarity import (
    ContentSimilarity,
    SimilarityStatus,
    SimilarityType,
)
from app.repositories.content import ContentRepository
from app.repositories.content_similarity import ContentSimilarityRepository
from app.schemas.ai_service import AISimilarity, AISimilarityRequest
from app.schemas.content_analysis import (
    SimilarContentItem,
    SimilarityDetectionResult,
    SimilarityQuery,
    SimilarityRequest,
    SimilarityResponse,
)
from app.services.analysis_freshness import should_reuse
from app.services.analysis_lease import analysis_lease
from app.services.content_source import (
    ContentAnalysisValidationError,
    ContentSubject,
    load_subject,
    load_subjects,
    validate_content_type,
)

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

ENGINE_NAME = "similarity"

DEFAULT_MIN_SIMILARITY = 0.3
DEFAULT_LIMIT = 10


def _is_reusable(record: ContentSimilarity | None, force: bool) -> bool:
    if record is None:
        return False
    return should_reuse(
        completed=record.status == SimilarityStatus.CALCULATED.value,
        completed_at=record.calculated_at,
        force=force,
    )


def _match_scores(
    candidates: list[ContentSubject], similarities: list[AISimilarity]
) -> dict[str, AISimilarity]:
    """Pair AI results with candidates.

    Results that carry a contentId are matched by id; the rest are matched
    by position.
    """
    by_id = {s.content_id: s for s in similarities if s.content_id}
    matched: dict[str, AISimilarity] = {}
    for index, candidate in enumerate(candidates):
        if candidate.content_id in by_id:
            matched[candidate.content_id] = by_id[candidate.content_id]
        elif index < len(similarities) and not similarities[index].content_id:
            matched[candidate.content_id] = similarities[index]
    return matched


class SimilarityDetectionService:
    """Service for detecting similar courses and lessons."""

    def __init__(self, session: AsyncSession, ai_client: AIServiceClient) -> None:
        self._session = session
        self._ai_client = ai_client
        self._repository = ContentSimilarityRepository(session)
        logger.debug("SimilarityDetectionService initialized")

    async def analyze_similarity(self, request: SimilarityRequest) -> SimilarityResponse:
        """Score one ordered pair of items.

        Raises:
            ContentAnalysisValidationError: If source and target are the same item
            ContentNotFoundError: If either item does not exist
            AIServiceError: If the AI call fails
        """
        source_type = request.source_content_type.value
        target_type = request.target_content_type.value
        if (
            source_type == target_type
            and request.source_content_id == request.target_content_id
        ):
            raise ContentAnalysisValidationError(
                "target_content_id",
                request.target_content_id,
                "Cannot compare content with itself",
            )

        source = await load_subject(self._session, source_type, request.source_content_id)
        target = await load_subject(self._session, target_type, request.target_content_id)

        async with analysis_lease(ENGINE_NAME, source_type, source.content_id):
            existing = (
                await self._repository.latest_for_pairs(
                    source_type,
                    source.content_id,
                    target_type,
                    [target.content_id],
                    request.similarity_type.value,
                )
            ).get(target.content_id)

            if existing is not None and _is_reusable(existing, request.force_recalculate):
                logger.debug(
                    "Reusing similarity record",
                    extra={"similarity_id": existing.id},
                )
                response = SimilarityResponse.model_validate(existing)
                response.cached = True
                return response

            records = await self._compute(source, [target], request.similarity_type.value)

        return SimilarityResponse.model_validate(records[0])

    async def detect_similar_content(
        self,
        content_type: str,
        content_id: str,
        candidate_ids: list[str] | None = None,
        similarity_type: SimilarityType = SimilarityType.COMPREHENSIVE,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
        limit: int = DEFAULT_LIMIT,
        force: bool = False,
    ) -> SimilarityDetectionResult:
        """Compare an item with candidates of the same type.

        Candidates default to the most recent items of the same type (up to
        SIMILARITY_MAX_CANDIDATES). Pairs with a fresh calculated record are
        reused; all others are scored in one AI call.

        Returns:
            SimilarityDetectionResult with matches at or above min_similarity,
            best first, at most limit items
        """
        start_time = time.monotonic()
        settings = get_settings()
        source = await load_subject(self._session, content_type, content_id)

        if candidate_ids is None:
            candidate_ids = await ContentRepository(self._session).list_other_ids(
                content_type, content_id, settings.similarity_max_candidates
            )
        ids = [cid for cid in dict.fromkeys(candidate_ids) if cid != content_id]
        candidates = await load_subjects(self._session, content_type, ids)

        logger.debug(
            "Detecting similar content",
            extra={
                "content_type": content_type,
                "content_id": content_id,
                "candidate_count": len(candidates),
                "force": force,
            },
        )

        async with analysis_lease(ENGINE_NAME, content_type, content_id):
            existing = await self._repository.latest_for_pairs(
                content_type,
                content_id,
                content_type,
                [c.content_id for c in candidates],
                similarity_type.value,
            )
            reusable = {
                cid: record
                for cid, record in existing.items()
                if _is_reusable(record, force)
            }
            pending = [c for c in candidates if c.content_id not in reusable]

            computed: list[ContentSimilarity] = []
            if pending:
                computed = await self._compute(source, pending, similarity_type.value)

        records = list(reusable.values()) + computed
        similar = [
            SimilarContentItem(
                content_type=record.target_content_type,
                content_id=record.target_content_id,
                similarity_score=record.similarity_score,
                similarity_type=record.similarity_type,
                similarity_reasons=record.analysis.get("similarity_reasons", []),
                calculated_at=record.calculated_at,
            )
            for record in records
            if record.status == SimilarityStatus.CALCULATED.value
            and record.similarity_score is not None
            and record.similarity_score >= min_similarity
        ]
        similar.sort(key=lambda item: item.similarity_score, reverse=True)

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Similarity detection completed",
            extra={
                "content_type": content_type,
                "content_id": content_id,
                "compared_count": len(computed),
                "reused_count": len(reusable),
                "match_count": len(similar),
                "duration_ms": round(duration_ms, 2),
            },
        )
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow similarity detection",
                extra={"content_id": content_id, "duration_ms": round(duration_ms, 2)},
            )

        return SimilarityDetectionResult(
            content_type=content_type,
            content_id=content_id,
            similar=similar[:limit],
            compared_count=len(computed),
            reused_count=len(reusable),
        )

    async def _compute(
        self,
        source: ContentSubject,
        targets: list[ContentSubject],
        similarity_type: str,
    ) -> list[ContentSimilarity]:
        """Create processing records, call the AI service, record the outcome."""
        records = [
            ContentSimilarity(
                source_content_type=source.content_type,
                source_content_id=source.content_id,
                target_content_type=target.content_type,
                target_content_id=target.content_id,
                similarity_type=similarity_type,
                status=SimilarityStatus.PROCESSING.value,
            )
            for target in targets
        ]
        for record in records:
            self._session.add(record)
        await self._session.commit()

        try:
            response = await self._ai_client.analyze_content_similarity(
                AISimilarityRequest(
                    target_content=source.to_similarity_content(),
                    candidate_contents=[t.to_similarity_content() for t in targets],
                    similarity_type=similarity_type,
                )
            )
        except AIServiceError as e:
            for record in records:
                record.status = SimilarityStatus.FAILED.value
                record.error_message = str(e)
            await self._session.commit()
            logger.error(
                "Similarity calculation failed",
                extra={
                    "source_content_id": source.content_id,
                    "target_count": len(targets),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise

        scores = _match_scores(targets, response.similarities)
        now = datetime.now(UTC)
        for record in records:
            score = scores.get(record.target_content_id)
            if score is None:
                record.status = SimilarityStatus.FAILED.value
                record.error_message = "No similarity returned for this candidate"
                continue
            record.similarity_score = score.similarity_score
            record.status = SimilarityStatus.CALCULATED.value
            record.calculated_at = now
            record.analysis = {
                "similarity_reasons": score.similarity_reasons,
                "recommendation_strength": score.recommendation_strength,
                "algorithm_used": response.algorithm_used,
                "processing_time_ms": response.processing_info.processing_time_ms,
            }

        calculated = [
            record for record in records if record.status == SimilarityStatus.CALCULATED.value
        ]
        outdated = await self._repository.outdate_superseded(
            source.content_type,
            source.content_id,
            targets[0].content_type,
            [record.target_content_id for record in calculated],
            similarity_type,
            keep_ids=[record.id for record in calculated],
        )
        await self._session.commit()

        logger.info(
            "Similarity records calculated",
            extra={
                "source_content_id": source.content_id,
                "calculated_count": len(calculated),
                "outdated_count": outdated,
            },
        )
        return records

    async def get_similar_content(
        self,
        content_type: str,
        content_id: str,
        limit: int = DEFAULT_LIMIT,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[SimilarContentItem]:
        """Stored similarity edges of an item in either direction, best first."""
        validate_content_type(content_type)
        records = await self._repository.list_similar(
            content_type, content_id, min_similarity, limit
        )
        items: list[SimilarContentItem] = []
        for record in records:
            outgoing = (
                record.source_content_type == content_type
                and record.source_content_id == content_id
            )
            items.append(
                SimilarContentItem(
                    content_type=(
                        record.target_content_type if outgoing else record.source_content_type
                    ),
                    content_id=(
                        record.target_content_id if outgoing else record.source_content_id
                    ),
                    similarity_score=record.similarity_score or 0.0,
                    similarity_type=record.similarity_type,
                    similarity_reasons=record.analysis.get("similarity_reasons", []),
                    calculated_at=record.calculated_at,
                )
            )
        return items

    async def get_similarities(
        self, query: SimilarityQuery
    ) -> tuple[list[SimilarityResponse], int]:
        records, total = await self._repository.query(
            source_content_type=(
                query.source_content_type.value if query.source_content_type else None
            ),
            source_content_id=query.source_content_id,
            similarity_type=query.similarity_type.value if query.similarity_type else None,
            status=query.status,
            min_similarity=query.min_similarity,
            limit=query.limit,
            offset=query.offset,
        )
        return [SimilarityResponse.model_validate(r) for r in records], total

