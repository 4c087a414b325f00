"""AnalysisCoordinator: comprehensive and bulk content analysis.

Comprehensive mode runs every requested engine over one item in a fixed
order (tags, quality, plagiarism, quiz, similarity). Bulk mode runs the
requested engines over many items of one type, one item at a time.

A failing stage never stops the run: its error is recorded next to the
results of the stages that succeeded. Each engine commits its own work, so a
failed stage only rolls back what that stage left pending.

ERROR LOGGING REQUIREMENTS:
- Log run start/finish at INFO level with content ids and counts
- Log every stage failure with the stage name and error type
- Include entity IDs (content_type, content_id) in all logs
- Add timing logs for operations >1 second
"""

import time
from collections.abc import Awaitable, Callable

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.logging import get_logger
from app.integrations.ai_service import AIServiceClient
from app.models.course import ContentType
from app.schemas.content_analysis import (
    AnalysisStage,
    BulkAnalysisRequest,
    BulkAnalysisResult,
    BulkAnalysisType,
    BulkItemResult,
    BulkSummary,
    ComprehensiveAnalysisRequest,
    ComprehensiveAnalysisResult,
    ComprehensiveResults,
    PlagiarismCheckRequest,
    QualityAssessmentRequest,
    QuizGenerationRequest,
    SensitivityLevel,
    SimilarityDetectionResult,
    StageError,
    TagGenerationRequest,
    TagGenerationResult,
)
from app.services.content_source import (
    ContentAnalysisValidationError,
    load_subject,
)
from app.services.content_tagging import ContentTaggingService
from app.services.plagiarism_detection import PlagiarismDetectionService
from app.services.quality_assessment import QualityAssessmentService
from app.services.quiz_generation import QuizGenerationService
from app.services.similarity_detection import SimilarityDetectionService

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

ProgressCallback = Callable[[float], None]

# Progress reported as each comprehensive stage starts
STAGE_PROGRESS: dict[AnalysisStage, int] = {
    AnalysisStage.TAG_GENERATION: 10,
    AnalysisStage.QUALITY_ASSESSMENT: 30,
    AnalysisStage.PLAGIARISM_CHECK: 50,
    AnalysisStage.QUIZ_GENERATION: 70,
    AnalysisStage.SIMILARITY_DETECTION: 90,
}

COMPREHENSIVE_MAX_TAGS = 15
COMPREHENSIVE_MIN_TAG_CONFIDENCE = 0.6
BULK_MAX_TAGS = 10
BULK_MIN_TAG_CONFIDENCE = 0.7
SIMILARITY_LIMIT = 10
SIMILARITY_MIN_SCORE = 0.3
QUIZ_TITLE = "Auto-generated Quiz"
QUIZ_QUESTION_COUNT = 5


def artifact_count(result: BaseModel) -> int:
    """Records an engine result stands for: one per tag or similarity edge, else one."""
    if isinstance(result, TagGenerationResult):
        return len(result.tags)
    if isinstance(result, SimilarityDetectionResult):
        return len(result.similar)
    return 1


class AnalysisCoordinator:
    """Runs several analysis engines and aggregates their outcomes."""

    def __init__(self, session: AsyncSession, ai_client: AIServiceClient) -> None:
        self._session = session
        self.tagging = ContentTaggingService(session, ai_client)
        self.similarity = SimilarityDetectionService(session, ai_client)
        self.quality = QualityAssessmentService(session, ai_client)
        self.quiz = QuizGenerationService(session, ai_client)
        self.plagiarism = PlagiarismDetectionService(session, ai_client)

    async def _run_stage(
        self,
        stage: str,
        errors: list[StageError],
        content_id: str,
        run: Callable[[], Awaitable[BaseModel]],
    ) -> BaseModel | None:
        try:
            return await run()
        except Exception as e:
            await self._session.rollback()
            logger.error(
                "Analysis stage failed",
                extra={
                    "stage": stage,
                    "content_id": content_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            errors.append(
                StageError(type=stage, error=str(e), error_type=type(e).__name__)
            )
            return None

    async def comprehensive_analysis(
        self,
        request: ComprehensiveAnalysisRequest,
        user_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ComprehensiveAnalysisResult:
        """Run every requested engine over one item.

        Quiz generation only runs for lessons; for courses it is skipped
        without an error.

        Raises:
            ContentNotFoundError: If the content does not exist
        """
        start_time = time.monotonic()
        content_type = request.content_type
        content_id = request.content_id
        await load_subject(self._session, content_type.value, content_id)

        logger.info(
            "Starting comprehensive analysis",
            extra={"content_type": content_type.value, "content_id": content_id},
        )

        def progress(value: float) -> None:
            if on_progress is not None:
                on_progress(value)

        results = ComprehensiveResults()
        errors: list[StageError] = []

        if request.include_tags:
            progress(STAGE_PROGRESS[AnalysisStage.TAG_GENERATION])
            results.tags = await self._run_stage(
                AnalysisStage.TAG_GENERATION.value,
                errors,
                content_id,
                lambda: self.tagging.generate_tags(
                    TagGenerationRequest(
                        content_type=content_type,
                        content_id=content_id,
                        max_tags=COMPREHENSIVE_MAX_TAGS,
                        min_confidence=COMPREHENSIVE_MIN_TAG_CONFIDENCE,
                        force_regenerate=request.force,
                    ),
                    user_id,
                ),
            )

        if request.include_quality:
            progress(STAGE_PROGRESS[AnalysisStage.QUALITY_ASSESSMENT])
            results.quality = await self._run_stage(
                AnalysisStage.QUALITY_ASSESSMENT.value,
                errors,
                content_id,
                lambda: self.quality.assess_content_quality(
                    QualityAssessmentRequest(
                        content_type=content_type,
                        content_id=content_id,
                        include_detailed_analysis=True,
                        generate_suggestions=True,
                        force_reassessment=request.force,
                    ),
                    user_id,
                ),
            )

        if request.include_plagiarism:
            progress(STAGE_PROGRESS[AnalysisStage.PLAGIARISM_CHECK])
            results.plagiarism = await self._run_stage(
                AnalysisStage.PLAGIARISM_CHECK.value,
                errors,
                content_id,
                lambda: self.plagiarism.check_plagiarism(
                    PlagiarismCheckRequest(
                        content_type=content_type,
                        content_id=content_id,
                        check_web_sources=True,
                        check_academic_sources=True,
                        check_internal_sources=True,
                        sensitivity_level=SensitivityLevel.MEDIUM,
                        force_rescan=request.force,
                    ),
                    user_id,
                ),
            )

        if request.include_quiz_generation and content_type == ContentType.LESSON:
            progress(STAGE_PROGRESS[AnalysisStage.QUIZ_GENERATION])
            results.quiz = await self._run_stage(
                AnalysisStage.QUIZ_GENERATION.value,
                errors,
                content_id,
                lambda: self.quiz.generate_quiz(
                    QuizGenerationRequest(
                        lesson_id=content_id,
                        title=QUIZ_TITLE,
                        question_count=QUIZ_QUESTION_COUNT,
                        include_explanations=True,
                        force_regenerate=request.force,
                    ),
                    user_id,
                ),
            )

        if request.include_similarity:
            progress(STAGE_PROGRESS[AnalysisStage.SIMILARITY_DETECTION])
            detection = await self._run_stage(
                AnalysisStage.SIMILARITY_DETECTION.value,
                errors,
                content_id,
                lambda: self.similarity.detect_similar_content(
                    content_type.value,
                    content_id,
                    min_similarity=SIMILARITY_MIN_SCORE,
                    limit=SIMILARITY_LIMIT,
                    force=request.force,
                ),
            )
            if detection is not None:
                results.similar_content = detection.similar

        progress(100)
        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Completed comprehensive analysis",
            extra={
                "content_type": content_type.value,
                "content_id": content_id,
                "error_count": len(errors),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return ComprehensiveAnalysisResult(
            content_type=content_type.value,
            content_id=content_id,
            results=results,
            errors=errors,
        )

    def _bulk_stage(
        self,
        analysis_type: BulkAnalysisType,
        content_type: ContentType,
        content_id: str,
        force: bool,
        user_id: str | None,
    ) -> Callable[[], Awaitable[BaseModel]]:
        if analysis_type == BulkAnalysisType.TAGS:
            return lambda: self.tagging.generate_tags(
                TagGenerationRequest(
                    content_type=content_type,
                    content_id=content_id,
                    max_tags=BULK_MAX_TAGS,
                    min_confidence=BULK_MIN_TAG_CONFIDENCE,
                    force_regenerate=force,
                ),
                user_id,
            )
        if analysis_type == BulkAnalysisType.QUALITY:
            return lambda: self.quality.assess_content_quality(
                QualityAssessmentRequest(
                    content_type=content_type,
                    content_id=content_id,
                    include_detailed_analysis=False,
                    generate_suggestions=False,
                    force_reassessment=force,
                ),
                user_id,
            )
        if analysis_type == BulkAnalysisType.PLAGIARISM:
            return lambda: self.plagiarism.check_plagiarism(
                PlagiarismCheckRequest(
                    content_type=content_type,
                    content_id=content_id,
                    check_web_sources=True,
                    check_academic_sources=False,
                    check_internal_sources=True,
                    sensitivity_level=SensitivityLevel.MEDIUM,
                    force_rescan=force,
                ),
                user_id,
            )
        if analysis_type == BulkAnalysisType.QUIZ:
            if content_type != ContentType.LESSON:

                async def reject() -> BaseModel:
                    raise ContentAnalysisValidationError(
                        "content_type",
                        content_type.value,
                        "Quizzes can only be generated for lessons",
                    )

                return reject
            return lambda: self.quiz.generate_quiz(
                QuizGenerationRequest(
                    lesson_id=content_id,
                    title=QUIZ_TITLE,
                    question_count=QUIZ_QUESTION_COUNT,
                    force_regenerate=force,
                ),
                user_id,
            )
        return lambda: self.similarity.detect_similar_content(
            content_type.value,
            content_id,
            min_similarity=SIMILARITY_MIN_SCORE,
            limit=SIMILARITY_LIMIT,
            force=force,
        )

    async def bulk_analysis(
        self,
        request: BulkAnalysisRequest,
        user_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BulkAnalysisResult:
        """Run the requested engines over many items, in input order.

        Raises:
            ContentAnalysisValidationError: If the id list is empty or too long
        """
        start_time = time.monotonic()
        settings = get_settings()
        content_ids = request.content_ids
        if not content_ids:
            raise ContentAnalysisValidationError(
                "content_ids", content_ids, "At least one content id is required"
            )
        if len(content_ids) > settings.bulk_analysis_max_items:
            raise ContentAnalysisValidationError(
                "content_ids",
                len(content_ids),
                f"At most {settings.bulk_analysis_max_items} items per bulk run",
            )

        logger.info(
            "Starting bulk analysis",
            extra={
                "content_type": request.content_type.value,
                "item_count": len(content_ids),
                "analysis_types": [t.value for t in request.analysis_types],
            },
        )

        items: list[BulkItemResult] = []
        total = len(content_ids)
        for index, content_id in enumerate(content_ids):
            item = BulkItemResult(
                content_id=content_id, content_type=request.content_type.value
            )
            for analysis_type in request.analysis_types:
                result = await self._run_stage(
                    analysis_type.value,
                    item.errors,
                    content_id,
                    self._bulk_stage(
                        analysis_type,
                        request.content_type,
                        content_id,
                        request.force,
                        user_id,
                    ),
                )
                if result is not None:
                    item.results[analysis_type.value] = result.model_dump(
                        mode="json", by_alias=True
                    )
                    item.artifacts += artifact_count(result)
            items.append(item)
            if on_progress is not None:
                on_progress(round((index + 1) / total * 100))

        successful = sum(1 for item in items if item.success)
        summary = BulkSummary(
            successful=successful,
            failed=len(items) - successful,
            total_artifacts=sum(item.artifacts for item in items),
        )

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Completed bulk analysis",
            extra={
                "item_count": total,
                "successful": summary.successful,
                "failed": summary.failed,
                "duration_ms": round(duration_ms, 2),
            },
        )
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow bulk analysis",
                extra={"item_count": total, "duration_ms": round(duration_ms, 2)},
            )
        return BulkAnalysisResult(total_processed=total, results=items, summary=summary)

