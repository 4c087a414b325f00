"""QuizGenerationService: AI quiz generation and quiz review workflow.

Generates quizzes for lessons. A completed, reviewed or approved quiz with
the same question count and difficulty is reused while it is inside the
freshness window. Quiz generation has no local fallback.

Review workflow: completed -> reviewed | approved, any -> approved | rejected
through the explicit approve/reject operations.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include entity IDs (lesson_id, quiz_id) in all service logs
- Log state transitions (status changes) at INFO level
- Add timing logs for operations >1 second
"""

import time
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.integrations.ai_service import AIServiceClient, AIServiceError
from app.models.course import ContentType
from app.models.generated_quiz import GeneratedQuiz, QuestionType, QuizStatus
from app.repositories.generated_quiz import GeneratedQuizRepository
from app.schemas.ai_service import (
    AIQuizQuestion,
    AIQuizRequest,
    AIQuizRequirements,
    AIQuizResponse,
)
from app.schemas.content_analysis import (
    QuizGenerationRequest,
    QuizQuery,
    QuizResponse,
    QuizReviewRequest,
    QuizUpdateRequest,
)
from app.services.analysis_freshness import should_reuse
from app.services.analysis_lease import analysis_lease
from app.services.content_source import (
    AnalysisNotFoundError,
    ContentAnalysisValidationError,
    ContentSubject,
    load_subject,
)

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

ENGINE_NAME = "quiz"

DEFAULT_POINTS = 1
DEFAULT_ESTIMATED_TIME = 60
DEFAULT_CONFIDENCE = 0.8

AI_QUESTION_TYPE_MAP: dict[str, QuestionType] = {
    "multiple_choice": QuestionType.MULTIPLE_CHOICE,
    "true_false": QuestionType.TRUE_FALSE,
    "short_answer": QuestionType.SHORT_ANSWER,
    "fill_blank": QuestionType.FILL_IN_BLANK,
    "fill_in_blank": QuestionType.FILL_IN_BLANK,
    "matching": QuestionType.MATCHING,
    "ordering": QuestionType.ORDERING,
}


def map_ai_question_type(ai_type: str) -> QuestionType:
    return AI_QUESTION_TYPE_MAP.get(ai_type.lower(), QuestionType.MULTIPLE_CHOICE)


def build_question(
    index: int, question: AIQuizQuestion, default_difficulty: str
) -> dict[str, Any]:
    return {
        "id": f"q_{index + 1}",
        "type": map_ai_question_type(question.type).value,
        "question": question.question,
        "options": question.options or [],
        "correct_answer": question.correct_answer,
        "explanation": question.explanation,
        "difficulty": question.difficulty or default_difficulty,
        "points": question.points or DEFAULT_POINTS,
        "estimated_time": question.estimated_time or DEFAULT_ESTIMATED_TIME,
        "keywords": question.keywords,
    }


def to_response(quiz: GeneratedQuiz, cached: bool = False) -> QuizResponse:
    response = QuizResponse.model_validate(quiz)
    response.cached = cached
    return response


class QuizGenerationService:
    """Service for generating and reviewing lesson quizzes."""

    def __init__(self, session: AsyncSession, ai_client: AIServiceClient) -> None:
        self._session = session
        self._ai_client = ai_client
        self._repository = GeneratedQuizRepository(session)
        logger.debug("QuizGenerationService initialized")

    async def generate_quiz(
        self, request: QuizGenerationRequest, user_id: str | None = None
    ) -> QuizResponse:
        """Generate a quiz for one lesson.

        Raises:
            ContentNotFoundError: If the lesson does not exist
            AIServiceError: If the AI call fails (the quiz is marked failed)
        """
        start_time = time.monotonic()
        lesson_id = request.lesson_id
        difficulty = request.difficulty_level.value
        logger.debug(
            "Generating quiz",
            extra={
                "lesson_id": lesson_id,
                "question_count": request.question_count,
                "difficulty_level": difficulty,
                "force_regenerate": request.force_regenerate,
            },
        )

        subject = await load_subject(self._session, ContentType.LESSON.value, lesson_id)

        async with analysis_lease(ENGINE_NAME, ContentType.LESSON.value, lesson_id):
            existing = await self._repository.find_reusable(
                lesson_id, request.question_count, difficulty
            )
            if existing is not None and should_reuse(
                completed=True,
                completed_at=existing.completed_at,
                force=request.force_regenerate,
            ):
                logger.info(
                    "Reusing generated quiz",
                    extra={"quiz_id": existing.id, "lesson_id": lesson_id},
                )
                return to_response(existing, cached=True)

            quiz = GeneratedQuiz(
                lesson_id=lesson_id,
                title=request.title,
                description=request.description,
                status=QuizStatus.GENERATING.value,
                questions=[],
                question_count=request.question_count,
                difficulty_level=difficulty,
                time_limit=request.time_limit,
                created_by=user_id,
            )
            await self._repository.add(quiz)
            await self._session.commit()

            quiz_id = quiz.id
            try:
                await self._generate(quiz, subject, request)
            except AIServiceError:
                # already recorded as failed by _generate
                raise
            except Exception as e:
                await self._record_failure(quiz_id, lesson_id, e)
                raise

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Quiz generated",
            extra={
                "quiz_id": quiz.id,
                "lesson_id": lesson_id,
                "question_count": len(quiz.questions),
                "duration_ms": round(duration_ms, 2),
            },
        )
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow quiz generation",
                extra={"lesson_id": lesson_id, "duration_ms": round(duration_ms, 2)},
            )
        return to_response(quiz)

    async def _generate(
        self, quiz: GeneratedQuiz, subject: ContentSubject, request: QuizGenerationRequest
    ) -> None:
        text = subject.quiz_text
        try:
            response = await self._ai_client.generate_quiz(
                AIQuizRequest(
                    content=subject.to_payload(text),
                    requirements=AIQuizRequirements(
                        question_count=request.question_count,
                        difficulty_level=quiz.difficulty_level,
                        question_types=[t.value for t in request.question_types],
                        target_objectives=request.target_objectives,
                        include_explanations=request.include_explanations,
                        custom_prompt=request.custom_prompt,
                        time_limit=request.time_limit,
                    ),
                )
            )
        except AIServiceError as e:
            quiz.status = QuizStatus.FAILED.value
            quiz.error_message = str(e)
            await self._session.commit()
            logger.error(
                "Quiz generation failed",
                extra={
                    "quiz_id": quiz.id,
                    "lesson_id": quiz.lesson_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise

        self._apply_ai_result(quiz, response, request, text)
        await self._session.commit()

    async def _record_failure(
        self, quiz_id: str, lesson_id: str, error: Exception
    ) -> None:
        """Leave the quiz FAILED instead of stuck in GENERATING."""
        logger.error(
            "Quiz generation aborted",
            extra={
                "quiz_id": quiz_id,
                "lesson_id": lesson_id,
                "error": str(error),
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
        await self._session.rollback()
        await self._repository.mark_failed(quiz_id, str(error))
        await self._session.commit()

    def _apply_ai_result(
        self,
        quiz: GeneratedQuiz,
        response: AIQuizResponse,
        request: QuizGenerationRequest,
        text: str,
    ) -> None:
        questions = [
            build_question(index, question, quiz.difficulty_level)
            for index, question in enumerate(response.questions)
        ]
        analysis = response.analysis
        quiz.questions = questions
        quiz.status = QuizStatus.COMPLETED.value
        quiz.completed_at = datetime.now(UTC)
        quiz.quality_score = response.quality_assessment.get("overall_score")
        quiz.generation_analysis = {
            "source_text_length": len(text),
            "key_concepts": analysis.get("key_concepts", []),
            "difficulty_analysis": analysis.get("difficulty_analysis", ""),
            "coverage_score": analysis.get("coverage_score", 0),
            "generation_time": response.processing_time,
            "confidence": response.confidence or DEFAULT_CONFIDENCE,
        }
        quiz.generation_metadata = {
            "model_version": response.model_version,
            "generation_prompt": response.generation_prompt,
            "target_objectives": request.target_objectives,
            "blooms_levels": analysis.get("blooms_levels", []),
            "estimated_completion_time": sum(q["estimated_time"] for q in questions),
            "language_complexity": analysis.get("language_complexity", "medium"),
        }

    async def _require_quiz(self, quiz_id: str) -> GeneratedQuiz:
        quiz = await self._repository.get_by_id(quiz_id)
        if quiz is None:
            raise AnalysisNotFoundError("GeneratedQuiz", quiz_id)
        return quiz

    async def review_quiz(
        self, quiz_id: str, request: QuizReviewRequest, reviewer_id: str | None = None
    ) -> QuizResponse:
        """Record a review of a completed quiz.

        Raises:
            AnalysisNotFoundError: If the quiz does not exist
            ContentAnalysisValidationError: If the quiz is not completed
        """
        quiz = await self._require_quiz(quiz_id)
        if quiz.status != QuizStatus.COMPLETED.value:
            raise ContentAnalysisValidationError(
                "status", quiz.status, "Only completed quizzes can be reviewed"
            )

        now = datetime.now(UTC)
        previous = quiz.status
        quiz.status = (
            QuizStatus.APPROVED.value if request.approved else QuizStatus.REVIEWED.value
        )
        quiz.reviewed_by = reviewer_id
        quiz.reviewed_at = now
        quiz.review_metadata = {
            "quality_rating": request.quality_rating,
            "feedback": request.feedback,
            "question_feedback": request.question_feedback,
            "reviewed_at": now.isoformat(),
        }
        await self._session.commit()
        logger.info(
            "Quiz status changed",
            extra={"quiz_id": quiz_id, "from_status": previous, "to_status": quiz.status},
        )
        return to_response(quiz)

    async def approve_quiz(self, quiz_id: str, user_id: str | None = None) -> QuizResponse:
        quiz = await self._require_quiz(quiz_id)
        previous = quiz.status
        quiz.status = QuizStatus.APPROVED.value
        quiz.reviewed_by = user_id
        quiz.reviewed_at = datetime.now(UTC)
        await self._session.commit()
        logger.info(
            "Quiz status changed",
            extra={"quiz_id": quiz_id, "from_status": previous, "to_status": quiz.status},
        )
        return to_response(quiz)

    async def reject_quiz(
        self, quiz_id: str, reason: str, user_id: str | None = None
    ) -> QuizResponse:
        quiz = await self._require_quiz(quiz_id)
        previous = quiz.status
        now = datetime.now(UTC)
        quiz.status = QuizStatus.REJECTED.value
        quiz.reviewed_by = user_id
        quiz.reviewed_at = now
        quiz.review_metadata = {
            **quiz.review_metadata,
            "quality_rating": quiz.review_metadata.get("quality_rating") or 1,
            "feedback": reason,
            "reviewed_at": now.isoformat(),
        }
        await self._session.commit()
        logger.info(
            "Quiz status changed",
            extra={"quiz_id": quiz_id, "from_status": previous, "to_status": quiz.status},
        )
        return to_response(quiz)

    async def update_quiz(self, quiz_id: str, request: QuizUpdateRequest) -> QuizResponse:
        quiz = await self._require_quiz(quiz_id)
        if request.title:
            quiz.title = request.title
        if request.description is not None:
            quiz.description = request.description
        if request.time_limit:
            quiz.time_limit = request.time_limit
        if request.questions is not None:
            quiz.questions = [q.model_dump(mode="json") for q in request.questions]
            quiz.question_count = len(request.questions)
        await self._session.commit()
        logger.info("Updated quiz", extra={"quiz_id": quiz_id})
        return to_response(quiz)

    async def delete_quiz(self, quiz_id: str) -> None:
        """Soft-delete a quiz."""
        quiz = await self._require_quiz(quiz_id)
        quiz.deleted_at = datetime.now(UTC)
        await self._session.commit()
        logger.info("Deleted quiz", extra={"quiz_id": quiz_id})

    async def get_quizzes(self, query: QuizQuery) -> tuple[list[QuizResponse], int]:
        quizzes, total = await self._repository.query(
            lesson_id=query.lesson_id,
            status=query.status,
            difficulty_level=query.difficulty_level.value if query.difficulty_level else None,
            created_by=query.created_by,
            limit=query.limit,
            offset=query.offset,
        )
        return [to_response(q) for q in quizzes], total

    async def get_quiz_by_id(self, quiz_id: str) -> QuizResponse:
        return to_response(await self._require_quiz(quiz_id))

    async def get_quizzes_by_lesson(self, lesson_id: str) -> list[QuizResponse]:
        quizzes, _ = await self._repository.query(lesson_id=lesson_id, limit=200)
        return [to_response(q) for q in quizzes]
