"""GeneratedQuizRepository for quiz storage and retrieval."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import db_logger, get_logger
from app.models.generated_quiz import USABLE_QUIZ_STATUSES, GeneratedQuiz, QuizStatus

logger = get_logger(__name__)


class GeneratedQuizRepository:
    TABLE_NAME = "generated_quizzes"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        logger.debug("GeneratedQuizRepository initialized")

    async def add(self, quiz: GeneratedQuiz) -> GeneratedQuiz:
        try:
            self.session.add(quiz)
            await self.session.flush()
            return quiz
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Inserting quiz for lesson_id={quiz.lesson_id}",
            )
            raise

    async def get_by_id(self, quiz_id: str) -> GeneratedQuiz | None:
        try:
            result = await self.session.execute(
                select(GeneratedQuiz).where(
                    GeneratedQuiz.id == quiz_id, GeneratedQuiz.deleted_at.is_(None)
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Fetching quiz_id={quiz_id}"
            )
            raise

    async def find_reusable(
        self,
        lesson_id: str,
        question_count: int,
        difficulty_level: str,
    ) -> GeneratedQuiz | None:
        """Newest usable quiz generated with the same shape for a lesson."""
        try:
            result = await self.session.execute(
                select(GeneratedQuiz)
                .where(
                    GeneratedQuiz.lesson_id == lesson_id,
                    GeneratedQuiz.question_count == question_count,
                    GeneratedQuiz.difficulty_level == difficulty_level,
                    GeneratedQuiz.status.in_(USABLE_QUIZ_STATUSES),
                    GeneratedQuiz.deleted_at.is_(None),
                )
                .order_by(GeneratedQuiz.completed_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Looking up reusable quiz for lesson_id={lesson_id}",
            )
            raise

    async def mark_failed(self, quiz_id: str, error_message: str) -> None:
        try:
            await self.session.execute(
                update(GeneratedQuiz)
                .where(GeneratedQuiz.id == quiz_id)
                .values(status=QuizStatus.FAILED.value, error_message=error_message)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Marking quiz_id={quiz_id} failed"
            )
            raise

    async def query(
        self,
        lesson_id: str | None = None,
        status: str | None = None,
        difficulty_level: str | None = None,
        created_by: str | None = None,
        created_after: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[GeneratedQuiz], int]:
        conditions: list[Any] = [GeneratedQuiz.deleted_at.is_(None)]
        if lesson_id:
            conditions.append(GeneratedQuiz.lesson_id == lesson_id)
        if status:
            conditions.append(GeneratedQuiz.status == status)
        if difficulty_level:
            conditions.append(GeneratedQuiz.difficulty_level == difficulty_level)
        if created_by:
            conditions.append(GeneratedQuiz.created_by == created_by)
        if created_after:
            conditions.append(GeneratedQuiz.created_at >= created_after)

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(GeneratedQuiz).where(*conditions)
            )
            result = await self.session.execute(
                select(GeneratedQuiz)
                .where(*conditions)
                .order_by(GeneratedQuiz.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Querying quizzes"
            )
            raise
