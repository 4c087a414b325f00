"""ContentRepository: read access to courses and lessons.

The analysis pipeline never writes these tables.
"""

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import db_logger, get_logger
from app.models.course import ContentType, Course, Lesson

logger = get_logger(__name__)


class ContentRepository:
    """Lookups of analyzable content by type and id."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_course(self, course_id: str) -> Course | None:
        try:
            return await self.session.get(Course, course_id)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table="courses", context=f"Fetching course_id={course_id}"
            )
            raise

    async def get_lesson(self, lesson_id: str) -> Lesson | None:
        try:
            return await self.session.get(Lesson, lesson_id)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table="lessons", context=f"Fetching lesson_id={lesson_id}"
            )
            raise

    async def get(self, content_type: str, content_id: str) -> Course | Lesson | None:
        if content_type == ContentType.COURSE.value:
            return await self.get_course(content_id)
        return await self.get_lesson(content_id)

    async def get_many(
        self, content_type: str, content_ids: list[str]
    ) -> list[Course | Lesson]:
        """Fetch several items of one type; missing ids are skipped."""
        if not content_ids:
            return []
        model = Course if content_type == ContentType.COURSE.value else Lesson
        table = model.__tablename__
        try:
            result = await self.session.execute(
                select(model).where(model.id.in_(content_ids))
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=table, context=f"Fetching {len(content_ids)} {table}"
            )
            raise

    async def list_other_ids(
        self, content_type: str, exclude_id: str, limit: int
    ) -> list[str]:
        """Ids of other items of the same type, newest first."""
        model = Course if content_type == ContentType.COURSE.value else Lesson
        try:
            result = await self.session.execute(
                select(model.id)
                .where(model.id != exclude_id)
                .order_by(model.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=model.__tablename__,
                context=f"Listing similarity candidates for {exclude_id}",
            )
            raise
