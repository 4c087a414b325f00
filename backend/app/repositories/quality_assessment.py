"""QualityAssessmentRepository with latest-version promotion.

ERROR LOGGING REQUIREMENTS:
- Log database failures with table context before re-raising
- Log latest-version flips at INFO level with both record ids
- Add timing logs for operations >1 second
"""

import time
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import db_logger, get_logger
from app.models.content_quality_assessment import (
    AssessmentStatus,
    ContentQualityAssessment,
)

logger = get_logger(__name__)


class QualityAssessmentRepository:
    TABLE_NAME = "content_quality_assessments"
    SLOW_OPERATION_THRESHOLD_MS = 1000

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        logger.debug("QualityAssessmentRepository initialized")

    async def add(self, assessment: ContentQualityAssessment) -> ContentQualityAssessment:
        try:
            self.session.add(assessment)
            await self.session.flush()
            return assessment
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=(
                    f"Inserting assessment for "
                    f"{assessment.content_type}:{assessment.content_id}"
                ),
            )
            raise

    async def get_by_id(self, assessment_id: str) -> ContentQualityAssessment | None:
        try:
            return await self.session.get(ContentQualityAssessment, assessment_id)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Fetching id={assessment_id}"
            )
            raise

    async def get_latest(
        self, content_type: str, content_id: str
    ) -> ContentQualityAssessment | None:
        try:
            result = await self.session.execute(
                select(ContentQualityAssessment).where(
                    ContentQualityAssessment.content_type == content_type,
                    ContentQualityAssessment.content_id == content_id,
                    ContentQualityAssessment.is_latest.is_(True),
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Fetching latest assessment for {content_type}:{content_id}",
            )
            raise

    async def promote_to_latest(self, assessment: ContentQualityAssessment) -> None:
        """Make assessment the only latest record for its subject.

        Runs inside a SAVEPOINT so readers never observe two latest records
        or none. A concurrent promotion surfaces as an IntegrityError on the
        partial unique index; the flip is retried once.
        """
        start_time = time.monotonic()
        assessment_id = assessment.id
        content_type = assessment.content_type
        content_id = assessment.content_id
        superseded = 0

        for attempt in range(2):
            try:
                async with self.session.begin_nested():
                    result = await self.session.execute(
                        update(ContentQualityAssessment)
                        .where(
                            ContentQualityAssessment.content_type == content_type,
                            ContentQualityAssessment.content_id == content_id,
                            ContentQualityAssessment.is_latest.is_(True),
                            ContentQualityAssessment.id != assessment_id,
                        )
                        .values(is_latest=False)
                        .execution_options(synchronize_session="fetch")
                    )
                    superseded = result.rowcount or 0
                    assessment.is_latest = True
                    await self.session.flush()
                break
            except IntegrityError as e:
                if attempt == 1:
                    db_logger.transaction_failure(
                        e,
                        table=self.TABLE_NAME,
                        context=f"Promoting assessment_id={assessment_id} to latest",
                    )
                    raise
                logger.warning(
                    "Concurrent latest-assessment promotion, retrying",
                    extra={"assessment_id": assessment_id},
                )
                # the savepoint rollback expired the instance
                await self.session.refresh(assessment)
            except SQLAlchemyError as e:
                db_logger.transaction_failure(
                    e,
                    table=self.TABLE_NAME,
                    context=f"Promoting assessment_id={assessment_id} to latest",
                )
                raise

        logger.info(
            "Quality assessment promoted to latest",
            extra={
                "assessment_id": assessment_id,
                "content_type": content_type,
                "content_id": content_id,
                "superseded_count": superseded,
            },
        )
        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > self.SLOW_OPERATION_THRESHOLD_MS:
            db_logger.slow_query(
                query="UPDATE content_quality_assessments SET is_latest",
                duration_ms=duration_ms,
                table=self.TABLE_NAME,
            )

    async def mark_failed(self, assessment_id: str, error_message: str) -> None:
        """Flag an assessment FAILED by id.

        Works on a rolled-back session where the loaded instance is expired.
        """
        try:
            await self.session.execute(
                update(ContentQualityAssessment)
                .where(ContentQualityAssessment.id == assessment_id)
                .values(
                    status=AssessmentStatus.FAILED.value,
                    error_message=error_message,
                    is_latest=False,
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Marking assessment_id={assessment_id} failed",
            )
            raise

    async def list_completed_since(
        self, content_type: str, content_id: str, since: datetime
    ) -> list[ContentQualityAssessment]:
        """Completed assessments of one item in chronological order."""
        try:
            result = await self.session.execute(
                select(ContentQualityAssessment)
                .where(
                    ContentQualityAssessment.content_type == content_type,
                    ContentQualityAssessment.content_id == content_id,
                    ContentQualityAssessment.status == AssessmentStatus.COMPLETED.value,
                    ContentQualityAssessment.assessed_at >= since,
                )
                .order_by(ContentQualityAssessment.assessed_at.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Loading quality trend for {content_type}:{content_id}",
            )
            raise

    async def query(
        self,
        content_type: str | None = None,
        content_id: str | None = None,
        quality_level: str | None = None,
        min_score: float | None = None,
        max_score: float | None = None,
        latest_only: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ContentQualityAssessment], int]:
        conditions: list[Any] = []
        if content_type:
            conditions.append(ContentQualityAssessment.content_type == content_type)
        if content_id:
            conditions.append(ContentQualityAssessment.content_id == content_id)
        if quality_level:
            conditions.append(ContentQualityAssessment.quality_level == quality_level)
        if min_score is not None:
            conditions.append(ContentQualityAssessment.overall_score >= min_score)
        if max_score is not None:
            conditions.append(ContentQualityAssessment.overall_score <= max_score)
        if latest_only:
            conditions.append(ContentQualityAssessment.is_latest.is_(True))

        try:
            total = await self.session.scalar(
                select(func.count())
                .select_from(ContentQualityAssessment)
                .where(*conditions)
            )
            result = await self.session.execute(
                select(ContentQualityAssessment)
                .where(*conditions)
                .order_by(ContentQualityAssessment.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Querying quality assessments"
            )
            raise

    async def latest_completed(
        self, content_type: str | None = None
    ) -> list[ContentQualityAssessment]:
        """All latest completed assessments, used for statistics."""
        conditions: list[Any] = [
            ContentQualityAssessment.is_latest.is_(True),
            ContentQualityAssessment.status == AssessmentStatus.COMPLETED.value,
        ]
        if content_type:
            conditions.append(ContentQualityAssessment.content_type == content_type)
        try:
            result = await self.session.execute(
                select(ContentQualityAssessment)
                .where(*conditions)
                .order_by(ContentQualityAssessment.overall_score.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Loading quality statistics"
            )
            raise
