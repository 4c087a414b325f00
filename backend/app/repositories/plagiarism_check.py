"""PlagiarismCheckRepository for scan storage and retrieval."""

from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import db_logger, get_logger
from app.models.plagiarism_check import PlagiarismCheck, PlagiarismStatus

logger = get_logger(__name__)


class PlagiarismCheckRepository:
    TABLE_NAME = "plagiarism_checks"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        logger.debug("PlagiarismCheckRepository initialized")

    async def add(self, check: PlagiarismCheck) -> PlagiarismCheck:
        try:
            self.session.add(check)
            await self.session.flush()
            return check
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Inserting scan for {check.content_type}:{check.content_id}",
            )
            raise

    async def get_by_id(self, check_id: str) -> PlagiarismCheck | None:
        try:
            return await self.session.get(PlagiarismCheck, check_id)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Fetching check_id={check_id}"
            )
            raise

    async def latest_completed_for_hash(
        self, content_type: str, content_id: str, content_hash: str
    ) -> PlagiarismCheck | None:
        """Newest completed scan of this exact text."""
        try:
            result = await self.session.execute(
                select(PlagiarismCheck)
                .where(
                    PlagiarismCheck.content_type == content_type,
                    PlagiarismCheck.content_id == content_id,
                    PlagiarismCheck.content_hash == content_hash,
                    PlagiarismCheck.status == PlagiarismStatus.COMPLETED.value,
                )
                .order_by(PlagiarismCheck.scan_completed_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Looking up cached scan for {content_type}:{content_id}",
            )
            raise

    async def mark_failed(self, check_id: str, error_message: str) -> None:
        try:
            await self.session.execute(
                update(PlagiarismCheck)
                .where(PlagiarismCheck.id == check_id)
                .values(status=PlagiarismStatus.FAILED.value, error_message=error_message)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Marking check_id={check_id} failed"
            )
            raise

    async def query(
        self,
        content_type: str | None = None,
        content_id: str | None = None,
        status: str | None = None,
        plagiarism_level: str | None = None,
        min_similarity: float | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[PlagiarismCheck], int]:
        conditions: list[Any] = []
        if content_type:
            conditions.append(PlagiarismCheck.content_type == content_type)
        if content_id:
            conditions.append(PlagiarismCheck.content_id == content_id)
        if status:
            conditions.append(PlagiarismCheck.status == status)
        if plagiarism_level:
            conditions.append(PlagiarismCheck.plagiarism_level == plagiarism_level)
        if min_similarity is not None:
            conditions.append(PlagiarismCheck.overall_similarity >= min_similarity)

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(PlagiarismCheck).where(*conditions)
            )
            result = await self.session.execute(
                select(PlagiarismCheck)
                .where(*conditions)
                .order_by(PlagiarismCheck.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Querying plagiarism checks"
            )
            raise

    async def completed(self) -> list[PlagiarismCheck]:
        """Every completed scan, highest similarity first."""
        try:
            result = await self.session.execute(
                select(PlagiarismCheck)
                .where(PlagiarismCheck.status == PlagiarismStatus.COMPLETED.value)
                .order_by(PlagiarismCheck.overall_similarity.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Loading plagiarism statistics"
            )
            raise
