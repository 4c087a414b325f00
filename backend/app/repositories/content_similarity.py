"""ContentSimilarityRepository for similarity edges.

An edge is stored directionally (source -> target) but read in either
direction when listing content similar to an item.
"""

from datetime import UTC, datetime

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import db_logger, get_logger
from app.models.content_similarity import ContentSimilarity, SimilarityStatus

logger = get_logger(__name__)


class ContentSimilarityRepository:
    TABLE_NAME = "content_similarities"

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        logger.debug("ContentSimilarityRepository initialized")

    async def add(self, record: ContentSimilarity) -> ContentSimilarity:
        try:
            self.session.add(record)
            await self.session.flush()
            return record
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=(
                    f"Inserting similarity {record.source_content_id} -> "
                    f"{record.target_content_id}"
                ),
            )
            raise

    async def latest_for_pairs(
        self,
        source_type: str,
        source_id: str,
        target_type: str,
        target_ids: list[str],
        similarity_type: str,
    ) -> dict[str, ContentSimilarity]:
        """Newest non-outdated record per target for one source, keyed by target id."""
        if not target_ids:
            return {}
        try:
            result = await self.session.execute(
                select(ContentSimilarity)
                .where(
                    ContentSimilarity.source_content_type == source_type,
                    ContentSimilarity.source_content_id == source_id,
                    ContentSimilarity.target_content_type == target_type,
                    ContentSimilarity.target_content_id.in_(target_ids),
                    ContentSimilarity.similarity_type == similarity_type,
                    ContentSimilarity.status != SimilarityStatus.OUTDATED.value,
                )
                .order_by(ContentSimilarity.created_at.desc())
            )
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Loading similarity pairs for source_id={source_id}",
            )
            raise

        latest: dict[str, ContentSimilarity] = {}
        for record in result.scalars().all():
            latest.setdefault(record.target_content_id, record)
        return latest

    async def outdate_superseded(
        self,
        source_type: str,
        source_id: str,
        target_type: str,
        target_ids: list[str],
        similarity_type: str,
        keep_ids: list[str],
    ) -> int:
        """Mark every other live record for the given pairs OUTDATED.

        Covers failed and stale calculated records alike, so each pair keeps
        a single live record after a successful calculation.
        """
        if not target_ids:
            return 0
        try:
            result = await self.session.execute(
                update(ContentSimilarity)
                .where(
                    ContentSimilarity.source_content_type == source_type,
                    ContentSimilarity.source_content_id == source_id,
                    ContentSimilarity.target_content_type == target_type,
                    ContentSimilarity.target_content_id.in_(target_ids),
                    ContentSimilarity.similarity_type == similarity_type,
                    ContentSimilarity.status != SimilarityStatus.OUTDATED.value,
                    ContentSimilarity.id.notin_(keep_ids),
                )
                .values(
                    status=SimilarityStatus.OUTDATED.value,
                    updated_at=datetime.now(UTC),
                )
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Outdating superseded similarities for source_id={source_id}",
            )
            raise
        logger.info(
            "Similarity records marked outdated",
            extra={"source_content_id": source_id, "record_count": result.rowcount or 0},
        )
        return result.rowcount or 0

    async def list_similar(
        self,
        content_type: str,
        content_id: str,
        min_similarity: float = 0.0,
        limit: int = 10,
    ) -> list[ContentSimilarity]:
        """Calculated edges touching an item in either direction, best first."""
        touches = or_(
            and_(
                ContentSimilarity.source_content_type == content_type,
                ContentSimilarity.source_content_id == content_id,
            ),
            and_(
                ContentSimilarity.target_content_type == content_type,
                ContentSimilarity.target_content_id == content_id,
            ),
        )
        try:
            result = await self.session.execute(
                select(ContentSimilarity)
                .where(
                    touches,
                    ContentSimilarity.status == SimilarityStatus.CALCULATED.value,
                    ContentSimilarity.similarity_score >= min_similarity,
                )
                .order_by(ContentSimilarity.similarity_score.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Listing similar content for {content_type}:{content_id}",
            )
            raise

    async def query(
        self,
        source_content_type: str | None = None,
        source_content_id: str | None = None,
        similarity_type: str | None = None,
        status: str | None = None,
        min_similarity: float | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ContentSimilarity], int]:
        conditions = []
        if source_content_type:
            conditions.append(ContentSimilarity.source_content_type == source_content_type)
        if source_content_id:
            conditions.append(ContentSimilarity.source_content_id == source_content_id)
        if similarity_type:
            conditions.append(ContentSimilarity.similarity_type == similarity_type)
        if status:
            conditions.append(ContentSimilarity.status == status)
        if min_similarity is not None:
            conditions.append(ContentSimilarity.similarity_score >= min_similarity)

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(ContentSimilarity).where(*conditions)
            )
            result = await self.session.execute(
                select(ContentSimilarity)
                .where(*conditions)
                .order_by(ContentSimilarity.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Querying similarities"
            )
            raise
