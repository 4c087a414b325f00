"""ContentTagRepository for tag storage and retrieval.

ERROR LOGGING REQUIREMENTS:
- Log method entry at DEBUG level with content ids
- Log database failures with table context before re-raising
- Log state transitions (retirement of superseded tags) at INFO level
- Add timing logs for operations >1 second
"""

import time
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import db_logger, get_logger
from app.models.content_tag import ContentTag, TagType

logger = get_logger(__name__)


class ContentTagRepository:
    """Repository for ContentTag rows.

    "Live" tags are active and not soft-deleted.
    """

    TABLE_NAME = "content_tags"
    SLOW_OPERATION_THRESHOLD_MS = 1000

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        logger.debug("ContentTagRepository initialized")

    def _live(self) -> Any:
        return (ContentTag.is_active.is_(True)) & (ContentTag.deleted_at.is_(None))

    async def add_many(self, tags: list[ContentTag]) -> list[ContentTag]:
        """Insert tags and flush so ids are populated."""
        start_time = time.monotonic()
        try:
            self.session.add_all(tags)
            await self.session.flush()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Inserting {len(tags)} tags"
            )
            raise

        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > self.SLOW_OPERATION_THRESHOLD_MS:
            db_logger.slow_query(
                query="INSERT INTO content_tags",
                duration_ms=duration_ms,
                table=self.TABLE_NAME,
            )
        return tags

    async def get_by_id(self, tag_id: str) -> ContentTag | None:
        try:
            result = await self.session.execute(
                select(ContentTag).where(
                    ContentTag.id == tag_id, ContentTag.deleted_at.is_(None)
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Fetching tag_id={tag_id}"
            )
            raise

    async def list_live(self, content_type: str, content_id: str) -> list[ContentTag]:
        """Live tags for one item, highest confidence first."""
        try:
            result = await self.session.execute(
                select(ContentTag)
                .where(
                    ContentTag.content_type == content_type,
                    ContentTag.content_id == content_id,
                    self._live(),
                )
                .order_by(ContentTag.confidence.desc(), ContentTag.name)
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Listing tags for {content_type}:{content_id}",
            )
            raise

    async def find_live_by_name(
        self, content_type: str, content_id: str, name: str
    ) -> ContentTag | None:
        try:
            result = await self.session.execute(
                select(ContentTag).where(
                    ContentTag.content_type == content_type,
                    ContentTag.content_id == content_id,
                    func.lower(ContentTag.name) == name.lower(),
                    self._live(),
                )
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context=f"Looking up tag name={name!r}"
            )
            raise

    async def retire_generated(
        self,
        content_type: str,
        content_id: str,
        categories: list[str] | None = None,
    ) -> int:
        """Deactivate live auto-generated tags of one item. Returns the count.

        With categories, only tags in those categories are retired.
        """
        conditions = [
            ContentTag.content_type == content_type,
            ContentTag.content_id == content_id,
            ContentTag.type == TagType.AUTO_GENERATED.value,
            self._live(),
        ]
        if categories:
            conditions.append(ContentTag.category.in_(categories))
        try:
            result = await self.session.execute(
                update(ContentTag)
                .where(*conditions)
                .values(is_active=False, updated_at=datetime.now(UTC))
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Retiring tags for {content_type}:{content_id}",
            )
            raise

        retired = result.rowcount or 0
        if retired:
            logger.info(
                "Retired superseded generated tags",
                extra={
                    "content_type": content_type,
                    "content_id": content_id,
                    "retired_count": retired,
                },
            )
        return retired

    async def query(
        self,
        content_type: str | None = None,
        content_id: str | None = None,
        category: str | None = None,
        tag_type: str | None = None,
        is_verified: bool | None = None,
        min_confidence: float | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ContentTag], int]:
        """Filtered, paginated listing of live tags. Returns (items, total)."""
        conditions = [self._live()]
        if content_type:
            conditions.append(ContentTag.content_type == content_type)
        if content_id:
            conditions.append(ContentTag.content_id == content_id)
        if category:
            conditions.append(ContentTag.category == category)
        if tag_type:
            conditions.append(ContentTag.type == tag_type)
        if is_verified is not None:
            conditions.append(ContentTag.is_verified.is_(is_verified))
        if min_confidence is not None:
            conditions.append(ContentTag.confidence >= min_confidence)
        if search:
            conditions.append(ContentTag.name.ilike(f"%{search}%"))

        try:
            total = await self.session.scalar(
                select(func.count()).select_from(ContentTag).where(*conditions)
            )
            result = await self.session.execute(
                select(ContentTag)
                .where(*conditions)
                .order_by(ContentTag.confidence.desc(), ContentTag.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), int(total or 0)
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e, table=self.TABLE_NAME, context="Querying tags"
            )
            raise
