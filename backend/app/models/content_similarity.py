"""ContentSimilarity model: one scored edge between two pieces of content.

Lifecycle: processing -> calculated | failed. A calculated record that is
superseded by a recomputation moves to outdated; the new score is appended
as a fresh record.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, Float, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class SimilarityStatus(str, Enum):
    PROCESSING = "processing"
    CALCULATED = "calculated"
    FAILED = "failed"
    OUTDATED = "outdated"


class SimilarityType(str, Enum):
    SEMANTIC = "semantic"
    TOPIC = "topic"
    DIFFICULTY = "difficulty"
    COMPREHENSIVE = "comprehensive"


class ContentSimilarity(Base):
    """Similarity score between a source and a target item.

    Attributes:
        id: UUID primary key
        source_content_type / source_content_id: Content the analysis started from
        target_content_type / target_content_id: Content compared against
        similarity_type: SimilarityType value
        similarity_score: 0-1, populated only once calculated
        status: SimilarityStatus value
        analysis: JSONB with reasons, algorithm and timing
        calculated_at: When the score was stored
        error_message: Failure reason

    Example analysis structure:
        {
            "similarity_reasons": ["shared topic: recursion"],
            "algorithm_used": "embedding-cosine",
            "processing_time_ms": 182
        }
    """

    __tablename__ = "content_similarities"
    __table_args__ = (
        Index(
            "ix_content_similarities_pair",
            "source_content_type",
            "source_content_id",
            "target_content_type",
            "target_content_id",
        ),
        Index(
            "ix_content_similarities_target",
            "target_content_type",
            "target_content_id",
        ),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    source_content_type: Mapped[str] = mapped_column(String(20), nullable=False)

    source_content_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)

    target_content_type: Mapped[str] = mapped_column(String(20), nullable=False)

    target_content_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)

    similarity_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=SimilarityType.COMPREHENSIVE.value,
        server_default=text("'comprehensive'"),
    )

    similarity_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SimilarityStatus.PROCESSING.value,
        server_default=text("'processing'"),
        index=True,
    )

    analysis: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    calculated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
        onupdate=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        return (
            f"<ContentSimilarity(id={self.id!r}, "
            f"{self.source_content_id} -> {self.target_content_id}, "
            f"score={self.similarity_score}, status={self.status!r})>"
        )
