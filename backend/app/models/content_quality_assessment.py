"""ContentQualityAssessment model with latest-version tracking.

Every assessment appends a record. Exactly one record per (content_type,
content_id) may carry is_latest = true; a partial unique index enforces it
and the quality engine flips the flag inside one savepoint.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class AssessmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QualityLevel(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    SATISFACTORY = "satisfactory"
    NEEDS_IMPROVEMENT = "needs_improvement"
    POOR = "poor"


QUALITY_DIMENSIONS = (
    "clarity",
    "coherence",
    "completeness",
    "accuracy",
    "engagement",
    "accessibility",
    "structure",
    "relevance",
)


class ContentQualityAssessment(Base):
    """Quality assessment of one piece of content.

    Attributes:
        id: UUID primary key
        content_type / content_id: Assessed content
        status: AssessmentStatus value
        overall_score: 0-100, populated only once completed
        quality_level: QualityLevel bucket of overall_score
        clarity_score .. relevance_score: Eight 0-100 dimension scores
        analysis: JSONB strengths/weaknesses/readability/text statistics
        improvements: JSONB list of suggestions
        assessment_metadata: JSONB model version, processing time, confidence
        is_latest: True on the current assessment for the subject
        assessed_at: Completion timestamp used by the freshness gate
        requested_by: User who requested the assessment
        error_message: Failure reason
    """

    __tablename__ = "content_quality_assessments"
    __table_args__ = (
        Index("ix_content_quality_assessments_subject", "content_type", "content_id"),
        Index(
            "uq_content_quality_assessments_latest",
            "content_type",
            "content_id",
            unique=True,
            postgresql_where=text("is_latest"),
            sqlite_where=text("is_latest = 1"),
        ),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    content_type: Mapped[str] = mapped_column(String(20), nullable=False)

    content_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AssessmentStatus.PENDING.value,
        server_default=text("'pending'"),
        index=True,
    )

    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    quality_level: Mapped[str | None] = mapped_column(String(30), nullable=True)

    clarity_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    coherence_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    completeness_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    accuracy_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    engagement_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    accessibility_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    structure_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    relevance_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    analysis: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    improvements: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    assessment_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    is_latest: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    assessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    requested_by: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)

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

    def scores_by_dimension(self) -> dict[str, float | None]:
        return {name: getattr(self, f"{name}_score") for name in QUALITY_DIMENSIONS}

    def __repr__(self) -> str:
        return (
            f"<ContentQualityAssessment(id={self.id!r}, "
            f"content={self.content_type}:{self.content_id}, "
            f"score={self.overall_score}, latest={self.is_latest})>"
        )
