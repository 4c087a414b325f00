"""PlagiarismCheck model: one originality scan of a piece of content.

The SHA-256 content_hash of the scanned text gates reuse: a completed scan
is only returned again while the text it was computed from is unchanged.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class PlagiarismStatus(str, Enum):
    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETED = "completed"
    FAILED = "failed"


class PlagiarismLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"


FLAGGED_PLAGIARISM_LEVELS = (
    PlagiarismLevel.MODERATE.value,
    PlagiarismLevel.HIGH.value,
    PlagiarismLevel.SEVERE.value,
)


class PlagiarismCheck(Base):
    """Plagiarism scan result.

    Attributes:
        id: UUID primary key
        content_type / content_id: Scanned content
        content_hash: SHA-256 hex of the scanned text
        status: PlagiarismStatus value
        overall_similarity: 0-100 percent, populated only once completed
        plagiarism_level: PlagiarismLevel bucket of overall_similarity
        sources_checked: Number of sources the provider compared against
        matches: JSONB list of matched passages
        analysis: JSONB originality breakdown, citations, recommendations
        scan_configuration: JSONB options the scan ran with
        scan_metadata: JSONB provider, version, timing, confidence
        scan_started_at / scan_completed_at: Scan timestamps
        requested_by: User who requested the scan
        error_message: Failure reason
    """

    __tablename__ = "plagiarism_checks"
    __table_args__ = (
        Index("ix_plagiarism_checks_subject", "content_type", "content_id"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    content_type: Mapped[str] = mapped_column(String(20), nullable=False)

    content_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)

    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PlagiarismStatus.PENDING.value,
        server_default=text("'pending'"),
        index=True,
    )

    overall_similarity: Mapped[float | None] = mapped_column(Float, nullable=True)

    plagiarism_level: Mapped[str | None] = mapped_column(String(20), nullable=True)

    sources_checked: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    matches: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    analysis: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    scan_configuration: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    scan_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    scan_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    scan_completed_at: Mapped[datetime | None] = mapped_column(
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

    def __repr__(self) -> str:
        return (
            f"<PlagiarismCheck(id={self.id!r}, "
            f"content={self.content_type}:{self.content_id}, "
            f"similarity={self.overall_similarity}, status={self.status!r})>"
        )
