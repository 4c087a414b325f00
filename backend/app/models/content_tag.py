"""ContentTag model for tags attached to courses and lessons.

Tags carry no status column. An active, non-deleted tag is the completed
state. Regeneration retires previous auto-generated tags by setting
is_active = false; deleted_at marks a soft delete.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Float, Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class TagCategory(str, Enum):
    TOPIC = "topic"
    DIFFICULTY = "difficulty"
    SKILL = "skill"
    SUBJECT = "subject"
    LEARNING_OBJECTIVE = "learning_objective"
    CONTENT_TYPE = "content_type"
    LANGUAGE = "language"


class TagType(str, Enum):
    AUTO_GENERATED = "auto_generated"
    MANUAL = "manual"
    AI_SUGGESTED = "ai_suggested"
    SYSTEM = "system"


class ContentTag(Base):
    """A single tag on one piece of content.

    Attributes:
        id: UUID primary key
        content_type: course or lesson
        content_id: Id of the tagged content
        name: Tag text (lowercase for generated tags)
        category: TagCategory value
        type: TagType value
        confidence: 0-1 confidence from the generator
        description: Optional description
        tag_metadata: JSONB (keywords, context, relevance, model info)
        is_active: False once superseded by a regeneration
        is_verified: Set by a human reviewer
        verified_by / verified_at: Reviewer audit
        created_by: User who requested or created the tag
        deleted_at: Soft delete timestamp

    Example tag_metadata structure:
        {
            "keywords": ["python", "loops"],
            "context": "mentioned in the introduction",
            "relevance_score": 0.8,
            "model_version": "tagger-2.1",
            "extraction_method": "ai_analysis"
        }
    """

    __tablename__ = "content_tags"
    __table_args__ = (
        Index("ix_content_tags_subject", "content_type", "content_id"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    content_type: Mapped[str] = mapped_column(String(20), nullable=False)

    content_id: Mapped[str] = mapped_column(UUID(as_uuid=False), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=TagCategory.TOPIC.value,
        server_default=text("'topic'"),
        index=True,
    )

    type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=TagType.AUTO_GENERATED.value,
        server_default=text("'auto_generated'"),
    )

    confidence: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=1.0,
        server_default=text("1.0"),
    )

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    tag_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    verified_by: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)

    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_by: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

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
            f"<ContentTag(id={self.id!r}, name={self.name!r}, "
            f"content={self.content_type}:{self.content_id})>"
        )
