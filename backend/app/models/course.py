"""Course and Lesson models.

These rows are owned by the course-management part of the platform. The
analysis pipeline only reads them:
- Course: catalogue entry with title, description, outcomes and requirements
- Lesson: unit of a course carrying the body text used for quiz generation
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


class ContentType(str, Enum):
    """Kinds of content the analysis pipeline accepts."""

    COURSE = "course"
    LESSON = "lesson"


class Course(Base):
    """Course catalogue entry.

    Attributes:
        id: UUID primary key
        title: Course title
        description: Long-form description
        what_you_will_learn: JSONB list of learning outcomes
        requirements: JSONB list of prerequisites
        level: beginner / intermediate / advanced (free text)
        language: ISO language code
        duration_hours: Estimated duration
        tags: JSONB list of author supplied tag names
        instructor_id: Owning user, if any
    """

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    what_you_will_learn: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    requirements: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    level: Mapped[str | None] = mapped_column(String(50), nullable=True)

    language: Mapped[str | None] = mapped_column(String(20), nullable=True)

    duration_hours: Mapped[float | None] = mapped_column(Float, nullable=True)

    tags: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    instructor_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
        index=True,
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

    lessons: Mapped[list["Lesson"]] = relationship(
        "Lesson",
        back_populates="course",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Course(id={self.id!r}, title={self.title!r})>"


class Lesson(Base):
    """Lesson within a course.

    Attributes:
        id: UUID primary key
        course_id: FK to courses (CASCADE on delete)
        title: Lesson title
        description: Short summary
        content: Body text
        objectives: JSONB list of learning objectives
        estimated_duration: Minutes
        position: Ordering inside the course
    """

    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    course_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    content: Mapped[str | None] = mapped_column(Text, nullable=True)

    objectives: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
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

    course: Mapped["Course"] = relationship("Course", back_populates="lessons")

    def __repr__(self) -> str:
        return f"<Lesson(id={self.id!r}, title={self.title!r})>"
