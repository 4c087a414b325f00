"""GeneratedQuiz model for AI-generated lesson quizzes.

Lifecycle: generating -> completed | failed. A completed quiz can then be
reviewed, approved or rejected by an instructor. Quizzes are soft-deleted
through deleted_at.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class QuizStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


# Statuses whose questions are usable, so a cached quiz may be returned
USABLE_QUIZ_STATUSES = (
    QuizStatus.COMPLETED.value,
    QuizStatus.REVIEWED.value,
    QuizStatus.APPROVED.value,
)


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    FILL_IN_BLANK = "fill_in_blank"
    MATCHING = "matching"
    ORDERING = "ordering"


class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class GeneratedQuiz(Base):
    """Quiz generated for a lesson.

    Attributes:
        id: UUID primary key
        lesson_id: FK to lessons (CASCADE on delete)
        title / description: Display text
        status: QuizStatus value
        questions: JSONB list of question objects
        question_count: Requested number of questions
        difficulty_level: DifficultyLevel value requested
        quality_score: 0-100, populated only once completed
        generation_analysis: JSONB coverage/difficulty analysis from the model
        generation_metadata: JSONB model version, prompt, timing, requirements
        review_metadata: JSONB reviewer feedback and question edits
        time_limit: Minutes, optional
        created_by / reviewed_by / reviewed_at: Audit
        completed_at: Generation completion timestamp for the freshness gate
        error_message: Failure reason
        deleted_at: Soft delete timestamp

    Example questions structure:
        [{
            "id": "q_1",
            "type": "multiple_choice",
            "question": "What does a for loop do?",
            "options": ["...", "..."],
            "correct_answer": "...",
            "explanation": "...",
            "difficulty": "medium",
            "points": 1,
            "estimated_time": 60,
            "keywords": ["loop"]
        }]
    """

    __tablename__ = "generated_quizzes"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    lesson_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("lessons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=QuizStatus.PENDING.value,
        server_default=text("'pending'"),
        index=True,
    )

    questions: Mapped[list[Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )

    question_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=5,
        server_default=text("5"),
    )

    difficulty_level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DifficultyLevel.MEDIUM.value,
        server_default=text("'medium'"),
    )

    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    generation_analysis: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    generation_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    review_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    time_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)

    reviewed_by: Mapped[str | None] = mapped_column(UUID(as_uuid=False), nullable=True)

    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

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
            f"<GeneratedQuiz(id={self.id!r}, lesson_id={self.lesson_id!r}, "
            f"status={self.status!r})>"
        )
