"""Create content analysis result tables.

Tables: content_tags, content_similarities, content_quality_assessments,
generated_quizzes, plagiarism_checks.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: str | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _jsonb(name: str, empty: str = "'{}'::jsonb") -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        server_default=sa.text(empty),
        nullable=False,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create content analysis tables."""
    op.create_table(
        "content_tags",
        _id(),
        sa.Column("content_type", sa.String(length=20), nullable=False),
        sa.Column("content_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "category",
            sa.String(length=50),
            server_default=sa.text("'topic'"),
            nullable=False,
        ),
        sa.Column(
            "type",
            sa.String(length=30),
            server_default=sa.text("'auto_generated'"),
            nullable=False,
        ),
        sa.Column(
            "confidence", sa.Float(), server_default=sa.text("1.0"), nullable=False
        ),
        sa.Column("description", sa.Text(), nullable=True),
        _jsonb("metadata"),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        sa.Column(
            "is_verified",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column("verified_by", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_content_tags_subject",
        "content_tags",
        ["content_type", "content_id"],
        unique=False,
    )
    op.create_index(op.f("ix_content_tags_name"), "content_tags", ["name"], unique=False)
    op.create_index(
        op.f("ix_content_tags_category"), "content_tags", ["category"], unique=False
    )

    op.create_table(
        "content_similarities",
        _id(),
        sa.Column("source_content_type", sa.String(length=20), nullable=False),
        sa.Column(
            "source_content_id", postgresql.UUID(as_uuid=False), nullable=False
        ),
        sa.Column("target_content_type", sa.String(length=20), nullable=False),
        sa.Column(
            "target_content_id", postgresql.UUID(as_uuid=False), nullable=False
        ),
        sa.Column(
            "similarity_type",
            sa.String(length=30),
            server_default=sa.text("'comprehensive'"),
            nullable=False,
        ),
        sa.Column("similarity_score", sa.Float(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'processing'"),
            nullable=False,
        ),
        _jsonb("analysis"),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_content_similarities_pair",
        "content_similarities",
        [
            "source_content_type",
            "source_content_id",
            "target_content_type",
            "target_content_id",
        ],
        unique=False,
    )
    op.create_index(
        "ix_content_similarities_target",
        "content_similarities",
        ["target_content_type", "target_content_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_content_similarities_status"),
        "content_similarities",
        ["status"],
        unique=False,
    )

    score_columns = [
        sa.Column(f"{name}_score", sa.Float(), nullable=True)
        for name in (
            "clarity",
            "coherence",
            "completeness",
            "accuracy",
            "engagement",
            "accessibility",
            "structure",
            "relevance",
        )
    ]
    op.create_table(
        "content_quality_assessments",
        _id(),
        sa.Column("content_type", sa.String(length=20), nullable=False),
        sa.Column("content_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("overall_score", sa.Float(), nullable=True),
        sa.Column("quality_level", sa.String(length=30), nullable=True),
        *score_columns,
        _jsonb("analysis"),
        _jsonb("improvements", "'[]'::jsonb"),
        _jsonb("metadata"),
        sa.Column(
            "is_latest", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("assessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("requested_by", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_content_quality_assessments_subject",
        "content_quality_assessments",
        ["content_type", "content_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_content_quality_assessments_status"),
        "content_quality_assessments",
        ["status"],
        unique=False,
    )
    # At most one latest assessment per subject
    op.create_index(
        "uq_content_quality_assessments_latest",
        "content_quality_assessments",
        ["content_type", "content_id"],
        unique=True,
        postgresql_where=sa.text("is_latest"),
    )

    op.create_table(
        "generated_quizzes",
        _id(),
        sa.Column("lesson_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        _jsonb("questions", "'[]'::jsonb"),
        sa.Column(
            "question_count", sa.Integer(), server_default=sa.text("5"), nullable=False
        ),
        sa.Column(
            "difficulty_level",
            sa.String(length=20),
            server_default=sa.text("'medium'"),
            nullable=False,
        ),
        sa.Column("quality_score", sa.Float(), nullable=True),
        _jsonb("generation_analysis"),
        _jsonb("generation_metadata"),
        _jsonb("review_metadata"),
        sa.Column("time_limit", sa.Integer(), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["lesson_id"],
            ["lessons.id"],
            name="fk_generated_quizzes_lesson_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        op.f("ix_generated_quizzes_lesson_id"),
        "generated_quizzes",
        ["lesson_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_generated_quizzes_status"),
        "generated_quizzes",
        ["status"],
        unique=False,
    )

    op.create_table(
        "plagiarism_checks",
        _id(),
        sa.Column("content_type", sa.String(length=20), nullable=False),
        sa.Column("content_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column(
            "status",
            sa.String(length=20),
            server_default=sa.text("'pending'"),
            nullable=False,
        ),
        sa.Column("overall_similarity", sa.Float(), nullable=True),
        sa.Column("plagiarism_level", sa.String(length=20), nullable=True),
        sa.Column(
            "sources_checked", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        _jsonb("matches", "'[]'::jsonb"),
        _jsonb("analysis"),
        _jsonb("scan_configuration"),
        _jsonb("scan_metadata"),
        sa.Column("scan_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scan_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("requested_by", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_plagiarism_checks_subject",
        "plagiarism_checks",
        ["content_type", "content_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_plagiarism_checks_content_hash"),
        "plagiarism_checks",
        ["content_hash"],
        unique=False,
    )
    op.create_index(
        op.f("ix_plagiarism_checks_status"),
        "plagiarism_checks",
        ["status"],
        unique=False,
    )


def downgrade() -> None:
    """Drop content analysis tables."""
    op.drop_index(op.f("ix_plagiarism_checks_status"), table_name="plagiarism_checks")
    op.drop_index(
        op.f("ix_plagiarism_checks_content_hash"), table_name="plagiarism_checks"
    )
    op.drop_index("ix_plagiarism_checks_subject", table_name="plagiarism_checks")
    op.drop_table("plagiarism_checks")

    op.drop_index(op.f("ix_generated_quizzes_status"), table_name="generated_quizzes")
    op.drop_index(
        op.f("ix_generated_quizzes_lesson_id"), table_name="generated_quizzes"
    )
    op.drop_table("generated_quizzes")

    op.drop_index(
        "uq_content_quality_assessments_latest",
        table_name="content_quality_assessments",
    )
    op.drop_index(
        op.f("ix_content_quality_assessments_status"),
        table_name="content_quality_assessments",
    )
    op.drop_index(
        "ix_content_quality_assessments_subject",
        table_name="content_quality_assessments",
    )
    op.drop_table("content_quality_assessments")

    op.drop_index(
        op.f("ix_content_similarities_status"), table_name="content_similarities"
    )
    op.drop_index("ix_content_similarities_target", table_name="content_similarities")
    op.drop_index("ix_content_similarities_pair", table_name="content_similarities")
    op.drop_table("content_similarities")

    op.drop_index(op.f("ix_content_tags_category"), table_name="content_tags")
    op.drop_index(op.f("ix_content_tags_name"), table_name="content_tags")
    op.drop_index("ix_content_tags_subject", table_name="content_tags")
    op.drop_table("content_tags")
