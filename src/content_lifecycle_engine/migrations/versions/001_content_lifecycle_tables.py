"""Content lifecycle tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

- content_versions (append-only snapshots)
- audit_logs (append-only audit trail)
- reviews
- the nine default content tables
"""
from typing import Callable, Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")
PK_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

CONTENT_TABLES: dict[str, Callable[[], list[sa.Column]]] = {
    "learning_paths": lambda: [
        sa.Column("target_language", sa.String(16), nullable=True),
        sa.Column("difficulty_level", sa.String(32), nullable=True),
    ],
    "units": lambda: [
        sa.Column("learning_path_id", sa.BigInteger(), nullable=True, index=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    ],
    "lessons": lambda: [
        sa.Column("unit_id", sa.BigInteger(), nullable=True, index=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("estimated_minutes", sa.Integer(), nullable=True),
    ],
    "sections": lambda: [
        sa.Column("lesson_id", sa.BigInteger(), nullable=True, index=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("body", sa.Text(), nullable=True),
    ],
    "exercises": lambda: [
        sa.Column("section_id", sa.BigInteger(), nullable=True, index=True),
        sa.Column("exercise_type", sa.String(32), nullable=True),
        sa.Column("content", JSON_TYPE, nullable=True),
    ],
    "quizzes": lambda: [
        sa.Column("lesson_id", sa.BigInteger(), nullable=True, index=True),
        sa.Column("passing_score", sa.Integer(), nullable=True),
        sa.Column("time_limit_minutes", sa.Integer(), nullable=True),
    ],
    "quiz_questions": lambda: [
        sa.Column("quiz_id", sa.BigInteger(), nullable=True, index=True),
        sa.Column("question_type", sa.String(32), nullable=True),
        sa.Column("options", JSON_TYPE, nullable=True),
        sa.Column("correct_answer", JSON_TYPE, nullable=True),
    ],
    "vocabulary_items": lambda: [
        sa.Column("translation", sa.String(255), nullable=True),
        sa.Column("part_of_speech", sa.String(32), nullable=True),
        sa.Column("examples", JSON_TYPE, nullable=True),
    ],
    "guide_book_entries": lambda: [
        sa.Column("topic", sa.String(128), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
    ],
}


def _lifecycle_columns() -> list[sa.Column]:
    return [
        sa.Column("id", PK_TYPE, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft", index=True),
        sa.Column("review_status", sa.String(16), nullable=False, server_default="none"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "content_versions",
        sa.Column("id", PK_TYPE, primary_key=True, autoincrement=True),
        sa.Column("content_type", sa.String(64), nullable=False),
        sa.Column("content_id", sa.BigInteger(), nullable=False),
        sa.Column("content_data", JSON_TYPE, nullable=False, comment="Complete snapshot of the content at this version"),
        sa.Column("label", sa.String(50), nullable=False),
        sa.Column("created_by", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_content_versions_content", "content_versions", ["content_type", "content_id"])
    op.create_index("ix_content_versions_created_at", "content_versions", ["created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", PK_TYPE, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("area", sa.String(64), nullable=False),
        sa.Column("auditable_type", sa.String(64), nullable=False),
        sa.Column("auditable_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="success"),
        sa.Column("changes", JSON_TYPE, nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_auditable", "audit_logs", ["auditable_type", "auditable_id"])
    for column in ("user_id", "action", "area", "status", "performed_at"):
        op.create_index(f"ix_audit_logs_{column}", "audit_logs", [column])

    op.create_table(
        "reviews",
        sa.Column("id", PK_TYPE, primary_key=True, autoincrement=True),
        sa.Column("content_type", sa.String(64), nullable=False),
        sa.Column("content_id", sa.BigInteger(), nullable=False),
        sa.Column("submitted_by", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("review_comment", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.String(32), nullable=True),
        sa.Column("reviewed_by", sa.BigInteger(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_reviews_content", "reviews", ["content_type", "content_id"])
    op.create_index("ix_reviews_status", "reviews", ["status"])

    for table_name, columns in CONTENT_TABLES.items():
        op.create_table(table_name, *_lifecycle_columns(), *columns())


def downgrade() -> None:
    for table_name in reversed(list(CONTENT_TABLES)):
        op.drop_table(table_name)
    op.drop_table("reviews")
    op.drop_table("audit_logs")
    op.drop_table("content_versions")
