"""SQLAlchemy ORM models for the content lifecycle engine.

Engine tables (append-only except reviews, which move pending -> approved|rejected once):
- ContentVersion — full-state snapshot of a content item, tagged with a label
- AuditLog       — IMMUTABLE record of one action on one content item
- Review         — review submission and its outcome

Content tables (owned by the CRUD layer, managed through ContentRepository):
- LearningPath, Unit, Lesson, Section, Exercise, Quiz, QuizQuestion,
  VocabularyItem, GuideBookEntry — all share ContentMixin, which carries the
  two lifecycle axes (status, review_status) the engine drives.

IMPORTANT: ContentVersion and AuditLog have no update or delete path. They
are kept even after the content item they describe has been deleted.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from content_lifecycle_engine.adapters.database import Base, BigIntPK

JSONType = JSON().with_variant(JSONB(), "postgresql")

CONTENT_STATUSES: tuple[str, ...] = ("draft", "published", "archived")
REVIEW_STATUSES: tuple[str, ...] = ("none", "pending", "approved", "rejected")
REVIEW_OUTCOMES: tuple[str, ...] = ("pending", "approved", "rejected")
REJECTION_REASONS: tuple[str, ...] = ("content_issues", "formatting_issues", "accuracy_issues", "other")
AUDIT_STATUSES: tuple[str, ...] = ("success", "failure", "error")
VERSION_LABELS: tuple[str, ...] = (
    "before_publish",
    "before_unpublish",
    "before_restore",
    "before_archive",
    "manual",
)


# ---------------------------------------------------------------------------
# Engine tables
# ---------------------------------------------------------------------------


class ContentVersion(Base):
    """Append-only snapshot of a content item's full attribute map.

    Attributes:
        content_type: Registry tag of the content type (e.g. ``units``).
        content_id: Primary key of the content item.
        content_data: JSON-safe serialized attribute map at snapshot time.
        label: Why the snapshot was taken (before_publish, manual, ...).
        created_by: Admin user id, or None for system snapshots.
        created_at: Snapshot timestamp (UTC, from the engine clock).
    """

    __tablename__ = "content_versions"
    __table_args__ = (Index("ix_content_versions_content", "content_type", "content_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    content_type: Mapped[str] = mapped_column(String(64), nullable=False)
    content_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_data: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        comment="Complete snapshot of the content at this version",
    )
    label: Mapped[str] = mapped_column(String(50), nullable=False)
    created_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class AuditLog(Base):
    """Immutable audit entry for one action on one content item.

    This table has NO UPDATE or DELETE operations. If an entry must be
    corrected, write a new compensating entry.

    Attributes:
        user_id: Acting admin id; None means the system acted.
        action: Action verb (create, update, delete, publish, review_approved, ...).
        area: Content-type tag the action happened in.
        auditable_type: Model name of the target (e.g. ``Unit``).
        auditable_id: Primary key of the target.
        status: Outcome — success | failure | error.
        changes: Structured diff / payload, shape depends on the action.
        ip_address: Caller IP address, if known.
        user_agent: Caller user agent, if known.
        performed_at: When the action happened (ordering key).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_auditable", "auditable_type", "auditable_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    area: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    auditable_type: Mapped[str] = mapped_column(String(64), nullable=False)
    auditable_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="success", index=True)
    changes: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    @property
    def actor_label(self) -> str:
        """Human-readable actor: ``System`` or ``User <id>``."""
        return "System" if self.user_id is None else f"User {self.user_id}"

    def describe(self) -> str:
        """One-line description used in exports, e.g. ``User 3 publish in units (success)``."""
        return f"{self.actor_label} {self.action} in {self.area} ({self.status})"


class Review(Base):
    """A review submission for a content item.

    At most one review per (content_type, content_id) is ``pending`` at any
    time. Approved and rejected reviews are terminal; resubmitting creates a
    new row.
    """

    __tablename__ = "reviews"
    __table_args__ = (Index("ix_reviews_content", "content_type", "content_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    content_type: Mapped[str] = mapped_column(String(64), nullable=False)
    content_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    submitted_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)
    review_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reviewed_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Content tables
# ---------------------------------------------------------------------------


class ContentMixin:
    """Columns shared by every engine-managed content type."""

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", index=True)
    review_status: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LearningPath(ContentMixin, Base):
    __tablename__ = "learning_paths"

    target_language: Mapped[str | None] = mapped_column(String(16), nullable=True)
    difficulty_level: Mapped[str | None] = mapped_column(String(32), nullable=True)


class Unit(ContentMixin, Base):
    __tablename__ = "units"

    learning_path_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Lesson(ContentMixin, Base):
    __tablename__ = "lessons"

    unit_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    estimated_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Section(ContentMixin, Base):
    __tablename__ = "sections"

    lesson_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)


class Exercise(ContentMixin, Base):
    __tablename__ = "exercises"

    section_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    exercise_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    content: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)


class Quiz(ContentMixin, Base):
    __tablename__ = "quizzes"

    lesson_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    passing_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_limit_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)


class QuizQuestion(ContentMixin, Base):
    __tablename__ = "quiz_questions"

    quiz_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    question_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    options: Mapped[list[Any] | None] = mapped_column(JSONType, nullable=True)
    correct_answer: Mapped[Any] = mapped_column(JSONType, nullable=True)


class VocabularyItem(ContentMixin, Base):
    __tablename__ = "vocabulary_items"

    translation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    part_of_speech: Mapped[str | None] = mapped_column(String(32), nullable=True)
    examples: Mapped[list[Any] | None] = mapped_column(JSONType, nullable=True)


class GuideBookEntry(ContentMixin, Base):
    __tablename__ = "guide_book_entries"

    topic: Mapped[str | None] = mapped_column(String(128), nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
