"""SQLAlchemy repositories for versions and reviews.

Repositories:
- ContentVersionRepository — append-only ContentVersion snapshots
- ReviewRepository         — Review submissions and outcomes

NOTE: AuditLogRepository lives in audit_log.py and the per-type content
repositories in content.py.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from content_lifecycle_engine.core.models import ContentVersion, Review
from content_lifecycle_engine.errors import NotFoundError
from content_lifecycle_engine.observability import get_logger

logger = get_logger(__name__)


class ContentVersionRepository:
    """Append-only repository for ContentVersion snapshots.

    Has no update() or delete() methods. Snapshots outlive the content item
    they were taken from.

    Args:
        session: The primary DB session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        content_type: str,
        content_id: int,
        content_data: dict[str, Any],
        label: str,
        created_by: int | None,
        created_at: datetime,
    ) -> ContentVersion:
        """Persist a new snapshot and flush it so its id is available.

        Args:
            content_type: Registry tag of the content type.
            content_id: Content item primary key.
            content_data: JSON-safe full attribute map.
            label: Snapshot label.
            created_by: Acting admin id.
            created_at: Snapshot timestamp.

        Returns:
            The flushed ContentVersion.
        """
        version = ContentVersion(
            content_type=content_type,
            content_id=content_id,
            content_data=content_data,
            label=label,
            created_by=created_by,
            created_at=created_at,
        )
        self._session.add(version)
        await self._session.flush()
        logger.info(
            "Content version snapshot created",
            version_id=version.id,
            content_type=content_type,
            content_id=content_id,
            label=label,
        )
        return version

    async def list_for_content(self, content_type: str, content_id: int) -> list[ContentVersion]:
        """List all snapshots of an item, newest first.

        Args:
            content_type: Registry tag.
            content_id: Content item primary key.

        Returns:
            ContentVersion records ordered by created_at then id, descending.
        """
        stmt = (
            select(ContentVersion)
            .where(
                ContentVersion.content_type == content_type,
                ContentVersion.content_id == content_id,
            )
            .order_by(ContentVersion.created_at.desc(), ContentVersion.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_for_content(self, content_type: str, content_id: int, version_id: int) -> ContentVersion:
        """Retrieve one snapshot, scoped to the item it belongs to.

        Args:
            content_type: Registry tag.
            content_id: Content item primary key.
            version_id: ContentVersion id.

        Returns:
            The ContentVersion.

        Raises:
            NotFoundError: If the snapshot does not exist or belongs to a different item.
        """
        stmt = select(ContentVersion).where(
            ContentVersion.id == version_id,
            ContentVersion.content_type == content_type,
            ContentVersion.content_id == content_id,
        )
        result = await self._session.execute(stmt)
        version = result.scalar_one_or_none()
        if version is None:
            raise NotFoundError(resource="Version", resource_id=version_id)
        return version


class ReviewRepository:
    """Repository for Review rows.

    Args:
        session: The primary DB session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_pending(
        self,
        content_type: str,
        content_id: int,
        submitted_by: int | None,
        submitted_at: datetime,
    ) -> Review:
        """Insert a new pending review for an item."""
        review = Review(
            content_type=content_type,
            content_id=content_id,
            submitted_by=submitted_by,
            status="pending",
            submitted_at=submitted_at,
        )
        self._session.add(review)
        await self._session.flush()
        logger.info(
            "Review submitted",
            review_id=review.id,
            content_type=content_type,
            content_id=content_id,
        )
        return review

    async def get_pending(self, content_type: str, content_id: int) -> Review | None:
        """Return the latest pending review of an item, or None."""
        stmt = (
            select(Review)
            .where(
                Review.content_type == content_type,
                Review.content_id == content_id,
                Review.status == "pending",
            )
            .order_by(Review.submitted_at.desc(), Review.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_content(self, content_type: str, content_id: int) -> list[Review]:
        """Return every review of an item, newest first."""
        stmt = (
            select(Review)
            .where(Review.content_type == content_type, Review.content_id == content_id)
            .order_by(Review.submitted_at.desc(), Review.id.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, review: Review) -> Review:
        """Flush pending changes to a review."""
        self._session.add(review)
        await self._session.flush()
        return review
