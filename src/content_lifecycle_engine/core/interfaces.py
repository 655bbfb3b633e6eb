"""Abstract interfaces (Protocol classes) for the content lifecycle engine.

Defines the contracts between the service layer and the adapter layer using
typing.Protocol. Services depend on these protocols — never on concrete
adapter implementations — so they can be tested with mock adapters.

Also defines the two explicit context values every engine call receives in
place of ambient globals: the ActorContext (who is acting, from where) and
the Clock (what time it is).

Protocols defined:
- ContentItem
- IContentRepository
- IContentRegistry
- IContentVersionRepository
- IAuditLogRepository
- IReviewRepository
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from content_lifecycle_engine.core.models import AuditLog, ContentVersion, Review

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default engine clock."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class ActorContext:
    """The admin performing an engine operation.

    Attributes:
        actor_id: Admin user id; None for system-initiated operations.
        roles: Roles asserted by the identity provider.
        ip_address: Caller IP address, recorded on audit entries.
        user_agent: Caller user agent, recorded on audit entries.
    """

    actor_id: int | None
    roles: tuple[str, ...] = ()
    ip_address: str | None = None
    user_agent: str | None = None

    @classmethod
    def system(cls) -> "ActorContext":
        """Context for operations performed by the system itself."""
        return cls(actor_id=None, roles=("system",))


class ContentItem(Protocol):
    """Any entity whose lifecycle the engine manages."""

    id: int
    status: str
    review_status: str
    published_at: datetime | None


class IContentRepository(Protocol):
    """Per-type persistence capability supplied by the CRUD layer."""

    type_tag: str
    model_name: str

    async def get(self, content_id: int) -> ContentItem:
        """Retrieve an item by primary key.

        Raises:
            NotFoundError: If no item exists with this id.
        """
        ...

    async def create(self, attributes: dict[str, Any]) -> ContentItem:
        """Insert a new item built from an attribute map and flush it."""
        ...

    def apply(self, item: ContentItem, attributes: dict[str, Any]) -> None:
        """Overwrite item attributes from a (possibly JSON-decoded) attribute map."""
        ...

    async def save(self, item: ContentItem) -> ContentItem:
        """Flush pending changes to the item."""
        ...

    async def delete(self, item: ContentItem) -> None:
        """Remove the item."""
        ...

    def serialize(self, item: ContentItem) -> dict[str, Any]:
        """Return the item's full attribute map with JSON-safe values."""
        ...


class IContentRegistry(Protocol):
    """Maps a content-type tag to its repository."""

    def repository(self, type_tag: str) -> IContentRepository:
        """Return the repository registered for a tag.

        Raises:
            NotFoundError: If the tag is not registered.
        """
        ...

    def type_tags(self) -> list[str]:
        """Return every registered tag."""
        ...


class IContentVersionRepository(Protocol):
    """Append-only storage for ContentVersion snapshots."""

    async def append(
        self,
        content_type: str,
        content_id: int,
        content_data: dict[str, Any],
        label: str,
        created_by: int | None,
        created_at: datetime,
    ) -> ContentVersion:
        """Persist a new snapshot."""
        ...

    async def list_for_content(self, content_type: str, content_id: int) -> list[ContentVersion]:
        """Return all snapshots of an item, most recent first."""
        ...

    async def get_for_content(self, content_type: str, content_id: int, version_id: int) -> ContentVersion:
        """Return one snapshot of an item.

        Raises:
            NotFoundError: If the snapshot does not exist or belongs to another item.
        """
        ...


class IAuditLogRepository(Protocol):
    """Append-only storage for AuditLog entries."""

    async def append(
        self,
        user_id: int | None,
        action: str,
        area: str,
        auditable_type: str,
        auditable_id: int,
        status: str,
        changes: dict[str, Any],
        ip_address: str | None,
        user_agent: str | None,
        performed_at: datetime,
    ) -> AuditLog:
        """Persist a new audit entry."""
        ...

    async def query(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        action: str | None = None,
        area: str | None = None,
        user_id: int | None = None,
        status: str | None = None,
        auditable_id: int | None = None,
        sort_by: str = "performed_at",
        sort_order: str = "desc",
        page: int = 1,
        per_page: int = 15,
    ) -> tuple[list[AuditLog], int]:
        """Return one page of matching entries and the total match count."""
        ...

    async def list_all(
        self,
        start_date: datetime,
        end_date: datetime,
        action: str | None = None,
        area: str | None = None,
        user_id: int | None = None,
    ) -> list[AuditLog]:
        """Return every matching entry in the window, ascending by performed_at."""
        ...

    async def get_by_id(self, entry_id: int) -> AuditLog:
        """Return one entry.

        Raises:
            NotFoundError: If not found.
        """
        ...

    async def count_by(
        self, column: str, start_date: datetime, end_date: datetime, limit: int | None = None
    ) -> list[tuple[Any, int]]:
        """Return (value, count) pairs grouped by a column, largest first."""
        ...

    async def count_per_day(self, start_date: datetime, end_date: datetime) -> list[tuple[str, int]]:
        """Return (YYYY-MM-DD, count) pairs in date order."""
        ...


class IReviewRepository(Protocol):
    """Storage for Review rows."""

    async def create_pending(
        self, content_type: str, content_id: int, submitted_by: int | None, submitted_at: datetime
    ) -> Review:
        """Insert a new pending review."""
        ...

    async def get_pending(self, content_type: str, content_id: int) -> Review | None:
        """Return the pending review of an item, if any."""
        ...

    async def list_for_content(self, content_type: str, content_id: int) -> list[Review]:
        """Return all reviews of an item, most recent first."""
        ...

    async def save(self, review: Review) -> Review:
        """Flush pending changes to a review."""
        ...
