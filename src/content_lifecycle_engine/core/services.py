"""Core business logic services for the content lifecycle engine.

Three service classes:
- VersionService: Full-state snapshots of content items, listing and comparison
- AuditService: Append-only audit trail writes, queries, exports and statistics
- LifecycleGuard: The status / review state machine for every content type

All services are async-first. They accept injected repositories and a clock
through their constructors and contain no framework code. LifecycleGuard is
the only code that changes a content item's status or review_status; each of
its operations runs as one transaction (guard check -> snapshot -> mutation
-> audit entry) and is rolled back entirely on any failure.
"""

import csv
import io
import json
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from content_lifecycle_engine.core.change_recorder import diff
from content_lifecycle_engine.core.interfaces import (
    ActorContext,
    Clock,
    IAuditLogRepository,
    IContentRegistry,
    IContentRepository,
    IContentVersionRepository,
    IReviewRepository,
    utc_now,
)
from content_lifecycle_engine.core.models import (
    AUDIT_STATUSES,
    CONTENT_STATUSES,
    REJECTION_REASONS,
    VERSION_LABELS,
    AuditLog,
    ContentVersion,
    Review,
)
from content_lifecycle_engine.errors import (
    ConflictError,
    ContentEngineError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from content_lifecycle_engine.observability import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Audit change shapes
# ---------------------------------------------------------------------------

STATUS_ACTIONS: frozenset[str] = frozenset({"publish", "unpublish", "archive", "status_update"})
SORT_FIELDS: tuple[str, ...] = ("performed_at", "action", "area", "status")
SORT_ORDERS: tuple[str, ...] = ("asc", "desc")
EXPORT_FORMATS: dict[str, str] = {"csv": "text/csv", "json": "application/json"}
EXPORT_CSV_HEADER: list[str] = [
    "ID",
    "User",
    "Action",
    "Area",
    "Status",
    "IP Address",
    "User Agent",
    "Performed At",
    "Details",
]

# Attributes only LifecycleGuard may change
LIFECYCLE_FIELDS: frozenset[str] = frozenset({"status", "review_status", "published_at"})


def build_changes(
    action: str,
    old_values: Mapping[str, Any],
    new_values: Mapping[str, Any],
    metadata: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the ``changes`` payload stored on an audit entry.

    - ``update``: field diff only
    - ``create``: the flat new attribute map
    - ``delete``: the flat old attribute map
    - ``publish`` / ``unpublish`` / ``archive`` / ``status_update``:
      ``{"status": {"old": ..., "new": ...}}`` plus metadata
    - anything else: field diff plus metadata

    Args:
        action: Audit action verb.
        old_values: Attribute map before the action.
        new_values: Attribute map after the action.
        metadata: Extra keys merged into the payload (ignored for update/create/delete).

    Returns:
        The changes payload.
    """
    extra = dict(metadata or {})
    if action == "update":
        return diff(old_values, new_values)
    if action == "create":
        return dict(new_values)
    if action == "delete":
        return dict(old_values)
    if action in STATUS_ACTIONS:
        return {"status": {"old": old_values.get("status"), "new": new_values.get("status")}, **extra}
    return {**diff(old_values, new_values), **extra}


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


@dataclass(frozen=True)
class AuditPage:
    """One page of audit log query results."""

    entries: list[AuditLog]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))


@dataclass(frozen=True)
class AuditExport:
    """A rendered audit log export ready to be streamed to the caller."""

    filename: str
    media_type: str
    content: str
    count: int


# ---------------------------------------------------------------------------
# VersionService
# ---------------------------------------------------------------------------


class VersionService:
    """Full-state snapshots of content items.

    Snapshots are append-only and are kept after the item they were taken
    from is deleted. Restoring a snapshot is a lifecycle transition and
    lives on LifecycleGuard.restore().

    Args:
        version_repo: Repository implementing IContentVersionRepository.
        registry: Content-type registry used to validate tags and serialize items.
        clock: Source of snapshot timestamps.
    """

    def __init__(
        self,
        version_repo: IContentVersionRepository,
        registry: IContentRegistry,
        clock: Clock = utc_now,
    ) -> None:
        self._version_repo = version_repo
        self._registry = registry
        self._clock = clock

    async def snapshot(self, type_tag: str, item: Any, label: str, actor: ActorContext) -> ContentVersion:
        """Capture the complete current state of an item.

        Args:
            type_tag: Registry tag of the item's content type.
            item: The content item.
            label: One of VERSION_LABELS.
            actor: The acting admin.

        Returns:
            The persisted ContentVersion.

        Raises:
            ValidationError: If the label is unknown.
            NotFoundError: If the tag is not registered.
        """
        if label not in VERSION_LABELS:
            raise ValidationError(message=f"Unknown version label '{label}'.", field="label")
        repository = self._registry.repository(type_tag)
        return await self._version_repo.append(
            content_type=type_tag,
            content_id=item.id,
            content_data=repository.serialize(item),
            label=label,
            created_by=actor.actor_id,
            created_at=self._clock(),
        )

    async def list_versions(self, type_tag: str, content_id: int) -> list[ContentVersion]:
        """List every snapshot of an item, most recent first.

        Raises:
            NotFoundError: If the tag is not registered.
        """
        self._registry.repository(type_tag)
        return await self._version_repo.list_for_content(type_tag, content_id)

    async def get_version(self, type_tag: str, content_id: int, version_id: int) -> ContentVersion:
        """Retrieve one snapshot of an item.

        Raises:
            NotFoundError: If the tag is not registered, or the snapshot is
                missing or belongs to a different item.
        """
        self._registry.repository(type_tag)
        return await self._version_repo.get_for_content(type_tag, content_id, version_id)

    async def compare(
        self, type_tag: str, content_id: int, from_version_id: int, to_version_id: int
    ) -> dict[str, Any]:
        """Diff the payloads of two snapshots of the same item.

        Returns:
            ``{"from_version": id, "to_version": id, "changes": {...}}``.

        Raises:
            NotFoundError: If either snapshot does not belong to the item.
        """
        from_version = await self.get_version(type_tag, content_id, from_version_id)
        to_version = await self.get_version(type_tag, content_id, to_version_id)
        return {
            "from_version": from_version.id,
            "to_version": to_version.id,
            "changes": diff(from_version.content_data, to_version.content_data),
        }


# ---------------------------------------------------------------------------
# AuditService
# ---------------------------------------------------------------------------


class AuditService:
    """Immutable audit trail orchestration.

    The single point of entry for all audit writes. Entries are written in
    the caller's transaction so that they commit or roll back together with
    the mutation they describe.

    IMPORTANT: This service contains NO update or delete operations.

    Args:
        audit_repo: Repository implementing IAuditLogRepository.
        clock: Source of performed_at timestamps.
        max_export_days: Largest export window in days.
        default_per_page: Page size used when the caller gives none.
        max_per_page: Largest accepted page size.
        statistics_window_days: Statistics window used when no dates are given.
    """

    def __init__(
        self,
        audit_repo: IAuditLogRepository,
        clock: Clock = utc_now,
        max_export_days: int = 366,
        default_per_page: int = 15,
        max_per_page: int = 100,
        statistics_window_days: int = 30,
    ) -> None:
        self._audit_repo = audit_repo
        self._clock = clock
        self._max_export_days = max_export_days
        self._default_per_page = default_per_page
        self._max_per_page = max_per_page
        self._statistics_window_days = statistics_window_days

    async def record(
        self,
        actor: ActorContext,
        action: str,
        area: str,
        auditable_type: str,
        auditable_id: int,
        old_values: Mapping[str, Any] | None = None,
        new_values: Mapping[str, Any] | None = None,
        status: str = "success",
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditLog:
        """Append an immutable audit entry.

        Args:
            actor: The acting admin (or ActorContext.system()).
            action: Action verb, e.g. ``publish`` or ``review_rejected``.
            area: Content-type tag.
            auditable_type: Model name of the target.
            auditable_id: Target primary key.
            old_values: Attribute map before the action.
            new_values: Attribute map after the action.
            status: success | failure | error.
            metadata: Extra keys merged into the changes payload.

        Returns:
            The persisted AuditLog.

        Raises:
            ValidationError: If the status is unknown.
        """
        if status not in AUDIT_STATUSES:
            raise ValidationError(message=f"Unknown audit status '{status}'.", field="status")

        changes = build_changes(action, old_values or {}, new_values or {}, metadata)
        return await self._audit_repo.append(
            user_id=actor.actor_id,
            action=action,
            area=area,
            auditable_type=auditable_type,
            auditable_id=auditable_id,
            status=status,
            changes=changes,
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
            performed_at=self._clock(),
        )

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
        per_page: int | None = None,
    ) -> AuditPage:
        """Query the audit log.

        Args:
            start_date: Inclusive lower bound on performed_at.
            end_date: Inclusive upper bound on performed_at.
            action: Exact action filter.
            area: Exact content-type filter.
            user_id: Exact actor filter.
            status: success | failure | error.
            auditable_id: Target id filter.
            sort_by: performed_at | action | area | status.
            sort_order: asc | desc.
            page: Page number, 1-indexed.
            per_page: Page size, 1 to max_per_page.

        Returns:
            AuditPage with the entries on the requested page and the total match count.

        Raises:
            ValidationError: On an unknown sort field, order or status, a bad
                page size, or start_date after end_date.
        """
        per_page = self._default_per_page if per_page is None else per_page
        if sort_by not in SORT_FIELDS:
            raise ValidationError(
                message=f"The sort_by field must be one of: {', '.join(SORT_FIELDS)}.",
                field="sort_by",
            )
        if sort_order not in SORT_ORDERS:
            raise ValidationError(message="The sort_order field must be asc or desc.", field="sort_order")
        if status is not None and status not in AUDIT_STATUSES:
            raise ValidationError(
                message=f"The status field must be one of: {', '.join(AUDIT_STATUSES)}.",
                field="status",
            )
        if not 1 <= per_page <= self._max_per_page:
            raise ValidationError(
                message=f"The per_page field must be between 1 and {self._max_per_page}.",
                field="per_page",
            )
        if page < 1:
            raise ValidationError(message="The page field must be at least 1.", field="page")

        start_date = _as_utc(start_date) if start_date is not None else None
        end_date = _as_utc(end_date) if end_date is not None else None
        if start_date is not None and end_date is not None and start_date > end_date:
            raise ValidationError(message="The end_date must be a date after or equal to start_date.", field="end_date")

        entries, total = await self._audit_repo.query(
            start_date=start_date,
            end_date=end_date,
            action=action,
            area=area,
            user_id=user_id,
            status=status,
            auditable_id=auditable_id,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            per_page=per_page,
        )
        return AuditPage(entries=entries, total=total, page=page, per_page=per_page)

    async def get_entry(self, entry_id: int) -> AuditLog:
        """Retrieve one audit entry.

        Raises:
            NotFoundError: If the entry does not exist.
        """
        return await self._audit_repo.get_by_id(entry_id)

    async def export(
        self,
        start_date: datetime | None,
        end_date: datetime | None,
        export_format: str = "csv",
        action: str | None = None,
        area: str | None = None,
        user_id: int | None = None,
    ) -> AuditExport:
        """Render every matching entry in a date window as CSV or JSON.

        Entries are exported oldest first.

        Args:
            start_date: Start of the window (required).
            end_date: End of the window (required).
            export_format: csv | json.
            action: Optional action filter.
            area: Optional content-type filter.
            user_id: Optional actor filter.

        Returns:
            The rendered AuditExport.

        Raises:
            ConflictError: If either date is missing or the window exceeds max_export_days.
            ValidationError: If start_date is after end_date or the format is unknown.
            NotFoundError: If no entries match.
        """
        if start_date is None or end_date is None:
            raise ConflictError("Both start_date and end_date are required for export.")
        if export_format not in EXPORT_FORMATS:
            raise ValidationError(message="The format field must be csv or json.", field="format")

        start_date = _as_utc(start_date)
        end_date = _as_utc(end_date)
        if start_date > end_date:
            raise ValidationError(message="The end_date must be a date after or equal to start_date.", field="end_date")
        if end_date - start_date > timedelta(days=self._max_export_days):
            raise ConflictError(f"Export date range cannot exceed {self._max_export_days} days.")

        entries = await self._audit_repo.list_all(
            start_date=start_date,
            end_date=end_date,
            action=action,
            area=area,
            user_id=user_id,
        )
        if not entries:
            raise NotFoundError(resource="Audit logs", message="No audit logs found for the specified criteria.")

        stamp = self._clock().strftime("%Y-%m-%d_%H-%M-%S")
        content = _render_csv(entries) if export_format == "csv" else _render_json(entries)
        logger.info(
            "Audit log exported",
            export_format=export_format,
            count=len(entries),
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        )
        return AuditExport(
            filename=f"audit_logs_{stamp}.{export_format}",
            media_type=EXPORT_FORMATS[export_format],
            content=content,
            count=len(entries),
        )

    async def statistics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> dict[str, Any]:
        """Summarize audit activity in a window (default: the last statistics_window_days).

        Returns:
            Totals by status, area and day plus the ten most frequent actions and users.

        Raises:
            ValidationError: If start_date is after end_date.
        """
        end_date = _as_utc(end_date) if end_date is not None else self._clock()
        if start_date is None:
            start_date = end_date - timedelta(days=self._statistics_window_days)
        start_date = _as_utc(start_date)
        if start_date > end_date:
            raise ValidationError(message="The end_date must be a date after or equal to start_date.", field="end_date")

        by_status = await self._audit_repo.count_by("status", start_date, end_date)
        top_actions = await self._audit_repo.count_by("action", start_date, end_date, limit=10)
        by_area = await self._audit_repo.count_by("area", start_date, end_date)
        top_users = await self._audit_repo.count_by("user_id", start_date, end_date, limit=10)
        timeline = await self._audit_repo.count_per_day(start_date, end_date)

        return {
            "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            "total_actions": sum(count for _, count in by_status),
            "by_status": {value: count for value, count in by_status},
            "by_area": {value: count for value, count in by_area},
            "top_actions": [{"action": value, "count": count} for value, count in top_actions],
            "top_users": [{"user_id": value, "count": count} for value, count in top_users],
            "timeline": [{"date": day, "count": count} for day, count in timeline],
        }


def _entry_to_dict(entry: AuditLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "user": entry.actor_label,
        "action": entry.action,
        "area": entry.area,
        "auditable_type": entry.auditable_type,
        "auditable_id": entry.auditable_id,
        "status": entry.status,
        "changes": entry.changes,
        "ip_address": entry.ip_address,
        "user_agent": entry.user_agent,
        "performed_at": _as_utc(entry.performed_at).isoformat(),
    }


def _render_csv(entries: list[AuditLog]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_CSV_HEADER)
    for entry in entries:
        writer.writerow(
            [
                entry.id,
                entry.actor_label,
                entry.action,
                entry.area,
                entry.status,
                entry.ip_address or "",
                entry.user_agent or "",
                _as_utc(entry.performed_at).isoformat(),
                entry.describe(),
            ]
        )
    return buffer.getvalue()


def _render_json(entries: list[AuditLog]) -> str:
    return json.dumps([_entry_to_dict(entry) for entry in entries], indent=2)


# ---------------------------------------------------------------------------
# LifecycleGuard
# ---------------------------------------------------------------------------


class LifecycleGuard:
    """The content state machine.

    status:        draft -> published -> draft (unpublish); any -> archived (terminal
                   for publish, unpublish and approve); a published item cannot be
                   deleted.
    review_status: none|rejected|approved -> pending (submit, status must be draft)
                   -> approved (publishes) | rejected (status unchanged).

    Every public mutating method commits one transaction or none: the guard
    check, the snapshot, the mutation and the audit entry succeed together
    or are all rolled back.

    Args:
        session: The primary DB session, shared by every injected repository.
        registry: Content-type registry bound to the same session.
        version_service: VersionService bound to the same session.
        audit_service: AuditService bound to the same session.
        review_repo: ReviewRepository bound to the same session.
        clock: Source of published_at / reviewed_at timestamps.
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: IContentRegistry,
        version_service: VersionService,
        audit_service: AuditService,
        review_repo: IReviewRepository,
        clock: Clock = utc_now,
    ) -> None:
        self._session = session
        self._registry = registry
        self._version_service = version_service
        self._audit_service = audit_service
        self._review_repo = review_repo
        self._clock = clock

    @asynccontextmanager
    async def _atomic(self, operation: str, type_tag: str, content_id: int | None) -> AsyncIterator[None]:
        """Commit on success, roll back every step on any failure."""
        try:
            yield
            await self._session.commit()
        except ContentEngineError:
            await self._session.rollback()
            raise
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error(
                "Lifecycle operation failed and was rolled back",
                operation=operation,
                content_type=type_tag,
                content_id=content_id,
                error=str(exc),
            )
            raise InternalError() from exc
        except Exception:
            await self._session.rollback()
            raise

    async def _audit(
        self,
        actor: ActorContext,
        action: str,
        repository: IContentRepository,
        content_id: int,
        old_values: Mapping[str, Any],
        new_values: Mapping[str, Any],
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditLog:
        return await self._audit_service.record(
            actor=actor,
            action=action,
            area=repository.type_tag,
            auditable_type=repository.model_name,
            auditable_id=content_id,
            old_values=old_values,
            new_values=new_values,
            metadata=metadata,
        )

    # -------------------------------------------------------------------------
    # Content changes
    # -------------------------------------------------------------------------

    async def get(self, type_tag: str, content_id: int) -> dict[str, Any]:
        """Return the serialized current state of an item.

        Raises:
            NotFoundError: If the tag or the item does not exist.
        """
        repository = self._registry.repository(type_tag)
        return repository.serialize(await repository.get(content_id))

    async def create(self, type_tag: str, attributes: Mapping[str, Any], actor: ActorContext) -> dict[str, Any]:
        """Create a draft item and audit it.

        Lifecycle fields in ``attributes`` are ignored: new items always start
        as ``draft`` with review_status ``none``.

        Returns:
            The serialized new item.

        Raises:
            NotFoundError: If the tag is not registered.
            ValidationError: If a required attribute is missing.
        """
        repository = self._registry.repository(type_tag)
        values = {key: value for key, value in attributes.items() if key not in LIFECYCLE_FIELDS}
        values.update(status="draft", review_status="none", published_at=None)
        values.setdefault("created_at", self._clock())

        async with self._atomic("create", type_tag, None):
            item = await repository.create(values)
            new_values = repository.serialize(item)
            await self._audit(actor, "create", repository, item.id, {}, new_values)

        logger.info("Content created", content_type=type_tag, content_id=item.id, actor_id=actor.actor_id)
        return new_values

    async def update(
        self, type_tag: str, content_id: int, attributes: Mapping[str, Any], actor: ActorContext
    ) -> dict[str, Any]:
        """Apply an attribute change, snapshotting the previous state first.

        Returns:
            The serialized updated item.

        Raises:
            NotFoundError: If the tag or the item does not exist.
            ValidationError: If ``attributes`` tries to change a lifecycle field.
        """
        blocked = sorted(LIFECYCLE_FIELDS.intersection(attributes))
        if blocked:
            raise ValidationError(
                message=f"The {blocked[0]} field can only be changed through a lifecycle operation.",
                field=blocked[0],
            )
        repository = self._registry.repository(type_tag)

        async with self._atomic("update", type_tag, content_id):
            item = await repository.get(content_id)
            old_values = repository.serialize(item)
            await self._version_service.snapshot(type_tag, item, "manual", actor)
            repository.apply(item, dict(attributes))
            await repository.save(item)
            new_values = repository.serialize(item)
            await self._audit(actor, "update", repository, content_id, old_values, new_values)

        logger.info("Content updated", content_type=type_tag, content_id=content_id, actor_id=actor.actor_id)
        return new_values

    async def delete(self, type_tag: str, content_id: int, actor: ActorContext) -> None:
        """Delete an unpublished item. Its versions and audit entries are kept.

        Raises:
            NotFoundError: If the tag or the item does not exist.
            ConflictError: If the item is published.
        """
        repository = self._registry.repository(type_tag)

        async with self._atomic("delete", type_tag, content_id):
            item = await repository.get(content_id)
            if item.status == "published":
                raise ConflictError("Cannot delete published content. Archive it first.")
            old_values = repository.serialize(item)
            await self._audit(actor, "delete", repository, content_id, old_values, {})
            await repository.delete(item)

        logger.info("Content deleted", content_type=type_tag, content_id=content_id, actor_id=actor.actor_id)

    async def restore(self, type_tag: str, content_id: int, version_id: int, actor: ActorContext) -> dict[str, Any]:
        """Overwrite an item with a snapshot payload.

        The current state is snapshotted as ``before_restore`` first, so a
        restore can itself be undone. Restoring may revert ``status``; the
        item keeps its current ``review_status``, which only the review
        workflow changes, so it stays consistent with the reviews table.

        Returns:
            The serialized restored item.

        Raises:
            NotFoundError: If the item is missing, or the version is missing or
                belongs to a different item.
        """
        repository = self._registry.repository(type_tag)

        async with self._atomic("restore", type_tag, content_id):
            item = await repository.get(content_id)
            version = await self._version_service.get_version(type_tag, content_id, version_id)
            old_values = repository.serialize(item)
            await self._version_service.snapshot(type_tag, item, "before_restore", actor)
            payload = {key: value for key, value in version.content_data.items() if key != "review_status"}
            repository.apply(item, payload)
            await repository.save(item)
            new_values = repository.serialize(item)
            await self._audit(
                actor,
                "restore_version",
                repository,
                content_id,
                old_values,
                new_values,
                metadata={"version_id": version.id, "version_label": version.label},
            )

        logger.info(
            "Content restored from version",
            content_type=type_tag,
            content_id=content_id,
            version_id=version_id,
            actor_id=actor.actor_id,
        )
        return new_values

    # -------------------------------------------------------------------------
    # Status transitions
    # -------------------------------------------------------------------------

    async def _transition(
        self,
        operation: str,
        type_tag: str,
        content_id: int,
        actor: ActorContext,
        allowed: Callable[[Any], None],
        target_status: str,
        label: str,
    ) -> dict[str, Any]:
        repository = self._registry.repository(type_tag)

        async with self._atomic(operation, type_tag, content_id):
            item = await repository.get(content_id)
            allowed(item)
            old_values = repository.serialize(item)
            await self._version_service.snapshot(type_tag, item, label, actor)
            item.status = target_status
            if target_status == "published":
                item.published_at = self._clock()
            await repository.save(item)
            new_values = repository.serialize(item)
            await self._audit(actor, operation, repository, content_id, old_values, new_values)

        logger.info(
            "Content status changed",
            operation=operation,
            content_type=type_tag,
            content_id=content_id,
            old_status=old_values["status"],
            new_status=target_status,
            actor_id=actor.actor_id,
        )
        return new_values

    async def publish(self, type_tag: str, content_id: int, actor: ActorContext) -> dict[str, Any]:
        """Publish a draft item, snapshotting it as ``before_publish``.

        Raises:
            NotFoundError: If the tag or the item does not exist.
            ConflictError: If the item is already published or archived.
        """

        def allowed(item: Any) -> None:
            if item.status == "published":
                raise ConflictError("Content is already published.")
            if item.status == "archived":
                raise ConflictError("Archived content cannot be published.")

        return await self._transition("publish", type_tag, content_id, actor, allowed, "published", "before_publish")

    async def unpublish(self, type_tag: str, content_id: int, actor: ActorContext) -> dict[str, Any]:
        """Move a published item back to draft, snapshotting it as ``before_unpublish``.

        Raises:
            NotFoundError: If the tag or the item does not exist.
            ConflictError: If the item is not published.
        """

        def allowed(item: Any) -> None:
            if item.status != "published":
                raise ConflictError("Content is not published.")

        return await self._transition("unpublish", type_tag, content_id, actor, allowed, "draft", "before_unpublish")

    async def archive(self, type_tag: str, content_id: int, actor: ActorContext) -> dict[str, Any]:
        """Archive an item, snapshotting it as ``before_archive``.

        Raises:
            NotFoundError: If the tag or the item does not exist.
            ConflictError: If the item is already archived.
        """

        def allowed(item: Any) -> None:
            if item.status == "archived":
                raise ConflictError("Content is already archived.")

        return await self._transition("archive", type_tag, content_id, actor, allowed, "archived", "before_archive")

    async def change_status(
        self, type_tag: str, content_id: int, new_status: str, actor: ActorContext
    ) -> dict[str, Any]:
        """Dispatch a requested status to publish, unpublish or archive.

        Raises:
            ValidationError: If new_status is not a content status.
            ConflictError: If the transition is not legal from the current status.
        """
        if new_status not in CONTENT_STATUSES:
            raise ValidationError(
                message=f"The status field must be one of: {', '.join(CONTENT_STATUSES)}.",
                field="status",
            )
        if new_status == "published":
            return await self.publish(type_tag, content_id, actor)
        if new_status == "draft":
            return await self.unpublish(type_tag, content_id, actor)
        return await self.archive(type_tag, content_id, actor)

    async def bulk_change_status(
        self, items: list[tuple[str, int]], new_status: str, actor: ActorContext
    ) -> list[dict[str, Any]]:
        """Apply change_status to many items, each in its own transaction.

        A failure on one item is reported in its result and does not undo
        the items already processed.

        Returns:
            One ``{"type", "id", "success", "message"}`` result per item, in input order.

        Raises:
            ValidationError: If new_status is not a content status.
        """
        if new_status not in CONTENT_STATUSES:
            raise ValidationError(
                message=f"The status field must be one of: {', '.join(CONTENT_STATUSES)}.",
                field="status",
            )
        results: list[dict[str, Any]] = []
        for type_tag, content_id in items:
            try:
                await self.change_status(type_tag, content_id, new_status, actor)
            except ContentEngineError as exc:
                results.append({"type": type_tag, "id": content_id, "success": False, "message": exc.message})
                continue
            results.append({"type": type_tag, "id": content_id, "success": True, "message": "Status updated."})

        logger.info(
            "Bulk status update finished",
            new_status=new_status,
            requested=len(items),
            succeeded=sum(1 for result in results if result["success"]),
            actor_id=actor.actor_id,
        )
        return results

    # -------------------------------------------------------------------------
    # Review workflow
    # -------------------------------------------------------------------------

    async def submit_for_review(self, type_tag: str, content_id: int, actor: ActorContext) -> Review:
        """Open a pending review for a draft item.

        Returns:
            The new pending Review.

        Raises:
            NotFoundError: If the tag or the item does not exist.
            ConflictError: If the item is not a draft or already has a pending review.
        """
        repository = self._registry.repository(type_tag)

        async with self._atomic("submit_for_review", type_tag, content_id):
            item = await repository.get(content_id)
            if item.status != "draft":
                raise ConflictError("Only draft content can be submitted for review.")
            if await self._review_repo.get_pending(type_tag, content_id) is not None:
                raise ConflictError("Content already has a pending review.")

            old_values = repository.serialize(item)
            review = await self._review_repo.create_pending(
                content_type=type_tag,
                content_id=content_id,
                submitted_by=actor.actor_id,
                submitted_at=self._clock(),
            )
            item.review_status = "pending"
            await repository.save(item)
            await self._audit(
                actor,
                "submit_for_review",
                repository,
                content_id,
                old_values,
                repository.serialize(item),
                metadata={"review_id": review.id},
            )

        return review

    async def approve_review(
        self, type_tag: str, content_id: int, actor: ActorContext, comment: str | None = None
    ) -> dict[str, Any]:
        """Approve the pending review and publish the item.

        The item is snapshotted as ``before_publish`` unless it is already
        published.

        Returns:
            The serialized, now published, item.

        Raises:
            NotFoundError: If the item does not exist or has no pending review.
            ConflictError: If the item is archived.
        """
        repository = self._registry.repository(type_tag)

        async with self._atomic("approve_review", type_tag, content_id):
            item = await repository.get(content_id)
            review = await self._review_repo.get_pending(type_tag, content_id)
            if review is None:
                raise NotFoundError(resource="Review", message="No pending review found for this content.")
            if item.status == "archived":
                raise ConflictError("Archived content cannot be approved.")

            now = self._clock()
            old_values = repository.serialize(item)
            if item.status != "published":
                await self._version_service.snapshot(type_tag, item, "before_publish", actor)
                item.status = "published"
                item.published_at = now
            item.review_status = "approved"
            await repository.save(item)

            review.status = "approved"
            review.review_comment = comment
            review.reviewed_by = actor.actor_id
            review.reviewed_at = now
            await self._review_repo.save(review)

            new_values = repository.serialize(item)
            await self._audit(
                actor,
                "review_approved",
                repository,
                content_id,
                old_values,
                new_values,
                metadata={"review_id": review.id},
            )

        logger.info("Review approved", content_type=type_tag, content_id=content_id, review_id=review.id)
        return new_values

    async def reject_review(
        self,
        type_tag: str,
        content_id: int,
        actor: ActorContext,
        comment: str,
        rejection_reason: str,
    ) -> dict[str, Any]:
        """Reject the pending review. The item's status is left unchanged.

        Returns:
            The serialized item.

        Raises:
            ValidationError: If the comment is empty or the reason is unknown.
            NotFoundError: If the item does not exist or has no pending review.
        """
        if not comment or not comment.strip():
            raise ValidationError(message="The review_comment field is required.", field="review_comment")
        if rejection_reason not in REJECTION_REASONS:
            raise ValidationError(
                message=f"The rejection_reason field must be one of: {', '.join(REJECTION_REASONS)}.",
                field="rejection_reason",
            )
        repository = self._registry.repository(type_tag)

        async with self._atomic("reject_review", type_tag, content_id):
            item = await repository.get(content_id)
            review = await self._review_repo.get_pending(type_tag, content_id)
            if review is None:
                raise NotFoundError(resource="Review", message="No pending review found for this content.")

            old_values = repository.serialize(item)
            item.review_status = "rejected"
            await repository.save(item)

            review.status = "rejected"
            review.review_comment = comment
            review.rejection_reason = rejection_reason
            review.reviewed_by = actor.actor_id
            review.reviewed_at = self._clock()
            await self._review_repo.save(review)

            new_values = repository.serialize(item)
            await self._audit(
                actor,
                "review_rejected",
                repository,
                content_id,
                old_values,
                new_values,
                metadata={"review_id": review.id, "rejection_reason": rejection_reason},
            )

        logger.info(
            "Review rejected",
            content_type=type_tag,
            content_id=content_id,
            review_id=review.id,
            rejection_reason=rejection_reason,
        )
        return new_values

    async def list_reviews(self, type_tag: str, content_id: int) -> list[Review]:
        """Return every review of an item, most recent first.

        Raises:
            NotFoundError: If the tag is not registered.
        """
        self._registry.repository(type_tag)
        return await self._review_repo.list_for_content(type_tag, content_id)
