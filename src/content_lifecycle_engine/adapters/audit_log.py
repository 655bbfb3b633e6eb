"""Append-only repository for the audit_logs table.

The audit log shares the primary database with the content tables so that
an audit entry is written in the same transaction as the mutation it
describes. This repository has no update() or delete() methods: entries are
permanent once committed, even after the audited content item is deleted.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from content_lifecycle_engine.core.models import AuditLog
from content_lifecycle_engine.errors import NotFoundError
from content_lifecycle_engine.observability import get_logger

logger = get_logger(__name__)

SORTABLE_COLUMNS: dict[str, Any] = {
    "performed_at": AuditLog.performed_at,
    "action": AuditLog.action,
    "area": AuditLog.area,
    "status": AuditLog.status,
}

GROUPABLE_COLUMNS: dict[str, Any] = {
    "status": AuditLog.status,
    "action": AuditLog.action,
    "area": AuditLog.area,
    "user_id": AuditLog.user_id,
}


class AuditLogRepository:
    """Append-only repository for AuditLog.

    The insert-only pattern is enforced at the application level (this class
    has no mutation methods beyond append()). In production the database role
    used by the service should also hold only INSERT and SELECT grants on
    audit_logs.

    Args:
        session: The primary DB session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

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
        """Append an immutable audit entry.

        This is the ONLY write operation on the audit log.

        Args:
            user_id: Acting admin id, None for the system.
            action: Action verb.
            area: Content-type tag.
            auditable_type: Model name of the target.
            auditable_id: Target primary key.
            status: success | failure | error.
            changes: Diff or payload for the action.
            ip_address: Caller IP.
            user_agent: Caller user agent.
            performed_at: Action timestamp.

        Returns:
            The flushed AuditLog with its id populated.
        """
        entry = AuditLog(
            user_id=user_id,
            action=action,
            area=area,
            auditable_type=auditable_type,
            auditable_id=auditable_id,
            status=status,
            changes=changes,
            ip_address=ip_address,
            user_agent=user_agent,
            performed_at=performed_at,
        )
        self._session.add(entry)
        await self._session.flush()

        logger.info(
            "Audit log entry written",
            entry_id=entry.id,
            action=action,
            area=area,
            auditable_id=auditable_id,
            status=status,
        )
        return entry

    def _filtered(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        action: str | None = None,
        area: str | None = None,
        user_id: int | None = None,
        status: str | None = None,
        auditable_id: int | None = None,
    ) -> Any:
        stmt = select(AuditLog)
        if start_date is not None:
            stmt = stmt.where(AuditLog.performed_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(AuditLog.performed_at <= end_date)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if area:
            stmt = stmt.where(AuditLog.area == area)
        if user_id is not None:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if status:
            stmt = stmt.where(AuditLog.status == status)
        if auditable_id is not None:
            stmt = stmt.where(AuditLog.auditable_id == auditable_id)
        return stmt

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
        """Query the audit log with filters, sorting and pagination.

        Args:
            start_date: Inclusive lower bound on performed_at.
            end_date: Inclusive upper bound on performed_at.
            action: Exact action filter.
            area: Exact area filter.
            user_id: Exact actor filter.
            status: Exact outcome filter.
            auditable_id: Exact target id filter (combine with area for one item).
            sort_by: performed_at | action | area | status.
            sort_order: asc | desc.
            page: Page number (1-indexed).
            per_page: Records per page.

        Returns:
            Tuple of (entries on this page, total matching entries).
        """
        stmt = self._filtered(start_date, end_date, action, area, user_id, status, auditable_id)

        total_result = await self._session.execute(select(func.count()).select_from(stmt.subquery()))
        total = int(total_result.scalar() or 0)

        column = SORTABLE_COLUMNS[sort_by]
        if sort_order == "asc":
            stmt = stmt.order_by(column.asc(), AuditLog.id.asc())
        else:
            stmt = stmt.order_by(column.desc(), AuditLog.id.desc())
        stmt = stmt.offset((page - 1) * per_page).limit(per_page)

        result = await self._session.execute(stmt)
        return list(result.scalars().all()), total

    async def list_all(
        self,
        start_date: datetime,
        end_date: datetime,
        action: str | None = None,
        area: str | None = None,
        user_id: int | None = None,
    ) -> list[AuditLog]:
        """Return every matching entry in a window, oldest first (used by export)."""
        stmt = self._filtered(start_date, end_date, action, area, user_id)
        stmt = stmt.order_by(AuditLog.performed_at.asc(), AuditLog.id.asc())
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_id(self, entry_id: int) -> AuditLog:
        """Retrieve a single audit entry by id.

        Raises:
            NotFoundError: If not found.
        """
        entry = await self._session.get(AuditLog, entry_id)
        if entry is None:
            raise NotFoundError(resource="Audit log", resource_id=entry_id)
        return entry

    async def count_by(
        self,
        column: str,
        start_date: datetime,
        end_date: datetime,
        limit: int | None = None,
    ) -> list[tuple[Any, int]]:
        """Count entries in a window grouped by one column, largest group first."""
        group_column = GROUPABLE_COLUMNS[column]
        count = func.count(AuditLog.id).label("count")
        stmt = (
            select(group_column, count)
            .where(AuditLog.performed_at >= start_date, AuditLog.performed_at <= end_date)
            .group_by(group_column)
            .order_by(count.desc(), group_column.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return [(row[0], int(row[1])) for row in result.all()]

    async def count_per_day(self, start_date: datetime, end_date: datetime) -> list[tuple[str, int]]:
        """Count entries per calendar day in a window, in date order."""
        day = func.date(AuditLog.performed_at).label("day")
        stmt = (
            select(day, func.count(AuditLog.id))
            .where(AuditLog.performed_at >= start_date, AuditLog.performed_at <= end_date)
            .group_by(day)
            .order_by(day)
        )
        result = await self._session.execute(stmt)
        return [(str(row[0]), int(row[1])) for row in result.all()]
