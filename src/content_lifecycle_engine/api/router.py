"""API router for the content lifecycle engine.

All admin endpoints are registered here and included in main.py. Routes are
thin: all business logic lives in the service layer. Every route requires
the admin role (see api/auth.py).

Audit log endpoints (registered first so that their literal path segments
win over the generic /admin/{type}/{id} routes):
- GET    /admin/audit-logs                                — Query the audit log
- GET    /admin/audit-logs/export                         — CSV / JSON export
- GET    /admin/audit-logs/statistics                     — Activity statistics
- GET    /admin/audit-logs/user/{user_id}                 — One admin's activity
- GET    /admin/audit-logs/content/{type}/{id}            — One item's history
- GET    /admin/audit-logs/{id}                           — Single entry

Content endpoints ({type} is a registry tag such as units or quiz-questions):
- POST   /admin/content/bulk-status                       — Bulk status change
- POST   /admin/{type}                                    — Create draft item
- GET    /admin/{type}/{id}                               — Current state
- PUT    /admin/{type}/{id}                               — Update (snapshot + diff)
- DELETE /admin/{type}/{id}                               — Delete unpublished item
- PATCH  /admin/{type}/{id}/status                        — Publish / unpublish / archive
- GET    /admin/{type}/{id}/versions                      — List snapshots
- GET    /admin/{type}/{id}/versions/{vid}                — Single snapshot
- GET    /admin/{type}/{id}/versions/{a}/compare/{b}      — Diff two snapshots
- POST   /admin/{type}/{id}/restore/{vid}                 — Restore a snapshot
- POST   /admin/{type}/{id}/submit-for-review             — Open a review
- POST   /admin/{type}/{id}/approve-review                — Approve and publish
- POST   /admin/{type}/{id}/reject-review                 — Reject
- GET    /admin/{type}/{id}/reviews                       — Review history
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from content_lifecycle_engine.adapters.audit_log import AuditLogRepository
from content_lifecycle_engine.adapters.content import ContentRegistry, build_default_registry
from content_lifecycle_engine.adapters.database import get_db_session
from content_lifecycle_engine.adapters.repositories import ContentVersionRepository, ReviewRepository
from content_lifecycle_engine.api.auth import get_current_admin
from content_lifecycle_engine.api.schemas import (
    ApproveReviewRequest,
    AuditLogResponse,
    BulkStatusRequest,
    BulkStatusResult,
    ContentCreateRequest,
    ContentUpdateRequest,
    ContentVersionResponse,
    DataResponse,
    PaginatedResponse,
    Pagination,
    RejectReviewRequest,
    ReviewResponse,
    StatusUpdateRequest,
    VersionCompareResponse,
)
from content_lifecycle_engine.core.interfaces import ActorContext, Clock, utc_now
from content_lifecycle_engine.core.services import AuditPage, AuditService, LifecycleGuard, VersionService
from content_lifecycle_engine.observability import get_logger
from content_lifecycle_engine.settings import Settings, get_settings

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["content-lifecycle"], dependencies=[Depends(get_current_admin)])


# ---------------------------------------------------------------------------
# Dependency factories: wire repositories and services together
# ---------------------------------------------------------------------------


def get_clock() -> Clock:
    """Return the engine clock (overridden in tests)."""
    return utc_now


def get_registry(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ContentRegistry:
    """Construct the content registry bound to the request session.

    Args:
        session: Primary DB session.

    Returns:
        ContentRegistry with every default content type registered.
    """
    return build_default_registry(session)


def get_version_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    registry: Annotated[ContentRegistry, Depends(get_registry)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> VersionService:
    """Construct VersionService with injected repositories.

    Args:
        session: Primary DB session.
        registry: Content registry for the same session.
        clock: Engine clock.

    Returns:
        Fully wired VersionService instance.
    """
    return VersionService(version_repo=ContentVersionRepository(session), registry=registry, clock=clock)


def get_audit_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> AuditService:
    """Construct AuditService with injected audit repository.

    Args:
        session: Primary DB session.
        settings: Service settings (export and pagination limits).
        clock: Engine clock.

    Returns:
        Fully wired AuditService instance.
    """
    return AuditService(
        audit_repo=AuditLogRepository(session),
        clock=clock,
        max_export_days=settings.export_max_range_days,
        default_per_page=settings.audit_default_per_page,
        max_per_page=settings.audit_max_per_page,
        statistics_window_days=settings.statistics_default_window_days,
    )


def get_lifecycle_guard(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    registry: Annotated[ContentRegistry, Depends(get_registry)],
    version_service: Annotated[VersionService, Depends(get_version_service)],
    audit_service: Annotated[AuditService, Depends(get_audit_service)],
    clock: Annotated[Clock, Depends(get_clock)],
) -> LifecycleGuard:
    """Construct LifecycleGuard sharing one session across every collaborator.

    Args:
        session: Primary DB session.
        registry: Content registry for the same session.
        version_service: VersionService for the same session.
        audit_service: AuditService for the same session.
        clock: Engine clock.

    Returns:
        Fully wired LifecycleGuard instance.
    """
    return LifecycleGuard(
        session=session,
        registry=registry,
        version_service=version_service,
        audit_service=audit_service,
        review_repo=ReviewRepository(session),
        clock=clock,
    )


def _paginated(page: AuditPage, message: str) -> PaginatedResponse:
    first = (page.page - 1) * page.per_page + 1 if page.entries else None
    last = first + len(page.entries) - 1 if first is not None else None
    return PaginatedResponse(
        data=[AuditLogResponse.model_validate(entry) for entry in page.entries],
        pagination=Pagination(
            total=page.total,
            per_page=page.per_page,
            current_page=page.page,
            last_page=page.last_page,
            from_=first,
            to=last,
        ),
        message=message,
    )


# ---------------------------------------------------------------------------
# Audit log endpoints
# ---------------------------------------------------------------------------


@router.get("/audit-logs", response_model=PaginatedResponse)
async def list_audit_logs(
    service: Annotated[AuditService, Depends(get_audit_service)],
    start_date: datetime | None = Query(default=None, description="Inclusive lower bound (UTC)"),
    end_date: datetime | None = Query(default=None, description="Inclusive upper bound (UTC)"),
    action: str | None = Query(default=None, description="Filter by action verb"),
    area: str | None = Query(default=None, description="Filter by content-type tag"),
    user_id: int | None = Query(default=None, description="Filter by acting admin id"),
    status: str | None = Query(default=None, description="Filter by outcome: success | failure | error"),
    auditable_id: int | None = Query(default=None, description="Filter by target id"),
    sort_by: str = Query(default="performed_at", description="performed_at | action | area | status"),
    sort_order: str = Query(default="desc", description="asc | desc"),
    page: int = Query(default=1),
    per_page: int | None = Query(default=None, description="Page size, 1-100 (default 15)"),
) -> PaginatedResponse:
    """Query the immutable audit log with filters, sorting and pagination.

    Returns:
        Paginated audit entries.
    """
    result = await service.query(
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
    return _paginated(result, "Audit logs retrieved successfully")


@router.get("/audit-logs/export")
async def export_audit_logs(
    service: Annotated[AuditService, Depends(get_audit_service)],
    start_date: datetime | None = Query(default=None, description="Start of the export window (required)"),
    end_date: datetime | None = Query(default=None, description="End of the export window (required)"),
    export_format: str = Query(default="csv", alias="format", description="csv | json"),
    action: str | None = Query(default=None),
    area: str | None = Query(default=None),
    user_id: int | None = Query(default=None),
) -> Response:
    """Download every audit entry in a window as CSV or JSON, oldest first.

    Returns:
        The export file as an attachment.
    """
    export = await service.export(
        start_date=start_date,
        end_date=end_date,
        export_format=export_format,
        action=action,
        area=area,
        user_id=user_id,
    )
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/audit-logs/statistics", response_model=DataResponse)
async def audit_statistics(
    service: Annotated[AuditService, Depends(get_audit_service)],
    start_date: datetime | None = Query(default=None, description="Defaults to 30 days before end_date"),
    end_date: datetime | None = Query(default=None, description="Defaults to now"),
) -> DataResponse:
    """Summarize audit activity by status, action, area, user and day."""
    stats = await service.statistics(start_date=start_date, end_date=end_date)
    return DataResponse(data=stats, message="Audit statistics retrieved successfully")


@router.get("/audit-logs/user/{user_id}", response_model=PaginatedResponse)
async def user_activity(
    user_id: int,
    service: Annotated[AuditService, Depends(get_audit_service)],
    start_date: datetime | None = Query(default=None, description="Inclusive lower bound (UTC)"),
    end_date: datetime | None = Query(default=None, description="Inclusive upper bound (UTC)"),
    page: int = Query(default=1),
    per_page: int | None = Query(default=None),
) -> PaginatedResponse:
    """List one admin's actions, most recent first."""
    result = await service.query(
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        per_page=per_page,
    )
    return _paginated(result, "User activity retrieved successfully")


@router.get("/audit-logs/content/{content_type}/{content_id}", response_model=PaginatedResponse)
async def content_history(
    content_type: str,
    content_id: int,
    service: Annotated[AuditService, Depends(get_audit_service)],
    registry: Annotated[ContentRegistry, Depends(get_registry)],
    start_date: datetime | None = Query(default=None, description="Inclusive lower bound (UTC)"),
    end_date: datetime | None = Query(default=None, description="Inclusive upper bound (UTC)"),
    page: int = Query(default=1),
    per_page: int | None = Query(default=None),
) -> PaginatedResponse:
    """List every audit entry for one content item, most recent first.

    Entries are returned even after the item itself has been deleted.
    """
    registry.repository(content_type)
    result = await service.query(
        start_date=start_date,
        end_date=end_date,
        area=content_type,
        auditable_id=content_id,
        page=page,
        per_page=per_page,
    )
    return _paginated(result, "Content history retrieved successfully")


@router.get("/audit-logs/{entry_id}", response_model=DataResponse)
async def get_audit_log(
    entry_id: int,
    service: Annotated[AuditService, Depends(get_audit_service)],
) -> DataResponse:
    """Get a single audit entry by id."""
    entry = await service.get_entry(entry_id)
    return DataResponse(data=AuditLogResponse.model_validate(entry), message="Audit log retrieved successfully")


# ---------------------------------------------------------------------------
# Content lifecycle endpoints
# ---------------------------------------------------------------------------


@router.post("/content/bulk-status", response_model=DataResponse)
async def bulk_update_status(
    request: BulkStatusRequest,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Change the status of many items, each in its own transaction.

    Returns:
        One result per item; failures do not undo earlier successes.
    """
    logger.info("POST /admin/content/bulk-status", actor_id=actor.actor_id, count=len(request.items))
    results = await guard.bulk_change_status(
        [(item.type, item.id) for item in request.items],
        request.status,
        actor,
    )
    succeeded = sum(1 for result in results if result["success"])
    return DataResponse(
        data=[BulkStatusResult(**result) for result in results],
        message=f"{succeeded} of {len(results)} items updated",
    )


@router.post("/{content_type}", response_model=DataResponse, status_code=201)
async def create_content(
    content_type: str,
    request: ContentCreateRequest,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Create a draft content item."""
    item = await guard.create(content_type, request.model_dump(exclude_unset=True), actor)
    return DataResponse(data=item, message="Content created successfully")


@router.get("/{content_type}/{content_id}", response_model=DataResponse)
async def get_content(
    content_type: str,
    content_id: int,
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Get the current state of a content item."""
    item = await guard.get(content_type, content_id)
    return DataResponse(data=item, message="Content retrieved successfully")


@router.put("/{content_type}/{content_id}", response_model=DataResponse)
async def update_content(
    content_type: str,
    content_id: int,
    request: ContentUpdateRequest,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Update a content item. The previous state is kept as a ``manual`` snapshot."""
    item = await guard.update(content_type, content_id, request.model_dump(exclude_unset=True), actor)
    return DataResponse(data=item, message="Content updated successfully")


@router.delete("/{content_type}/{content_id}", response_model=DataResponse)
async def delete_content(
    content_type: str,
    content_id: int,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Delete an unpublished content item. Published items must be archived first."""
    await guard.delete(content_type, content_id, actor)
    return DataResponse(data=None, message="Content deleted successfully")


@router.patch("/{content_type}/{content_id}/status", response_model=DataResponse)
async def update_status(
    content_type: str,
    content_id: int,
    request: StatusUpdateRequest,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Publish, unpublish or archive a content item."""
    item = await guard.change_status(content_type, content_id, request.status, actor)
    return DataResponse(data=item, message=f"Content status changed to {request.status}")


@router.get("/{content_type}/{content_id}/versions", response_model=DataResponse)
async def list_versions(
    content_type: str,
    content_id: int,
    service: Annotated[VersionService, Depends(get_version_service)],
) -> DataResponse:
    """List every snapshot of a content item, most recent first."""
    versions = await service.list_versions(content_type, content_id)
    return DataResponse(
        data=[ContentVersionResponse.model_validate(version) for version in versions],
        message="Versions retrieved successfully",
    )


@router.get("/{content_type}/{content_id}/versions/{version_id}", response_model=DataResponse)
async def get_version(
    content_type: str,
    content_id: int,
    version_id: int,
    service: Annotated[VersionService, Depends(get_version_service)],
) -> DataResponse:
    """Get a single snapshot of a content item."""
    version = await service.get_version(content_type, content_id, version_id)
    return DataResponse(data=ContentVersionResponse.model_validate(version), message="Version retrieved successfully")


@router.get(
    "/{content_type}/{content_id}/versions/{from_version_id}/compare/{to_version_id}",
    response_model=DataResponse,
)
async def compare_versions(
    content_type: str,
    content_id: int,
    from_version_id: int,
    to_version_id: int,
    service: Annotated[VersionService, Depends(get_version_service)],
) -> DataResponse:
    """Diff two snapshots of the same content item."""
    comparison = await service.compare(content_type, content_id, from_version_id, to_version_id)
    return DataResponse(data=VersionCompareResponse(**comparison), message="Versions compared successfully")


@router.post("/{content_type}/{content_id}/restore/{version_id}", response_model=DataResponse)
async def restore_version(
    content_type: str,
    content_id: int,
    version_id: int,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Restore a content item to a snapshot. The current state is snapshotted first."""
    item = await guard.restore(content_type, content_id, version_id, actor)
    return DataResponse(data=item, message="Content restored successfully")


@router.post("/{content_type}/{content_id}/submit-for-review", response_model=DataResponse)
async def submit_for_review(
    content_type: str,
    content_id: int,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Submit a draft content item for review."""
    review = await guard.submit_for_review(content_type, content_id, actor)
    return DataResponse(data=ReviewResponse.model_validate(review), message="Content submitted for review")


@router.post("/{content_type}/{content_id}/approve-review", response_model=DataResponse)
async def approve_review(
    content_type: str,
    content_id: int,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
    request: ApproveReviewRequest | None = None,
) -> DataResponse:
    """Approve the pending review and publish the content item."""
    comment = request.review_comment if request is not None else None
    item = await guard.approve_review(content_type, content_id, actor, comment=comment)
    return DataResponse(data=item, message="Review approved and content published")


@router.post("/{content_type}/{content_id}/reject-review", response_model=DataResponse)
async def reject_review(
    content_type: str,
    content_id: int,
    request: RejectReviewRequest,
    actor: Annotated[ActorContext, Depends(get_current_admin)],
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """Reject the pending review. The content status is left unchanged."""
    item = await guard.reject_review(
        content_type,
        content_id,
        actor,
        comment=request.review_comment,
        rejection_reason=request.rejection_reason,
    )
    return DataResponse(data=item, message="Review rejected")


@router.get("/{content_type}/{content_id}/reviews", response_model=DataResponse)
async def list_reviews(
    content_type: str,
    content_id: int,
    guard: Annotated[LifecycleGuard, Depends(get_lifecycle_guard)],
) -> DataResponse:
    """List every review of a content item, most recent first."""
    reviews = await guard.list_reviews(content_type, content_id)
    return DataResponse(
        data=[ReviewResponse.model_validate(review) for review in reviews],
        message="Reviews retrieved successfully",
    )
