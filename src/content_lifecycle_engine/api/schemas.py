"""Pydantic request and response schemas for the admin API.

Every response uses the admin envelope:

    {"success": true, "data": ..., "message": "..."}

and paginated listings add a ``pagination`` block. Content items are
returned as their serialized attribute map, since the columns differ per
content type.

Resources:
- Content — create / update / status change / bulk status
- Review — submit / approve / reject
- ContentVersion — snapshot listing and comparison
- AuditLog — query, single entry, statistics
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ContentStatus = Literal["draft", "published", "archived"]
RejectionReason = Literal["content_issues", "formatting_issues", "accuracy_issues", "other"]


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class DataResponse(BaseModel):
    """Success envelope."""

    success: bool = Field(default=True, description="Always true for 2xx responses")
    data: Any = Field(default=None, description="Response payload")
    message: str = Field(default="Success", description="Human-readable outcome")


class Pagination(BaseModel):
    """Pagination block of a listing response."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = Field(description="Total matching records")
    per_page: int = Field(description="Page size")
    current_page: int = Field(description="Current page, 1-indexed")
    last_page: int = Field(description="Last page number")
    from_: int | None = Field(default=None, alias="from", description="Position of the first record on this page")
    to: int | None = Field(default=None, description="Position of the last record on this page")


class PaginatedResponse(BaseModel):
    """Success envelope for paginated listings."""

    success: bool = Field(default=True)
    data: list[Any] = Field(description="Records on this page")
    pagination: Pagination
    message: str = Field(default="Success")


class ErrorResponse(BaseModel):
    """Error envelope (4xx / 5xx)."""

    success: bool = Field(default=False)
    message: str = Field(description="Human-readable error")
    errors: dict[str, Any] | None = Field(default=None, description="Field -> message detail")


# ---------------------------------------------------------------------------
# Content schemas
# ---------------------------------------------------------------------------


class ContentCreateRequest(BaseModel):
    """Request body for creating a content item.

    Type-specific columns (unit position, quiz passing score, ...) are
    accepted as extra fields. status, review_status and published_at are
    always set by the engine.
    """

    model_config = ConfigDict(extra="allow")

    title: str = Field(min_length=1, max_length=255, description="Content title")
    description: str | None = Field(default=None, description="Optional description")


class ContentUpdateRequest(BaseModel):
    """Request body for updating a content item. Only the fields sent are changed."""

    model_config = ConfigDict(extra="allow")

    title: str | None = Field(default=None, min_length=1, max_length=255, description="Content title")
    description: str | None = Field(default=None, description="Optional description")

    @field_validator("title")
    @classmethod
    def title_not_null(cls, value: str | None) -> str:
        """Reject an explicit null title; omit the field to leave it unchanged."""
        if value is None:
            raise ValueError("The title field cannot be null.")
        return value


class StatusUpdateRequest(BaseModel):
    """Request body for PATCH /admin/{type}/{id}/status."""

    status: ContentStatus = Field(description="Target status: draft | published | archived")


class BulkStatusItem(BaseModel):
    """One target of a bulk status update."""

    type: str = Field(description="Content-type tag, e.g. units")
    id: int = Field(ge=1, description="Content item id")


class BulkStatusRequest(BaseModel):
    """Request body for POST /admin/content/bulk-status."""

    items: list[BulkStatusItem] = Field(min_length=1, max_length=100, description="Items to update")
    status: ContentStatus = Field(description="Target status for every item")


class BulkStatusResult(BaseModel):
    """Per-item outcome of a bulk status update."""

    type: str
    id: int
    success: bool
    message: str


# ---------------------------------------------------------------------------
# Review schemas
# ---------------------------------------------------------------------------


class ApproveReviewRequest(BaseModel):
    """Request body for approving a pending review."""

    review_comment: str | None = Field(default=None, max_length=1000, description="Optional reviewer comment")


class RejectReviewRequest(BaseModel):
    """Request body for rejecting a pending review."""

    review_comment: str = Field(min_length=1, max_length=1000, description="Why the content was rejected")
    rejection_reason: RejectionReason = Field(
        description="content_issues | formatting_issues | accuracy_issues | other",
    )


class ReviewResponse(BaseModel):
    """Response schema for a review."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Review id")
    content_type: str = Field(description="Content-type tag")
    content_id: int = Field(description="Content item id")
    submitted_by: int | None = Field(description="Submitting admin id")
    status: str = Field(description="pending | approved | rejected")
    review_comment: str | None = Field(description="Reviewer comment")
    rejection_reason: str | None = Field(description="Rejection reason, when rejected")
    reviewed_by: int | None = Field(description="Reviewing admin id")
    submitted_at: datetime = Field(description="Submission timestamp (UTC)")
    reviewed_at: datetime | None = Field(description="Decision timestamp (UTC)")


# ---------------------------------------------------------------------------
# ContentVersion schemas
# ---------------------------------------------------------------------------


class ContentVersionResponse(BaseModel):
    """Response schema for a content snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Version id")
    content_type: str = Field(description="Content-type tag")
    content_id: int = Field(description="Content item id")
    content_data: dict[str, Any] = Field(description="Complete attribute map at snapshot time")
    label: str = Field(description="before_publish | before_unpublish | before_restore | before_archive | manual")
    created_by: int | None = Field(description="Admin id that triggered the snapshot")
    created_at: datetime = Field(description="Snapshot timestamp (UTC)")


class VersionCompareResponse(BaseModel):
    """Field diff between two snapshots of one item."""

    from_version: int
    to_version: int
    changes: dict[str, dict[str, Any]] = Field(description="Changed field -> {old, new}")


# ---------------------------------------------------------------------------
# AuditLog schemas
# ---------------------------------------------------------------------------


class AuditLogResponse(BaseModel):
    """Response schema for an immutable audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Audit entry id")
    user_id: int | None = Field(description="Acting admin id; null when the system acted")
    actor_label: str = Field(description="System or User <id>")
    action: str = Field(description="Action verb")
    area: str = Field(description="Content-type tag")
    auditable_type: str = Field(description="Target model name")
    auditable_id: int = Field(description="Target id")
    status: str = Field(description="success | failure | error")
    changes: dict[str, Any] = Field(description="Diff or payload, shape depends on the action")
    ip_address: str | None = Field(description="Caller IP address")
    user_agent: str | None = Field(description="Caller user agent")
    performed_at: datetime = Field(description="Action timestamp (UTC)")
