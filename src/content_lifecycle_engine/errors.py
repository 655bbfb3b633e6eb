"""Error taxonomy for the content lifecycle engine.

Every error raised by the engine is a ContentEngineError subclass carrying
the HTTP status it maps to. The FastAPI exception handlers in main.py render
them as the admin API error envelope:

    {"success": false, "message": "...", "errors": {...}}

- ValidationError    — 422, malformed input
- NotFoundError      — 404, missing content / version / pending review
- ConflictError      — 409, illegal state transition or export window
- UnauthorizedError  — 403, caller is not an admin
- InternalError      — 500, storage or transaction failure (detail is logged, never returned)
"""

from typing import Any


class ContentEngineError(Exception):
    """Base class for all engine errors.

    Args:
        message: Human-readable message returned to the caller.
        errors: Optional structured detail (field -> message).
    """

    status_code: int = 400

    def __init__(self, message: str, errors: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self) -> dict[str, Any]:
        """Render the error envelope body."""
        body: dict[str, Any] = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(ContentEngineError):
    """Malformed input, rejected before any state is touched."""

    status_code = 422

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, errors={field: message} if field else None)
        self.field = field


class NotFoundError(ContentEngineError):
    """A content item, version, review or audit entry does not exist."""

    status_code = 404

    def __init__(self, resource: str, resource_id: Any | None = None, message: str | None = None) -> None:
        if message is None:
            message = f"{resource} not found." if resource_id is None else f"{resource} {resource_id} not found."
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class ConflictError(ContentEngineError):
    """The requested transition is not legal from the current state."""

    status_code = 409


class UnauthorizedError(ContentEngineError):
    """The caller is not allowed to use the admin surface."""

    status_code = 403


class InternalError(ContentEngineError):
    """Storage or transaction failure. The underlying cause is logged only."""

    status_code = 500

    def __init__(self, message: str = "An internal error occurred. The operation was not applied.") -> None:
        super().__init__(message)
