"""Admin identity dependency.

Authentication happens in the gateway in front of the service, which
forwards the verified identity as headers (names configurable in Settings):

- X-Actor-Id    — integer admin user id
- X-Actor-Roles — comma-separated roles; must include the admin role

get_current_admin() turns those headers, plus the caller's IP address and
user agent, into the ActorContext every engine operation receives.
"""

from typing import Annotated

from fastapi import Depends, Request

from content_lifecycle_engine.core.interfaces import ActorContext
from content_lifecycle_engine.errors import UnauthorizedError
from content_lifecycle_engine.observability import get_logger
from content_lifecycle_engine.settings import Settings, get_settings

logger = get_logger(__name__)


def get_current_admin(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> ActorContext:
    """Resolve the calling admin from the gateway identity headers.

    Args:
        request: The incoming request.
        settings: Service settings (header names, admin role).

    Returns:
        ActorContext for the caller.

    Raises:
        UnauthorizedError: If the identity headers are missing or malformed, or
            the caller does not hold the admin role.
    """
    raw_actor_id = request.headers.get(settings.actor_id_header, "").strip()
    roles = tuple(
        role.strip() for role in request.headers.get(settings.actor_roles_header, "").split(",") if role.strip()
    )

    if not raw_actor_id.isdigit() or settings.admin_role not in roles:
        logger.warning(
            "Rejected non-admin request",
            path=request.url.path,
            actor_id=raw_actor_id or None,
            roles=list(roles),
        )
        raise UnauthorizedError("Unauthorized. Admin access required.")

    return ActorContext(
        actor_id=int(raw_actor_id),
        roles=roles,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
