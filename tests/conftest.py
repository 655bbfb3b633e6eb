"""Test fixtures for the content lifecycle engine.

Provides:
- actor_id / actor: A fake admin ActorContext for service and API tests
- clock: A deterministic clock that advances one second per reading
- engine / session_factory / session: An in-memory SQLite database with every table
- mock_audit_repo: A mock AuditLogRepository that captures append() calls

Helpers:
- SteppingClock: The clock behind the ``clock`` fixture
- build_guard(): A LifecycleGuard wired to real repositories on one session
- seed_content(): Insert a content row directly, bypassing the guard
- make_fake_audit_entry(): A transient AuditLog for export and API tests
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from content_lifecycle_engine.adapters.audit_log import AuditLogRepository
from content_lifecycle_engine.adapters.content import ContentRegistry, build_default_registry
from content_lifecycle_engine.adapters.database import Base, build_session_factory
from content_lifecycle_engine.adapters.repositories import ContentVersionRepository, ReviewRepository
from content_lifecycle_engine.core import models  # noqa: F401 register every table on Base.metadata
from content_lifecycle_engine.core.interfaces import ActorContext, IAuditLogRepository
from content_lifecycle_engine.core.models import AuditLog, Unit
from content_lifecycle_engine.core.services import AuditService, LifecycleGuard, VersionService

START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


class SteppingClock:
    """Clock returning START, START + 1s, START + 2s, ... on successive calls."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + self.step
        return now


@pytest.fixture()
def actor_id() -> int:
    """Return a fixed admin id for consistent test assertions.

    Returns:
        A deterministic admin user id.
    """
    return 7


@pytest.fixture()
def actor(actor_id: int) -> ActorContext:
    """Create a fake admin ActorContext.

    Args:
        actor_id: Injected admin id fixture.

    Returns:
        ActorContext with the admin role and a fixed IP / user agent.
    """
    return ActorContext(actor_id=actor_id, roles=("admin",), ip_address="203.0.113.5", user_agent="pytest-agent")


@pytest.fixture()
def clock() -> SteppingClock:
    """Create a deterministic clock starting at 2026-03-01 09:00 UTC."""
    return SteppingClock()


@pytest_asyncio.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine with every table created.

    StaticPool keeps the single in-memory database alive across sessions.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory configured exactly as in production."""
    return build_session_factory(engine)


@pytest_asyncio.fixture()
async def session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Yield one session on the in-memory database."""
    async with session_factory() as db_session:
        yield db_session


@pytest.fixture()
def mock_audit_repo() -> AsyncMock:
    """Create a mock AuditLogRepository.

    Returns:
        AsyncMock with append() echoing back a transient AuditLog.
    """
    repo = AsyncMock()

    async def append(**kwargs: Any) -> AuditLog:
        return AuditLog(id=1, **kwargs)

    repo.append.side_effect = append
    repo.query.return_value = ([], 0)
    repo.list_all.return_value = []
    return repo


def build_guard(
    session: AsyncSession,
    clock: SteppingClock,
    audit_repo: IAuditLogRepository | None = None,
) -> tuple[LifecycleGuard, ContentRegistry]:
    """Construct a LifecycleGuard on real repositories sharing one session.

    Args:
        session: The test session.
        clock: Engine clock.
        audit_repo: Optional replacement audit repository (e.g. one that fails).

    Returns:
        Tuple of (guard, registry).
    """
    registry = build_default_registry(session)
    version_service = VersionService(ContentVersionRepository(session), registry, clock=clock)
    audit_service = AuditService(audit_repo or AuditLogRepository(session), clock=clock)
    guard = LifecycleGuard(
        session=session,
        registry=registry,
        version_service=version_service,
        audit_service=audit_service,
        review_repo=ReviewRepository(session),
        clock=clock,
    )
    return guard, registry


async def seed_content(session: AsyncSession, model: type = Unit, **attributes: Any) -> Any:
    """Insert and commit a content row without going through the guard.

    Args:
        session: The test session.
        model: Content model class (default Unit).
        attributes: Column overrides.

    Returns:
        The committed ORM object.
    """
    values: dict[str, Any] = {
        "title": "Greetings",
        "description": "Saying hello",
        "status": "draft",
        "review_status": "none",
        "created_at": datetime(2026, 2, 1, 8, 0, tzinfo=UTC),
    }
    values.update(attributes)
    item = model(**values)
    session.add(item)
    await session.commit()
    return item


def make_fake_audit_entry(
    entry_id: int = 1,
    user_id: int | None = 7,
    action: str = "publish",
    area: str = "units",
    status: str = "success",
    performed_at: datetime = START,
) -> AuditLog:
    """Create a transient AuditLog for export and API tests.

    Args:
        entry_id: Entry id.
        user_id: Acting admin id, None for the system.
        action: Action verb.
        area: Content-type tag.
        status: Outcome.
        performed_at: Timestamp.

    Returns:
        An AuditLog that is not attached to any session.
    """
    return AuditLog(
        id=entry_id,
        user_id=user_id,
        action=action,
        area=area,
        auditable_type="Unit",
        auditable_id=3,
        status=status,
        changes={"status": {"old": "draft", "new": "published"}},
        ip_address="203.0.113.5",
        user_agent="pytest-agent",
        performed_at=performed_at,
    )
