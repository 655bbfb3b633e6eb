"""Database engine, session factory and declarative base.

Content tables, content_versions, audit_logs and reviews all live in the
same database so that a guard operation (snapshot + mutation + audit entry)
commits or rolls back as one transaction.

Key exports:
- Base                  — DeclarativeBase shared by every ORM model
- init_database(...)    — Call at startup to create the engine
- close_database()      — Call at shutdown to dispose the engine
- get_session_factory() — The initialized async_sessionmaker
- get_db_session()      — FastAPI dependency yielding one session per request
"""

from collections.abc import AsyncGenerator

from sqlalchemy import BigInteger, Integer
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from content_lifecycle_engine.observability import get_logger

logger = get_logger(__name__)

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Declarative base for all engine and content models."""


# Module-level engine and session factory: initialized by init_database()
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used by the application and the tests.

    expire_on_commit is disabled so items returned by a guard operation stay
    readable after the operation has committed.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def init_database(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
    echo: bool = False,
) -> AsyncEngine:
    """Initialize the database engine and session factory.

    Args:
        database_url: SQLAlchemy async connection URL.
        pool_size: Connection pool size (not applied to SQLite).
        max_overflow: Max overflow connections above pool_size (not applied to SQLite).
        pool_timeout: Seconds to wait for a connection before raising.
        echo: Echo SQL statements.

    Returns:
        The created AsyncEngine.
    """
    global _engine, _session_factory  # noqa: PLW0603

    logger.info("Initializing database engine", pool_size=pool_size, max_overflow=max_overflow)

    engine_kwargs: dict[str, object] = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_timeout=pool_timeout)

    _engine = create_async_engine(database_url, **engine_kwargs)
    _session_factory = build_session_factory(_engine)

    logger.info("Database engine initialized")
    return _engine


async def close_database() -> None:
    """Dispose the database engine. Must be called at application shutdown."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        logger.info("Disposing database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the initialized session factory.

    Raises:
        RuntimeError: If init_database() has not been called yet.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database has not been initialized. Call init_database() in the application lifespan handler."
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a database session for one request.

    Guard operations commit their own transaction; anything left open when
    the request fails is rolled back here.

    Yields:
        AsyncSession: A session bound to the primary database.
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
