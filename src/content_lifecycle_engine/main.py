"""Content lifecycle engine service entry point.

Initializes the FastAPI application with:
- Structured logging (structlog)
- Primary database shared by content, versions, audit logs and reviews
- Exception handlers rendering the admin error envelope
- The admin router and a /health endpoint
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from content_lifecycle_engine.adapters.database import Base, close_database, init_database
from content_lifecycle_engine.api.router import router
from content_lifecycle_engine.errors import ContentEngineError, InternalError
from content_lifecycle_engine.observability import configure_logging, get_logger
from content_lifecycle_engine.settings import get_settings

logger = get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle.

    Args:
        app: The FastAPI application instance.

    Yields:
        None
    """
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    logger.info("Initializing primary database", service=settings.service_name)
    engine = init_database(
        database_url=settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        echo=settings.db_echo,
    )
    if settings.db_create_tables:
        logger.info("Creating missing tables")
        async with engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)

    app.state.settings = settings
    logger.info("Content lifecycle engine startup complete")

    yield

    logger.info("Shutting down content lifecycle engine")
    await close_database()
    logger.info("Content lifecycle engine shutdown complete")


# ---------------------------------------------------------------------------
# Exception handlers: every error leaves as {"success": false, "message": ...}
# ---------------------------------------------------------------------------


async def engine_error_handler(request: Request, exc: ContentEngineError) -> JSONResponse:
    """Render a ContentEngineError as the error envelope with its status code."""
    if exc.status_code >= 500:
        logger.error("Engine error", path=request.url.path, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request schema violations as a 422 error envelope keyed by field."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
        errors.setdefault(field or "request", error.get("msg", "Invalid value"))
    return JSONResponse(status_code=422, content={"success": False, "message": "Validation failed", "errors": errors})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures and return a generic 500 without internal detail."""
    logger.exception("Unhandled error", path=request.url.path, error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content=InternalError().to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the error envelope handlers to an application."""
    app.add_exception_handler(ContentEngineError, engine_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


def create_app() -> FastAPI:
    """Build the FastAPI application.

    Returns:
        The configured application.
    """
    application = FastAPI(title="content-lifecycle-engine", version="0.1.0", lifespan=lifespan)
    register_exception_handlers(application)

    @application.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.service_name}

    application.include_router(router)
    return application


app: FastAPI = create_app()
