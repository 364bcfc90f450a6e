"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.router import api_router
from app.config import settings
from app.core.exceptions import AppException
from app.core.redis_client import check_redis_connection, close_redis_connection
from app.database import check_database_connection, engine
from app.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.middleware.logging import LoggingMiddleware, configure_logging

configure_logging()
logger = structlog.get_logger()

EXCEPTION_HANDLERS = (
    (AppException, app_exception_handler),
    (StarletteHTTPException, http_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (Exception, general_exception_handler),
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Check backing services on startup and release them on shutdown.

    The API still starts when PostgreSQL or Redis is down; the detailed
    health endpoint reports the degraded state.
    """
    logger.info(
        "application_startup",
        environment=settings.environment,
        schedule_timezone=settings.schedule_timezone,
        slot_hours=f"{settings.slot_day_start_hour:02d}-{settings.slot_day_end_hour:02d}",
    )

    for name, check in (("database", check_database_connection), ("redis", check_redis_connection)):
        if await check():
            logger.info(f"{name}_connected")
        else:
            logger.error(f"{name}_connection_failed")

    yield

    logger.info("application_shutdown")
    await engine.dispose()
    close_redis_connection()
    logger.info("connections_closed")


def create_app() -> FastAPI:
    """Build the booking API with middleware, error handlers and metrics."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Appointment booking, slot conflict checks and visit lifecycle for hospitals",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    application.add_middleware(LoggingMiddleware)

    for exc_class, handler in EXCEPTION_HANDLERS:
        application.add_exception_handler(exc_class, handler)  # type: ignore[arg-type]

    application.include_router(api_router, prefix=settings.api_v1_prefix)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    ).instrument(application).expose(application, endpoint="/metrics", include_in_schema=False)

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
