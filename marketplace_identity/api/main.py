"""
Application factory for the identity HTTP service.

``create_app`` assembles routes, error handlers and the lifespan that owns
the connection pool and the identity service. The module-level ``app`` is
what uvicorn serves: ``uvicorn marketplace_identity.api.main:app``.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import psycopg
from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from marketplace_identity.adapters.repository.postgres import run_migrations
from marketplace_identity.api.dependencies import build_identity_service
from marketplace_identity.api.errors import register_exception_handlers
from marketplace_identity.api.v1 import router as v1_router
from marketplace_identity.config.settings import Settings, get_settings
from marketplace_identity.domain.exceptions import DependencyError

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"

tags_metadata = [
    {
        "name": "v1",
        "description": "Marketplace Identity API v1 - Accounts, verification codes and sessions",
    },
]


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Own the process-wide resources for the lifetime of the app.

    Startup opens the pool, applies migrations and builds one
    IdentityService shared by all requests. Shutdown waits for queued OTP
    deliveries before closing the pool.
    """
    settings = get_settings()
    configure_logging(settings)

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )
    run_migrations(pool)
    service = build_identity_service(settings, pool)
    app.state.pool = pool
    app.state.identity_service = service
    logger.info("Identity service ready (notification backend: %s)", settings.notification_backend)

    try:
        yield
    finally:
        service.dispatcher.close(wait=True)
        pool.close()
        logger.info("Identity service stopped")


def health_check(request: Request) -> dict[str, str]:
    """Report healthy only when the record store answers."""
    try:
        with request.app.state.pool.connection() as conn:
            conn.execute("SELECT 1")
    except psycopg.Error as e:
        raise DependencyError("Database unavailable") from e
    return {"status": "healthy"}


def create_app() -> FastAPI:
    app = FastAPI(
        title="mura-identity",
        description="Marketplace Identity API - Registration, OTP verification, "
        "session tokens and password recovery for customers, vendors and riders",
        version=API_VERSION,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(v1_router, prefix="/v1")
    app.add_api_route("/health", health_check, methods=["GET"], summary="Database health check")
    return app


app = create_app()
