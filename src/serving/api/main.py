"""
FastAPI Application Factory

Creates and configures the admin API of the travel data store.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from src.cache import UnknownCategoryError
from src.config import get_settings
from src.config.logging import configure_logging
from src.database.connection import close_database, init_database
from src.migrations import MigrationError, apply_migrations
from src.serving.api.middleware import RequestLoggingMiddleware
from src.serving.api.routes import (
    cache_router,
    facts_router,
    health_router,
    migrations_router,
)

settings = get_settings()
logger = structlog.get_logger(__name__)


async def migration_error_handler(request: Request, exc: MigrationError) -> JSONResponse:
    logger.error("Migration failed", migration=exc.migration, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "detail": str(exc),
            "migration": exc.migration,
            "statement": exc.statement_preview,
        },
    )


async def bad_request_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def create_app(
    database_url: Optional[str] = None,
    apply_on_startup: Optional[bool] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        database_url: Store URL, defaults to the configured one
        apply_on_startup: Apply pending migrations in the lifespan,
            defaults to settings.apply_migrations_on_startup

    Returns:
        Configured FastAPI app instance
    """
    if apply_on_startup is None:
        apply_on_startup = settings.apply_migrations_on_startup

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        logger.info("Starting travel data store API", environment=settings.app_env)

        engine = await init_database(database_url)
        if apply_on_startup:
            applied = await apply_migrations(engine)
            logger.info("Startup migrations complete", applied=applied)

        yield

        logger.info("Shutting down...")
        await close_database()

    app = FastAPI(
        title="Travel Data Store API",
        description="Schema migrations, trip facts and search cache administration",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(MigrationError, migration_error_handler)
    app.add_exception_handler(UnknownCategoryError, bad_request_handler)
    app.add_exception_handler(ValueError, bad_request_handler)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(migrations_router, prefix="/api/v1/migrations", tags=["Migrations"])
    app.include_router(facts_router, prefix="/api/v1/facts", tags=["Facts"])
    app.include_router(cache_router, prefix="/api/v1/cache", tags=["Cache"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app
