"""
FastAPI Main Application
Entry point for the benefit coverage engine API
Source: https://fastapi.tiangolo.com/
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.config import settings
from src.api.routes import claims, health
from src.db.connection import close_db_connection, init_models
from src.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging(
    level=settings.LOG_LEVEL,
    log_file=settings.LOG_FILE,
    json_logs=settings.json_logs,
)

logger = get_logger(__name__)

API_TITLE = "Benefit Coverage Engine"
API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[no-untyped-def]  # noqa: ARG001
    """
    Application lifespan manager.

    Source: https://fastapi.tiangolo.com/advanced/events/
    """
    # Startup
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")
    logger.info(f"Debug mode: {settings.DEBUG}")

    if settings.is_sqlite:
        # Local/dev databases are created in place; PostgreSQL goes through alembic
        await init_models()
        logger.info("SQLite schema created")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await close_db_connection()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    application = FastAPI(
        title=API_TITLE,
        description="Claim adjudication: coverage resolution, limits and the claim lifecycle",
        version=API_VERSION,
        docs_url="/docs" if not settings.is_production else None,  # Disable docs in production
        redoc_url="/redoc" if not settings.is_production else None,
        openapi_url="/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # CORS middleware
    # Source: https://fastapi.tiangolo.com/tutorial/cors/
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
    )

    application.include_router(health.router)
    application.include_router(claims.router)

    @application.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "environment": settings.ENVIRONMENT,
            "docs": "/docs" if not settings.is_production else "disabled",
        }

    return application


app = create_app()
