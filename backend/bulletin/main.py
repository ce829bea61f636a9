"""
Bulletin Forum Backend Application.

FastAPI application publishing forum threads and posts
through permission checks, content moderation and approval gating.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from loguru import logger

from bulletin.api.v1 import router as api_v1_router
from bulletin.core.cache import close_cache
from bulletin.core.config import settings
from bulletin.core.database import close_db, get_session_maker, init_db
from bulletin.core.errors import register_error_handlers
from bulletin.core.events import get_dispatcher
from bulletin.modules.media import ImageAssociator
from bulletin.modules.notifications import NotificationFanout


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Bulletin Forum Backend...")

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    # Post-commit side effects
    session_maker = get_session_maker()
    dispatcher = get_dispatcher()
    dispatcher.subscribe("notifications", NotificationFanout(session_maker).handle)
    dispatcher.subscribe("images", ImageAssociator(session_maker).handle)
    await dispatcher.start()

    logger.info("Bulletin Forum Backend started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Bulletin Forum Backend...")

    await dispatcher.stop()
    await close_cache()
    await close_db()

    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
        Bulletin Forum Backend

        ## Features

        - **Publishing**: Threads and replies with denormalised counters
        - **Moderation**: Permissions, banned-word filtering and approval queue
        - **Notifications**: Replies, subscriptions and @mentions

        ## Documentation

        - [API Docs](/docs) - Interactive Swagger UI
        - [ReDoc](/redoc) - Alternative documentation
        """,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Include API router
    app.include_router(api_v1_router, prefix=settings.api_v1_prefix)

    @app.get("/health", tags=["System"])
    async def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {
            "status": "healthy",
            "version": settings.app_version,
        }

    @app.get("/", tags=["System"])
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "api": settings.api_v1_prefix,
        }

    return app


app = create_app()
