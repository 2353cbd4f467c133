"""FastAPI application factory"""

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from twitch_feed import __version__
from twitch_feed.core.config import get_settings
from twitch_feed.core.database import get_database_manager, init_database_manager
from twitch_feed.core.dependencies import close_twitch_api, get_cache
from twitch_feed.core.errors import register_exception_handlers
from twitch_feed.core.logging import setup_logging
from twitch_feed.routers import (
    auth_router,
    followed_router,
    search_router,
    streams_router,
    user_router,
    videos_router,
)
from twitch_feed.services import PostgresSessionStore

logger = logging.getLogger(__name__)

# Track server start time
_start_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    global _start_time
    _start_time = time.time()

    settings = get_settings()

    # Startup
    logger.info("Starting Twitch feed API server")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Frontend URL: {settings.frontend_url}")
    logger.info(f"Session backend: {settings.session_backend}")

    db_manager = None
    if settings.session_backend == "postgres":
        db_manager = init_database_manager(settings.database_url)
        await asyncio.wait_for(db_manager.connect(), timeout=30)
        store = PostgresSessionStore(
            db_manager.pool, max_age_seconds=settings.session_max_age_seconds
        )
        await store.ensure_schema()
        logger.info("Database connected")

    yield

    # Shutdown
    logger.info("Shutting down Twitch feed API server")
    try:
        await close_twitch_api()
        if db_manager is not None:
            await db_manager.disconnect()
            logger.info("Database disconnected")
    except Exception as e:
        logger.exception(f"Error during shutdown: {e}")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    settings = get_settings()

    # Setup logging first
    setup_logging(settings)

    app = FastAPI(
        title="Twitch Feed API",
        description="Followed channels, live streams and merged VODs for a logged-in Twitch user",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Register routers
    app.include_router(auth_router.router)
    app.include_router(followed_router.router)
    app.include_router(streams_router.router)
    app.include_router(videos_router.router)
    app.include_router(search_router.router)
    app.include_router(user_router.router)

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": "twitch-feed-api", "status": "running"}

    # Liveness probe, no external dependency
    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - _start_time),
        }

    @app.get("/status")
    async def status():
        """Readiness / status endpoint with session store health"""
        db_manager = get_database_manager()
        db_ok = None
        if settings.session_backend == "postgres":
            db_ok = db_manager is not None and await db_manager.check_health()
        return {
            "service": "twitch-feed-api",
            "version": __version__,
            "uptime_seconds": int(time.time() - _start_time),
            "session_backend": settings.session_backend,
            "db_connected": db_ok,
            "cache_entries": get_cache().size,
            "environment": settings.environment,
        }

    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        return "pong"

    logger.info("FastAPI application configured")

    return app
