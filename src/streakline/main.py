"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from streakline.config import get_settings
from streakline.database import close_db, init_db
from streakline.health.router import router as health_router
from streakline.middleware import setup_middleware
from streakline.redis_client import close_redis, init_redis
from streakline.streaks.router import router as streaks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.redis_url:
        await init_redis(settings.redis_url)
    else:
        logger.warning("STREAK_REDIS_URL is empty; change notifications are disabled")

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Streakline API",
        description="Daily activity streaks: activity log, streak records and scheduled sweeps",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(streaks_router)

    return app
