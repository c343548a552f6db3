"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fiquest.challenges.router import router as challenges_router
from fiquest.config import get_settings
from fiquest.database import close_db, independent_session, init_db
from fiquest.gamification.router import router as gamification_router
from fiquest.gamification.seed import seed_catalog
from fiquest.health.router import router as health_router
from fiquest.middleware import setup_middleware
from fiquest.redis_client import close_redis, init_redis
from fiquest.social.router import router as social_router
from fiquest.tasks import detached

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed social challenges and badges (idempotent)
    try:
        async with independent_session() as db:
            await seed_catalog(db)
    except Exception:
        logger.warning("Catalog seeding failed (run `alembic upgrade head` first?)", exc_info=True)

    yield

    # Let in-flight audit rows and notifications finish before closing pools
    await detached.drain()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="FiQuest Progression API",
        description="Progression, badges, rewards and challenge invitations for FiQuest",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)
    app.include_router(challenges_router)
    app.include_router(social_router)

    return app


app = create_app()
