"""Liveness, readiness and version probes."""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.config import get_settings
from fiquest.db.models import Badge, Challenge
from fiquest.dependencies import get_db
from fiquest.redis_client import get_redis_or_none
from fiquest.tasks import detached

router = APIRouter()


async def _check_catalog(db: AsyncSession) -> str:
    challenges = await db.scalar(
        select(func.count(Challenge.id)).where(Challenge.auto_verifiable.is_(True), Challenge.is_active.is_(True))
    )
    badges = await db.scalar(select(func.count(Badge.id)).where(Badge.is_active.is_(True)))
    return f"{challenges} auto-verifiable challenges, {badges} badges"


async def _check_redis() -> str:
    redis = get_redis_or_none()
    if redis is None:
        return "disabled"
    await redis.ping()
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_db)) -> dict[str, object]:  # noqa: B008
    """Database and Redis reachability, catalog size, and detached task counters.

    Redis is optional: an API started without it reports ``disabled``.
    """
    checks: dict[str, str] = {}
    try:
        checks["catalog"] = await _check_catalog(db)
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"
    try:
        checks["redis"] = await _check_redis()
    except Exception as exc:
        checks["redis"] = f"error: {exc}"

    healthy = checks["database"] == "ok" and checks["redis"] in ("ok", "disabled")
    return {
        "status": "ready" if healthy else "degraded",
        "checks": checks,
        "detached_tasks": {"pending": detached.pending, "failed": detached.failure_count},
    }


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
