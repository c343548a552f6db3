"""arq worker: social event stream consumer and invitation cleanup cron.

Import path for arq CLI: arq fiquest.workers.settings.WorkerSettings
"""

from __future__ import annotations

import asyncio
import json
import logging

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings

from fiquest.config import get_settings
from fiquest.database import close_db, independent_session, init_db
from fiquest.gamification.dispatcher import DispatchError, dispatch_social_event
from fiquest.middleware.logging import setup_logging
from fiquest.redis_client import connect
from fiquest.social.invitation_service import run_cleanup_sweep
from fiquest.tasks import detached

logger = logging.getLogger(__name__)


def parse_event(fields: dict) -> tuple[int, str] | None:  # type: ignore[type-arg]
    """(user_id, event) from a stream entry, or None when malformed."""
    try:
        data = json.loads(fields.get("data", "{}"))
        return int(data["user_id"]), str(data["event"])
    except (TypeError, ValueError, KeyError):
        return None


async def handle_message(redis_client: aioredis.Redis, msg_id: str, fields: dict) -> dict | None:  # type: ignore[type-arg]
    """Dispatch one stream entry and acknowledge it.

    Malformed entries are acknowledged and dropped. Entries whose dispatch
    failed stay pending until ``reclaim_pending`` retries them.
    """
    settings = get_settings()
    parsed = parse_event(fields)
    if parsed is None:
        logger.warning("Dropping malformed social event %s: %r", msg_id, fields)
        await redis_client.xack(settings.social_events_stream, settings.social_events_group, msg_id)
        return None

    user_id, event_name = parsed
    try:
        outcome = await dispatch_social_event(user_id, event_name)
    except DispatchError:
        logger.exception("Failed to dispatch %s for user %d (%s)", event_name, user_id, msg_id)
        return None

    await redis_client.xack(settings.social_events_stream, settings.social_events_group, msg_id)
    if outcome["badges"] or outcome["challenges"]:
        logger.info(
            "Event %s for user %d: badges=%s challenges=%s",
            event_name, user_id, outcome["badges"], outcome["challenges"],
        )
    return outcome


async def reclaim_pending(redis_client: aioredis.Redis) -> int:
    """Claim entries left unacknowledged past the idle threshold and handle them again.

    Covers failed dispatches and entries read by a consumer that died before
    acknowledging. Returns the number of entries handled.
    """
    settings = get_settings()
    _next_id, messages, *_ = await redis_client.xautoclaim(
        settings.social_events_stream,
        settings.social_events_group,
        settings.social_events_consumer,
        min_idle_time=settings.social_events_reclaim_idle_ms,
        start_id="0-0",
        count=100,
    )
    handled = 0
    for msg_id, fields in messages:
        if msg_id is None:
            continue
        # Trimmed entries come back without fields and are dropped as malformed
        try:
            await handle_message(redis_client, msg_id, fields or {})
        except Exception:
            logger.exception("Failed to retry social event %s", msg_id)
            continue
        handled += 1
    if handled:
        logger.info("Retried %d pending social events", handled)
    return handled


async def startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize database, Redis and the consumer group on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    redis_client = connect(settings.redis_url, max_connections=20)
    try:
        await redis_client.xgroup_create(
            settings.social_events_stream, settings.social_events_group, id="0", mkstream=True,
        )
        logger.info("Created consumer group %s for %s", settings.social_events_group, settings.social_events_stream)
    except aioredis.ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise

    ctx["redis_client"] = redis_client
    ctx["running"] = True
    # One long-running consumer job per worker pool; the job id dedupes restarts
    await ctx["redis"].enqueue_job("consume_social_events", _job_id="consume_social_events")
    logger.info("Social event worker started (consumer=%s)", settings.social_events_consumer)


async def shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Stop consuming, finish detached work and release connections."""
    ctx["running"] = False
    await detached.drain()

    redis_client: aioredis.Redis | None = ctx.get("redis_client")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Social event worker shut down")


async def consume_social_events(ctx: dict) -> None:  # type: ignore[type-arg]
    """Main consumer task. Runs until shutdown."""
    settings = get_settings()
    redis_client: aioredis.Redis = ctx["redis_client"]
    streams = {settings.social_events_stream: ">"}
    reclaim_every = settings.social_events_reclaim_idle_ms / 1000
    next_reclaim = 0.0

    while ctx.get("running", False):
        now = asyncio.get_running_loop().time()
        if now >= next_reclaim:
            next_reclaim = now + reclaim_every
            try:
                await reclaim_pending(redis_client)
            except aioredis.ResponseError as e:
                logger.error("XAUTOCLAIM error: %s", e)

        try:
            events = await redis_client.xreadgroup(
                groupname=settings.social_events_group,
                consumername=settings.social_events_consumer,
                streams=streams,
                count=100,
                block=5000,
            )
        except aioredis.ResponseError as e:
            logger.error("XREADGROUP error: %s", e)
            await asyncio.sleep(1)
            continue

        for _stream, messages in events or []:
            for msg_id, fields in messages:
                try:
                    await handle_message(redis_client, msg_id, fields)
                except Exception:
                    logger.exception("Failed to process social event %s", msg_id)


async def cleanup_invitations(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Daily sweep of settled and expired challenge invitations."""
    async with independent_session() as db:
        return await run_cleanup_sweep(db)


class WorkerSettings:
    """arq worker settings for the social event consumer."""

    functions = [consume_social_events, cleanup_invitations]
    cron_jobs = [
        cron(cleanup_invitations, hour={get_settings().cleanup_hour_utc}, minute={0}, run_at_startup=False),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 4
    job_timeout = 0  # consume_social_events runs forever
    allow_abort_jobs = True
