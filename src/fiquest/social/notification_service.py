"""Notification creation and delivery.

Notifications are:
1. Persisted in the database
2. Pushed to the user via Redis pub/sub on ``ws:user:{user_id}``

Delivery is always best-effort: a failed notification never affects the
reward or invitation that triggered it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.database import independent_session
from fiquest.db.models import Notification
from fiquest.redis_client import get_redis_or_none, publish_to_user, user_channel

logger = logging.getLogger(__name__)

VALID_TYPES = {
    "BADGE_EARNED",
    "LEVEL_UP",
    "CHALLENGE_INVITE",
    "CHALLENGE_INVITE_ACCEPTED",
    "CHALLENGE_COMPLETED",
}


async def create_notification(
    db: AsyncSession,
    user_id: int,
    type_: str,
    title: str,
    message: str | None = None,
    data: dict[str, Any] | None = None,
    redis: Any | None = None,
) -> Notification:
    """Persist a notification on ``db`` and push it to the user's channel."""
    if type_ not in VALID_TYPES:
        raise ValueError(f"Invalid notification type: {type_}. Must be one of {VALID_TYPES}")

    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title,
        message=message,
        data=data or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    await db.flush()

    if redis is not None:
        payload = {
            "event": "notification",
            "data": {
                "id": str(notification.id),
                "type": notification.type,
                "title": notification.title,
                "message": notification.message,
                "data": notification.data,
                "timestamp": notification.created_at.isoformat(),
                "read": False,
            },
        }
        try:
            await publish_to_user(redis, user_id, payload)
        except Exception:
            logger.warning("Failed to push notification via %s", user_channel(user_id), exc_info=True)

    return notification


async def send_notification(
    user_id: int,
    type_: str,
    title: str,
    message: str | None = None,
    data: dict[str, Any] | None = None,
) -> bool:
    """Create a notification in its own transaction. Returns False on failure."""
    try:
        async with independent_session() as db, db.begin():
            await create_notification(db, user_id, type_, title, message, data, redis=get_redis_or_none())
    except Exception:
        logger.warning("Failed to send %s notification to user %d", type_, user_id, exc_info=True)
        return False
    return True
