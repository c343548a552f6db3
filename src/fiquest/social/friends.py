"""Friendship lookups. The friendship graph itself is owned by the social service."""

from __future__ import annotations

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.db.models import Friendship


async def are_friends(db: AsyncSession, user_id: int, other_id: int) -> bool:
    """A row in either direction makes the pair friends."""
    result = await db.execute(
        select(Friendship.id)
        .where(
            or_(
                and_(Friendship.user_id == user_id, Friendship.friend_id == other_id),
                and_(Friendship.user_id == other_id, Friendship.friend_id == user_id),
            )
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_friend_ids(db: AsyncSession, user_id: int) -> list[int]:
    """Ids of every user connected to ``user_id`` in either direction."""
    initiated = await db.execute(select(Friendship.friend_id).where(Friendship.user_id == user_id))
    received = await db.execute(select(Friendship.user_id).where(Friendship.friend_id == user_id))
    ids = set(initiated.scalars().all()) | set(received.scalars().all())
    ids.discard(user_id)
    return sorted(ids)
