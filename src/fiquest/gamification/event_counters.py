"""How many times a user has triggered each social event.

Counts are derived from the collaborator tables rather than kept as
counters, so re-delivered events never inflate them. Adding an event means
adding one entry to ``EVENT_COUNTERS``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.challenges.day_utils import day_bounds
from fiquest.config import get_settings
from fiquest.db.models import (
    ActivityComment,
    ActivityLike,
    ChallengeInvitation,
    ChallengeStatus,
    Friendship,
    InvitationStatus,
    UserBadge,
    UserChallenge,
)

EventCounter = Callable[[AsyncSession, int], Awaitable[int]]


async def _count(db: AsyncSession, model: type, *criteria) -> int:  # noqa: ANN002
    result = await db.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar_one()


async def count_invites_sent(db: AsyncSession, user_id: int) -> int:
    return await _count(db, ChallengeInvitation, ChallengeInvitation.from_user_id == user_id)


async def count_invites_accepted(db: AsyncSession, user_id: int) -> int:
    return await _count(
        db,
        ChallengeInvitation,
        ChallengeInvitation.to_user_id == user_id,
        ChallengeInvitation.status == InvitationStatus.ACCEPTED,
    )


async def count_likes_given(db: AsyncSession, user_id: int) -> int:
    return await _count(db, ActivityLike, ActivityLike.user_id == user_id)


async def count_comments_authored(db: AsyncSession, user_id: int) -> int:
    return await _count(db, ActivityComment, ActivityComment.user_id == user_id)


async def count_friendships(db: AsyncSession, user_id: int) -> int:
    """Friendships the user initiated plus the ones they received."""
    initiated = await _count(db, Friendship, Friendship.user_id == user_id)
    received = await _count(db, Friendship, Friendship.friend_id == user_id)
    return initiated + received


async def count_badges_owned(db: AsyncSession, user_id: int) -> int:
    return await _count(db, UserBadge, UserBadge.user_id == user_id)


async def count_challenges_completed_today(db: AsyncSession, user_id: int) -> int:
    start, end = day_bounds()
    return await _count(
        db,
        UserChallenge,
        UserChallenge.user_id == user_id,
        UserChallenge.status == ChallengeStatus.COMPLETED,
        UserChallenge.completed_at >= start,
        UserChallenge.completed_at < end,
    )


async def count_daily_completion_streak(db: AsyncSession, user_id: int) -> int:
    """Challenges completed today, but only once the daily threshold is met."""
    completed = await count_challenges_completed_today(db, user_id)
    return completed if completed >= get_settings().daily_challenges_badge_threshold else 0


EVENT_COUNTERS: dict[str, EventCounter] = {
    "CHALLENGE_INVITE_SENT": count_invites_sent,
    "CHALLENGE_INVITE_ACCEPTED": count_invites_accepted,
    "POST_LIKED": count_likes_given,
    "POST_COMMENTED": count_comments_authored,
    "FRIENDSHIP_CREATED": count_friendships,
    "BADGE_EARNED": count_badges_owned,
    "DAILY_CHALLENGES_COMPLETED": count_daily_completion_streak,
}


async def count_event(db: AsyncSession, user_id: int, event_name: str) -> int | None:
    """Count for ``event_name``, or None when the event has no counter."""
    counter = EVENT_COUNTERS.get(event_name)
    if counter is None:
        return None
    return await counter(db, user_id)
