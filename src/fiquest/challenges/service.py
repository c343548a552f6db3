"""Daily challenge assignment and manual completion."""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timezone

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.challenges.day_utils import day_bounds, local_today
from fiquest.config import get_settings
from fiquest.db.models import Challenge, ChallengeStatus, RewardSource, User, UserChallenge
from fiquest.exceptions import (
    ChallengeAlreadyCompletedError,
    ChallengeNotOwnedError,
    UserChallengeNotFoundError,
    UserNotFoundError,
)
from fiquest.gamification import ledger
from fiquest.gamification.badge_service import check_requirement_badges
from fiquest.gamification.dispatcher import dispatch_social_event
from fiquest.gamification.event_counters import count_challenges_completed_today
from fiquest.gamification.rewards import announce_level_up, apply_rewards
from fiquest.tasks import detached

logger = logging.getLogger(__name__)

_STATUS_ORDER = case(
    (UserChallenge.status == ChallengeStatus.PENDING, 0),
    (UserChallenge.status == ChallengeStatus.IN_PROGRESS, 1),
    else_=2,
)


def next_streak(
    last_active: date | None,
    current: int,
    longest: int,
    today: date,
) -> tuple[int, int] | None:
    """(current, longest) after activity on ``today``, or None if unchanged.

    Same day keeps the streak, the next day extends it, any gap restarts it.
    """
    if last_active is None:
        new_current = 1
    else:
        gap = (today - last_active).days
        if gap <= 0:
            return None
        new_current = current + 1 if gap == 1 else 1
    return new_current, max(longest, new_current)


async def get_daily_challenges(db: AsyncSession, user_id: int) -> list[UserChallenge]:
    """Today's challenges, pending first."""
    start, end = day_bounds()
    result = await db.execute(
        select(UserChallenge)
        .where(
            UserChallenge.user_id == user_id,
            UserChallenge.assigned_at >= start,
            UserChallenge.assigned_at < end,
        )
        .order_by(_STATUS_ORDER, UserChallenge.id.asc())
    )
    return list(result.unique().scalars().all())


async def assign_daily_challenges(db: AsyncSession, user_id: int) -> list[UserChallenge]:
    """Assign today's random challenges once; later calls return the same set."""
    existing = await get_daily_challenges(db, user_id)
    if existing:
        return existing

    result = await db.execute(select(Challenge.id).where(Challenge.is_active.is_(True)))
    challenge_ids = list(result.scalars().all())
    count = min(get_settings().daily_challenge_count, len(challenge_ids))
    now = datetime.now(timezone.utc)
    for challenge_id in random.sample(challenge_ids, count):
        db.add(UserChallenge(
            user_id=user_id,
            challenge_id=challenge_id,
            status=ChallengeStatus.PENDING,
            progress=0,
            assigned_at=now,
        ))
    await db.commit()
    logger.info("Assigned %d daily challenges to user %d", count, user_id)
    return await get_daily_challenges(db, user_id)


async def complete_challenge(db: AsyncSession, user_id: int, user_challenge_id: int) -> dict:
    """Complete one of the user's challenges and pay out its rewards.

    The status flip is conditional on the instance not being completed yet,
    so two concurrent completions pay out once.
    """
    user_challenge = await db.get(UserChallenge, user_challenge_id)
    if user_challenge is None:
        raise UserChallengeNotFoundError()
    if user_challenge.user_id != user_id:
        raise ChallengeNotOwnedError()
    if user_challenge.status == ChallengeStatus.COMPLETED:
        raise ChallengeAlreadyCompletedError()
    challenge = user_challenge.challenge

    result = await db.execute(
        update(UserChallenge)
        .where(
            UserChallenge.id == user_challenge_id,
            UserChallenge.status != ChallengeStatus.COMPLETED,
        )
        .values(
            status=ChallengeStatus.COMPLETED,
            completed_at=datetime.now(timezone.utc),
            progress=100,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise ChallengeAlreadyCompletedError()

    change = await apply_rewards(db, user_id, challenge.xp_reward, challenge.coins_reward)
    for entry in ledger.reward_entries(
        user_id,
        challenge.xp_reward,
        challenge.coins_reward,
        RewardSource.CHALLENGE_COMPLETION,
        str(user_challenge_id),
        f"Completed: {challenge.title}",
    ):
        await ledger.append(db, entry)

    user = await _reload_user(db, user_id)
    streak = next_streak(user.last_active_date, user.current_streak, user.longest_streak, local_today())
    if streak is not None:
        current, longest = streak
        await db.execute(
            update(User)
            .where(User.id == user_id)
            .values(current_streak=current, longest_streak=longest, last_active_date=local_today())
            .execution_options(synchronize_session=False)
        )
    await db.commit()

    logger.info(
        "User %d completed challenge %s (+%d XP, +%d coins)",
        user_id, challenge.title, challenge.xp_reward, challenge.coins_reward,
    )

    completed_today = await count_challenges_completed_today(db, user_id)
    user = await _reload_user(db, user_id)
    user_challenge = await _reload_user_challenge(db, user_challenge_id)
    await db.commit()

    if change.leveled_up:
        detached.spawn(announce_level_up(user_id, change), name=f"level-up:{user_id}:{change.new_level}")
    detached.spawn(check_requirement_badges(user_id), name=f"requirement-badges:{user_id}")
    if completed_today >= get_settings().daily_challenges_badge_threshold:
        detached.spawn(
            dispatch_social_event(user_id, "DAILY_CHALLENGES_COMPLETED"),
            name=f"dispatch:DAILY_CHALLENGES_COMPLETED:{user_id}",
        )

    return {
        "user_challenge": user_challenge,
        "stats": {
            "xp": user.xp,
            "coins": user.coins,
            "level": user.level,
            "current_streak": user.current_streak,
            "longest_streak": user.longest_streak,
        },
        "leveled_up": change.leveled_up,
        "new_level": change.new_level,
    }


async def get_challenge_history(db: AsyncSession, user_id: int, limit: int = 50) -> list[UserChallenge]:
    """Completed challenges, most recent first."""
    result = await db.execute(
        select(UserChallenge)
        .where(UserChallenge.user_id == user_id, UserChallenge.status == ChallengeStatus.COMPLETED)
        .order_by(UserChallenge.completed_at.desc(), UserChallenge.id.desc())
        .limit(limit)
    )
    return list(result.unique().scalars().all())


async def _reload_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFoundError()
    return user


async def _reload_user_challenge(db: AsyncSession, user_challenge_id: int) -> UserChallenge:
    result = await db.execute(
        select(UserChallenge)
        .where(UserChallenge.id == user_challenge_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one()
