"""Badge catalog queries, progress and requirement-based awards."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.db.models import (
    Badge,
    Challenge,
    ChallengeStatus,
    RequirementType,
    User,
    UserBadge,
    UserChallenge,
)
from fiquest.exceptions import UserNotFoundError
from fiquest.gamification.badge_engine import BadgeEngine, owned_badge_ids
from fiquest.gamification.event_counters import count_event

logger = logging.getLogger(__name__)

# Requirement types checked after a manual challenge completion
REQUIREMENT_TYPES_ON_COMPLETION = (
    RequirementType.CHALLENGES_COMPLETED,
    RequirementType.STREAK_DAYS,
    RequirementType.LEVEL_REACHED,
    RequirementType.XP_EARNED,
    RequirementType.CATEGORY_MASTER,
)


async def get_all_badges(db: AsyncSession) -> list[Badge]:
    """Active badges in display order."""
    result = await db.execute(
        select(Badge)
        .where(Badge.is_active.is_(True))
        .order_by(Badge.category.asc(), Badge.sort_order.asc(), Badge.id.asc())
    )
    return list(result.scalars().all())


async def get_user_badges(db: AsyncSession, user_id: int) -> list[UserBadge]:
    """Badges earned by the user, most recent first."""
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
    )
    return list(result.scalars().all())


async def _completed_count(db: AsyncSession, user_id: int, category=None) -> int:  # noqa: ANN001
    query = (
        select(func.count())
        .select_from(UserChallenge)
        .where(UserChallenge.user_id == user_id, UserChallenge.status == ChallengeStatus.COMPLETED)
    )
    if category is not None:
        query = query.join(Challenge, Challenge.id == UserChallenge.challenge_id).where(
            Challenge.category == category
        )
    result = await db.execute(query)
    return result.scalar_one()


async def current_value(db: AsyncSession, user: User, badge: Badge) -> int:
    """The user's current value for the badge's requirement."""
    kind = badge.requirement_type
    if kind == RequirementType.CHALLENGES_COMPLETED:
        return await _completed_count(db, user.id)
    if kind == RequirementType.STREAK_DAYS:
        return user.current_streak
    if kind == RequirementType.LEVEL_REACHED:
        return user.level
    if kind == RequirementType.XP_EARNED:
        return user.xp
    if kind == RequirementType.CATEGORY_MASTER and badge.category_target is not None:
        return await _completed_count(db, user.id, badge.category_target)
    if kind == RequirementType.EVENT_COUNT and badge.event is not None:
        return await count_event(db, user.id, badge.event) or 0
    # SPECIFIC_CHALLENGE and SOCIAL_INTERACTION are awarded manually
    return 0


def required_value(badge: Badge) -> int:
    if badge.requirement_type == RequirementType.EVENT_COUNT and badge.required_count is not None:
        return badge.required_count
    return badge.requirement_value


async def get_badge_progress(db: AsyncSession, user_id: int) -> list[dict]:
    """Every active badge with earned state and progress toward it."""
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError()

    badges = await get_all_badges(db)
    earned_result = await db.execute(
        select(UserBadge.badge_id, UserBadge.earned_at).where(UserBadge.user_id == user_id)
    )
    earned = {badge_id: earned_at for badge_id, earned_at in earned_result.all()}

    progress = []
    for badge in badges:
        required = required_value(badge)
        if badge.id in earned:
            current, percentage = required, 100
        else:
            current = await current_value(db, user, badge)
            percentage = min(round(current / required * 100), 100) if required > 0 else 0
        progress.append({
            "badge": badge,
            "earned": badge.id in earned,
            "earned_at": earned.get(badge.id),
            "progress": {"current": current, "required": required, "percentage": percentage},
        })
    return progress


async def check_requirement_badges(user_id: int, engine: BadgeEngine | None = None) -> list[int]:
    """Grant requirement-type badges whose threshold the user now meets.

    Uses the engine's atomic grant, so a badge granted concurrently by
    another path is skipped silently.
    """
    engine = engine or BadgeEngine()
    async with engine.session_factory() as db:
        user = await db.get(User, user_id)
        if user is None:
            raise UserNotFoundError()
        result = await db.execute(
            select(Badge)
            .where(
                Badge.is_active.is_(True),
                Badge.requirement_type.in_(REQUIREMENT_TYPES_ON_COMPLETION),
            )
            .order_by(Badge.requirement_value.asc(), Badge.id.asc())
        )
        badges = list(result.scalars().all())
        owned = await owned_badge_ids(db, user_id)

        eligible = []
        for badge in badges:
            if badge.id in owned:
                continue
            if await current_value(db, user, badge) >= badge.requirement_value:
                eligible.append(badge)

    awarded = []
    for badge in eligible:
        if await engine.grant(user_id, badge):
            awarded.append(badge.id)
    return awarded
