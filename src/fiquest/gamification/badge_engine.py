"""Event-driven badge evaluation with at-most-once granting.

Each grant runs in its own short transaction: re-check ownership, insert the
UserBadge row and increment the user's balance. The UNIQUE(user_id,
badge_id) constraint is the final guard when two evaluations race for the
same badge; the loser aborts silently.

Everything after the commit (ledger audit rows, notifications, the
recursive BADGE_EARNED evaluation) runs as detached tasks.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fiquest.database import get_session_factory
from fiquest.db.models import Badge, RewardSource, RewardType, UserBadge
from fiquest.gamification import ledger
from fiquest.gamification.event_counters import count_event
from fiquest.gamification.rewards import LevelChange, announce_level_up, apply_rewards
from fiquest.social import notification_service
from fiquest.tasks import DetachedTasks, detached

logger = logging.getLogger(__name__)

BADGE_EARNED = "BADGE_EARNED"


async def has_badge(db: AsyncSession, user_id: int, badge_id: int) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(UserBadge.id).where(
            UserBadge.user_id == user_id,
            UserBadge.badge_id == badge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def owned_badge_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
    return set(result.scalars().all())


def badge_audit_entries(user_id: int, badge: Badge) -> list[ledger.LedgerEntry]:
    """BADGE row plus XP/COINS rows for non-zero rewards, grouped by badge id."""
    source_id = str(badge.id)
    description = f'Badge "{badge.name}" unlocked'
    entries = [
        ledger.LedgerEntry(user_id, RewardType.BADGE, 1, RewardSource.BADGE_EARNED, source_id, description)
    ]
    entries += ledger.reward_entries(
        user_id,
        badge.xp_reward,
        badge.coins_reward,
        RewardSource.BADGE_EARNED,
        source_id,
        f'Reward for badge "{badge.name}"',
    )
    return entries


class BadgeEngine:
    """Evaluates badge thresholds for a user after an event."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        tasks: DetachedTasks | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.tasks = tasks or detached

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def evaluate(self, user_id: int, event_name: str) -> list[int]:
        """Grant every badge for ``event_name`` whose threshold the user has met.

        Returns the ids of badges granted by this call (may be empty).
        """
        async with self.session_factory() as db:
            result = await db.execute(
                select(Badge)
                .where(Badge.event == event_name, Badge.is_active.is_(True))
                .order_by(Badge.required_count.asc(), Badge.id.asc())
            )
            badges = list(result.scalars().all())
            if not badges:
                return []

            event_count = await count_event(db, user_id, event_name)
            if event_count is None:
                logger.debug("No counter for event %s, skipping badge evaluation", event_name)
                return []

            owned = await owned_badge_ids(db, user_id)

        awarded: list[int] = []
        for badge in badges:
            if badge.id in owned:
                continue
            if event_count < (badge.required_count or 0):
                continue
            if await self.grant(user_id, badge):
                awarded.append(badge.id)
        return awarded

    async def grant(self, user_id: int, badge: Badge) -> bool:
        """Grant ``badge`` once. Returns False if the user already has it."""
        async with self.session_factory() as db:
            try:
                async with db.begin():
                    if await has_badge(db, user_id, badge.id):
                        logger.info("Badge %s already held by user %d", badge.name, user_id)
                        return False
                    db.add(UserBadge(user_id=user_id, badge_id=badge.id))
                    await db.flush()
                    change = await apply_rewards(db, user_id, badge.xp_reward, badge.coins_reward)
            except IntegrityError:
                # Concurrent grant won the unique constraint
                logger.info("Badge %s granted concurrently to user %d", badge.name, user_id)
                return False

        logger.info(
            "Badge %s granted to user %d (+%d XP, +%d coins)",
            badge.name, user_id, badge.xp_reward, badge.coins_reward,
        )
        self._after_grant(user_id, badge, change)
        return True

    def _after_grant(self, user_id: int, badge: Badge, change: LevelChange) -> None:
        self.tasks.spawn(
            ledger.record_entries(badge_audit_entries(user_id, badge)),
            name=f"badge-audit:{user_id}:{badge.id}",
        )
        self.tasks.spawn(
            notification_service.send_notification(
                user_id,
                "BADGE_EARNED",
                f'Badge earned: "{badge.name}"',
                f"+{badge.xp_reward} XP, +{badge.coins_reward} coins",
                {"badge_id": badge.id, "rarity": badge.rarity},
            ),
            name=f"badge-notify:{user_id}:{badge.id}",
        )
        if change.leveled_up:
            self.tasks.spawn(announce_level_up(user_id, change), name=f"level-up:{user_id}:{change.new_level}")
        # Badge-of-badges chain; terminates because each badge is granted once
        self.tasks.spawn(self.evaluate(user_id, BADGE_EARNED), name=f"badge-recheck:{user_id}")
