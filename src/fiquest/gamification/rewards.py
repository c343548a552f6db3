"""Balance mutations shared by every reward path."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.db.models import RewardSource, RewardType, User
from fiquest.exceptions import UserNotFoundError
from fiquest.gamification import ledger
from fiquest.gamification.progression import next_level
from fiquest.social import notification_service

logger = logging.getLogger(__name__)


@dataclass
class LevelChange:
    old_level: int
    new_level: int
    total_xp: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


async def apply_rewards(db: AsyncSession, user_id: int, xp: int, coins: int) -> LevelChange:
    """Increment xp/coins atomically and raise the level if the new total earns it.

    The increment happens in SQL so concurrent grants never lose an update.
    Must run inside the caller's transaction.
    """
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(xp=User.xp + xp, coins=User.coins + coins)
        .returning(User.xp, User.level)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        raise UserNotFoundError()
    total_xp, stored_level = row
    new_level = next_level(stored_level, total_xp)
    if new_level != stored_level:
        await db.execute(
            update(User)
            .where(User.id == user_id, User.level < new_level)
            .values(level=new_level)
            .execution_options(synchronize_session=False)
        )
    return LevelChange(old_level=stored_level, new_level=new_level, total_xp=total_xp)


async def announce_level_up(user_id: int, change: LevelChange) -> None:
    """Record a level-up in the ledger (for the feed) and notify the user.

    Runs detached after the awarding transaction committed.
    """
    await ledger.record_entries([
        ledger.LedgerEntry(
            user_id=user_id,
            type=RewardType.XP,
            amount=0,
            source=RewardSource.LEVEL_PROGRESSION,
            source_id=f"level:{change.new_level}",
            description=f"Reached level {change.new_level}",
        )
    ])
    logger.info("User %d leveled up %d -> %d", user_id, change.old_level, change.new_level)
    await notification_service.send_notification(
        user_id,
        "LEVEL_UP",
        "Level up!",
        f"You reached level {change.new_level}",
        {"old_level": change.old_level, "new_level": change.new_level},
    )
