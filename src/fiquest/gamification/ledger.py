"""Reward ledger: append-only history of every XP, coin, badge and item grant.

The ledger is the source of truth for a user's reward history and for the
social feed. ``append`` only stages a row on the caller's session; callers
that need atomicity append inside the transaction that changes the balance.
``record_entries`` is the best-effort variant used by detached audit tasks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.challenges.day_utils import days_ago
from fiquest.config import get_settings
from fiquest.database import independent_session
from fiquest.db.models import RewardHistory, RewardSource, RewardType
from fiquest.social.friends import get_friend_ids

logger = logging.getLogger(__name__)

FEED_SOURCES = (
    RewardSource.CHALLENGE_COMPLETION,
    RewardSource.BADGE_EARNED,
    RewardSource.LEVEL_PROGRESSION,
)

_FEED_TYPES = {
    RewardSource.CHALLENGE_COMPLETION: "CHALLENGE_COMPLETED",
    RewardSource.BADGE_EARNED: "BADGE_EARNED",
    RewardSource.LEVEL_PROGRESSION: "LEVEL_UP",
}


@dataclass
class LedgerEntry:
    """One ledger row before it is persisted."""

    user_id: int
    type: RewardType
    amount: int
    source: RewardSource
    source_id: str | None = None
    description: str | None = None


def reward_entries(
    user_id: int,
    xp: int,
    coins: int,
    source: RewardSource,
    source_id: str,
    description: str,
) -> list[LedgerEntry]:
    """XP and COINS rows for a grant, omitting zero amounts."""
    entries = []
    if xp > 0:
        entries.append(LedgerEntry(user_id, RewardType.XP, xp, source, source_id, description))
    if coins > 0:
        entries.append(LedgerEntry(user_id, RewardType.COINS, coins, source, source_id, description))
    return entries


async def append(db: AsyncSession, entry: LedgerEntry) -> RewardHistory:
    """Stage one ledger row on ``db``. The caller owns the transaction."""
    row = RewardHistory(
        user_id=entry.user_id,
        type=entry.type,
        amount=entry.amount,
        source=entry.source,
        source_id=entry.source_id,
        description=entry.description,
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    await db.flush()
    return row


async def record_entries(entries: list[LedgerEntry]) -> None:
    """Persist audit rows in their own transaction.

    Used after the grant has already committed, so a failure here cannot
    undo the grant. Errors propagate to the detached task that runs this.
    """
    if not entries:
        return
    async with independent_session() as db, db.begin():
        for entry in entries:
            await append(db, entry)


async def list_by_user(
    db: AsyncSession,
    user_id: int,
    type: RewardType | None = None,  # noqa: A002
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    """Page through a user's ledger, newest first."""
    filters = [RewardHistory.user_id == user_id]
    if type is not None:
        filters.append(RewardHistory.type == type)
    if start is not None:
        filters.append(RewardHistory.created_at >= start)
    if end is not None:
        filters.append(RewardHistory.created_at <= end)

    total_result = await db.execute(select(func.count()).select_from(RewardHistory).where(*filters))
    total = total_result.scalar_one()

    result = await db.execute(
        select(RewardHistory)
        .where(*filters)
        .order_by(RewardHistory.created_at.desc(), RewardHistory.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return {
        "rewards": list(result.scalars().all()),
        "total": total,
        "has_more": offset + limit < total,
    }


async def aggregate_by_user(db: AsyncSession, user_id: int) -> dict[str, int]:
    """Totals per reward type plus the overall row count."""

    def _sum_of(reward_type: RewardType):  # noqa: ANN202
        return func.coalesce(
            func.sum(case((RewardHistory.type == reward_type, RewardHistory.amount), else_=0)), 0
        )

    result = await db.execute(
        select(
            _sum_of(RewardType.XP),
            _sum_of(RewardType.COINS),
            _sum_of(RewardType.BADGE),
            func.count(RewardHistory.id),
        ).where(RewardHistory.user_id == user_id)
    )
    total_xp, total_coins, total_badges, total_rewards = result.one()
    return {
        "total_xp": int(total_xp),
        "total_coins": int(total_coins),
        "total_badges": int(total_badges),
        "total_rewards": int(total_rewards),
    }


async def list_recent_by_user(db: AsyncSession, user_id: int, n: int = 10) -> list[RewardHistory]:
    result = await db.execute(
        select(RewardHistory)
        .where(RewardHistory.user_id == user_id)
        .order_by(RewardHistory.created_at.desc(), RewardHistory.id.desc())
        .limit(n)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Social feed
# ---------------------------------------------------------------------------


def group_feed_entries(rows: list[RewardHistory]) -> list[dict]:
    """Collapse rows sharing a source into one feed item.

    Rows are grouped by (user, source, source_id); XP and COINS amounts are
    summed. Rows without a ``source_id`` stay on their own. Input order
    (newest first) is preserved by first appearance.
    """
    items: dict[tuple, dict] = {}
    for row in rows:
        key = (row.user_id, row.source, row.source_id if row.source_id is not None else f"row:{row.id}")
        item = items.get(key)
        if item is None:
            item = {
                "id": f"{row.source.value}:{key[2]}",
                "type": _FEED_TYPES.get(row.source, row.source.value),
                "user_id": row.user_id,
                "source": row.source,
                "source_id": row.source_id,
                "description": row.description,
                "xp_reward": 0,
                "coins_reward": 0,
                "created_at": row.created_at,
            }
            items[key] = item
        elif row.created_at > item["created_at"]:
            item["created_at"] = row.created_at
        if item["description"] is None and row.description:
            item["description"] = row.description
        if row.type == RewardType.XP:
            item["xp_reward"] += row.amount
        elif row.type == RewardType.COINS:
            item["coins_reward"] += row.amount
    return list(items.values())


async def _feed_for(db: AsyncSession, user_ids: list[int], limit: int, offset: int) -> list[dict]:
    if not user_ids:
        return []
    since = days_ago(get_settings().feed_window_days)
    result = await db.execute(
        select(RewardHistory)
        .where(
            RewardHistory.user_id.in_(user_ids),
            RewardHistory.source.in_(FEED_SOURCES),
            RewardHistory.created_at >= since,
        )
        .order_by(RewardHistory.created_at.desc(), RewardHistory.id.desc())
    )
    rows = list(result.unique().scalars().all())
    grouped = group_feed_entries(rows)[offset:offset + limit]
    users = {row.user_id: row.user for row in rows}
    for item in grouped:
        user = users[item["user_id"]]
        item["username"] = user.username
        item["name"] = user.name
        item["avatar_url"] = user.avatar_url
        item["level"] = user.level
    return grouped


async def get_friend_feed(db: AsyncSession, user_id: int, limit: int = 20, offset: int = 0) -> list[dict]:
    """Recent completions, badges and level-ups of the user's friends."""
    friend_ids = await get_friend_ids(db, user_id)
    return await _feed_for(db, friend_ids, limit, offset)


async def get_own_feed(db: AsyncSession, user_id: int, limit: int = 20, offset: int = 0) -> list[dict]:
    return await _feed_for(db, [user_id], limit, offset)
