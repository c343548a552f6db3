"""Progression, badge, reward history and feed endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.config import get_settings
from fiquest.db.models import RewardType, User
from fiquest.dependencies import get_current_user, get_db
from fiquest.gamification import badge_service, ledger
from fiquest.gamification.progression import level_info, level_table
from fiquest.gamification.schemas import (
    AllBadgesResponse,
    AllLevelsResponse,
    BadgeProgress,
    BadgeProgressEntry,
    BadgeProgressResponse,
    BadgeResponse,
    EarnedBadgeResponse,
    FeedItem,
    FeedResponse,
    LevelEntry,
    ProgressionResponse,
    RecentRewardsResponse,
    RewardEntry,
    RewardHistoryResponse,
    RewardStatsResponse,
    UserBadgesResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


# ── Progression ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels(max_level: int = Query(50, ge=1, le=200)):
    """Cumulative XP thresholds per level."""
    return AllLevelsResponse(levels=[LevelEntry(**row) for row in level_table(max_level)])


@router.get("/users/me/progression", response_model=ProgressionResponse)
async def my_progression(user: User = Depends(get_current_user)):
    """Level and progress bar data. The stored level wins over the computed one."""
    info = level_info(user.xp, stored_level=user.level)
    return ProgressionResponse(
        **info,
        coins=user.coins,
        current_streak=user.current_streak,
        longest_streak=user.longest_streak,
    )


# ── Badges ──


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges(db: AsyncSession = Depends(get_db)):
    badges = await badge_service.get_all_badges(db)
    return AllBadgesResponse(badges=[BadgeResponse.model_validate(b) for b in badges])


@router.get("/users/me/badges", response_model=UserBadgesResponse)
async def my_badges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user_badges = await badge_service.get_user_badges(db, user.id)
    earned = [
        EarnedBadgeResponse(badge=BadgeResponse.model_validate(ub.badge), earned_at=ub.earned_at)
        for ub in user_badges
    ]
    return UserBadgesResponse(earned=earned, total_earned=len(earned))


@router.get("/users/me/badges/progress", response_model=BadgeProgressResponse)
async def my_badge_progress(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every active badge with earned state and progress."""
    rows = await badge_service.get_badge_progress(db, user.id)
    return BadgeProgressResponse(badges=[
        BadgeProgressEntry(
            badge=BadgeResponse.model_validate(row["badge"]),
            earned=row["earned"],
            earned_at=row["earned_at"],
            progress=BadgeProgress(**row["progress"]),
        )
        for row in rows
    ])


# ── Rewards ──


@router.get("/rewards/history", response_model=RewardHistoryResponse)
async def reward_history(
    type: RewardType | None = Query(None),  # noqa: A002
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int | None = Query(None, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Paginated ledger, newest first, optionally filtered by type and date range."""
    page = await ledger.list_by_user(
        db,
        user.id,
        type=type,
        start=start_date,
        end=end_date,
        limit=limit or get_settings().reward_history_page_size,
        offset=offset,
    )
    return RewardHistoryResponse(
        rewards=[RewardEntry.model_validate(r) for r in page["rewards"]],
        total=page["total"],
        has_more=page["has_more"],
    )


@router.get("/rewards/stats", response_model=RewardStatsResponse)
async def reward_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return RewardStatsResponse(**await ledger.aggregate_by_user(db, user.id))


@router.get("/rewards/recent", response_model=RecentRewardsResponse)
async def recent_rewards(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await ledger.list_recent_by_user(db, user.id, get_settings().recent_rewards_limit)
    return RecentRewardsResponse(rewards=[RewardEntry.model_validate(r) for r in rows])


# ── Feed ──


@router.get("/feed", response_model=FeedResponse)
async def friend_feed(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Friends' completions, badges and level-ups from the last days."""
    items = await ledger.get_friend_feed(db, user.id, limit=limit, offset=offset)
    return FeedResponse(items=[FeedItem(**item) for item in items])


@router.get("/feed/me", response_model=FeedResponse)
async def own_feed(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    items = await ledger.get_own_feed(db, user.id, limit=limit, offset=offset)
    return FeedResponse(items=[FeedItem(**item) for item in items])
