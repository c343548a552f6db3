"""Pydantic response models for progression, badge, reward and feed endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from fiquest.db.models import RequirementType, RewardSource, RewardType

# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    xp_required: int
    cumulative: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class ProgressionResponse(BaseModel):
    level: int
    total_xp: int
    xp_into_level: int
    xp_for_level: int
    progress_percent: int
    next_level: int
    next_level_at: int
    coins: int
    current_streak: int
    longest_streak: int


# --- Badges ---


class BadgeResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    description: str
    icon: str | None = None
    category: str
    rarity: str
    requirement_type: RequirementType
    requirement_value: int
    event: str | None = None
    required_count: int | None = None
    xp_reward: int
    coins_reward: int
    sort_order: int


class AllBadgesResponse(BaseModel):
    badges: list[BadgeResponse]


class EarnedBadgeResponse(BaseModel):
    badge: BadgeResponse
    earned_at: datetime


class UserBadgesResponse(BaseModel):
    earned: list[EarnedBadgeResponse]
    total_earned: int


class BadgeProgress(BaseModel):
    current: int
    required: int
    percentage: int


class BadgeProgressEntry(BaseModel):
    badge: BadgeResponse
    earned: bool
    earned_at: datetime | None = None
    progress: BadgeProgress


class BadgeProgressResponse(BaseModel):
    badges: list[BadgeProgressEntry]


# --- Rewards ---


class RewardEntry(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    type: RewardType
    amount: int
    source: RewardSource
    source_id: str | None = None
    description: str | None = None
    created_at: datetime


class RewardHistoryResponse(BaseModel):
    rewards: list[RewardEntry]
    total: int
    has_more: bool


class RewardStatsResponse(BaseModel):
    total_xp: int
    total_coins: int
    total_badges: int
    total_rewards: int


class RecentRewardsResponse(BaseModel):
    rewards: list[RewardEntry]


# --- Feed ---


class FeedItem(BaseModel):
    id: str
    type: str
    user_id: int
    username: str
    name: str | None = None
    avatar_url: str | None = None
    level: int
    description: str | None = None
    xp_reward: int
    coins_reward: int
    created_at: datetime


class FeedResponse(BaseModel):
    items: list[FeedItem]
