"""Pydantic schemas for daily challenge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from fiquest.db.models import ChallengeCategory, ChallengeStatus


class ChallengeResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    title: str
    description: str
    category: ChallengeCategory
    difficulty: str
    xp_reward: int
    coins_reward: int
    auto_verifiable: bool


class UserChallengeResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    challenge_id: int
    status: ChallengeStatus
    progress: int
    assigned_at: datetime
    completed_at: datetime | None = None
    challenge: ChallengeResponse


class DailyChallengesResponse(BaseModel):
    challenges: list[UserChallengeResponse]
    completed: int
    total: int


class UserStats(BaseModel):
    xp: int
    coins: int
    level: int
    current_streak: int
    longest_streak: int


class CompleteChallengeResponse(BaseModel):
    user_challenge: UserChallengeResponse
    stats: UserStats
    leveled_up: bool
    new_level: int


class ChallengeHistoryResponse(BaseModel):
    challenges: list[UserChallengeResponse]
