"""Daily challenge endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.challenges import service
from fiquest.challenges.schemas import (
    ChallengeHistoryResponse,
    CompleteChallengeResponse,
    DailyChallengesResponse,
    UserChallengeResponse,
    UserStats,
)
from fiquest.db.models import ChallengeStatus, User
from fiquest.dependencies import get_current_user, get_db

router = APIRouter(prefix="/api/v1", tags=["Challenges"])


@router.get("/challenges/daily", response_model=DailyChallengesResponse)
async def daily_challenges(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Today's challenges. The first call of the day assigns them."""
    challenges = await service.assign_daily_challenges(db, user.id)
    completed = sum(1 for uc in challenges if uc.status == ChallengeStatus.COMPLETED)
    return DailyChallengesResponse(
        challenges=[UserChallengeResponse.model_validate(uc) for uc in challenges],
        completed=completed,
        total=len(challenges),
    )


@router.post("/challenges/{user_challenge_id}/complete", response_model=CompleteChallengeResponse)
async def complete(
    user_challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await service.complete_challenge(db, user.id, user_challenge_id)
    return CompleteChallengeResponse(
        user_challenge=UserChallengeResponse.model_validate(result["user_challenge"]),
        stats=UserStats(**result["stats"]),
        leveled_up=result["leveled_up"],
        new_level=result["new_level"],
    )


@router.get("/challenges/history", response_model=ChallengeHistoryResponse)
async def history(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    challenges = await service.get_challenge_history(db, user.id, limit=limit)
    return ChallengeHistoryResponse(challenges=[UserChallengeResponse.model_validate(uc) for uc in challenges])
