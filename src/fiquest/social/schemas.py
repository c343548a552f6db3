"""Pydantic schemas for challenge invitation endpoints."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field

from fiquest.db.models import ChallengeCategory, InvitationStatus


class CreateInvitationRequest(BaseModel):
    to_user_id: int
    message: str | None = Field(None, max_length=280)


class InvitationUser(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    username: str
    name: str | None = None
    avatar_url: str | None = None


class InvitationChallenge(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    title: str
    category: ChallengeCategory
    xp_reward: int
    coins_reward: int


class InvitationResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    from_user_id: int
    to_user_id: int
    challenge_id: int
    user_challenge_id: int | None = None
    message: str | None = None
    status: InvitationStatus
    date: dt.date
    created_at: dt.datetime
    challenge: InvitationChallenge
    from_user: InvitationUser
    to_user: InvitationUser


class InvitationListResponse(BaseModel):
    invitations: list[InvitationResponse]


class InvitationsOverviewResponse(BaseModel):
    received: list[InvitationResponse]
    sent: list[InvitationResponse]


class UserChallengeInvitationResponse(BaseModel):
    invitation: InvitationResponse | None = None
