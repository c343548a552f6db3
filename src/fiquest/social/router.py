"""Challenge invitation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.db.models import User, UserChallenge
from fiquest.dependencies import get_current_user, get_db
from fiquest.exceptions import ChallengeNotOwnedError, UserChallengeNotFoundError
from fiquest.social import invitation_service
from fiquest.social.schemas import (
    CreateInvitationRequest,
    InvitationListResponse,
    InvitationResponse,
    InvitationsOverviewResponse,
    UserChallengeInvitationResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Social"])


@router.post("/challenges/{challenge_id}/invite", response_model=InvitationResponse, status_code=201)
async def invite_friend(
    challenge_id: int,
    body: CreateInvitationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Invite a friend into one of today's challenges."""
    invitation = await invitation_service.create_invitation(
        db, user.id, body.to_user_id, challenge_id, body.message,
    )
    return InvitationResponse.model_validate(invitation)


@router.get("/challenge-invitations", response_model=InvitationsOverviewResponse)
async def list_invitations(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    lists = await invitation_service.list_invitations(db, user.id)
    return InvitationsOverviewResponse(
        received=[InvitationResponse.model_validate(i) for i in lists["received"]],
        sent=[InvitationResponse.model_validate(i) for i in lists["sent"]],
    )


@router.get("/challenge-invitations/pending", response_model=InvitationListResponse)
async def list_pending(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invitations = await invitation_service.list_pending_invitations(db, user.id)
    return InvitationListResponse(invitations=[InvitationResponse.model_validate(i) for i in invitations])


@router.patch("/challenge-invitations/{invitation_id}/accept", response_model=InvitationResponse)
async def accept(
    invitation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    invitation = await invitation_service.accept_invitation(db, invitation_id, user.id)
    return InvitationResponse.model_validate(invitation)


@router.patch("/challenge-invitations/{invitation_id}/reject", status_code=204)
async def reject(
    invitation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await invitation_service.reject_invitation(db, invitation_id, user.id)


@router.delete("/challenge-invitations/{invitation_id}", status_code=204)
async def cancel(
    invitation_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw a pending invitation. Only the sender may cancel."""
    await invitation_service.cancel_invitation(db, invitation_id, user.id)


@router.get("/user-challenges/{user_challenge_id}/invitation", response_model=UserChallengeInvitationResponse)
async def invitation_for_user_challenge(
    user_challenge_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The invitation that brought this challenge in, or null."""
    user_challenge = await db.get(UserChallenge, user_challenge_id)
    if user_challenge is None:
        raise UserChallengeNotFoundError()
    if user_challenge.user_id != user.id:
        raise ChallengeNotOwnedError()
    invitation = await invitation_service.get_invitation_for_user_challenge(db, user_challenge_id)
    return UserChallengeInvitationResponse(
        invitation=InvitationResponse.model_validate(invitation) if invitation else None,
    )
