"""Challenge invitations between friends.

Lifecycle: PENDING -> ACCEPTED, or PENDING -> deleted (rejected, cancelled
or expired). Rejected and expired invitations keep no history.

Daily quotas: one invitation per (sender, receiver) per day and one per
(sender, challenge) per day. Both are checked before insert and backed by
unique constraints for concurrent requests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.challenges.day_utils import day_bounds, days_ago, local_today
from fiquest.config import get_settings
from fiquest.db.models import (
    Challenge,
    ChallengeInvitation,
    ChallengeStatus,
    InvitationStatus,
    UserChallenge,
)
from fiquest.exceptions import (
    ChallengeDailyQuotaError,
    ChallengeNotAssignedError,
    ChallengeUnavailableError,
    FriendDailyQuotaError,
    InvitationAlreadyProcessedError,
    InvitationConflictError,
    InvitationNotFoundError,
    NotFriendsError,
    NotInvitationRecipientError,
    NotInvitationSenderError,
    RegiftNotAllowedError,
)
from fiquest.gamification.dispatcher import dispatch_social_event
from fiquest.social import notification_service
from fiquest.social.friends import are_friends
from fiquest.tasks import detached

logger = logging.getLogger(__name__)


async def _load(db: AsyncSession, invitation_id: int) -> ChallengeInvitation | None:
    result = await db.execute(
        select(ChallengeInvitation)
        .where(ChallengeInvitation.id == invitation_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()


async def _todays_instance_id(db: AsyncSession, user_id: int, challenge_id: int) -> int | None:
    start, end = day_bounds()
    result = await db.execute(
        select(UserChallenge.id)
        .where(
            UserChallenge.user_id == user_id,
            UserChallenge.challenge_id == challenge_id,
            UserChallenge.assigned_at >= start,
            UserChallenge.assigned_at < end,
        )
        .order_by(UserChallenge.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _exists(db: AsyncSession, *criteria) -> bool:  # noqa: ANN002
    result = await db.execute(select(ChallengeInvitation.id).where(*criteria).limit(1))
    return result.scalar_one_or_none() is not None


async def _check_quotas(db: AsyncSession, from_user_id: int, to_user_id: int, challenge_id: int) -> None:
    today = local_today()
    if await _exists(
        db,
        ChallengeInvitation.from_user_id == from_user_id,
        ChallengeInvitation.to_user_id == to_user_id,
        ChallengeInvitation.date == today,
    ):
        raise FriendDailyQuotaError()
    if await _exists(
        db,
        ChallengeInvitation.from_user_id == from_user_id,
        ChallengeInvitation.challenge_id == challenge_id,
        ChallengeInvitation.date == today,
    ):
        raise ChallengeDailyQuotaError()


async def create_invitation(
    db: AsyncSession,
    from_user_id: int,
    to_user_id: int,
    challenge_id: int,
    message: str | None = None,
) -> ChallengeInvitation:
    """Invite a friend into one of today's challenges.

    Raises a DomainError subclass for each violated rule; nothing is
    written in that case.
    """
    if not await are_friends(db, from_user_id, to_user_id):
        raise NotFriendsError()

    challenge = await db.get(Challenge, challenge_id)
    if challenge is None or not challenge.is_active:
        raise ChallengeUnavailableError()

    sender_instance_id = await _todays_instance_id(db, from_user_id, challenge_id)
    if sender_instance_id is None:
        raise ChallengeNotAssignedError()

    today = local_today()
    if await _exists(
        db,
        ChallengeInvitation.to_user_id == from_user_id,
        ChallengeInvitation.challenge_id == challenge_id,
        ChallengeInvitation.status.in_([InvitationStatus.PENDING, InvitationStatus.ACCEPTED]),
        ChallengeInvitation.date == today,
    ) or await _exists(
        db,
        ChallengeInvitation.to_user_id == from_user_id,
        ChallengeInvitation.user_challenge_id == sender_instance_id,
        ChallengeInvitation.status == InvitationStatus.ACCEPTED,
    ):
        # The second case is an older invitation accepted today
        raise RegiftNotAllowedError()

    await _check_quotas(db, from_user_id, to_user_id, challenge_id)

    challenge_title = challenge.title
    receiver_instance_id = await _todays_instance_id(db, to_user_id, challenge_id)
    for attempt in range(2):
        invitation = ChallengeInvitation(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            challenge_id=challenge_id,
            message=message,
            status=InvitationStatus.PENDING,
            user_challenge_id=receiver_instance_id,
            date=today,
            created_at=datetime.now(timezone.utc),
        )
        db.add(invitation)
        try:
            await db.flush()
            break
        except IntegrityError:
            await db.rollback()
            # A committed row names the quota; otherwise the other writer rolled back
            await _check_quotas(db, from_user_id, to_user_id, challenge_id)
            if attempt:
                raise InvitationConflictError() from None
    await db.commit()

    invitation = await _load(db, invitation.id)
    logger.info(
        "User %d invited user %d to challenge %d (invitation %d)",
        from_user_id, to_user_id, challenge_id, invitation.id,
    )

    sender = invitation.from_user
    detached.spawn(
        notification_service.send_notification(
            to_user_id,
            "CHALLENGE_INVITE",
            f"{sender.name or sender.username} challenged you",
            invitation.message or f'Join the challenge "{challenge_title}"',
            {"invitation_id": invitation.id, "challenge_id": challenge_id, "from_user_id": from_user_id},
        ),
        name=f"invite-notify:{invitation.id}",
    )
    detached.spawn(
        dispatch_social_event(from_user_id, "CHALLENGE_INVITE_SENT"),
        name=f"dispatch:CHALLENGE_INVITE_SENT:{from_user_id}",
    )
    return invitation


async def accept_invitation(db: AsyncSession, invitation_id: int, user_id: int) -> ChallengeInvitation:
    """Accept an invitation addressed to ``user_id``.

    Links the receiver's instance of the challenge for today, creating it
    if needed. A concurrent accept that wins first makes this call a no-op.
    """
    invitation = await _load(db, invitation_id)
    if invitation is None:
        raise InvitationNotFoundError()
    if invitation.to_user_id != user_id:
        raise NotInvitationRecipientError()
    if invitation.status != InvitationStatus.PENDING:
        raise InvitationAlreadyProcessedError()

    user_challenge_id = invitation.user_challenge_id
    if user_challenge_id is None:
        user_challenge_id = await _todays_instance_id(db, user_id, invitation.challenge_id)
    if user_challenge_id is None:
        extra = UserChallenge(
            user_id=user_id,
            challenge_id=invitation.challenge_id,
            status=ChallengeStatus.PENDING,
            assigned_at=datetime.now(timezone.utc),
        )
        db.add(extra)
        await db.flush()
        user_challenge_id = extra.id

    result = await db.execute(
        update(ChallengeInvitation)
        .where(
            ChallengeInvitation.id == invitation_id,
            ChallengeInvitation.status == InvitationStatus.PENDING,
        )
        .values(status=InvitationStatus.ACCEPTED, user_challenge_id=user_challenge_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.info("Invitation %d was accepted concurrently", invitation_id)
        return await _load(db, invitation_id)
    await db.commit()

    invitation = await _load(db, invitation_id)
    logger.info("User %d accepted invitation %d", user_id, invitation_id)

    receiver = invitation.to_user
    detached.spawn(
        notification_service.send_notification(
            invitation.from_user_id,
            "CHALLENGE_INVITE_ACCEPTED",
            f"{receiver.name or receiver.username} accepted your challenge",
            f'"{invitation.challenge.title}" is on',
            {"invitation_id": invitation.id, "challenge_id": invitation.challenge_id, "to_user_id": user_id},
        ),
        name=f"accept-notify:{invitation.id}",
    )
    detached.spawn(
        dispatch_social_event(user_id, "CHALLENGE_INVITE_ACCEPTED"),
        name=f"dispatch:CHALLENGE_INVITE_ACCEPTED:{user_id}",
    )
    return invitation


async def _delete_pending(db: AsyncSession, invitation_id: int) -> None:
    await db.execute(
        delete(ChallengeInvitation).where(
            ChallengeInvitation.id == invitation_id,
            ChallengeInvitation.status == InvitationStatus.PENDING,
        )
    )
    await db.commit()


async def reject_invitation(db: AsyncSession, invitation_id: int, user_id: int) -> None:
    """Reject (delete) a pending invitation addressed to ``user_id``."""
    invitation = await _load(db, invitation_id)
    if invitation is None:
        raise InvitationNotFoundError()
    if invitation.to_user_id != user_id:
        raise NotInvitationRecipientError()
    if invitation.status != InvitationStatus.PENDING:
        raise InvitationAlreadyProcessedError()
    await _delete_pending(db, invitation_id)
    logger.info("User %d rejected invitation %d", user_id, invitation_id)


async def cancel_invitation(db: AsyncSession, invitation_id: int, user_id: int) -> None:
    """Withdraw (delete) a pending invitation sent by ``user_id``."""
    invitation = await _load(db, invitation_id)
    if invitation is None:
        raise InvitationNotFoundError()
    if invitation.from_user_id != user_id:
        raise NotInvitationSenderError()
    if invitation.status != InvitationStatus.PENDING:
        raise InvitationAlreadyProcessedError()
    await _delete_pending(db, invitation_id)
    logger.info("User %d cancelled invitation %d", user_id, invitation_id)


async def list_pending_invitations(db: AsyncSession, user_id: int) -> list[ChallengeInvitation]:
    result = await db.execute(
        select(ChallengeInvitation)
        .where(
            ChallengeInvitation.to_user_id == user_id,
            ChallengeInvitation.status == InvitationStatus.PENDING,
        )
        .order_by(ChallengeInvitation.created_at.desc(), ChallengeInvitation.id.desc())
    )
    return list(result.unique().scalars().all())


async def list_invitations(db: AsyncSession, user_id: int) -> dict[str, list[ChallengeInvitation]]:
    """All invitations the user received and sent, newest first."""
    received = await db.execute(
        select(ChallengeInvitation)
        .where(ChallengeInvitation.to_user_id == user_id)
        .order_by(ChallengeInvitation.created_at.desc(), ChallengeInvitation.id.desc())
    )
    sent = await db.execute(
        select(ChallengeInvitation)
        .where(ChallengeInvitation.from_user_id == user_id)
        .order_by(ChallengeInvitation.created_at.desc(), ChallengeInvitation.id.desc())
    )
    return {
        "received": list(received.unique().scalars().all()),
        "sent": list(sent.unique().scalars().all()),
    }


async def get_invitation_for_user_challenge(
    db: AsyncSession, user_challenge_id: int
) -> ChallengeInvitation | None:
    """The invitation that brought a user challenge in, if any."""
    result = await db.execute(
        select(ChallengeInvitation)
        .where(ChallengeInvitation.user_challenge_id == user_challenge_id)
        .order_by(ChallengeInvitation.id.asc())
        .limit(1)
    )
    return result.unique().scalar_one_or_none()


async def run_cleanup_sweep(db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
    """Delete settled and stale invitations.

    - ACCEPTED invitations whose challenge was completed more than the
      retention period ago
    - PENDING invitations created more than the retention period ago

    Safe to run repeatedly.
    """
    cutoff = days_ago(get_settings().invitation_retention_days, now)

    settled = await db.execute(
        select(ChallengeInvitation.id)
        .join(UserChallenge, UserChallenge.id == ChallengeInvitation.user_challenge_id)
        .where(
            ChallengeInvitation.status == InvitationStatus.ACCEPTED,
            UserChallenge.status == ChallengeStatus.COMPLETED,
            UserChallenge.completed_at < cutoff,
        )
    )
    settled_ids = list(settled.scalars().all())
    completed = 0
    if settled_ids:
        result = await db.execute(
            delete(ChallengeInvitation).where(ChallengeInvitation.id.in_(settled_ids))
        )
        completed = result.rowcount

    result = await db.execute(
        delete(ChallengeInvitation).where(
            ChallengeInvitation.status == InvitationStatus.PENDING,
            ChallengeInvitation.created_at < cutoff,
        )
    )
    expired = result.rowcount
    await db.commit()

    logger.info("Invitation cleanup: %d completed, %d expired removed", completed, expired)
    return {"completed": completed, "expired": expired, "total": completed + expired}
