"""Daily sweep of settled and expired invitations."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from fiquest.db.models import ChallengeInvitation, ChallengeStatus, InvitationStatus
from fiquest.social.invitation_service import run_cleanup_sweep


def _days_ago(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


class TestCleanupSweep:
    @pytest.mark.asyncio
    async def test_removes_only_rows_past_retention(self, sessions, make):
        receiver = await make.user("receiver")
        senders = [await make.user() for _ in range(5)]
        walk = await make.challenge("Walk")

        done_long_ago = await make.user_challenge(
            receiver, walk, status=ChallengeStatus.COMPLETED, completed_at=_days_ago(8)
        )
        done_recently = await make.user_challenge(
            receiver, walk, status=ChallengeStatus.COMPLETED, completed_at=_days_ago(6)
        )
        still_open = await make.user_challenge(receiver, walk, assigned_at=_days_ago(10))

        settled = await make.invitation(
            senders[0], receiver, walk, InvitationStatus.ACCEPTED, done_long_ago, _days_ago(9)
        )
        recent = await make.invitation(
            senders[1], receiver, walk, InvitationStatus.ACCEPTED, done_recently, _days_ago(7)
        )
        stale = await make.invitation(senders[2], receiver, walk, created_at=_days_ago(8))
        fresh = await make.invitation(senders[3], receiver, walk, created_at=_days_ago(6))
        open_accepted = await make.invitation(
            senders[4], receiver, walk, InvitationStatus.ACCEPTED, still_open, _days_ago(10)
        )

        async with sessions() as db:
            result = await run_cleanup_sweep(db)

        assert result == {"completed": 1, "expired": 1, "total": 2}
        assert await make.get(ChallengeInvitation, settled.id) is None
        assert await make.get(ChallengeInvitation, stale.id) is None
        for kept in (recent, fresh, open_accepted):
            assert await make.get(ChallengeInvitation, kept.id) is not None

    @pytest.mark.asyncio
    async def test_sweep_is_repeatable(self, sessions, make):
        sender, receiver = await make.user(), await make.user()
        walk = await make.challenge()
        await make.invitation(sender, receiver, walk, created_at=_days_ago(8))

        async with sessions() as db:
            first = await run_cleanup_sweep(db)
        async with sessions() as db:
            second = await run_cleanup_sweep(db)

        assert first["total"] == 1
        assert second == {"completed": 0, "expired": 0, "total": 0}

    @pytest.mark.asyncio
    async def test_explicit_now(self, sessions, make):
        sender, receiver = await make.user(), await make.user()
        walk = await make.challenge()
        await make.invitation(sender, receiver, walk, created_at=_days_ago(1))

        async with sessions() as db:
            result = await run_cleanup_sweep(db, now=datetime.now(timezone.utc) + timedelta(days=7))

        assert result["expired"] == 1
