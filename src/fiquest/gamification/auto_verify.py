"""Automatic completion of challenges that a domain event satisfies."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fiquest.challenges.day_utils import day_bounds
from fiquest.database import get_session_factory
from fiquest.db.models import Challenge, ChallengeStatus, RewardSource, UserChallenge
from fiquest.gamification import ledger
from fiquest.gamification.rewards import announce_level_up, apply_rewards
from fiquest.tasks import DetachedTasks, detached

logger = logging.getLogger(__name__)


class ChallengeVerifier:
    """Completes today's pending auto-verifiable challenges matching an event."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        tasks: DetachedTasks | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.tasks = tasks or detached

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def evaluate(self, user_id: int, event_name: str) -> list[int]:
        """Returns the ids of user challenges completed by this call."""
        start, end = day_bounds()
        async with self.session_factory() as db:
            result = await db.execute(
                select(Challenge).where(
                    Challenge.auto_verifiable.is_(True),
                    Challenge.verification_event == event_name,
                    Challenge.is_active.is_(True),
                )
            )
            challenges = list(result.scalars().all())
            if not challenges:
                return []

            pending: list[tuple[Challenge, int]] = []
            for challenge in challenges:
                uc_result = await db.execute(
                    select(UserChallenge.id)
                    .where(
                        UserChallenge.user_id == user_id,
                        UserChallenge.challenge_id == challenge.id,
                        UserChallenge.status == ChallengeStatus.PENDING,
                        UserChallenge.assigned_at >= start,
                        UserChallenge.assigned_at < end,
                    )
                    .order_by(UserChallenge.id.asc())
                    .limit(1)
                )
                user_challenge_id = uc_result.scalar_one_or_none()
                if user_challenge_id is not None:
                    pending.append((challenge, user_challenge_id))

        completed = []
        for challenge, user_challenge_id in pending:
            if await self._complete(user_id, challenge, user_challenge_id):
                completed.append(user_challenge_id)
        return completed

    async def _complete(self, user_id: int, challenge: Challenge, user_challenge_id: int) -> bool:
        async with self.session_factory() as db, db.begin():
            result = await db.execute(
                update(UserChallenge)
                .where(
                    UserChallenge.id == user_challenge_id,
                    UserChallenge.status != ChallengeStatus.COMPLETED,
                )
                .values(
                    status=ChallengeStatus.COMPLETED,
                    completed_at=datetime.now(timezone.utc),
                    progress=100,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info("User challenge %d already completed, skipping", user_challenge_id)
                return False

            change = await apply_rewards(db, user_id, challenge.xp_reward, challenge.coins_reward)
            for entry in ledger.reward_entries(
                user_id,
                challenge.xp_reward,
                challenge.coins_reward,
                RewardSource.CHALLENGE_COMPLETION,
                str(user_challenge_id),
                f'Challenge "{challenge.title}" completed automatically',
            ):
                await ledger.append(db, entry)

        logger.info(
            "Challenge %s auto-completed for user %d (+%d XP, +%d coins)",
            challenge.title, user_id, challenge.xp_reward, challenge.coins_reward,
        )
        if change.leveled_up:
            self.tasks.spawn(announce_level_up(user_id, change), name=f"level-up:{user_id}:{change.new_level}")
        return True
