"""Daily assignment and manual completion of challenges."""

from __future__ import annotations

from datetime import timedelta

import pytest

from fiquest.challenges import service
from fiquest.challenges.day_utils import local_today
from fiquest.config import get_settings
from fiquest.db.models import (
    ChallengeCategory,
    ChallengeStatus,
    RequirementType,
    RewardSource,
    User,
    UserBadge,
    UserChallenge,
)
from fiquest.exceptions import (
    ChallengeAlreadyCompletedError,
    ChallengeNotOwnedError,
    UserChallengeNotFoundError,
)
from fiquest.tasks import detached


async def _complete(sessions, user, user_challenge):
    async with sessions() as db:
        return await service.complete_challenge(db, user.id, user_challenge.id)


class TestCompleteChallenge:
    @pytest.mark.asyncio
    async def test_rewards_and_status(self, sessions, make):
        user = await make.user()
        walk = await make.challenge("Walk", xp_reward=50, coins_reward=25)
        uc = await make.user_challenge(user, walk)

        result = await _complete(sessions, user, uc)

        assert result["user_challenge"].status == ChallengeStatus.COMPLETED
        assert result["user_challenge"].completed_at is not None
        assert result["stats"] == {
            "xp": 50,
            "coins": 25,
            "level": 1,
            "current_streak": 1,
            "longest_streak": 1,
        }
        assert result["leveled_up"] is False

    @pytest.mark.asyncio
    async def test_ledger_rows(self, sessions, make):
        user = await make.user()
        walk = await make.challenge("Walk", xp_reward=50, coins_reward=25)
        uc = await make.user_challenge(user, walk)

        await _complete(sessions, user, uc)

        rows = await make.ledger(user)
        assert sorted(r.amount for r in rows) == [25, 50]
        assert all(r.source == RewardSource.CHALLENGE_COMPLETION for r in rows)
        assert all(r.source_id == str(uc.id) for r in rows)
        assert all(r.description == "Completed: Walk" for r in rows)

    @pytest.mark.asyncio
    async def test_second_completion_is_rejected(self, sessions, make):
        user = await make.user()
        uc = await make.user_challenge(user, await make.challenge(xp_reward=50))
        await _complete(sessions, user, uc)

        with pytest.raises(ChallengeAlreadyCompletedError):
            await _complete(sessions, user, uc)
        assert (await make.get(User, user.id)).xp == 50

    @pytest.mark.asyncio
    async def test_other_users_challenge(self, sessions, make):
        owner, intruder = await make.user(), await make.user()
        uc = await make.user_challenge(owner, await make.challenge())
        with pytest.raises(ChallengeNotOwnedError):
            await _complete(sessions, intruder, uc)

    @pytest.mark.asyncio
    async def test_missing_user_challenge(self, sessions, make):
        user = await make.user()
        async with sessions() as db:
            with pytest.raises(UserChallengeNotFoundError):
                await service.complete_challenge(db, user.id, 4242)

    @pytest.mark.asyncio
    async def test_level_up(self, sessions, make):
        user = await make.user(xp=300)
        uc = await make.user_challenge(user, await make.challenge(xp_reward=100, coins_reward=0))

        result = await _complete(sessions, user, uc)
        await detached.drain()

        assert result["leveled_up"] is True
        assert result["new_level"] == 2
        assert result["stats"]["level"] == 2
        level_rows = [r for r in await make.ledger(user) if r.source == RewardSource.LEVEL_PROGRESSION]
        assert [r.source_id for r in level_rows] == ["level:2"]

    @pytest.mark.asyncio
    async def test_stored_level_is_not_lowered(self, sessions, make):
        user = await make.user(xp=0, level=5)
        uc = await make.user_challenge(user, await make.challenge(xp_reward=50))

        result = await _complete(sessions, user, uc)

        assert result["leveled_up"] is False
        assert result["stats"]["level"] == 5


class TestStreaks:
    @pytest.mark.asyncio
    async def test_consecutive_day_extends_streak(self, sessions, make):
        user = await make.user(
            current_streak=4, longest_streak=4, last_active_date=local_today() - timedelta(days=1)
        )
        uc = await make.user_challenge(user, await make.challenge())
        result = await _complete(sessions, user, uc)
        assert (result["stats"]["current_streak"], result["stats"]["longest_streak"]) == (5, 5)

    @pytest.mark.asyncio
    async def test_gap_restarts_streak(self, sessions, make):
        user = await make.user(
            current_streak=4, longest_streak=9, last_active_date=local_today() - timedelta(days=3)
        )
        uc = await make.user_challenge(user, await make.challenge())
        result = await _complete(sessions, user, uc)
        assert (result["stats"]["current_streak"], result["stats"]["longest_streak"]) == (1, 9)

    @pytest.mark.asyncio
    async def test_same_day_keeps_streak(self, sessions, make):
        user = await make.user(current_streak=2, longest_streak=5, last_active_date=local_today())
        uc = await make.user_challenge(user, await make.challenge())
        result = await _complete(sessions, user, uc)
        assert (result["stats"]["current_streak"], result["stats"]["longest_streak"]) == (2, 5)


class TestFollowUps:
    @pytest.mark.asyncio
    async def test_requirement_badge_granted_after_completion(self, sessions, make):
        user = await make.user()
        first_steps = await make.requirement_badge(RequirementType.CHALLENGES_COMPLETED, 1, xp_reward=25)
        uc = await make.user_challenge(user, await make.challenge(xp_reward=50, coins_reward=0))

        await _complete(sessions, user, uc)
        await detached.drain()

        assert await make.count(
            UserBadge, UserBadge.user_id == user.id, UserBadge.badge_id == first_steps.id
        ) == 1
        assert (await make.get(User, user.id)).xp == 75

    @pytest.mark.asyncio
    async def test_category_master_counts_only_its_category(self, sessions, make):
        user = await make.user()
        master = await make.requirement_badge(
            RequirementType.CATEGORY_MASTER, 2, category_target=ChallengeCategory.PRODUCTIVITY
        )
        sleep = await make.challenge(category=ChallengeCategory.SLEEP)
        focus = await make.challenge(category=ChallengeCategory.PRODUCTIVITY)

        await _complete(sessions, user, await make.user_challenge(user, sleep))
        await _complete(sessions, user, await make.user_challenge(user, focus))
        await detached.drain()
        assert await make.count(UserBadge, UserBadge.badge_id == master.id) == 0

        await _complete(sessions, user, await make.user_challenge(user, focus))
        await detached.drain()
        assert await make.count(UserBadge, UserBadge.badge_id == master.id) == 1

    @pytest.mark.asyncio
    async def test_daily_threshold_dispatches_event(self, sessions, make):
        user = await make.user()
        keep_going = await make.social_challenge("DAILY_CHALLENGES_COMPLETED", xp_reward=80, coins_reward=45)
        auto_uc = await make.user_challenge(user, keep_going)
        manual = [await make.user_challenge(user, await make.challenge(xp_reward=10)) for _ in range(3)]

        for uc in manual[:2]:
            await _complete(sessions, user, uc)
        await detached.drain()
        assert (await make.get(UserChallenge, auto_uc.id)).status == ChallengeStatus.PENDING

        await _complete(sessions, user, manual[2])
        await detached.drain()
        assert (await make.get(UserChallenge, auto_uc.id)).status == ChallengeStatus.COMPLETED
        assert (await make.get(User, user.id)).xp == 30 + 80


class TestDailyAssignment:
    @pytest.mark.asyncio
    async def test_assigns_once_per_day(self, sessions, make):
        user = await make.user()
        for _ in range(3):
            await make.challenge()
        await make.challenge(is_active=False)

        async with sessions() as db:
            first = await service.assign_daily_challenges(db, user.id)
        async with sessions() as db:
            second = await service.assign_daily_challenges(db, user.id)

        assert len(first) == 3
        assert [uc.id for uc in first] == [uc.id for uc in second]
        assert all(uc.challenge.is_active for uc in first)

    @pytest.mark.asyncio
    async def test_daily_count_is_capped(self, sessions, make, monkeypatch):
        monkeypatch.setattr(get_settings(), "daily_challenge_count", 2)
        user = await make.user()
        for _ in range(4):
            await make.challenge()

        async with sessions() as db:
            assigned = await service.assign_daily_challenges(db, user.id)
        assert len(assigned) == 2

    @pytest.mark.asyncio
    async def test_pending_first(self, sessions, make):
        user = await make.user()
        done = await make.user_challenge(user, await make.challenge(), status=ChallengeStatus.COMPLETED)
        todo = await make.user_challenge(user, await make.challenge())
        async with sessions() as db:
            daily = await service.get_daily_challenges(db, user.id)
        assert [uc.id for uc in daily] == [todo.id, done.id]

    @pytest.mark.asyncio
    async def test_history_lists_completed_only(self, sessions, make):
        user = await make.user()
        done = await make.user_challenge(user, await make.challenge())
        await make.user_challenge(user, await make.challenge())
        await _complete(sessions, user, done)

        async with sessions() as db:
            history = await service.get_challenge_history(db, user.id)
        assert [uc.id for uc in history] == [done.id]
