"""Badge engine: thresholds, at-most-once grants, audit rows and recursion."""

from __future__ import annotations

import asyncio

import pytest

from fiquest.db.models import Notification, RewardSource, RewardType, User, UserBadge
from fiquest.gamification import badge_engine as badge_engine_module
from fiquest.gamification.badge_engine import BadgeEngine
from fiquest.tasks import detached


class TestThresholds:
    @pytest.mark.asyncio
    async def test_badge_granted_once_threshold_reached(self, make):
        user = await make.user()
        badge = await make.event_badge("POST_LIKED", 2, xp_reward=100, coins_reward=50)
        engine = BadgeEngine()

        await make.like(user)
        assert await engine.evaluate(user.id, "POST_LIKED") == []

        await make.like(user)
        assert await engine.evaluate(user.id, "POST_LIKED") == [badge.id]
        await detached.drain()

        refreshed = await make.get(User, user.id)
        assert refreshed.xp == 100
        assert refreshed.coins == 50
        assert refreshed.level == 1
        assert await make.count(UserBadge, UserBadge.user_id == user.id) == 1

    @pytest.mark.asyncio
    async def test_every_reached_tier_is_granted(self, make):
        user = await make.user()
        bronze = await make.event_badge("POST_COMMENTED", 1)
        silver = await make.event_badge("POST_COMMENTED", 2)
        gold = await make.event_badge("POST_COMMENTED", 5)
        for _ in range(2):
            await make.comment(user)

        granted = await BadgeEngine().evaluate(user.id, "POST_COMMENTED")
        assert granted == [bronze.id, silver.id]
        assert gold.id not in granted

    @pytest.mark.asyncio
    async def test_inactive_badge_is_ignored(self, make):
        user = await make.user()
        await make.event_badge("POST_LIKED", 1, is_active=False)
        await make.like(user)
        assert await BadgeEngine().evaluate(user.id, "POST_LIKED") == []

    @pytest.mark.asyncio
    async def test_unknown_event_grants_nothing(self, make):
        user = await make.user()
        await make.event_badge("SOMETHING_ELSE", 1)
        assert await BadgeEngine().evaluate(user.id, "SOMETHING_ELSE") == []

    @pytest.mark.asyncio
    async def test_friendships_count_both_directions(self, make):
        user = await make.user()
        a, b = await make.user(), await make.user()
        await make.friendship(user, a)
        await make.friendship(b, user)
        badge = await make.event_badge("FRIENDSHIP_CREATED", 2)
        assert await BadgeEngine().evaluate(user.id, "FRIENDSHIP_CREATED") == [badge.id]


class TestAtMostOnce:
    @pytest.mark.asyncio
    async def test_second_evaluation_is_a_no_op(self, make):
        user = await make.user()
        await make.event_badge("POST_LIKED", 1, xp_reward=40)
        await make.like(user)
        engine = BadgeEngine()

        await engine.evaluate(user.id, "POST_LIKED")
        assert await engine.evaluate(user.id, "POST_LIKED") == []
        await detached.drain()

        assert (await make.get(User, user.id)).xp == 40

    @pytest.mark.asyncio
    async def test_concurrent_grants_award_once(self, make):
        user = await make.user()
        badge = await make.event_badge("POST_LIKED", 1, xp_reward=40, coins_reward=10)
        engine = BadgeEngine()

        results = await asyncio.gather(engine.grant(user.id, badge), engine.grant(user.id, badge))
        await detached.drain()

        assert sorted(results) == [False, True]
        refreshed = await make.get(User, user.id)
        assert refreshed.xp == 40
        assert refreshed.coins == 10
        assert await make.count(UserBadge, UserBadge.user_id == user.id) == 1

    @pytest.mark.asyncio
    async def test_concurrent_evaluations_award_once(self, make):
        user = await make.user()
        await make.event_badge("POST_LIKED", 1, xp_reward=40)
        await make.like(user)
        engine = BadgeEngine()

        first, second = await asyncio.gather(
            engine.evaluate(user.id, "POST_LIKED"),
            engine.evaluate(user.id, "POST_LIKED"),
        )
        await detached.drain()

        assert len(first) + len(second) == 1
        assert (await make.get(User, user.id)).xp == 40

    @pytest.mark.asyncio
    async def test_unique_violation_is_swallowed(self, make, monkeypatch, sessions):
        user = await make.user()
        badge = await make.event_badge("POST_LIKED", 1, xp_reward=40)
        async with sessions() as db:
            db.add(UserBadge(user_id=user.id, badge_id=badge.id))
            await db.commit()

        async def never_owned(_db, _user_id, _badge_id):
            return False

        monkeypatch.setattr(badge_engine_module, "has_badge", never_owned)

        assert await BadgeEngine().grant(user.id, badge) is False
        assert (await make.get(User, user.id)).xp == 0


class TestSideEffects:
    @pytest.mark.asyncio
    async def test_audit_rows_share_badge_source(self, make):
        user = await make.user()
        badge = await make.event_badge("POST_LIKED", 1, xp_reward=100, coins_reward=50)
        await make.like(user)

        await BadgeEngine().evaluate(user.id, "POST_LIKED")
        await detached.drain()

        rows = await make.ledger(user)
        assert {(r.type, r.amount) for r in rows} == {
            (RewardType.BADGE, 1),
            (RewardType.XP, 100),
            (RewardType.COINS, 50),
        }
        assert all(r.source == RewardSource.BADGE_EARNED for r in rows)
        assert all(r.source_id == str(badge.id) for r in rows)

    @pytest.mark.asyncio
    async def test_notification_is_sent(self, make):
        user = await make.user()
        await make.event_badge("POST_LIKED", 1)
        await make.like(user)

        await BadgeEngine().evaluate(user.id, "POST_LIKED")
        await detached.drain()

        assert await make.count(
            Notification, Notification.user_id == user.id, Notification.type == "BADGE_EARNED"
        ) == 1

    @pytest.mark.asyncio
    async def test_level_up_is_announced(self, make):
        user = await make.user()
        await make.event_badge("POST_LIKED", 1, xp_reward=400)
        await make.like(user)

        await BadgeEngine().evaluate(user.id, "POST_LIKED")
        await detached.drain()

        assert (await make.get(User, user.id)).level == 2
        level_rows = [r for r in await make.ledger(user) if r.source == RewardSource.LEVEL_PROGRESSION]
        assert len(level_rows) == 1
        assert level_rows[0].amount == 0
        assert level_rows[0].source_id == "level:2"
        assert await make.count(
            Notification, Notification.user_id == user.id, Notification.type == "LEVEL_UP"
        ) == 1

    @pytest.mark.asyncio
    async def test_badge_earned_chain_terminates(self, make):
        user = await make.user()
        first = await make.event_badge("POST_LIKED", 1)
        collector = await make.event_badge("BADGE_EARNED", 1)
        hoarder = await make.event_badge("BADGE_EARNED", 2)
        unreachable = await make.event_badge("BADGE_EARNED", 10)
        await make.like(user)

        assert await BadgeEngine().evaluate(user.id, "POST_LIKED") == [first.id]
        await detached.drain()

        async with make.session_factory() as db:
            owned = await badge_engine_module.owned_badge_ids(db, user.id)
        assert owned == {first.id, collector.id, hoarder.id}
        assert unreachable.id not in owned
        assert not detached.failures
