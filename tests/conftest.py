"""Shared test fixtures.

Tests run against a throwaway SQLite file created from the ORM metadata.
Every transaction starts with BEGIN IMMEDIATE so concurrent writers queue
on the database lock the way row locks serialize them in PostgreSQL.
Engines open their own sessions, so a test must commit or close its
session before draining detached tasks.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fiquest.config import get_settings
from fiquest.database import close_db, get_engine, get_session_factory, init_db
from fiquest.db.base import Base
from fiquest.db.models import (
    ActivityComment,
    ActivityLike,
    Badge,
    Challenge,
    ChallengeCategory,
    ChallengeInvitation,
    ChallengeStatus,
    Friendship,
    InvitationStatus,
    RequirementType,
    RewardHistory,
    User,
    UserChallenge,
)
from fiquest.gamification.progression import level_from_xp
from fiquest.tasks import detached


def _serialize_sqlite_writers(sync_engine) -> None:  # noqa: ANN001
    @event.listens_for(sync_engine, "connect")
    def _connect(dbapi_connection, _record) -> None:  # noqa: ANN001
        # Hand transaction control to the "begin" listener below
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def _begin(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture
async def sessions(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:  # noqa: ANN001
    """Initialize a fresh database and yield the session factory."""
    get_settings.cache_clear()
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'fiquest.db'}")
    _serialize_sqlite_writers(get_engine().sync_engine)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield get_session_factory()

    await detached.drain()
    detached.clear_failures()
    await close_db()


class Factory:
    """Creates committed rows, each in its own short session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def _save(self, obj):  # noqa: ANN001, ANN202
        async with self.session_factory() as db:
            db.add(obj)
            await db.commit()
        return obj

    async def user(self, username: str | None = None, xp: int = 0, level: int | None = None, **kwargs) -> User:
        return await self._save(User(
            username=username or f"user{self._next()}",
            xp=xp,
            level=level if level is not None else level_from_xp(xp),
            **kwargs,
        ))

    async def challenge(
        self,
        title: str | None = None,
        category: ChallengeCategory = ChallengeCategory.PRODUCTIVITY,
        xp_reward: int = 50,
        coins_reward: int = 25,
        **kwargs,
    ) -> Challenge:
        return await self._save(Challenge(
            title=title or f"Challenge {self._next()}",
            description="",
            category=category,
            xp_reward=xp_reward,
            coins_reward=coins_reward,
            **kwargs,
        ))

    async def social_challenge(self, event_name: str, xp_reward: int = 30, coins_reward: int = 15) -> Challenge:
        return await self.challenge(
            category=ChallengeCategory.SOCIAL,
            xp_reward=xp_reward,
            coins_reward=coins_reward,
            auto_verifiable=True,
            verification_event=event_name,
        )

    async def event_badge(
        self, event_name: str, required_count: int, xp_reward: int = 0, coins_reward: int = 0, **kwargs,
    ) -> Badge:
        return await self._save(Badge(
            name=kwargs.pop("name", f"Badge {self._next()}"),
            requirement_type=RequirementType.EVENT_COUNT,
            requirement_value=required_count,
            event=event_name,
            required_count=required_count,
            xp_reward=xp_reward,
            coins_reward=coins_reward,
            **kwargs,
        ))

    async def requirement_badge(
        self, requirement_type: RequirementType, value: int, xp_reward: int = 0, coins_reward: int = 0, **kwargs,
    ) -> Badge:
        return await self._save(Badge(
            name=kwargs.pop("name", f"Badge {self._next()}"),
            requirement_type=requirement_type,
            requirement_value=value,
            xp_reward=xp_reward,
            coins_reward=coins_reward,
            **kwargs,
        ))

    async def friendship(self, user: User, friend: User) -> Friendship:
        return await self._save(Friendship(user_id=user.id, friend_id=friend.id))

    async def like(self, user: User) -> ActivityLike:
        return await self._save(ActivityLike(user_id=user.id, activity_id=f"activity:{self._next()}"))

    async def comment(self, user: User) -> ActivityComment:
        return await self._save(
            ActivityComment(user_id=user.id, activity_id=f"activity:{self._next()}", content="Nice one")
        )

    async def user_challenge(
        self,
        user: User,
        challenge: Challenge,
        status: ChallengeStatus = ChallengeStatus.PENDING,
        assigned_at: datetime | None = None,
        completed_at: datetime | None = None,
    ) -> UserChallenge:
        return await self._save(UserChallenge(
            user_id=user.id,
            challenge_id=challenge.id,
            status=status,
            progress=100 if status == ChallengeStatus.COMPLETED else 0,
            assigned_at=assigned_at or datetime.now(timezone.utc),
            completed_at=completed_at,
        ))

    async def invitation(
        self,
        from_user: User,
        to_user: User,
        challenge: Challenge,
        status: InvitationStatus = InvitationStatus.PENDING,
        user_challenge: UserChallenge | None = None,
        created_at: datetime | None = None,
    ) -> ChallengeInvitation:
        created_at = created_at or datetime.now(timezone.utc)
        return await self._save(ChallengeInvitation(
            from_user_id=from_user.id,
            to_user_id=to_user.id,
            challenge_id=challenge.id,
            status=status,
            user_challenge_id=user_challenge.id if user_challenge else None,
            date=created_at.date(),
            created_at=created_at,
        ))

    # --- reads ---

    async def get(self, model: type, pk: int):  # noqa: ANN202
        async with self.session_factory() as db:
            return await db.get(model, pk, populate_existing=True)

    async def count(self, model: type, *criteria) -> int:  # noqa: ANN002
        async with self.session_factory() as db:
            result = await db.execute(select(func.count()).select_from(model).where(*criteria))
            return result.scalar_one()

    async def ledger(self, user: User) -> list[RewardHistory]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(RewardHistory)
                .where(RewardHistory.user_id == user.id)
                .order_by(RewardHistory.id.asc())
            )
            return list(result.unique().scalars().all())


@pytest_asyncio.fixture
async def make(sessions: async_sessionmaker[AsyncSession]) -> Factory:
    return Factory(sessions)


@pytest_asyncio.fixture
async def client(sessions: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, sharing the test database."""
    from fiquest.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
