"""ORM models for the progression and reward engine.

Catalog tables (challenges, badges) are administered elsewhere and are
read-only from this service's point of view. Friendship, like and comment
tables belong to the social collaborator; they are mapped here only so
badge counters can read them.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fiquest.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChallengeStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ChallengeCategory(str, enum.Enum):
    PHYSICAL_ACTIVITY = "PHYSICAL_ACTIVITY"
    NUTRITION = "NUTRITION"
    HYDRATION = "HYDRATION"
    MENTAL_HEALTH = "MENTAL_HEALTH"
    SLEEP = "SLEEP"
    SOCIAL = "SOCIAL"
    PRODUCTIVITY = "PRODUCTIVITY"
    MINDFULNESS = "MINDFULNESS"


class RequirementType(str, enum.Enum):
    CHALLENGES_COMPLETED = "CHALLENGES_COMPLETED"
    STREAK_DAYS = "STREAK_DAYS"
    LEVEL_REACHED = "LEVEL_REACHED"
    XP_EARNED = "XP_EARNED"
    CATEGORY_MASTER = "CATEGORY_MASTER"
    SPECIFIC_CHALLENGE = "SPECIFIC_CHALLENGE"
    SOCIAL_INTERACTION = "SOCIAL_INTERACTION"
    EVENT_COUNT = "EVENT_COUNT"


class RewardType(str, enum.Enum):
    XP = "XP"
    COINS = "COINS"
    BADGE = "BADGE"
    ITEM = "ITEM"


class RewardSource(str, enum.Enum):
    CHALLENGE_COMPLETION = "CHALLENGE_COMPLETION"
    BADGE_EARNED = "BADGE_EARNED"
    LEVEL_PROGRESSION = "LEVEL_PROGRESSION"
    SHOP_PURCHASE = "SHOP_PURCHASE"


class InvitationStatus(str, enum.Enum):
    # Rejected and expired invitations are deleted, not stored.
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"


def _enum(cls: type[enum.Enum]) -> Enum:
    return Enum(cls, native_enum=False, length=32, validate_strings=True)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Identity plus progression state. Mutated only by reward operations."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_active_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Challenge catalog and assignments
# ---------------------------------------------------------------------------


class Challenge(Base):
    """Challenge catalog definition."""

    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[ChallengeCategory] = mapped_column(_enum(ChallengeCategory), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(16), nullable=False, default="EASY")
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coins_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_verifiable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_event: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UserChallenge(Base):
    """One assignment of a challenge to a user for a given day."""

    __tablename__ = "user_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    challenge_id: Mapped[int] = mapped_column(Integer, ForeignKey("challenges.id"), nullable=False)
    status: Mapped[ChallengeStatus] = mapped_column(
        _enum(ChallengeStatus), nullable=False, default=ChallengeStatus.PENDING
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    challenge: Mapped[Challenge] = relationship("Challenge", lazy="joined")


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------


class Badge(Base):
    """Badge catalog definition.

    Event-driven badges carry ``event`` and ``required_count``; the others
    are checked against ``requirement_type`` / ``requirement_value``.
    """

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[str | None] = mapped_column(String(16), nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="GENERAL")
    rarity: Mapped[str] = mapped_column(String(16), nullable=False, default="COMMON")
    requirement_type: Mapped[RequirementType] = mapped_column(_enum(RequirementType), nullable=False)
    requirement_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category_target: Mapped[ChallengeCategory | None] = mapped_column(_enum(ChallengeCategory), nullable=True)
    event: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    required_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coins_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class UserBadge(Base):
    """Badges earned by users. UNIQUE(user_id, badge_id) is the grant guard."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_id: Mapped[int] = mapped_column(Integer, ForeignKey("badges.id"), nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    badge: Mapped[Badge] = relationship("Badge", lazy="joined")


# ---------------------------------------------------------------------------
# Reward ledger
# ---------------------------------------------------------------------------


class RewardHistory(Base):
    """Append-only reward ledger. Rows sharing ``source_id`` form one feed item."""

    __tablename__ = "reward_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[RewardType] = mapped_column(_enum(RewardType), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[RewardSource] = mapped_column(_enum(RewardSource), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )

    user: Mapped[User] = relationship("User", lazy="joined")


# ---------------------------------------------------------------------------
# Challenge invitations
# ---------------------------------------------------------------------------


class ChallengeInvitation(Base):
    """Friend-to-friend challenge invitation.

    The two unique constraints back the daily quotas: one invitation per
    (sender, receiver) per day and one per (sender, challenge) per day.
    """

    __tablename__ = "challenge_invitations"
    __table_args__ = (
        UniqueConstraint("from_user_id", "to_user_id", "date", name="uq_invitations_pair_day"),
        UniqueConstraint("from_user_id", "challenge_id", "date", name="uq_invitations_challenge_day"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    from_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    to_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    challenge_id: Mapped[int] = mapped_column(Integer, ForeignKey("challenges.id"), nullable=False)
    message: Mapped[str | None] = mapped_column(String(280), nullable=True)
    status: Mapped[InvitationStatus] = mapped_column(
        _enum(InvitationStatus), nullable=False, default=InvitationStatus.PENDING
    )
    user_challenge_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("user_challenges.id", ondelete="SET NULL"), nullable=True
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    challenge: Mapped[Challenge] = relationship("Challenge", lazy="joined")
    from_user: Mapped[User] = relationship("User", foreign_keys=[from_user_id], lazy="joined")
    to_user: Mapped[User] = relationship("User", foreign_keys=[to_user_id], lazy="joined")


# ---------------------------------------------------------------------------
# Social collaborator tables (read-only here)
# ---------------------------------------------------------------------------


class Friendship(Base):
    """Friendship edge. A single row in either direction means the pair are friends."""

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friendships_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    friend_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ActivityLike(Base):
    """A like given by ``user_id`` on a feed item."""

    __tablename__ = "activity_likes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ActivityComment(Base):
    """A comment authored by ``user_id`` on a feed item."""

    __tablename__ = "activity_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
