"""Initial schema: users, challenge catalog, badges, ledger, invitations.

The unique constraints on user_badges and challenge_invitations are the
grant guard and the two daily invitation quotas; the engines rely on them.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Enums are stored as plain strings (native_enum=False on the models)
ENUM = sa.String(32)
TIMESTAMPTZ = sa.DateTime(timezone=True)


def _user_fk(name: str = "user_id") -> sa.Column:
    return sa.Column(name, sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


def upgrade() -> None:
    # --- Users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128)),
        sa.Column("avatar_url", sa.Text),
        sa.Column("xp", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("coins", sa.Integer, nullable=False, server_default="0"),
        sa.Column("current_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_active_date", sa.Date),
        sa.Column("created_at", TIMESTAMPTZ, nullable=False),
    )

    # --- Challenge catalog and assignments ---
    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("category", ENUM, nullable=False),
        sa.Column("difficulty", sa.String(16), nullable=False),
        sa.Column("xp_reward", sa.Integer, nullable=False),
        sa.Column("coins_reward", sa.Integer, nullable=False),
        sa.Column("auto_verifiable", sa.Boolean, nullable=False),
        sa.Column("verification_event", sa.String(64)),
        sa.Column("is_active", sa.Boolean, nullable=False),
    )
    op.create_index("ix_challenges_verification_event", "challenges", ["verification_event"])

    op.create_table(
        "user_challenges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("challenge_id", sa.Integer, sa.ForeignKey("challenges.id"), nullable=False),
        sa.Column("status", ENUM, nullable=False),
        sa.Column("progress", sa.Integer, nullable=False),
        sa.Column("assigned_at", TIMESTAMPTZ, nullable=False),
        sa.Column("completed_at", TIMESTAMPTZ),
    )
    op.create_index("ix_user_challenges_user_id", "user_challenges", ["user_id"])

    # --- Badges ---
    op.create_table(
        "badges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("icon", sa.String(16)),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("rarity", sa.String(16), nullable=False),
        sa.Column("requirement_type", ENUM, nullable=False),
        sa.Column("requirement_value", sa.Integer, nullable=False),
        sa.Column("category_target", ENUM),
        sa.Column("event", sa.String(64)),
        sa.Column("required_count", sa.Integer),
        sa.Column("xp_reward", sa.Integer, nullable=False),
        sa.Column("coins_reward", sa.Integer, nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
    )
    op.create_index("ix_badges_event", "badges", ["event"])

    op.create_table(
        "user_badges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("badge_id", sa.Integer, sa.ForeignKey("badges.id"), nullable=False),
        sa.Column("earned_at", TIMESTAMPTZ, nullable=False),
        sa.UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_badge"),
    )

    # --- Reward ledger ---
    op.create_table(
        "reward_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("type", ENUM, nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("source", ENUM, nullable=False),
        sa.Column("source_id", sa.String(64)),
        sa.Column("description", sa.String(256)),
        sa.Column("created_at", TIMESTAMPTZ, nullable=False),
    )
    op.create_index("ix_reward_history_user_id", "reward_history", ["user_id"])
    op.create_index("ix_reward_history_source_id", "reward_history", ["source_id"])
    op.create_index("ix_reward_history_created_at", "reward_history", ["created_at"])

    # --- Challenge invitations ---
    op.create_table(
        "challenge_invitations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk("from_user_id"),
        _user_fk("to_user_id"),
        sa.Column("challenge_id", sa.Integer, sa.ForeignKey("challenges.id"), nullable=False),
        sa.Column("message", sa.String(280)),
        sa.Column("status", ENUM, nullable=False),
        sa.Column(
            "user_challenge_id", sa.Integer, sa.ForeignKey("user_challenges.id", ondelete="SET NULL")
        ),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("created_at", TIMESTAMPTZ, nullable=False),
        sa.UniqueConstraint("from_user_id", "to_user_id", "date", name="uq_invitations_pair_day"),
        sa.UniqueConstraint("from_user_id", "challenge_id", "date", name="uq_invitations_challenge_day"),
    )
    op.create_index("ix_challenge_invitations_from_user_id", "challenge_invitations", ["from_user_id"])
    op.create_index("ix_challenge_invitations_to_user_id", "challenge_invitations", ["to_user_id"])

    # --- Social collaborator tables ---
    op.create_table(
        "friendships",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        _user_fk("friend_id"),
        sa.Column("created_at", TIMESTAMPTZ, nullable=False),
        sa.UniqueConstraint("user_id", "friend_id", name="uq_friendships_pair"),
    )
    op.create_table(
        "activity_likes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("activity_id", sa.String(64), nullable=False),
        sa.Column("created_at", TIMESTAMPTZ, nullable=False),
    )
    op.create_table(
        "activity_comments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("activity_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", TIMESTAMPTZ, nullable=False),
    )

    # --- Notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("message", sa.Text),
        sa.Column("data", sa.JSON),
        sa.Column("read", sa.Boolean, nullable=False),
        sa.Column("created_at", TIMESTAMPTZ, nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    for table in (
        "notifications",
        "activity_comments",
        "activity_likes",
        "friendships",
        "challenge_invitations",
        "reward_history",
        "user_badges",
        "badges",
        "user_challenges",
        "challenges",
        "users",
    ):
        op.drop_table(table)
