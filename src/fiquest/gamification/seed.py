"""Catalog seed data: auto-verifiable social challenges and their badges."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.db.models import Badge, Challenge, ChallengeCategory, RequirementType

logger = logging.getLogger(__name__)

SOCIAL_CHALLENGE_SEED_DATA: list[dict] = [
    {
        "title": "Challenge a Friend",
        "description": "Send a challenge invitation to a friend and take it on together.",
        "difficulty": "EASY",
        "xp_reward": 50,
        "coins_reward": 25,
        "verification_event": "CHALLENGE_INVITE_SENT",
    },
    {
        "title": "Accept a Challenge",
        "description": "Accept a friend's challenge invitation.",
        "difficulty": "EASY",
        "xp_reward": 50,
        "coins_reward": 25,
        "verification_event": "CHALLENGE_INVITE_ACCEPTED",
    },
    {
        "title": "Like a Post",
        "description": "Cheer a friend on by liking one of their posts.",
        "difficulty": "EASY",
        "xp_reward": 30,
        "coins_reward": 15,
        "verification_event": "POST_LIKED",
    },
    {
        "title": "Comment on a Post",
        "description": "Leave a meaningful comment on a friend's post.",
        "difficulty": "EASY",
        "xp_reward": 40,
        "coins_reward": 20,
        "verification_event": "POST_COMMENTED",
    },
    {
        "title": "Make a New Friend",
        "description": "Add a new friend to your network.",
        "difficulty": "EASY",
        "xp_reward": 60,
        "coins_reward": 30,
        "verification_event": "FRIENDSHIP_CREATED",
    },
    {
        "title": "Earn a New Badge",
        "description": "Unlock a new achievement.",
        "difficulty": "MEDIUM",
        "xp_reward": 75,
        "coins_reward": 40,
        "verification_event": "BADGE_EARNED",
    },
    {
        "title": "Keep Your Streak",
        "description": "Complete at least 3 daily challenges today.",
        "difficulty": "MEDIUM",
        "xp_reward": 80,
        "coins_reward": 45,
        "verification_event": "DAILY_CHALLENGES_COMPLETED",
    },
]


def _event_badge(name: str, icon: str, rarity: str, event: str, count: int, xp: int, coins: int) -> dict:
    return {
        "name": name,
        "icon": icon,
        "rarity": rarity,
        "category": "SOCIAL",
        "requirement_type": RequirementType.EVENT_COUNT,
        "requirement_value": count,
        "required_count": count,
        "event": event,
        "xp_reward": xp,
        "coins_reward": coins,
    }


BADGE_SEED_DATA: list[dict] = [
    # Invitations sent
    _event_badge("Rookie Challenger", "🎯", "COMMON", "CHALLENGE_INVITE_SENT", 1, 50, 25),
    _event_badge("Frequent Challenger", "🎯", "RARE", "CHALLENGE_INVITE_SENT", 10, 200, 100),
    _event_badge("Challenge Master", "👑", "EPIC", "CHALLENGE_INVITE_SENT", 50, 500, 250),
    _event_badge("Challenge Legend", "⚡", "LEGENDARY", "CHALLENGE_INVITE_SENT", 100, 1000, 500),
    # Invitations accepted
    _event_badge("Always In", "🤝", "COMMON", "CHALLENGE_INVITE_ACCEPTED", 10, 150, 75),
    _event_badge("Supportive Friend", "💪", "RARE", "CHALLENGE_INVITE_ACCEPTED", 25, 300, 150),
    _event_badge("Unstoppable", "⚔️", "EPIC", "CHALLENGE_INVITE_ACCEPTED", 50, 600, 300),
    # Likes given
    _event_badge("Supporter", "❤️", "COMMON", "POST_LIKED", 25, 100, 50),
    _event_badge("Engaged", "💖", "RARE", "POST_LIKED", 100, 250, 125),
    _event_badge("Positivity Icon", "✨", "EPIC", "POST_LIKED", 250, 500, 250),
    # Comments authored
    _event_badge("Commentator", "💬", "COMMON", "POST_COMMENTED", 50, 150, 75),
    _event_badge("Conversationalist", "🗨️", "RARE", "POST_COMMENTED", 150, 350, 175),
    _event_badge("Influencer", "🌟", "EPIC", "POST_COMMENTED", 300, 700, 350),
    # Friendships
    _event_badge("Sociable", "👥", "COMMON", "FRIENDSHIP_CREATED", 10, 150, 75),
    _event_badge("Social Butterfly", "🦋", "RARE", "FRIENDSHIP_CREATED", 20, 300, 150),
    _event_badge("Connector", "🌐", "EPIC", "FRIENDSHIP_CREATED", 50, 600, 300),
    # Badges of badges
    _event_badge("Badge Collector", "🏆", "RARE", "BADGE_EARNED", 15, 400, 200),
    _event_badge("Achievement Master", "👑", "EPIC", "BADGE_EARNED", 30, 800, 400),
    # Requirement badges checked after a manual completion
    {
        "name": "First Steps",
        "icon": "👣",
        "rarity": "COMMON",
        "category": "BEGINNER",
        "requirement_type": RequirementType.CHALLENGES_COMPLETED,
        "requirement_value": 1,
        "xp_reward": 25,
        "coins_reward": 10,
    },
    {
        "name": "Week Warrior",
        "icon": "🔥",
        "rarity": "RARE",
        "category": "STREAK",
        "requirement_type": RequirementType.STREAK_DAYS,
        "requirement_value": 7,
        "xp_reward": 150,
        "coins_reward": 50,
    },
    {
        "name": "Productivity Master",
        "icon": "📈",
        "rarity": "EPIC",
        "category": "ACHIEVEMENT",
        "requirement_type": RequirementType.CATEGORY_MASTER,
        "requirement_value": 25,
        "category_target": ChallengeCategory.PRODUCTIVITY,
        "xp_reward": 300,
        "coins_reward": 100,
    },
]


async def seed_social_challenges(db: AsyncSession) -> int:
    """Insert missing social challenges (matched by title). Returns number inserted."""
    existing = set((await db.execute(select(Challenge.title))).scalars().all())
    inserted = 0
    for data in SOCIAL_CHALLENGE_SEED_DATA:
        if data["title"] in existing:
            continue
        db.add(Challenge(category=ChallengeCategory.SOCIAL, auto_verifiable=True, is_active=True, **data))
        inserted += 1
    await db.flush()
    return inserted


async def seed_badges(db: AsyncSession) -> int:
    """Insert missing badges (matched by name). Returns number inserted."""
    existing = set((await db.execute(select(Badge.name))).scalars().all())
    inserted = 0
    for order, data in enumerate(BADGE_SEED_DATA, start=1):
        if data["name"] in existing:
            continue
        db.add(Badge(description=data.get("description", ""), sort_order=order, is_active=True, **data))
        inserted += 1
    await db.flush()
    return inserted


async def seed_catalog(db: AsyncSession) -> dict[str, int]:
    """Seed challenges and badges. Idempotent."""
    challenges = await seed_social_challenges(db)
    badges = await seed_badges(db)
    await db.commit()
    logger.info("Seeded %d challenges and %d badges", challenges, badges)
    return {"challenges": challenges, "badges": badges}
