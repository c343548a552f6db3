"""Reconcile stored levels with the quadratic progression formula.

Users whose XP now computes to a higher level are boosted. Users whose
stored level is above the computed one keep it ("frozen"); the formula
takes over once they earn enough XP to pass it.

Usage: python -m fiquest.gamification.level_migration [--apply]
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fiquest.config import get_settings
from fiquest.database import close_db, independent_session, init_db
from fiquest.db.models import User
from fiquest.gamification.progression import level_from_xp

logger = logging.getLogger(__name__)


async def reconcile_levels(db: AsyncSession, apply: bool = False) -> dict:
    """Report (and with ``apply`` perform) level boosts. Levels are never lowered."""
    result = await db.execute(
        select(User.id, User.username, User.xp, User.level).order_by(User.level.desc(), User.id.asc())
    )

    boosted: list[dict] = []
    frozen: list[dict] = []
    unchanged = 0
    for user_id, username, xp, level in result.all():
        computed = level_from_xp(xp)
        if computed > level:
            boosted.append({"user_id": user_id, "username": username, "xp": xp,
                            "old_level": level, "new_level": computed})
        elif computed < level:
            frozen.append({"user_id": user_id, "username": username, "xp": xp,
                           "stored_level": level, "computed_level": computed})
        else:
            unchanged += 1

    if apply and boosted:
        for row in boosted:
            await db.execute(
                update(User)
                .where(User.id == row["user_id"], User.level < row["new_level"])
                .values(level=row["new_level"])
                .execution_options(synchronize_session=False)
            )
        await db.commit()
        logger.info("Boosted %d users to their computed level", len(boosted))

    return {
        "applied": apply,
        "boosted": boosted,
        "frozen": frozen,
        "unchanged": unchanged,
    }


async def _main(apply: bool) -> None:
    settings = get_settings()
    await init_db(settings.database_url)
    try:
        async with independent_session() as db:
            report = await reconcile_levels(db, apply=apply)
    finally:
        await close_db()

    mode = "APPLIED" if apply else "DRY RUN"
    logger.info(
        "%s: %d boosted, %d frozen, %d unchanged",
        mode, len(report["boosted"]), len(report["frozen"]), report["unchanged"],
    )
    for row in report["boosted"]:
        logger.info("  boost %s (%d XP): %d -> %d", row["username"], row["xp"], row["old_level"], row["new_level"])
    for row in report["frozen"]:
        logger.info(
            "  frozen %s (%d XP): stored %d, computed %d",
            row["username"], row["xp"], row["stored_level"], row["computed_level"],
        )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Reconcile stored user levels with the XP formula")
    parser.add_argument("--apply", action="store_true", help="write the boosts (default is a dry run)")
    asyncio.run(_main(parser.parse_args().apply))
