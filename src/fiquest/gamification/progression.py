"""Closed-form XP/level progression.

The cumulative XP required to reach level ``L`` is ``50 * (L - 1) * (L + 5)``,
so every level costs 100 XP more than the previous one (350 for level 2,
450 for level 3, ...). ``level_from_xp`` is its exact inverse.

Users migrated from the old table-based curve may have a persisted level
above what their XP computes to. The stored level is never lowered; helpers
that feed progress bars accept it as an override.
"""

from __future__ import annotations

import math

XP_PER_STEP = 50


def xp_for_level(level: int) -> int:
    """Cumulative XP required to reach ``level``. 0 for level 1 and below."""
    if level <= 1:
        return 0
    return XP_PER_STEP * (level - 1) * (level + 5)


def level_from_xp(total_xp: int | float) -> int:
    """Level for ``total_xp``: floor(sqrt(xp / 50 + 9) - 2), at least 1."""
    if total_xp <= 0:
        return 1
    # Integer form of the square root avoids float drift at exact thresholds
    root = math.isqrt((int(total_xp) + 9 * XP_PER_STEP) // XP_PER_STEP)
    return max(1, root - 2)


def effective_level(total_xp: int, stored_level: int | None = None) -> int:
    """Level used for display: the stored level wins when it is higher."""
    computed = level_from_xp(total_xp)
    if stored_level is None:
        return computed
    return max(computed, stored_level)


def next_level(current_level: int, total_xp: int) -> int:
    """Level after an award. Levels are only ever raised."""
    return max(current_level, level_from_xp(total_xp))


def xp_needed_for_next_level(total_xp: int, stored_level: int | None = None) -> int:
    """XP span of the current level (``100 * level + 250``)."""
    level = effective_level(total_xp, stored_level)
    return xp_for_level(level + 1) - xp_for_level(level)


def xp_progress_in_level(total_xp: int, stored_level: int | None = None) -> int:
    """XP earned inside the current level. Never negative."""
    level = effective_level(total_xp, stored_level)
    return max(0, total_xp - xp_for_level(level))


def level_progress_percent(total_xp: int, stored_level: int | None = None) -> int:
    """Progress through the current level, 0..100."""
    needed = xp_needed_for_next_level(total_xp, stored_level)
    if needed <= 0:
        return 100
    progress = xp_progress_in_level(total_xp, stored_level)
    return min(100, round(progress / needed * 100))


def level_info(total_xp: int, stored_level: int | None = None) -> dict:
    """Bundle level data for API responses."""
    level = effective_level(total_xp, stored_level)
    return {
        "level": level,
        "total_xp": total_xp,
        "xp_into_level": xp_progress_in_level(total_xp, stored_level),
        "xp_for_level": xp_needed_for_next_level(total_xp, stored_level),
        "progress_percent": level_progress_percent(total_xp, stored_level),
        "next_level": level + 1,
        "next_level_at": xp_for_level(level + 1),
    }


def level_table(max_level: int = 50) -> list[dict]:
    """Cumulative XP thresholds for levels 1..max_level."""
    return [
        {
            "level": level,
            "xp_required": xp_for_level(level) - xp_for_level(level - 1),
            "cumulative": xp_for_level(level),
        }
        for level in range(1, max_level + 1)
    ]
