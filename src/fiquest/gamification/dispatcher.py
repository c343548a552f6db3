"""Social event dispatcher.

Forwards a named domain event to the badge engine and the challenge
auto-verifier. The two run concurrently and independently: one failing
never prevents the other from finishing.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fiquest.config import get_settings
from fiquest.gamification.auto_verify import ChallengeVerifier
from fiquest.gamification.badge_engine import BadgeEngine
from fiquest.gamification.event_counters import EVENT_COUNTERS

logger = logging.getLogger(__name__)

KNOWN_EVENTS = frozenset(EVENT_COUNTERS)


class DispatchError(Exception):
    """One or both evaluators failed. ``errors`` holds the original exceptions."""

    def __init__(self, event_name: str, errors: list[BaseException]) -> None:
        self.event_name = event_name
        self.errors = errors
        super().__init__(f"{len(errors)} evaluator(s) failed for {event_name}: {errors!r}")


async def dispatch_social_event(
    user_id: int,
    event_name: str,
    badge_engine: BadgeEngine | None = None,
    verifier: ChallengeVerifier | None = None,
) -> dict[str, list[int]]:
    """Run badge evaluation and auto-verification for one event.

    Returns the granted badge ids and completed user challenge ids. Raises
    DispatchError after both have finished if either failed.
    """
    badge_engine = badge_engine or BadgeEngine()
    verifier = verifier or ChallengeVerifier()

    if event_name not in KNOWN_EVENTS:
        logger.debug("Dispatching unregistered event %s", event_name)

    badges, challenges = await asyncio.gather(
        badge_engine.evaluate(user_id, event_name),
        verifier.evaluate(user_id, event_name),
        return_exceptions=True,
    )

    # Logged once by the caller: the worker or the detached task group
    errors = [outcome for outcome in (badges, challenges) if isinstance(outcome, BaseException)]
    if errors:
        raise DispatchError(event_name, errors) from errors[0]

    return {"badges": badges, "challenges": challenges}


async def publish_social_event(redis: Any, user_id: int, event_name: str) -> str:
    """Append an event to the social events stream for the worker to dispatch."""
    stream = get_settings().social_events_stream
    payload = {"user_id": user_id, "event": event_name}
    msg_id = await redis.xadd(stream, {"data": json.dumps(payload)})
    logger.debug("Published %s for user %d to %s (%s)", event_name, user_id, stream, msg_id)
    return msg_id
