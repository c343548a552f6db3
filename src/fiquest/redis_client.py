"""Shared Redis client for notification push and the social event stream.

The API process holds one pool, set up in the app lifespan. Redis is
optional for the API: without it notifications are only persisted.
"""

import json
from typing import Any

import redis.asyncio as redis

_client: redis.Redis | None = None


def connect(url: str, max_connections: int = 50) -> redis.Redis:
    """A client that decodes responses to ``str`` (stream fields, channel payloads)."""
    return redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
    )


async def init_redis(url: str) -> None:
    global _client  # noqa: PLW0603
    _client = connect(url)


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
    _client = None


def get_redis() -> redis.Redis:
    if _client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _client


def get_redis_or_none() -> redis.Redis | None:
    """The client, or None when Redis was never initialized (tests, scripts)."""
    return _client


def user_channel(user_id: int) -> str:
    return f"ws:user:{user_id}"


async def publish_to_user(client: Any, user_id: int, payload: dict[str, Any]) -> int:
    """Publish a JSON payload on the user's push channel. Returns the receiver count."""
    return await client.publish(user_channel(user_id), json.dumps(payload, default=str))
