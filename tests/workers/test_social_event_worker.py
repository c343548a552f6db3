"""Social event stream handling in the arq worker."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from fiquest.gamification.dispatcher import DispatchError
from fiquest.workers import settings as worker


@pytest.fixture
def redis_client():
    return AsyncMock()


class TestParseEvent:
    def test_valid_entry(self):
        assert worker.parse_event({"data": json.dumps({"user_id": "7", "event": "POST_LIKED"})}) == (
            7,
            "POST_LIKED",
        )

    @pytest.mark.parametrize(
        "fields",
        [
            {},
            {"data": "not json"},
            {"data": json.dumps({"event": "POST_LIKED"})},
            {"data": json.dumps({"user_id": "abc", "event": "POST_LIKED"})},
            {"data": json.dumps(["POST_LIKED"])},
        ],
    )
    def test_malformed_entries(self, fields):
        assert worker.parse_event(fields) is None


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_dispatches_and_acks(self, redis_client, monkeypatch):
        dispatch = AsyncMock(return_value={"badges": [3], "challenges": []})
        monkeypatch.setattr(worker, "dispatch_social_event", dispatch)

        outcome = await worker.handle_message(
            redis_client, "1-0", {"data": json.dumps({"user_id": 7, "event": "POST_LIKED"})}
        )

        assert outcome == {"badges": [3], "challenges": []}
        dispatch.assert_awaited_once_with(7, "POST_LIKED")
        redis_client.xack.assert_awaited_once_with("social:events", "gamification-consumers", "1-0")

    @pytest.mark.asyncio
    async def test_malformed_entry_is_acked_and_dropped(self, redis_client, monkeypatch):
        dispatch = AsyncMock()
        monkeypatch.setattr(worker, "dispatch_social_event", dispatch)

        assert await worker.handle_message(redis_client, "2-0", {"data": "garbage"}) is None

        dispatch.assert_not_awaited()
        redis_client.xack.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_dispatch_stays_pending(self, redis_client, monkeypatch):
        dispatch = AsyncMock(side_effect=DispatchError("POST_LIKED", [RuntimeError("down")]))
        monkeypatch.setattr(worker, "dispatch_social_event", dispatch)

        outcome = await worker.handle_message(
            redis_client, "3-0", {"data": json.dumps({"user_id": 7, "event": "POST_LIKED"})}
        )

        assert outcome is None
        redis_client.xack.assert_not_awaited()


def _entry(user_id=7, event="POST_LIKED"):
    return {"data": json.dumps({"user_id": user_id, "event": event})}


class TestReclaimPending:
    @pytest.mark.asyncio
    async def test_failed_entry_is_processed_again_and_acked(self, redis_client, monkeypatch):
        dispatch = AsyncMock(
            side_effect=[DispatchError("POST_LIKED", [RuntimeError("down")]), {"badges": [], "challenges": [4]}]
        )
        monkeypatch.setattr(worker, "dispatch_social_event", dispatch)

        assert await worker.handle_message(redis_client, "5-0", _entry()) is None
        redis_client.xack.assert_not_awaited()

        redis_client.xautoclaim.return_value = ["0-0", [("5-0", _entry())], []]
        assert await worker.reclaim_pending(redis_client) == 1

        redis_client.xautoclaim.assert_awaited_once_with(
            "social:events",
            "gamification-consumers",
            "gam-worker-1",
            min_idle_time=60_000,
            start_id="0-0",
            count=100,
        )
        assert dispatch.await_count == 2
        redis_client.xack.assert_awaited_once_with("social:events", "gamification-consumers", "5-0")

    @pytest.mark.asyncio
    async def test_trimmed_entry_is_acked_without_dispatch(self, redis_client, monkeypatch):
        dispatch = AsyncMock()
        monkeypatch.setattr(worker, "dispatch_social_event", dispatch)
        redis_client.xautoclaim.return_value = ["0-0", [("6-0", None), (None, None)]]

        assert await worker.reclaim_pending(redis_client) == 1

        dispatch.assert_not_awaited()
        redis_client.xack.assert_awaited_once_with("social:events", "gamification-consumers", "6-0")

    @pytest.mark.asyncio
    async def test_consumer_loop_retries_pending_before_reading(self, redis_client, monkeypatch):
        dispatch = AsyncMock(return_value={"badges": [], "challenges": []})
        monkeypatch.setattr(worker, "dispatch_social_event", dispatch)
        ctx = {"redis_client": redis_client, "running": True}
        redis_client.xautoclaim.return_value = ["0-0", [("7-0", _entry(9))], []]

        async def read_once(**kwargs):
            ctx["running"] = False
            return [("social:events", [("8-0", _entry(9, "POST_COMMENTED"))])]

        redis_client.xreadgroup.side_effect = read_once

        await worker.consume_social_events(ctx)

        assert [c.args for c in dispatch.await_args_list] == [(9, "POST_LIKED"), (9, "POST_COMMENTED")]
        assert [c.args[2] for c in redis_client.xack.await_args_list] == ["7-0", "8-0"]


class TestWorkerSettings:
    def test_registered_functions(self):
        assert worker.consume_social_events in worker.WorkerSettings.functions
        assert worker.cleanup_invitations in worker.WorkerSettings.functions
        assert len(worker.WorkerSettings.cron_jobs) == 1
        assert worker.WorkerSettings.job_timeout == 0

    @pytest.mark.asyncio
    async def test_cleanup_job_runs_sweep(self, sessions):
        result = await worker.cleanup_invitations({})
        assert result == {"completed": 0, "expired": 0, "total": 0}
