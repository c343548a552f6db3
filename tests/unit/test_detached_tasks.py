"""Detached task group: bounded failure history, drain waits for nested spawns."""

import asyncio

import pytest

from fiquest.tasks import DetachedTasks


async def _fail():
    raise RuntimeError("boom")


class TestDetachedTasks:
    @pytest.mark.asyncio
    async def test_failure_is_recorded_not_raised(self):
        tasks = DetachedTasks()
        tasks.spawn(_fail(), name="explode")
        await tasks.drain()
        assert len(tasks.failures) == 1
        name, exc = tasks.failures[0]
        assert name == "explode"
        assert isinstance(exc, RuntimeError)

    @pytest.mark.asyncio
    async def test_drain_waits_for_nested_spawns(self):
        tasks = DetachedTasks()
        done = []

        async def child():
            await asyncio.sleep(0)
            done.append("child")

        async def parent():
            done.append("parent")
            tasks.spawn(child(), name="child")

        tasks.spawn(parent(), name="parent")
        await tasks.drain()
        assert done == ["parent", "child"]
        assert tasks.pending == 0

    @pytest.mark.asyncio
    async def test_clear_failures_returns_and_resets(self):
        tasks = DetachedTasks()
        tasks.spawn(_fail(), name="a")
        await tasks.drain()
        assert len(tasks.clear_failures()) == 1
        assert not tasks.failures

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        tasks = DetachedTasks()
        tasks.spawn(asyncio.sleep(60), name="sleeper")
        assert tasks.pending == 1
        await tasks.cancel_all()
        await asyncio.sleep(0)
        assert tasks.pending == 0
        assert not tasks.failures

    @pytest.mark.asyncio
    async def test_failure_history_is_capped_but_counted(self):
        tasks = DetachedTasks(max_failures=3)
        for i in range(10):
            tasks.spawn(_fail(), name=f"task-{i}")
        await tasks.drain()

        assert tasks.failure_count == 10
        assert [name for name, _ in tasks.failures] == ["task-7", "task-8", "task-9"]
        assert len(tasks.clear_failures()) == 3
        assert tasks.failure_count == 0
