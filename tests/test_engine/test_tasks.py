"""Tests for fire-and-forget background tasks."""

from __future__ import annotations

import asyncio
import logging

from cachegen.engine.tasks import BackgroundTasks


def test_spawned_task_runs_to_completion() -> None:
    done: list[str] = []

    async def work() -> None:
        await asyncio.sleep(0)
        done.append("written")

    async def scenario() -> int:
        tasks = BackgroundTasks()
        tasks.spawn(work(), name="write-back")
        await tasks.drain()
        return tasks.pending

    assert asyncio.run(scenario()) == 0
    assert done == ["written"]


def test_failure_is_logged_not_raised(caplog) -> None:
    async def boom() -> None:
        raise OSError("disk full")

    async def scenario() -> None:
        tasks = BackgroundTasks()
        tasks.spawn(boom(), name="write-back")
        await tasks.drain()

    with caplog.at_level(logging.ERROR, logger="cachegen"):
        asyncio.run(scenario())

    assert "write-back" in caplog.text
    assert "disk full" in caplog.text


def test_quiet_failure_logged_at_debug(caplog) -> None:
    async def boom() -> None:
        raise ValueError("expected")

    async def scenario() -> None:
        tasks = BackgroundTasks()
        tasks.spawn(boom(), name="fetch", quiet=True)
        await tasks.drain()

    with caplog.at_level(logging.DEBUG, logger="cachegen"):
        asyncio.run(scenario())

    records = [r for r in caplog.records if "expected" in r.getMessage()]
    assert records and all(r.levelno == logging.DEBUG for r in records)


def test_drain_waits_for_tasks_spawned_meanwhile() -> None:
    order: list[str] = []

    async def scenario() -> None:
        tasks = BackgroundTasks()

        async def child() -> None:
            order.append("child")

        async def parent() -> None:
            order.append("parent")
            tasks.spawn(child(), name="child")

        tasks.spawn(parent(), name="parent")
        await tasks.drain()

    asyncio.run(scenario())
    assert order == ["parent", "child"]
