"""Unit tests for TaskManager."""

from __future__ import annotations

import asyncio

import pytest

from orderdesk.core.tasks import TaskManager


@pytest.mark.asyncio
async def test_repeated_names_do_not_collide():
    manager = TaskManager()
    gate = asyncio.Event()

    manager.create("camera-start", gate.wait())
    manager.create("camera-start", gate.wait())

    assert manager.active_count() == 2

    gate.set()
    await manager.join()
    assert manager.active_count() == 0


@pytest.mark.asyncio
async def test_task_errors_are_reported_not_raised():
    errors = []
    manager = TaskManager(on_task_error=lambda name, exc: errors.append((name, exc)))

    async def boom():
        raise RuntimeError("decoder exploded")

    task = manager.create("boom", boom())
    assert await task is None

    assert len(errors) == 1
    assert errors[0][0].startswith("boom#")
    assert isinstance(errors[0][1], RuntimeError)


@pytest.mark.asyncio
async def test_join_waits_for_tasks_spawned_meanwhile():
    manager = TaskManager()
    finished = []

    async def child():
        await asyncio.sleep(0.01)
        finished.append("child")

    async def parent():
        await asyncio.sleep(0.01)
        manager.create("child", child())
        finished.append("parent")

    manager.create("parent", parent())
    await manager.join()

    assert finished == ["parent", "child"]


@pytest.mark.asyncio
async def test_join_returns_after_timeout():
    manager = TaskManager()
    manager.create("forever", asyncio.Event().wait())

    await manager.join(timeout=0.05)

    assert manager.active_count() == 1
    await manager.cancel_all()
    assert manager.active_count() == 0


@pytest.mark.asyncio
async def test_join_from_inside_a_tracked_task_does_not_deadlock():
    manager = TaskManager()

    async def joiner():
        await manager.join(timeout=1.0)
        return "joined"

    task = manager.create("joiner", joiner())
    assert await asyncio.wait_for(task, timeout=2.0) == "joined"


@pytest.mark.asyncio
async def test_cancel_all_spares_the_calling_task():
    manager = TaskManager()
    waiter = manager.create("camera-start", asyncio.Event().wait())

    async def shutdown():
        await manager.cancel_all(reason="unmount")
        return "done"

    closer = manager.create("close", shutdown())

    assert await asyncio.wait_for(closer, timeout=2.0) == "done"
    assert waiter.cancelled()
    assert manager.active_count() == 0
