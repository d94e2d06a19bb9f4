from __future__ import annotations

import asyncio

import pytest

from relay_console.agent.dispatcher import INTERRUPTED_ERROR, RunDispatcher
from relay_console.database.storage import Storage


async def test_dispatch_tracks_task_until_it_settles() -> None:
    dispatcher = RunDispatcher()
    gate = asyncio.Event()

    async def work():
        await gate.wait()

    dispatcher.dispatch("run-1", work())

    assert dispatcher.is_active("run-1")
    assert dispatcher.active_runs == ["run-1"]

    gate.set()
    await dispatcher.wait("run-1")

    assert not dispatcher.is_active("run-1")
    assert dispatcher.active_runs == []


async def test_second_dispatch_for_same_run_is_rejected() -> None:
    dispatcher = RunDispatcher()
    gate = asyncio.Event()

    async def work():
        await gate.wait()

    dispatcher.dispatch("run-1", work())
    duplicate = work()

    with pytest.raises(ValueError, match="run_already_dispatched"):
        dispatcher.dispatch("run-1", duplicate)

    # The rejected coroutine is closed, not left un-awaited.
    assert duplicate.cr_frame is None

    gate.set()
    await dispatcher.drain()


async def test_crashing_task_is_removed_from_registry() -> None:
    dispatcher = RunDispatcher()

    async def crash():
        raise RuntimeError("boom")

    dispatcher.dispatch("run-1", crash())
    await dispatcher.drain()

    assert not dispatcher.is_active("run-1")
    # A settled run may be dispatched again.
    dispatcher.dispatch("run-1", asyncio.sleep(0))
    await dispatcher.drain()


async def test_recover_orphans_fails_processing_runs_without_task(storage: Storage) -> None:
    dispatcher = RunDispatcher()
    robot = await storage.create_robot(name="Nova")
    orphan = await storage.create_run(
        robot_id=robot.id, command="Go", status="processing", task_id="task-lost"
    )
    live = await storage.create_run(robot_id=robot.id, command="Stay", status="processing")
    queued = await storage.create_run(robot_id=robot.id, command="Wait", status="queued")

    gate = asyncio.Event()

    async def work():
        await gate.wait()

    dispatcher.dispatch(live.id, work())

    recovered = await dispatcher.recover_orphans(storage)

    assert recovered == [orphan.id]
    orphan = await storage.get_run(orphan.id)
    assert orphan.status == "failed"
    assert orphan.runloop_output["error"] == INTERRUPTED_ERROR
    assert orphan.runloop_output["status"] == "failure"
    assert (await storage.get_run(live.id)).status == "processing"
    assert (await storage.get_run(queued.id)).status == "queued"

    gate.set()
    await dispatcher.drain()
