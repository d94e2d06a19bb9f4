"""Background dispatch of run executions.

Run creation responds before the devbox execution settles. Instead of a
detached coroutine, every execution is an asyncio.Task registered here under
its run id, so the API can tell whether a run is still in flight and startup
can recover runs whose task was lost with a previous process.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine
from uuid import uuid4

from relay_console.database.storage import Storage
from relay_console.schemas import ExecutionResult, ExecutionStatus, RunStatus


logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Execution interrupted: the server restarted before the devbox run settled"


def failure_output(message: str) -> dict[str, Any]:
    """runloop_output payload for a run whose execution never produced a trace."""
    return ExecutionResult(
        status=ExecutionStatus.FAILURE,
        devbox_status="error",
        error=message,
    ).model_dump(by_alias=True, mode="json")


class RunDispatcher:
    """Registry of in-flight run executions for this process."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    @staticmethod
    def new_task_id() -> str:
        return str(uuid4())

    def dispatch(self, run_id: str, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        """Schedule an execution; only one may be in flight per run."""
        if self.is_active(run_id):
            coro.close()
            raise ValueError("run_already_dispatched")

        task = asyncio.create_task(coro, name=f"run-{run_id}")
        self._tasks[run_id] = task
        task.add_done_callback(lambda t: self._finished(run_id, t))
        logger.info(f"[{run_id}] Dispatched execution task")
        return task

    def _finished(self, run_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(run_id) is task:
            del self._tasks[run_id]
        if task.cancelled():
            logger.warning(f"[{run_id}] Execution task cancelled")
        elif task.exception() is not None:
            logger.error(f"[{run_id}] Execution task crashed: {task.exception()}")

    def is_active(self, run_id: str) -> bool:
        task = self._tasks.get(run_id)
        return task is not None and not task.done()

    @property
    def active_runs(self) -> list[str]:
        return [run_id for run_id, task in self._tasks.items() if not task.done()]

    async def wait(self, run_id: str) -> None:
        """Wait for a run's execution to settle, if one is in flight."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every in-flight execution to settle."""
        while self.active_runs:
            pending = [t for t in self._tasks.values() if not t.done()]
            await asyncio.gather(*pending, return_exceptions=True)

    async def recover_orphans(self, storage: Storage) -> list[str]:
        """Fail processing runs that have no live task in this process.

        Assumes a single server process owns every processing run. With
        several uvicorn workers sharing one database, a worker restart would
        fail runs still executing in its siblings, so run one worker.

        Returns:
            IDs of the runs that were marked failed
        """
        recovered = []
        for run in await storage.list_runs_by_status(RunStatus.PROCESSING.value):
            if self.is_active(run.id):
                continue
            if await storage.finish_run(
                run.id,
                run.task_id,
                status=RunStatus.FAILED.value,
                runloop_output=failure_output(INTERRUPTED_ERROR),
            ):
                recovered.append(run.id)

        if recovered:
            logger.warning(f"Recovered {len(recovered)} orphaned run(s) as failed: {recovered}")
        return recovered
