"""FastAPI routes for the Relay console API.

Endpoints:
- POST   /robot/create          - Create robot profile
- GET    /robots                - List robots
- GET    /robots/{id}           - Get robot
- PATCH  /robots/{id}           - Edit robot
- DELETE /robots/{id}           - Delete robot with its runs and journal

- POST /run/create              - Create run and dispatch devbox execution
- GET  /run/{id}                - Get run (poll for status)
- POST /run/{id}/complete       - Manually complete a run without a devbox
- POST /run/{id}/feedback       - Rate a completed run
- GET  /runs                    - List all runs
- GET  /runs/{robot_id}         - List runs of a robot

- GET  /journal                 - List journal entries (optional robotId)
- GET  /journal/{id}            - Get journal entry
- POST /journal                 - Create journal entry
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from relay_console.agent.dispatcher import RunDispatcher, failure_output
from relay_console.agent.planner import generate_instruction_pack
from relay_console.agent.summarizer import generate_improved_plan, generate_run_summary
from relay_console.agent.workflow import run_devbox_workflow
from relay_console.config import get_settings
from relay_console.database.session import get_db, get_session
from relay_console.database.storage import Storage
from relay_console.schemas import (
    FeedbackRequest,
    InstructionPack,
    JournalCreateRequest,
    JournalEntryResponse,
    RobotCreateRequest,
    RobotMode,
    RobotResponse,
    RobotUpdateRequest,
    RunCompleteRequest,
    RunCreateRequest,
    RunResponse,
    RunStatus,
    SafetyLevel,
)
from relay_console.tools.devbox_runner import DevboxClientFactory
from relay_console.tools.sandbox import RunloopClient


logger = logging.getLogger(__name__)
router = APIRouter()

settings = get_settings()


# =============================================================================
# Dependencies
# =============================================================================

async def get_storage(db: AsyncSession = Depends(get_db)) -> Storage:
    return Storage(db)


def get_dispatcher(request: Request) -> RunDispatcher:
    return request.app.state.dispatcher


def get_devbox_client_factory() -> DevboxClientFactory:
    """Sandbox client used for dispatched runs."""
    return RunloopClient


StorageDep = Annotated[Storage, Depends(get_storage)]
DispatcherDep = Annotated[RunDispatcher, Depends(get_dispatcher)]


# =============================================================================
# Health Check
# =============================================================================

@router.get("/health")
async def health(dispatcher: DispatcherDep) -> dict:
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": settings.app_version,
        "environment": settings.environment,
        "active_runs": len(dispatcher.active_runs),
    }


# =============================================================================
# Robot Endpoints
# =============================================================================

@router.post("/robot/create", response_model=RobotResponse)
async def create_robot(request: RobotCreateRequest, storage: StorageDep):
    """Create a robot profile."""
    robot = await storage.create_robot(**request.model_dump(mode="json"))
    logger.info(f"Created robot {robot.id} ({robot.name})")
    return robot


@router.get("/robots", response_model=list[RobotResponse])
async def list_robots(storage: StorageDep):
    """List robots, newest first."""
    return await storage.list_robots()


@router.get("/robots/{robot_id}", response_model=RobotResponse)
async def get_robot(robot_id: str, storage: StorageDep):
    robot = await storage.get_robot(robot_id)
    if not robot:
        raise HTTPException(status_code=404, detail="Robot not found")
    return robot


@router.patch("/robots/{robot_id}", response_model=RobotResponse)
async def update_robot(robot_id: str, request: RobotUpdateRequest, storage: StorageDep):
    """Edit name or settings of a robot."""
    updates = request.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    robot = await storage.update_robot(robot_id, **updates)
    if not robot:
        raise HTTPException(status_code=404, detail="Robot not found")
    return robot


@router.delete("/robots/{robot_id}")
async def delete_robot(robot_id: str, storage: StorageDep) -> dict:
    """Delete a robot together with its runs and journal entries."""
    if not await storage.delete_robot(robot_id):
        raise HTTPException(status_code=404, detail="Robot not found")
    return {"message": "Robot deleted"}


# =============================================================================
# Run Endpoints
# =============================================================================

@router.post("/run/create", response_model=RunResponse)
async def create_run(
    request: RunCreateRequest,
    storage: StorageDep,
    dispatcher: DispatcherDep,
    client_factory: DevboxClientFactory = Depends(get_devbox_client_factory),
):
    """Create a run and dispatch its devbox execution.

    The response is returned as soon as the run is `processing` with its
    instruction pack attached. Use GET /run/{id} to poll for the outcome.
    """
    robot = await storage.get_robot(request.robot_id)
    if not robot:
        raise HTTPException(status_code=404, detail="Robot not found")

    pack = generate_instruction_pack(
        robot.name,
        robot.mode,
        robot.safety_level,
        request.command,
        request.context,
        request.urgency,
    )

    run = await storage.create_run(
        robot_id=robot.id,
        command=request.command,
        context=request.context,
        urgency=request.urgency,
        status=RunStatus.QUEUED.value,
    )

    # Pack and processing status land in the same commit.
    run = await storage.update_run(
        run.id,
        instruction_pack=pack.model_dump(),
        status=RunStatus.PROCESSING.value,
        task_id=dispatcher.new_task_id(),
    )
    response = RunResponse.model_validate(run)

    dispatcher.dispatch(
        run.id,
        execute_run_task(
            run_id=run.id,
            task_id=run.task_id,
            robot_name=robot.name,
            mode=robot.mode,
            safety_level=robot.safety_level,
            command=run.command,
            instruction_pack=pack,
            client_factory=client_factory,
        ),
    )

    logger.info(f"Created run {run.id} for robot {robot.id}")
    return response


async def execute_run_task(
    run_id: str,
    task_id: str | None,
    robot_name: str,
    mode: str,
    safety_level: str,
    command: str,
    instruction_pack: InstructionPack,
    client_factory: DevboxClientFactory,
) -> None:
    """Background task to execute a run on a devbox.

    Terminal writes only land while the run is still `processing` under
    `task_id`; a manual completion that happened first is kept.
    """
    try:
        logger.info(f"[{run_id}] Starting devbox execution")

        state = await run_devbox_workflow(
            run_id=run_id,
            robot_name=robot_name,
            mode=mode,
            safety_level=safety_level,
            command=command,
            instruction_pack=instruction_pack,
            client_factory=client_factory,
        )
        result = state["result"]

        async with get_session() as db:
            written = await Storage(db).finish_run(
                run_id,
                task_id,
                status=state["status"],
                devbox_id=result.devbox_id or None,
                runloop_output=result.model_dump(by_alias=True, mode="json"),
                ai_summary=state["summary"].model_dump(),
            )

        if written:
            logger.info(f"[{run_id}] Run finished with devbox status: {result.status.value}")
        else:
            logger.warning(f"[{run_id}] Run already settled elsewhere; devbox result discarded")

    except Exception as e:
        logger.error(f"[{run_id}] Run failed: {e}")

        async with get_session() as db:
            await Storage(db).finish_run(
                run_id,
                task_id,
                status=RunStatus.FAILED.value,
                runloop_output=failure_output(str(e)),
            )


@router.get("/runs", response_model=list[RunResponse])
async def list_runs(storage: StorageDep):
    """List all runs, newest first."""
    return await storage.list_runs()


@router.get("/runs/{robot_id}", response_model=list[RunResponse])
async def list_robot_runs(robot_id: str, storage: StorageDep):
    """List runs of one robot, newest first."""
    return await storage.list_runs(robot_id=robot_id)


@router.get("/run/{run_id}", response_model=RunResponse)
async def get_run(run_id: str, storage: StorageDep):
    """Get run by ID."""
    run = await storage.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@router.post("/run/{run_id}/complete", response_model=RunResponse)
async def complete_run(
    run_id: str,
    storage: StorageDep,
    dispatcher: DispatcherDep,
    request: RunCompleteRequest | None = None,
):
    """Manually complete a run without executing it on a devbox.

    Only runs that are not executing can be completed: queued runs, and
    processing runs whose execution task no longer exists.
    """
    request = request or RunCompleteRequest()

    run = await storage.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")

    if dispatcher.is_active(run.id):
        raise HTTPException(status_code=409, detail="Run is still executing")
    if run.status not in (RunStatus.QUEUED.value, RunStatus.PROCESSING.value):
        raise HTTPException(status_code=409, detail=f"Run is already {run.status}")

    robot = await storage.get_robot(run.robot_id)
    robot_name = robot.name if robot else "Robot"

    updates = {}
    if run.instruction_pack is None:
        updates["instruction_pack"] = generate_instruction_pack(
            robot_name,
            robot.mode if robot else RobotMode.CALM.value,
            robot.safety_level if robot else SafetyLevel.BALANCED.value,
            run.command,
            run.context,
            run.urgency,
        ).model_dump()

    summary = generate_run_summary(robot_name, run.command, request.run_notes or "")

    updated = await storage.update_run(
        run.id,
        status=RunStatus.COMPLETE.value,
        video_url=request.video_url,
        ai_summary=summary.model_dump(),
        **updates,
    )
    logger.info(f"[{run.id}] Manually completed")
    return updated


@router.post("/run/{run_id}/feedback", response_model=RunResponse)
async def submit_feedback(run_id: str, request: FeedbackRequest, storage: StorageDep):
    """Rate a completed run and attach an improved plan.

    Resubmitting overwrites the previous rating, feedback and plan.
    """
    run = await storage.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Run not found")

    if run.status != RunStatus.COMPLETE.value:
        raise HTTPException(status_code=409, detail="Only completed runs can be rated")

    improved_plan = generate_improved_plan(request.feedback or "", request.rating)

    return await storage.update_run(
        run.id,
        user_rating=request.rating.value,
        user_feedback=request.feedback or None,
        improved_plan=improved_plan.model_dump(),
    )


# =============================================================================
# Journal Endpoints
# =============================================================================

@router.get("/journal", response_model=list[JournalEntryResponse])
async def list_journal(
    storage: StorageDep,
    robot_id: str | None = Query(default=None, alias="robotId"),
):
    """List journal entries, optionally for one robot."""
    return await storage.list_journal_entries(robot_id=robot_id)


@router.get("/journal/{entry_id}", response_model=JournalEntryResponse)
async def get_journal_entry(entry_id: str, storage: StorageDep):
    entry = await storage.get_journal_entry(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Entry not found")
    return entry


@router.post("/journal", response_model=JournalEntryResponse)
async def create_journal_entry(request: JournalCreateRequest, storage: StorageDep):
    """Add a journal entry to a robot."""
    if not await storage.get_robot(request.robot_id):
        raise HTTPException(status_code=404, detail="Robot not found")
    return await storage.create_journal_entry(**request.model_dump(mode="json"))
