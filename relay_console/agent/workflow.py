"""LangGraph workflow for a dispatched run.

Graph structure:
START → execute_node → summary_node → END

execute_node runs the instruction pack on a devbox; summary_node turns the
trace into the run summary and the terminal run status.
"""

from __future__ import annotations

import logging
from typing import TypedDict

from langgraph.graph import END, StateGraph

from relay_console.agent.summarizer import summarize_execution
from relay_console.schemas import (
    ExecutionResult,
    ExecutionStatus,
    InstructionPack,
    RunStatus,
    RunSummary,
)
from relay_console.tools.devbox_runner import DevboxClientFactory, execute_run_on_devbox
from relay_console.tools.sandbox import RunloopClient


logger = logging.getLogger(__name__)


# =============================================================================
# State Definition
# =============================================================================

class RunState(TypedDict, total=False):
    """State for the run workflow.

    Attributes:
        run_id: Run being executed
        robot_name / mode / safety_level: Robot snapshot taken at dispatch
        command: The user's command
        instruction_pack: Pack generated when the run was created
        client_factory: Builds the sandbox client for execute_node
        result: Devbox execution trace
        summary: Run summary derived from the trace
        status: Terminal run status (complete or failed)
    """
    run_id: str
    robot_name: str
    mode: str
    safety_level: str
    command: str
    instruction_pack: InstructionPack
    client_factory: DevboxClientFactory
    result: ExecutionResult
    summary: RunSummary
    status: str


def status_for(result: ExecutionResult) -> RunStatus:
    """A run is complete unless every executed step failed."""
    if result.status is ExecutionStatus.FAILURE:
        return RunStatus.FAILED
    return RunStatus.COMPLETE


# =============================================================================
# Node Functions
# =============================================================================

async def execute_node(state: RunState) -> RunState:
    """Run the pack on a devbox.

    Input: instruction_pack, robot snapshot, client_factory
    Output: result
    """
    logger.info(f"[{state['run_id']}] Starting execute_node")

    result = await execute_run_on_devbox(
        state["instruction_pack"],
        state["robot_name"],
        state["mode"],
        state["safety_level"],
        client_factory=state.get("client_factory") or RunloopClient,
    )

    logger.info(
        f"[{state['run_id']}] Devbox {result.devbox_id or '-'} finished: {result.status.value} "
        f"({len(result.succeeded_steps)}/{len(result.steps)} steps)"
    )
    return {"result": result}


async def summary_node(state: RunState) -> RunState:
    """Summarize the execution trace.

    Input: result
    Output: summary, status
    """
    result = state["result"]
    summary = summarize_execution(state["robot_name"], state["command"], result)
    return {"summary": summary, "status": status_for(result).value}


# =============================================================================
# Workflow Builder
# =============================================================================

def build_workflow() -> StateGraph:
    """Build the LangGraph workflow."""
    workflow = StateGraph(RunState)

    workflow.add_node("execute", execute_node)
    workflow.add_node("summary", summary_node)

    workflow.set_entry_point("execute")
    workflow.add_edge("execute", "summary")
    workflow.add_edge("summary", END)

    return workflow


# Compiled workflow
run_workflow = build_workflow().compile()


# =============================================================================
# Public API
# =============================================================================

async def run_devbox_workflow(
    run_id: str,
    robot_name: str,
    mode: str,
    safety_level: str,
    command: str,
    instruction_pack: InstructionPack,
    client_factory: DevboxClientFactory | None = None,
) -> RunState:
    """Execute the workflow for one run and return its final state."""
    state: RunState = {
        "run_id": run_id,
        "robot_name": robot_name,
        "mode": mode,
        "safety_level": safety_level,
        "command": command,
        "instruction_pack": instruction_pack,
        "client_factory": client_factory or RunloopClient,
    }
    return await run_workflow.ainvoke(state)
