"""Execute an instruction pack on a remote devbox.

The pack is turned into a fixed command sequence:
1. Devbox Initialization  - echo robot identity and goal
2. Safety Pre-Check       - one combined echo of every safety check
3. One command per plan step
4. Success Criteria Verification - one combined echo of every criterion

Every command's stdout/stderr/exit code is recorded as a StepResult. The
devbox is always shut down once it has been provisioned.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from relay_console.schemas import (
    ExecutionResult,
    ExecutionStatus,
    InstructionPack,
    PlanStep,
    StepResult,
)
from relay_console.tools.sandbox import CommandResult, Devbox, DevboxClient, RunloopClient


logger = logging.getLogger(__name__)

DevboxClientFactory = Callable[[], DevboxClient]


def shell_escape(text: str) -> str:
    """Escape single quotes for interpolation into a shell echo."""
    return text.replace("'", "'\\''")


def build_init_command(pack: InstructionPack, robot_name: str, mode: str, safety_level: str) -> str:
    return " && ".join([
        'echo "=== Runloop Devbox Initialized ==="',
        f'echo "Robot: {robot_name}"',
        f'echo "Mode: {mode} | Safety: {safety_level}"',
        f'echo "Goal: {pack.goal}"',
        'echo "---"',
    ])


def build_step_command(step: PlanStep) -> str:
    lines = [
        f'echo "=== Step: {step.title} ==="',
        f'echo "Details: {shell_escape(step.details)}"',
    ]
    for cp in step.checkpoints:
        lines.append(f'echo "  [checkpoint] {cp}"')
    lines.append(f"echo \"Step '{step.title}' completed.\"")
    return " && ".join(lines)


def build_safety_command(checks: list[str]) -> str:
    # Placeholder gate: fixed echoes, cannot fail on a healthy devbox.
    body = " && ".join(f'echo "  [PASS] {shell_escape(c)}"' for c in checks)
    return f'echo "=== Safety Pre-Check ===" && {body} && echo "All safety checks passed."'


def build_criteria_command(criteria: list[str]) -> str:
    # Placeholder gate, same as the safety pre-check.
    body = " && ".join(f'echo "  [MET] {shell_escape(c)}"' for c in criteria)
    return f'echo "=== Success Criteria Verification ===" && {body} && echo "All criteria verified."'


def _to_step(title: str, command: str, result: CommandResult) -> StepResult:
    exit_code = result.exit_code if result.exit_code is not None else -1
    return StepResult(
        step_title=title,
        command=command,
        stdout=result.stdout,
        stderr=result.stderr,
        exit_code=exit_code,
        success=exit_code == 0,
    )


def _failed_step(title: str, command: str, message: str) -> StepResult:
    return StepResult(
        step_title=title,
        command=command,
        stdout="",
        stderr=message,
        exit_code=1,
        success=False,
    )


def aggregate_status(steps: list[StepResult]) -> ExecutionStatus:
    """success if nothing failed, failure if everything failed."""
    failed = sum(1 for s in steps if not s.success)
    if failed == 0:
        return ExecutionStatus.SUCCESS
    if failed < len(steps):
        return ExecutionStatus.PARTIAL_FAILURE
    return ExecutionStatus.FAILURE


async def execute_run_on_devbox(
    instruction_pack: InstructionPack,
    robot_name: str,
    mode: str,
    safety_level: str,
    client_factory: DevboxClientFactory = RunloopClient,
) -> ExecutionResult:
    """Run an instruction pack on a freshly provisioned devbox.

    Args:
        instruction_pack: The pack generated for the run
        robot_name: Robot display name, echoed during initialization
        mode: Robot mode, echoed during initialization
        safety_level: Robot safety level, echoed during initialization
        client_factory: Builds the sandbox client; RunloopClient by default

    Returns:
        ExecutionResult with one StepResult per executed command. Setup
        failures (missing credential, provisioning errors) are reported as a
        single failed "Devbox Setup" step rather than raised. An exception in
        the initialization, safety or criteria command aborts the remaining
        commands and is reported as that command's failed step.
    """
    start = time.perf_counter()
    steps: list[StepResult] = []
    client: DevboxClient | None = None
    devbox: Devbox | None = None
    provider = "sandbox"
    devbox_id = ""
    devbox_status = "unknown"
    error: str | None = None
    # (title, command) of a combined command that has no guard of its own
    in_flight: tuple[str, str] | None = None

    async def run_combined(title: str, command: str) -> None:
        nonlocal in_flight
        in_flight = (title, command)
        steps.append(_to_step(title, command, await devbox.exec(command)))
        in_flight = None

    try:
        client = client_factory()
        provider = client.provider_name

        logger.info(f'[{provider}] Creating devbox for robot "{robot_name}"...')
        devbox = await client.create()
        devbox_id = devbox.id
        logger.info(f"[{provider}] Devbox created: {devbox_id}")

        await run_combined(
            "Devbox Initialization",
            build_init_command(instruction_pack, robot_name, mode, safety_level),
        )

        if instruction_pack.safety_checks:
            await run_combined(
                "Safety Pre-Check", build_safety_command(instruction_pack.safety_checks)
            )

        for step in instruction_pack.steps:
            cmd = build_step_command(step)
            try:
                steps.append(_to_step(step.title, cmd, await devbox.exec(cmd)))
            except Exception as e:
                logger.warning(f"[{provider}] Step '{step.title}' raised: {e}")
                steps.append(_failed_step(step.title, cmd, str(e) or "Step execution failed"))

        if instruction_pack.success_criteria:
            await run_combined(
                "Success Criteria Verification",
                build_criteria_command(instruction_pack.success_criteria),
            )

        devbox_status = "completed"

    except Exception as e:
        logger.error(f"[{provider}] Error during devbox execution: {e}")
        devbox_status = "error"
        error = str(e) or "Failed to create devbox"

        if in_flight is not None:
            steps.append(_failed_step(*in_flight, error))
        elif not steps:
            steps.append(_failed_step("Devbox Setup", "devbox.create()", error))

    finally:
        if devbox is not None:
            try:
                logger.info(f"[{provider}] Shutting down devbox {devbox_id}...")
                await devbox.shutdown()
                logger.info(f"[{provider}] Devbox {devbox_id} shut down.")
            except Exception as shutdown_err:
                logger.error(f"[{provider}] Failed to shut down devbox {devbox_id}: {shutdown_err}")
        if client is not None:
            try:
                await client.close()
            except Exception as close_err:
                logger.error(f"[{provider}] Failed to close client: {close_err}")

    return ExecutionResult(
        devbox_id=devbox_id,
        status=aggregate_status(steps),
        steps=steps,
        total_duration=int((time.perf_counter() - start) * 1000),
        devbox_status=devbox_status,
        error=error,
    )
