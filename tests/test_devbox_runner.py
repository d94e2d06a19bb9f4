from __future__ import annotations

from relay_console.agent.planner import generate_instruction_pack
from relay_console.schemas import ExecutionStatus, InstructionPack, PlanStep
from relay_console.tools.devbox_runner import (
    aggregate_status,
    build_safety_command,
    build_step_command,
    execute_run_on_devbox,
    shell_escape,
)
from relay_console.tools.sandbox import RunloopClient, SandboxError

from tests.conftest import FakeDevboxClient


def _pack(**overrides) -> InstructionPack:
    pack = generate_instruction_pack("Nova", "calm", "balanced", "Deliver package", None, 50)
    return pack.model_copy(update=overrides)


def test_shell_escape_replaces_single_quotes() -> None:
    assert shell_escape("it's Bob's") == "it'\\''s Bob'\\''s"


def test_step_command_escapes_details_and_lists_checkpoints() -> None:
    step = PlanStep(title="Move", details="Don't bump", checkpoints=["Arrived", "Parked"])
    cmd = build_step_command(step)

    assert cmd.split(" && ") == [
        'echo "=== Step: Move ==="',
        "echo \"Details: Don'\\''t bump\"",
        'echo "  [checkpoint] Arrived"',
        'echo "  [checkpoint] Parked"',
        "echo \"Step 'Move' completed.\"",
    ]


def test_safety_command_escapes_checks() -> None:
    cmd = build_safety_command(["Don't run"])
    assert "[PASS] Don'\\''t run" in cmd
    assert cmd.startswith('echo "=== Safety Pre-Check ==="')


async def test_successful_run_executes_every_command_and_shuts_down_once() -> None:
    fake = FakeDevboxClient()

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert result.status is ExecutionStatus.SUCCESS
    assert result.devbox_id == "devbox-1"
    assert result.devbox_status == "completed"
    assert [s.step_title for s in result.steps] == [
        "Devbox Initialization",
        "Safety Pre-Check",
        "Initialize and assess environment",
        "Plan optimal route",
        "Execute primary task",
        "Verify completion",
        "Success Criteria Verification",
    ]
    assert len(fake.commands) == 7
    assert fake.shutdowns == ["devbox-1"]
    assert fake.closed


async def test_optional_checks_are_skipped_when_empty() -> None:
    fake = FakeDevboxClient()
    pack = _pack(safety_checks=[], success_criteria=[])

    result = await execute_run_on_devbox(pack, "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert len(result.steps) == 5
    assert "Safety Pre-Check" not in [s.step_title for s in result.steps]


async def test_step_exception_is_recorded_and_loop_continues() -> None:
    fake = FakeDevboxClient(fail_on={"Plan optimal route": SandboxError("connection reset")})

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    failed = result.failed_steps
    assert len(failed) == 1
    assert failed[0].step_title == "Plan optimal route"
    assert failed[0].exit_code == 1
    assert failed[0].stderr == "connection reset"
    assert result.status is ExecutionStatus.PARTIAL_FAILURE
    assert result.steps[-1].step_title == "Success Criteria Verification"
    assert fake.shutdowns == ["devbox-1"]


async def test_all_failing_steps_report_failure() -> None:
    fake = FakeDevboxClient(fail_on={"echo": 127})

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert result.status is ExecutionStatus.FAILURE
    assert all(s.exit_code == 127 for s in result.steps)
    assert len(fake.shutdowns) == 1


async def test_provisioning_failure_becomes_setup_step_without_teardown() -> None:
    fake = FakeDevboxClient(create_error=SandboxError("quota exceeded"))

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert result.status is ExecutionStatus.FAILURE
    assert result.devbox_status == "error"
    assert result.error == "quota exceeded"
    assert [s.step_title for s in result.steps] == ["Devbox Setup"]
    assert result.steps[0].stderr == "quota exceeded"
    assert fake.shutdowns == []


async def test_missing_credential_fails_fast_as_setup_step() -> None:
    result = await execute_run_on_devbox(
        _pack(), "Nova", "calm", "balanced", client_factory=lambda: RunloopClient(api_key="")
    )

    assert result.status is ExecutionStatus.FAILURE
    assert result.steps[0].step_title == "Devbox Setup"
    assert "RUNLOOP_API_KEY" in result.steps[0].stderr


async def test_safety_check_exception_aborts_and_surfaces_as_that_step() -> None:
    fake = FakeDevboxClient(fail_on={"Safety Pre-Check": SandboxError("devbox lost")})

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert [(s.step_title, s.success) for s in result.steps] == [
        ("Devbox Initialization", True),
        ("Safety Pre-Check", False),
    ]
    assert result.steps[-1].stderr == "devbox lost"
    assert result.steps[-1].exit_code == 1
    assert result.devbox_status == "error"
    assert result.error == "devbox lost"
    assert result.status is ExecutionStatus.PARTIAL_FAILURE
    assert fake.shutdowns == ["devbox-1"]


async def test_criteria_exception_is_recorded_as_failed_criteria_step() -> None:
    fake = FakeDevboxClient(
        fail_on={"Success Criteria Verification": SandboxError("devbox lost")}
    )

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    last = result.steps[-1]
    assert last.step_title == "Success Criteria Verification"
    assert not last.success
    assert last.stderr == "devbox lost"
    assert len(result.steps) == 7
    assert result.status is ExecutionStatus.PARTIAL_FAILURE


async def test_init_exception_is_recorded_as_init_step() -> None:
    fake = FakeDevboxClient(fail_on={"Runloop Devbox Initialized": SandboxError("exec refused")})

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert [s.step_title for s in result.steps] == ["Devbox Initialization"]
    assert result.status is ExecutionStatus.FAILURE
    assert fake.shutdowns == ["devbox-1"]


async def test_shutdown_failure_does_not_mask_result() -> None:
    fake = FakeDevboxClient(shutdown_error=SandboxError("already gone"))

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert result.status is ExecutionStatus.SUCCESS
    assert fake.shutdowns == ["devbox-1"]


async def test_client_close_failure_does_not_mask_result() -> None:
    class BrokenCloseClient(FakeDevboxClient):
        async def close(self) -> None:
            raise RuntimeError("close boom")

    fake = BrokenCloseClient()

    result = await execute_run_on_devbox(_pack(), "Nova", "calm", "balanced", client_factory=lambda: fake)

    assert result.status is ExecutionStatus.SUCCESS
    assert len(result.steps) == 7
    assert fake.shutdowns == ["devbox-1"]


def test_aggregate_status() -> None:
    from relay_console.schemas import StepResult

    ok = StepResult(step_title="a", command="c", exit_code=0, success=True)
    bad = StepResult(step_title="b", command="c", exit_code=1, success=False)

    assert aggregate_status([ok, ok]) is ExecutionStatus.SUCCESS
    assert aggregate_status([ok, bad]) is ExecutionStatus.PARTIAL_FAILURE
    assert aggregate_status([bad, bad]) is ExecutionStatus.FAILURE
