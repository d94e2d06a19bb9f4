from __future__ import annotations

import pytest

from relay_console.agent.planner import (
    BASE_SAFETY_CHECKS,
    generate_instruction_pack,
)


@pytest.mark.parametrize("mode", ["calm", "direct", "professional"])
@pytest.mark.parametrize(
    "safety_level, urgency, expected_checks",
    [
        ("balanced", 50, 3),
        ("proactive", 70, 3),
        ("conservative", 10, 5),
        ("balanced", 71, 4),
        ("conservative", 100, 6),
    ],
)
def test_safety_checks_follow_level_and_urgency(mode, safety_level, urgency, expected_checks) -> None:
    pack = generate_instruction_pack("Nova", mode, safety_level, "Water the plants", None, urgency)

    assert len(pack.safety_checks) == expected_checks
    assert pack.safety_checks[:3] == BASE_SAFETY_CHECKS


def test_baseline_steps_without_context() -> None:
    pack = generate_instruction_pack("Nova", "calm", "balanced", "Deliver package", None, 50)

    assert [s.title for s in pack.steps] == [
        "Initialize and assess environment",
        "Plan optimal route",
        "Execute primary task",
        "Verify completion",
    ]
    assert pack.constraints == ["Standard operating constraints apply"]
    assert pack.goal == "Nova will Deliver package"
    assert "Operating in calm mode with balanced safety level" in pack.assumptions


def test_context_inserts_apply_constraints_step_at_index_one() -> None:
    pack = generate_instruction_pack(
        "Nova", "calm", "balanced", "Deliver package", "Avoid the wet floor", 50
    )

    assert len(pack.steps) == 5
    assert pack.steps[0].title == "Initialize and assess environment"
    assert pack.steps[1].title == "Apply constraints"
    assert pack.steps[1].details == "Consider additional context: Avoid the wet floor"
    assert pack.steps[2].title == "Plan optimal route"
    assert pack.constraints == ["Avoid the wet floor"]


def test_empty_context_is_treated_as_absent() -> None:
    pack = generate_instruction_pack("Nova", "calm", "balanced", "Deliver package", "", 50)
    assert len(pack.steps) == 4


def test_empty_command_still_yields_well_formed_pack() -> None:
    pack = generate_instruction_pack("Nova", "calm", "balanced", "", None, 0)

    assert len(pack.steps) == 4
    assert len(pack.success_criteria) == 3
    assert all(step.checkpoints for step in pack.steps)


def test_pack_is_deterministic() -> None:
    args = ("Nova", "direct", "conservative", "Carry boxes", "Mind the stairs", 90)
    assert generate_instruction_pack(*args) == generate_instruction_pack(*args)


def test_markdown_lists_every_step() -> None:
    pack = generate_instruction_pack("Nova", "calm", "balanced", "Deliver package", None, 50)
    md = pack.to_markdown()

    for step in pack.steps:
        assert step.title in md
    assert "## Safety Checks" in md
