"""Planner module.

Responsibilities:
- Convert a robot command into a structured instruction pack
- Stay deterministic: the pack is a template expansion, no model call
"""

from __future__ import annotations

from relay_console.schemas import InstructionPack, PlanStep, SafetyLevel


# Urgency above this adds a speed-over-caution safety check
URGENCY_THRESHOLD = 70

BASE_SAFETY_CHECKS = [
    "Check for obstacles in path",
    "Verify no people in immediate danger zone",
    "Confirm environment is safe to proceed",
]

CONSERVATIVE_SAFETY_CHECKS = [
    "Request user confirmation before each major step",
    "Double-check all measurements and distances",
]

URGENT_SAFETY_CHECK = "Prioritize speed while maintaining minimum safety standards"

SUCCESS_CRITERIA = [
    "Task completed without incidents",
    "No safety violations detected",
    "Environment left in acceptable state",
]


def _baseline_steps(command: str) -> list[PlanStep]:
    return [
        PlanStep(
            title="Initialize and assess environment",
            details="Scan surroundings, identify obstacles, map the area",
            checkpoints=["Environment scanned", "Map generated"],
        ),
        PlanStep(
            title="Plan optimal route",
            details=f"Calculate the best path to accomplish: {command}",
            checkpoints=["Route calculated", "Alternatives identified"],
        ),
        PlanStep(
            title="Execute primary task",
            details=f"Carry out the main objective: {command}",
            checkpoints=["Task in progress", "Monitoring for issues"],
        ),
        PlanStep(
            title="Verify completion",
            details="Confirm task was completed successfully and safely",
            checkpoints=["Task verified", "Area secured"],
        ),
    ]


def generate_instruction_pack(
    robot_name: str,
    mode: str,
    safety_level: str,
    command: str,
    context: str | None,
    urgency: int,
) -> InstructionPack:
    """Build the instruction pack for a command.

    Args:
        robot_name: Display name of the robot
        mode: Robot operating mode (calm, direct, professional)
        safety_level: conservative, balanced or proactive
        command: The user's natural language command
        context: Optional extra constraints; adds an "Apply constraints" step
        urgency: 0-100; above 70 adds an urgency safety check

    Returns:
        InstructionPack with goal, steps, checks and criteria
    """
    safety_checks = list(BASE_SAFETY_CHECKS)
    if safety_level == SafetyLevel.CONSERVATIVE.value:
        safety_checks.extend(CONSERVATIVE_SAFETY_CHECKS)
    if urgency > URGENCY_THRESHOLD:
        safety_checks.append(URGENT_SAFETY_CHECK)

    steps = _baseline_steps(command)
    if context:
        steps.insert(
            1,
            PlanStep(
                title="Apply constraints",
                details=f"Consider additional context: {context}",
                checkpoints=["Constraints reviewed", "Adjustments made"],
            ),
        )

    return InstructionPack(
        goal=f"{robot_name} will {command}",
        assumptions=[
            f"{robot_name} has sufficient battery for the task",
            "Environment is as described",
            f"Operating in {mode} mode with {safety_level} safety level",
        ],
        steps=steps,
        constraints=[context] if context else ["Standard operating constraints apply"],
        safety_checks=safety_checks,
        success_criteria=list(SUCCESS_CRITERIA),
    )
