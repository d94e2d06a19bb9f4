"""Run summaries and feedback-driven plan revisions.

Both outputs are deterministic templates over the command text, the user's
rating and, after a real devbox execution, the per-step outcomes.
"""

from __future__ import annotations

from relay_console.schemas import (
    ExecutionResult,
    ImprovedPlan,
    RunSummary,
    UserRating,
)


# (keywords, flag) checked in order against the lower-cased command
RISK_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("deliver", "carry"), "Object handling safety"),
    (("people", "person", "human"), "Human proximity awareness"),
    (("outside", "outdoor"), "Weather conditions"),
]

DEFAULT_RISK_FLAG = "Standard operational risk"


def risk_flags_for(command: str) -> list[str]:
    """Derive risk flags from keywords in the command."""
    lower = command.lower()
    flags = [
        flag for keywords, flag in RISK_KEYWORDS
        if any(word in lower for word in keywords)
    ]
    return flags or [DEFAULT_RISK_FLAG]


def generate_run_summary(robot_name: str, command: str, notes: str = "") -> RunSummary:
    """Produce the narrative summary for a finished run."""
    text = (
        f'{robot_name} executed the task: "{command}". The run was completed with '
        "standard performance metrics. Overall execution followed the planned "
        "instruction pack with minor adaptations to real-world conditions."
    )
    if notes:
        text += f" Operator notes: {notes}"

    return RunSummary(
        run_summary=text,
        what_went_well=[
            "Navigation was smooth and efficient",
            "Safety protocols were followed correctly",
            "Task was completed within expected timeframe",
        ],
        issues=[
            "Minor hesitation at transition points",
            "Sensor recalibration needed during mid-run",
        ],
        risk_flags=risk_flags_for(command),
        next_run_suggestions=[
            "Pre-map transition areas for smoother navigation",
            "Calibrate sensors before starting the run",
            "Consider adding waypoints for complex routes",
        ],
    )


def summarize_execution(robot_name: str, command: str, result: ExecutionResult) -> RunSummary:
    """Summary whose narrative, highlights and issues reflect a devbox trace."""
    summary = generate_run_summary(robot_name, command)
    succeeded = result.succeeded_steps
    seconds = result.total_duration / 1000

    summary.run_summary = (
        f'{robot_name} executed "{command}" on Runloop devbox {result.devbox_id}. '
        f"{len(succeeded)}/{len(result.steps)} steps completed successfully in {seconds:.1f}s."
    )
    summary.what_went_well = [s.step_title for s in succeeded]
    summary.issues = [f"{s.step_title}: {s.stderr or 'Failed'}" for s in result.failed_steps]
    return summary


def generate_improved_plan(feedback: str, rating: UserRating | str) -> ImprovedPlan:
    """Revise the plan according to the user's rating and feedback."""
    rating = UserRating(rating)

    if rating is UserRating.NEEDS_IMPROVEMENT:
        changes = [
            "Adjust timing parameters for smoother execution",
            "Add additional checkpoint verification steps",
        ]
        tone = "constructive"
    elif rating is UserRating.NOT_ACCEPTABLE:
        changes = [
            "Complete re-evaluation of approach needed",
            "Add extra safety checks at every step",
            "Reduce speed and increase caution levels",
        ]
        tone = "critical"
    else:
        changes = ["Minor optimizations for efficiency"]
        tone = "positive"

    delta = [
        "Updated environmental awareness parameters",
        "Refined decision-making thresholds",
    ]
    if feedback:
        changes.append(f'Incorporate user feedback: "{feedback}"')
        delta.append(f"Added learned preference: {feedback}")

    return ImprovedPlan(
        updated_plan_notes=(
            f"Based on {tone} feedback, the plan has been updated to improve future runs."
        ),
        recommended_changes=changes,
        next_instruction_pack_delta=delta,
    )
