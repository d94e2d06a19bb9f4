"""Pydantic schemas for all console I/O contracts.

These schemas define the contracts between:
- API endpoints and the web client (camelCase on the wire)
- The planner, sandbox runner and summarizer
- JSON columns stored on the runs table
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================

class RunStatus(str, Enum):
    """Lifecycle status of a run."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class RobotMode(str, Enum):
    """Conversational/operating mode of a robot."""
    CALM = "calm"
    DIRECT = "direct"
    PROFESSIONAL = "professional"


class SafetyLevel(str, Enum):
    """How cautious a robot is while executing a plan."""
    CONSERVATIVE = "conservative"
    BALANCED = "balanced"
    PROACTIVE = "proactive"


class UserRating(str, Enum):
    """User verdict on a completed run."""
    WORKED = "worked"
    NEEDS_IMPROVEMENT = "needs_improvement"
    NOT_ACCEPTABLE = "not_acceptable"


class JournalMood(str, Enum):
    """Mood tag for a journal entry."""
    CONTENT = "content"
    REFLECTIVE = "reflective"
    FOCUSED = "focused"
    NEUTRAL = "neutral"
    CALM = "calm"


class ExecutionStatus(str, Enum):
    """Aggregated outcome of a devbox execution."""
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# Instruction Pack Schemas
# =============================================================================

class PlanStep(BaseModel):
    """Single step of an instruction pack."""
    title: str = Field(..., description="Short step title")
    details: str = Field(..., description="What the robot does in this step")
    checkpoints: list[str] = Field(default_factory=list)


class InstructionPack(BaseModel):
    """Structured plan generated before a run is executed."""
    goal: str = Field(..., description="One-line statement of the goal")
    assumptions: list[str] = Field(default_factory=list)
    steps: list[PlanStep] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    safety_checks: list[str] = Field(default_factory=list)
    success_criteria: list[str] = Field(default_factory=list)

    def to_markdown(self) -> str:
        """Render the pack as markdown."""
        md = f"# {self.goal}\n\n"
        md += "## Assumptions\n"
        for a in self.assumptions:
            md += f"- {a}\n"
        md += "\n## Steps\n"
        for i, step in enumerate(self.steps, 1):
            md += f"{i}. **{step.title}**: {step.details}\n"
            for cp in step.checkpoints:
                md += f"   - [ ] {cp}\n"
        md += "\n## Constraints\n"
        for c in self.constraints:
            md += f"- {c}\n"
        md += "\n## Safety Checks\n"
        for s in self.safety_checks:
            md += f"- {s}\n"
        md += "\n## Success Criteria\n"
        for s in self.success_criteria:
            md += f"- {s}\n"
        return md


# =============================================================================
# Summary Schemas
# =============================================================================

class RunSummary(BaseModel):
    """Narrative summary attached to a finished run."""
    run_summary: str
    what_went_well: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    risk_flags: list[str] = Field(default_factory=list)
    next_run_suggestions: list[str] = Field(default_factory=list)


class ImprovedPlan(BaseModel):
    """Plan revision produced after the user rates a run."""
    updated_plan_notes: str
    recommended_changes: list[str] = Field(default_factory=list)
    next_instruction_pack_delta: list[str] = Field(default_factory=list)


# =============================================================================
# Execution Schemas
# =============================================================================

class StepResult(CamelModel):
    """Outcome of one command executed on the devbox."""
    step_title: str
    command: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int
    success: bool


class ExecutionResult(CamelModel):
    """Aggregated trace of a devbox execution."""
    devbox_id: str = ""
    status: ExecutionStatus
    steps: list[StepResult] = Field(default_factory=list)
    total_duration: int = Field(default=0, description="Milliseconds")
    devbox_status: str = "unknown"
    error: str | None = None

    @property
    def succeeded_steps(self) -> list[StepResult]:
        return [s for s in self.steps if s.success]

    @property
    def failed_steps(self) -> list[StepResult]:
        return [s for s in self.steps if not s.success]


# =============================================================================
# API Request Schemas
# =============================================================================

class RobotCreateRequest(CamelModel):
    """API request to create a robot profile."""
    name: str = Field(..., min_length=1)
    mode: RobotMode = RobotMode.CALM
    safety_level: SafetyLevel = SafetyLevel.BALANCED
    avatar_color: str = "#e879a0"


class RobotUpdateRequest(CamelModel):
    """API request to edit a robot profile."""
    name: str | None = Field(default=None, min_length=1)
    mode: RobotMode | None = None
    safety_level: SafetyLevel | None = None
    avatar_color: str | None = None


class RunCreateRequest(CamelModel):
    """API request to create a new run."""
    robot_id: str = Field(..., description="Robot that will execute the command")
    command: str = Field(..., description="Natural language command")
    context: str | None = Field(default=None, description="Extra constraints")
    urgency: int = Field(default=50, ge=0, le=100)


class RunCompleteRequest(CamelModel):
    """API request to manually complete a run."""
    video_url: str | None = None
    run_notes: str | None = None


class FeedbackRequest(CamelModel):
    """API request to rate a completed run."""
    rating: UserRating
    feedback: str | None = None


class JournalCreateRequest(CamelModel):
    """API request to add a journal entry."""
    robot_id: str
    title: str = Field(..., min_length=1)
    mood: JournalMood = JournalMood.NEUTRAL
    highlights: list[str] = Field(default_factory=list)
    actions_taken: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    content: str | None = None


class ConversationCreateRequest(CamelModel):
    """API request to start a chat conversation."""
    title: str | None = None


class MessageCreateRequest(CamelModel):
    """API request to send a chat message."""
    content: str


# =============================================================================
# API Response Schemas
# =============================================================================

class RobotResponse(CamelModel):
    """API response for a robot profile."""
    id: str
    name: str
    mode: RobotMode
    safety_level: SafetyLevel
    avatar_color: str
    created_at: datetime


class RunResponse(CamelModel):
    """API response for a run."""
    id: str
    robot_id: str
    command: str
    context: str | None = None
    urgency: int
    status: RunStatus
    instruction_pack: dict[str, Any] | None = None
    video_url: str | None = None
    ai_summary: dict[str, Any] | None = None
    user_rating: UserRating | None = None
    user_feedback: str | None = None
    improved_plan: dict[str, Any] | None = None
    devbox_id: str | None = None
    runloop_output: dict[str, Any] | None = None
    task_id: str | None = None
    created_at: datetime


class JournalEntryResponse(CamelModel):
    """API response for a journal entry."""
    id: str
    robot_id: str
    title: str
    mood: JournalMood
    highlights: list[str]
    actions_taken: list[str]
    suggestions: list[str]
    content: str | None = None
    created_at: datetime


class MessageResponse(CamelModel):
    """API response for a chat message."""
    id: int
    conversation_id: int
    role: str
    content: str
    created_at: datetime


class ConversationResponse(CamelModel):
    """API response for a chat conversation."""
    id: int
    title: str
    created_at: datetime


class ConversationDetailResponse(ConversationResponse):
    """Conversation together with its messages."""
    messages: list[MessageResponse] = Field(default_factory=list)


# =============================================================================
# Integration Schemas
# =============================================================================

class IntegrationStatus(BaseModel):
    """Which Google connectors are linked."""
    calendar: bool = False
    gmail: bool = False


class TimeWindow(BaseModel):
    start: str
    end: str
    duration: str | None = None


class CalendarEvent(CamelModel):
    id: str
    title: str
    start: str
    end: str
    all_day: bool = False
    location: str | None = None
    status: str = "confirmed"
    type: str | None = None
    stress_level: str | None = None


class CalendarBlock(CamelModel):
    """Events of a time range with busy and free windows."""
    events: list[CalendarEvent] = Field(default_factory=list)
    busy_windows: list[TimeWindow] = Field(default_factory=list)
    free_windows: list[TimeWindow] = Field(default_factory=list)
    source: Literal["google", "fallback"] = "google"


EmailCategory = Literal[
    "delivery", "event_invite", "reservation", "urgent", "newsletter", "general"
]


class EmailSignal(BaseModel):
    """A recent email reduced to an actionable signal."""
    id: str
    sender: str = Field(..., serialization_alias="from")
    subject: str
    date: str
    snippet: str
    category: EmailCategory
    labels: list[str] = Field(default_factory=list)
    actionable: bool = False


# =============================================================================
# LLM Schemas
# =============================================================================

class LLMMessage(BaseModel):
    """A single message in an LLM conversation."""
    role: Literal["system", "user", "assistant"] = Field(...)
    content: str = Field(...)
