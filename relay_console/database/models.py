"""SQLModel database tables.

Tables:
- RobotProfile: virtual robots owned by the console user
- Run: one command issued to a robot, with its full lifecycle record
- JournalEntry: retrospective notes attached to a robot
- Conversation / Message: chat assistant history
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# RobotProfile Model
# =============================================================================

class RobotProfile(SQLModel, table=True):
    """A virtual robot profile."""

    __tablename__ = "robot_profiles"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    mode: str = Field(default="calm")  # Use RobotMode enum values
    safety_level: str = Field(default="balanced")  # Use SafetyLevel enum values
    avatar_color: str = Field(default="#e879a0")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# =============================================================================
# Run Model
# =============================================================================

class Run(SQLModel, table=True):
    """A command issued to a robot and its execution record."""

    __tablename__ = "runs"
    __table_args__ = (
        Index("ix_runs_robot_created", "robot_id", "created_at"),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    # Ownership is enforced by the storage layer's cascading delete.
    robot_id: str = Field(index=True)

    # Request
    command: str = Field(sa_column=Column(Text, nullable=False))
    context: str | None = Field(default=None, sa_column=Column(Text))
    urgency: int = Field(default=50)

    # Status
    status: str = Field(default="queued", index=True)  # Use RunStatus enum values
    task_id: str | None = Field(default=None, description="Dispatched background task")

    # Plan and results (JSON documents)
    instruction_pack: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    ai_summary: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    improved_plan: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    runloop_output: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    devbox_id: str | None = Field(default=None)
    video_url: str | None = Field(default=None)

    # User feedback
    user_rating: str | None = Field(default=None)  # Use UserRating enum values
    user_feedback: str | None = Field(default=None, sa_column=Column(Text))

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# =============================================================================
# JournalEntry Model
# =============================================================================

class JournalEntry(SQLModel, table=True):
    """A retrospective note written for a robot."""

    __tablename__ = "journal_entries"

    id: str = Field(default_factory=_new_id, primary_key=True)
    robot_id: str = Field(index=True)
    title: str
    mood: str = Field(default="neutral")
    highlights: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    actions_taken: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    suggestions: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    content: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


# =============================================================================
# Chat Models
# =============================================================================

class Conversation(SQLModel, table=True):
    """A chat assistant conversation."""

    __tablename__ = "conversations"

    id: int | None = Field(default=None, primary_key=True)
    title: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class Message(SQLModel, table=True):
    """A single chat message."""

    __tablename__ = "messages"

    id: int | None = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversations.id", index=True)
    role: str  # user | assistant
    content: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
