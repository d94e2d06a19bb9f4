"""Typed data access over the console tables.

Every method commits its own change; there are no transactions spanning
entities. Updates are last-writer-wins, except `finish_run`, which is
conditional on the run still being processed by the same task.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from relay_console.database.models import (
    Conversation,
    JournalEntry,
    Message,
    RobotProfile,
    Run,
)


logger = logging.getLogger(__name__)


class Storage:
    """CRUD accessor bound to one async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj: Any) -> Any:
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    # =========================================================================
    # Robots
    # =========================================================================

    async def create_robot(self, **fields: Any) -> RobotProfile:
        return await self._save(RobotProfile(**fields))

    async def get_robot(self, robot_id: str) -> RobotProfile | None:
        return await self.session.get(RobotProfile, robot_id)

    async def list_robots(self) -> Sequence[RobotProfile]:
        result = await self.session.execute(
            select(RobotProfile).order_by(RobotProfile.created_at.desc())
        )
        return result.scalars().all()

    async def update_robot(self, robot_id: str, **updates: Any) -> RobotProfile | None:
        robot = await self.get_robot(robot_id)
        if robot is None:
            return None
        for key, value in updates.items():
            setattr(robot, key, value)
        return await self._save(robot)

    async def delete_robot(self, robot_id: str) -> bool:
        """Delete a robot after removing its runs and journal entries."""
        await self.session.execute(delete(Run).where(Run.robot_id == robot_id))
        await self.session.execute(
            delete(JournalEntry).where(JournalEntry.robot_id == robot_id)
        )
        result = await self.session.execute(
            delete(RobotProfile).where(RobotProfile.id == robot_id)
        )
        await self.session.commit()
        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted robot {robot_id} with its runs and journal entries")
        return deleted

    # =========================================================================
    # Runs
    # =========================================================================

    async def create_run(self, **fields: Any) -> Run:
        return await self._save(Run(**fields))

    async def get_run(self, run_id: str) -> Run | None:
        return await self.session.get(Run, run_id)

    async def list_runs(self, robot_id: str | None = None) -> Sequence[Run]:
        query = select(Run)
        if robot_id is not None:
            query = query.where(Run.robot_id == robot_id)
        result = await self.session.execute(query.order_by(Run.created_at.desc()))
        return result.scalars().all()

    async def list_runs_by_status(self, status: str) -> Sequence[Run]:
        result = await self.session.execute(select(Run).where(Run.status == status))
        return result.scalars().all()

    async def update_run(self, run_id: str, **updates: Any) -> Run | None:
        run = await self.get_run(run_id)
        if run is None:
            return None
        for key, value in updates.items():
            setattr(run, key, value)
        return await self._save(run)

    async def finish_run(self, run_id: str, task_id: str | None, **updates: Any) -> bool:
        """Apply a terminal write for a dispatched execution.

        The update only lands while the run is still `processing` under the
        same task; a run completed manually in the meantime is left alone.

        Returns:
            True if the row was updated
        """
        result = await self.session.execute(
            update(Run)
            .where(Run.id == run_id)
            .where(Run.status == "processing")
            .where(Run.task_id == task_id)
            .values(**updates)
        )
        await self.session.commit()
        return result.rowcount > 0

    # =========================================================================
    # Journal
    # =========================================================================

    async def create_journal_entry(self, **fields: Any) -> JournalEntry:
        return await self._save(JournalEntry(**fields))

    async def get_journal_entry(self, entry_id: str) -> JournalEntry | None:
        return await self.session.get(JournalEntry, entry_id)

    async def list_journal_entries(self, robot_id: str | None = None) -> Sequence[JournalEntry]:
        query = select(JournalEntry)
        if robot_id is not None:
            query = query.where(JournalEntry.robot_id == robot_id)
        result = await self.session.execute(query.order_by(JournalEntry.created_at.desc()))
        return result.scalars().all()

    # =========================================================================
    # Chat
    # =========================================================================

    async def create_conversation(self, title: str) -> Conversation:
        return await self._save(Conversation(title=title))

    async def get_conversation(self, conversation_id: int) -> Conversation | None:
        return await self.session.get(Conversation, conversation_id)

    async def list_conversations(self) -> Sequence[Conversation]:
        result = await self.session.execute(
            select(Conversation).order_by(Conversation.created_at.desc())
        )
        return result.scalars().all()

    async def delete_conversation(self, conversation_id: int) -> None:
        await self.session.execute(
            delete(Message).where(Message.conversation_id == conversation_id)
        )
        await self.session.execute(
            delete(Conversation).where(Conversation.id == conversation_id)
        )
        await self.session.commit()

    async def list_messages(self, conversation_id: int) -> Sequence[Message]:
        result = await self.session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        )
        return result.scalars().all()

    async def create_message(self, conversation_id: int, role: str, content: str) -> Message:
        return await self._save(
            Message(conversation_id=conversation_id, role=role, content=content)
        )
