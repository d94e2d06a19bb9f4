"""Demo data for a fresh console database."""

from __future__ import annotations

import logging
from datetime import timedelta

from relay_console.agent.planner import generate_instruction_pack
from relay_console.agent.summarizer import generate_improved_plan, generate_run_summary
from relay_console.database.models import utcnow
from relay_console.database.storage import Storage
from relay_console.schemas import RunStatus, UserRating


logger = logging.getLogger(__name__)


async def seed_database(storage: Storage) -> bool:
    """Insert demo robots, runs and journal entries into an empty database.

    Returns:
        True if data was inserted, False if robots already existed
    """
    if await storage.list_robots():
        return False

    noah = await storage.create_robot(
        name="Noah", mode="calm", safety_level="balanced", avatar_color="#e879a0"
    )
    bolt = await storage.create_robot(
        name="Bolt", mode="direct", safety_level="proactive", avatar_color="#818cf8"
    )
    atlas = await storage.create_robot(
        name="Atlas", mode="professional", safety_level="conservative", avatar_color="#67e8f9"
    )

    delivery_cmd = "Navigate to the hallway and deliver a package to Room 204"
    delivery_ctx = "Avoid the wet floor area near the elevator"
    feedback = "Great job! Next time, try to be a little faster around corners."
    await storage.create_run(
        robot_id=noah.id,
        command=delivery_cmd,
        context=delivery_ctx,
        urgency=60,
        status=RunStatus.COMPLETE.value,
        instruction_pack=generate_instruction_pack(
            noah.name, noah.mode, noah.safety_level, delivery_cmd, delivery_ctx, 60
        ).model_dump(),
        ai_summary=generate_run_summary(noah.name, delivery_cmd).model_dump(),
        user_rating=UserRating.WORKED.value,
        user_feedback=feedback,
        improved_plan=generate_improved_plan(feedback, UserRating.WORKED).model_dump(),
    )

    video_cmd = "Record a demo video of the office common area"
    await storage.create_run(
        robot_id=noah.id,
        command=video_cmd,
        urgency=30,
        status=RunStatus.COMPLETE.value,
        instruction_pack=generate_instruction_pack(
            noah.name, noah.mode, noah.safety_level, video_cmd, None, 30
        ).model_dump(),
        ai_summary=generate_run_summary(noah.name, video_cmd).model_dump(),
    )

    # Left queued without a pack; it can be completed manually from the console.
    await storage.create_run(
        robot_id=bolt.id,
        command="Patrol the perimeter of the building and report any anomalies",
        context="Focus on the north entrance which had an issue last week",
        urgency=80,
        status=RunStatus.QUEUED.value,
    )

    now = utcnow()
    await storage.create_journal_entry(
        robot_id=noah.id,
        title="A productive day with a gentle pace",
        mood="content",
        highlights=[
            "Successfully delivered a package to Room 204",
            "Recorded a panoramic video of the common area",
        ],
        actions_taken=[
            "Rerouted around the wet floor near the elevator",
            "Slowed down at hallway intersections",
        ],
        suggestions=["Pre-map the hallway intersection for smoother turns"],
        content="Two runs today, both finished without incidents.",
        created_at=now - timedelta(days=1),
    )
    await storage.create_journal_entry(
        robot_id=atlas.id,
        title="Careful checks before every move",
        mood="reflective",
        highlights=["Confirmed every measurement twice"],
        actions_taken=["Asked for confirmation before each major step"],
        suggestions=["Batch confirmations for routine steps"],
        content="Conservative mode kept everything safe but slow.",
        created_at=now - timedelta(days=2),
    )

    logger.info("Seeded demo robots, runs and journal entries")
    return True
