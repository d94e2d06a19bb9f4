"""Chat assistant routes.

Endpoints:
- GET    /conversations               - List conversations
- POST   /conversations               - Start a conversation
- GET    /conversations/{id}          - Conversation with its messages
- DELETE /conversations/{id}          - Delete conversation and messages
- POST   /conversations/{id}/messages - Send a message, stream the reply (SSE)
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Callable

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import StreamingResponse

from relay_console.api.routes import get_storage
from relay_console.config import get_settings
from relay_console.database.session import get_session
from relay_console.database.storage import Storage
from relay_console.llm.base import LLMAdapter
from relay_console.llm.openai_compat import OpenAICompatibleAdapter
from relay_console.schemas import (
    ConversationCreateRequest,
    ConversationDetailResponse,
    ConversationResponse,
    LLMMessage,
    MessageCreateRequest,
    MessageResponse,
    RunStatus,
)


logger = logging.getLogger(__name__)
router = APIRouter()

StorageDep = Annotated[Storage, Depends(get_storage)]


def get_chat_adapter_factory() -> Callable[[], LLMAdapter]:
    return OpenAICompatibleAdapter


async def build_system_prompt(storage: Storage) -> str:
    """Describe the live console state to the assistant."""
    robots = await storage.list_robots()
    runs = await storage.list_runs()
    journal = await storage.list_journal_entries()

    recent_runs = runs[:10]
    recent_journal = journal[:5]
    active = [r for r in runs if r.status in (RunStatus.QUEUED.value, RunStatus.PROCESSING.value)]
    completed = [r for r in runs if r.status == RunStatus.COMPLETE.value]

    robot_lines = [f"- {r.name} (mode: {r.mode}, safety: {r.safety_level})" for r in robots]
    active_lines = [f'- "{r.command}" (status: {r.status}, urgency: {r.urgency})' for r in active]

    run_lines = []
    for r in recent_runs:
        line = f'- "{r.command}" - {r.status}'
        summary = (r.ai_summary or {}).get("run_summary")
        if summary:
            line += f" | Summary: {summary[:100]}"
        run_lines.append(line)

    journal_lines = []
    for j in recent_journal:
        line = f'- "{j.title}" (mood: {j.mood})'
        if j.suggestions:
            line += f" | Suggestion: {j.suggestions[0]}"
        journal_lines.append(line)

    return f"""You are Relay Assistant, a helpful and calm AI companion inside the Relay robot companion console. You help users understand their robot operations, plan tasks, review run results, and make decisions about their robots.

You have access to the following live data from the system:

ROBOTS ({len(robots)} total):
{chr(10).join(robot_lines)}

ACTIVE TASKS ({len(active)}):
{chr(10).join(active_lines) if active_lines else "No active tasks right now."}

RECENT RUNS (last {len(recent_runs)}):
{chr(10).join(run_lines)}

JOURNAL ENTRIES (last {len(recent_journal)}):
{chr(10).join(journal_lines)}

STATS:
- Total completed runs: {len(completed)}
- Total robots: {len(robots)}

Guidelines:
- Be warm, supportive, and concise
- Help users prioritize tasks and understand robot performance
- Suggest improvements based on run history and journal insights
- Keep responses focused and actionable
- Use simple language, avoid jargon"""


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.get("/conversations", response_model=list[ConversationResponse])
async def list_conversations(storage: StorageDep):
    return await storage.list_conversations()


@router.get("/conversations/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(conversation_id: int, storage: StorageDep):
    conversation = await storage.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    messages = await storage.list_messages(conversation_id)
    return ConversationDetailResponse(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        messages=[MessageResponse.model_validate(m) for m in messages],
    )


@router.post("/conversations", response_model=ConversationResponse, status_code=201)
async def create_conversation(storage: StorageDep, request: ConversationCreateRequest | None = None):
    title = (request.title if request else None) or "New Chat"
    return await storage.create_conversation(title)


@router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(conversation_id: int, storage: StorageDep) -> Response:
    await storage.delete_conversation(conversation_id)
    return Response(status_code=204)


@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: int,
    request: MessageCreateRequest,
    storage: StorageDep,
    adapter_factory: Callable[[], LLMAdapter] = Depends(get_chat_adapter_factory),
):
    """Store the user's message and stream the assistant reply as SSE.

    Events: `{"content": ...}` per delta, then `{"done": true}`; a failure
    mid-stream emits `{"error": ...}` instead.
    """
    content = request.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Content is required")

    if not await storage.get_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")

    try:
        adapter = adapter_factory()
    except ValueError as e:
        logger.warning(f"Chat assistant unavailable: {e}")
        raise HTTPException(status_code=503, detail="Chat assistant is not configured")

    await storage.create_message(conversation_id, "user", content)
    history = await storage.list_messages(conversation_id)

    messages = [LLMMessage(role="system", content=await build_system_prompt(storage))]
    messages += [LLMMessage(role=m.role, content=m.content) for m in history]
    max_tokens = get_settings().chat_max_tokens

    async def event_stream():
        full_response = ""
        try:
            async for delta in adapter.stream_chat(messages, max_tokens=max_tokens):
                full_response += delta
                yield _sse({"content": delta})

            async with get_session() as db:
                await Storage(db).create_message(conversation_id, "assistant", full_response)

            yield _sse({"done": True})
        except Exception as e:
            logger.error(f"Error streaming reply for conversation {conversation_id}: {e}")
            yield _sse({"error": "Failed to send message"})
        finally:
            await adapter.close()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
