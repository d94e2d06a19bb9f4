"""Abstract base class for chat LLM adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from relay_console.schemas import LLMMessage


class LLMAdapter(ABC):
    """Abstract base class for LLM provider adapters.

    The chat assistant streams replies through this interface so the
    provider can be swapped (or faked in tests).
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'openai')."""
        ...

    @abstractmethod
    def stream_chat(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        """Stream a chat completion.

        Args:
            messages: Conversation messages, system prompt first
            model: Model name (uses default if None)
            max_tokens: Maximum tokens in response

        Yields:
            Content deltas as they arrive
        """
        ...

    async def close(self) -> None:
        """Release client resources."""

    def _build_request(
        self,
        messages: list[LLMMessage],
        model: str,
        max_tokens: int,
        stream: bool,
    ) -> dict[str, Any]:
        """Build the API request payload."""
        return {
            "model": model,
            "messages": [m.model_dump(exclude_none=True) for m in messages],
            "max_tokens": max_tokens,
            "stream": stream,
        }
