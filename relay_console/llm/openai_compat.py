"""OpenAI-compatible chat adapter.

Streams `/chat/completions` responses (server-sent events) and yields the
content deltas.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from relay_console.config import get_settings
from relay_console.llm.base import LLMAdapter
from relay_console.schemas import LLMMessage


logger = logging.getLogger(__name__)


class OpenAICompatibleAdapter(LLMAdapter):
    """Chat adapter for any OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.chat_api_key
        self.base_url = base_url or settings.chat_base_url
        self.default_model = settings.chat_model

        if not self.api_key:
            raise ValueError("Chat API key not configured")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def provider_name(self) -> str:
        return "openai"

    async def stream_chat(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        max_tokens: int = 1024,
    ) -> AsyncIterator[str]:
        payload = self._build_request(
            messages=messages,
            model=model or self.default_model,
            max_tokens=max_tokens,
            stream=True,
        )

        async with self._client.stream("POST", "/chat/completions", json=payload) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    chunk = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed stream chunk: {data[:80]}")
                    continue
                choices = chunk.get("choices") or [{}]
                content = (choices[0].get("delta") or {}).get("content")
                if content:
                    yield content

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
