from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Protocol

from openai import AsyncOpenAI

from .errors import BackendUnavailableError
from .logging_setup import get_logger

logger = get_logger(__name__)


class TextGenerator(Protocol):
    async def complete(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        system: Optional[str] = None,
    ) -> str: ...


class OpenAITextGenerator:
    """Chat-completions backed text generator.

    Args:
        client: An `AsyncOpenAI` client (injected so tests can pass a fake).
        model: Chat model name.
        max_attempts: Tries per call; transient failures back off 0.8s, 1.6s, ...
    """

    def __init__(self, client: Any, model: str = "gpt-4o-mini", max_attempts: int = 2):
        self._client = client
        self._model = model
        self._max_attempts = max(1, max_attempts)

    @classmethod
    def from_api_key(cls, api_key: str, model: str) -> "OpenAITextGenerator":
        return cls(AsyncOpenAI(api_key=api_key), model=model)

    async def complete(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        system: Optional[str] = None,
    ) -> str:
        messages: List[Any] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
                content = (response.choices[0].message.content or "").strip()
                if not content:
                    raise ValueError("Empty completion")
                return content
            except Exception as e:
                last_error = e
                if attempt < self._max_attempts:
                    logger.info("Generation attempt failed, retrying", attempt=attempt, error=str(e))
                    await asyncio.sleep(0.8 * attempt)
                    continue
        raise BackendUnavailableError(f"Text generation failed: {last_error}") from last_error
