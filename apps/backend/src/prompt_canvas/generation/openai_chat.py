"""OpenAI-compatible chat-completions backend."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from .base import (
    ChunkCallback,
    CompleteCallback,
    ErrorCallback,
    GenerationError,
    GenerationResult,
    GenerationService,
)

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


class OpenAIGenerationService(GenerationService):
    """Calls ``POST {base_url}/chat/completions`` with a system and a user message."""

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        model: str = "gpt-4",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.7,
    ) -> None:
        self.api_key = api_key
        self.http = http_client
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> OpenAIGenerationService:
        """Construct this backend from application Settings."""
        if not cls.is_configured(settings):
            raise GenerationError("OPENAI_API_KEY is not set")
        return cls(
            api_key=settings.openai_api_key,
            http_client=http_client or httpx.AsyncClient(timeout=60.0),
            model=settings.default_model,
            base_url=settings.openai_base_url,
            temperature=settings.temperature,
        )

    @classmethod
    def is_configured(cls, settings: Settings) -> bool:
        return bool(settings.openai_api_key)

    @property
    def _url(self) -> str:
        return f"{self.base_url}/chat/completions"

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _payload(self, system_prompt: str, input: str, stream: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": input},
            ],
            "temperature": self.temperature,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def generate(self, system_prompt: str, input: str) -> GenerationResult:
        try:
            response = await self.http.post(
                self._url, headers=self._headers, json=self._payload(system_prompt, input)
            )
            if response.is_error:
                raise GenerationError(
                    f"API request failed with status {response.status_code}"
                )
            data = response.json()
            text = data["choices"][0]["message"]["content"]
        except (httpx.HTTPError, GenerationError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("OpenAI API error: %s", e)
            return GenerationResult(error=str(e) or type(e).__name__)

        return GenerationResult(text=text or "")

    async def generate_streaming(
        self,
        system_prompt: str,
        input: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        full_text = ""
        try:
            async with self.http.stream(
                "POST",
                self._url,
                headers=self._headers,
                json=self._payload(system_prompt, input, stream=True),
            ) as response:
                if response.is_error:
                    raise GenerationError(
                        f"API request failed with status {response.status_code}"
                    )

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line.startswith("data: ") or line == "data: [DONE]":
                        continue
                    content = _delta_content(line[6:])
                    if content:
                        full_text += content
                        on_chunk(content)
        except (httpx.HTTPError, GenerationError) as e:
            logger.error("OpenAI streaming error: %s", e)
            on_error(str(e) or type(e).__name__)
            return

        on_complete(full_text)

    async def aclose(self) -> None:
        await self.http.aclose()


def _delta_content(data: str) -> str:
    """Extract the incremental text from one streamed event; malformed events yield ''."""
    try:
        event = json.loads(data)
        return event["choices"][0]["delta"].get("content") or ""
    except (ValueError, KeyError, IndexError, TypeError, AttributeError):
        return ""
