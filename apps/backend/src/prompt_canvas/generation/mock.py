"""Offline generation backend with configurable delay and failure injection."""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass

from pydantic import BaseModel, Field, PrivateAttr

from .base import (
    ChunkCallback,
    CompleteCallback,
    ErrorCallback,
    GenerationResult,
    GenerationService,
)


class FailureRule(BaseModel):
    """A canned error returned for calls whose system prompt matches the rule's key."""

    error_type: str = "server_error"
    message: str = "Injected failure"
    probability: float = Field(1.0, ge=0.0, le=1.0)

    def error(self) -> str:
        return f"[{self.error_type}] {self.message}"


class FailureConfig(BaseModel):
    """Failure injection for MockGenerationService, keyed by exact system prompt.

    Draws come from a private generator so a seeded config fails the same
    calls on every run.
    """

    rules: dict[str, FailureRule] = {}
    seed: int | None = None

    _rng: random.Random = PrivateAttr(default_factory=random.Random)

    def model_post_init(self, __context) -> None:
        self._rng.seed(self.seed)

    def failure_for(self, system_prompt: str) -> str | None:
        """Return the error message to report for this call, or None to succeed."""
        rule = self.rules.get(system_prompt)
        if rule is None or self._rng.random() >= rule.probability:
            return None
        return rule.error()


@dataclass(frozen=True)
class GenerationCall:
    system_prompt: str
    input: str


class MockGenerationService(GenerationService):
    """Echoes its inputs back after a delay. Records every call it receives."""

    def __init__(
        self,
        delay_seconds: float = 1.0,
        failure_config: FailureConfig | None = None,
    ):
        self.delay_seconds = delay_seconds
        self.failure_config = failure_config
        self.calls: list[GenerationCall] = []

    async def generate(self, system_prompt: str, input: str) -> GenerationResult:
        self.calls.append(GenerationCall(system_prompt=system_prompt, input=input))
        await asyncio.sleep(self.delay_seconds)

        if self.failure_config is not None:
            error = self.failure_config.failure_for(system_prompt)
            if error is not None:
                return GenerationResult(error=error)

        return GenerationResult(text=f"Response to: {input}\nWith system prompt: {system_prompt}")

    async def generate_streaming(
        self,
        system_prompt: str,
        input: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        result = await self.generate(system_prompt, input)
        if result.error is not None:
            on_error(result.error)
            return

        # Word-sized chunks, whitespace kept so chunks join back to the full text
        for chunk in re.findall(r"\S+\s*|\s+", result.text):
            on_chunk(chunk)
            await asyncio.sleep(0)
        on_complete(result.text)
