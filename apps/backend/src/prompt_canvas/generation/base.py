"""Interface every text-generation backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from pydantic import BaseModel

ChunkCallback = Callable[[str], None]
CompleteCallback = Callable[[str], None]
ErrorCallback = Callable[[str], None]


class GenerationResult(BaseModel):
    """Text produced by a generation call, or the reason it failed."""

    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GenerationError(Exception):
    """Raised inside a backend when a generation request cannot be completed."""


class GenerationService(ABC):
    """Abstract base for text-generation backends.

    Interface contract:

        async def generate(system_prompt, input) -> GenerationResult

    Failures are reported through ``GenerationResult.error`` rather than raised.
    The streaming variant is optional; the default falls back to ``generate``
    and emits the whole text as a single chunk.
    """

    @abstractmethod
    async def generate(self, system_prompt: str, input: str) -> GenerationResult:
        ...

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
        if result.text:
            on_chunk(result.text)
        on_complete(result.text)

    async def aclose(self) -> None:
        """Release any resources held by the backend."""
