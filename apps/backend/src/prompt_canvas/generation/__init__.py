"""Text-generation backends.

Usage:
    from prompt_canvas.generation import create_generation_service

    service = create_generation_service(settings)
    try:
        result = await service.generate(system_prompt, input)
    finally:
        await service.aclose()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import GenerationError, GenerationResult, GenerationService
from .mock import FailureConfig, FailureRule, GenerationCall, MockGenerationService
from .openai_chat import OpenAIGenerationService

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)


def create_generation_service(
    settings: Settings,
    failure_config: FailureConfig | None = None,
) -> GenerationService:
    """Create the generation backend selected by settings.generation_mode.

    Modes:
      "mock": delayed echo responses (default)
      "openai": chat completions when an API key is set, falling back to
                 the mock backend otherwise
    """
    if settings.generation_mode == "openai":
        if OpenAIGenerationService.is_configured(settings):
            return OpenAIGenerationService.from_settings(settings)
        logger.warning("generation_mode is 'openai' but no API key is set; using mock backend")

    return MockGenerationService(
        delay_seconds=settings.mock_delay_seconds,
        failure_config=failure_config,
    )


__all__ = [
    "FailureConfig",
    "FailureRule",
    "GenerationCall",
    "GenerationError",
    "GenerationResult",
    "GenerationService",
    "MockGenerationService",
    "OpenAIGenerationService",
    "create_generation_service",
]
