import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings

# apps/backend/src/prompt_canvas/config.py -> parents[3] == apps/backend
DEFAULT_FLOW_DIR = Path(__file__).resolve().parents[3] / "flows"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ------------------------------------------------------------------
    # Generation backend
    # ------------------------------------------------------------------
    # "mock": delayed echo responses, no external calls (default)
    # "openai": chat completions against openai_base_url
    generation_mode: Literal["mock", "openai"] = "mock"

    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4"
    temperature: float = 0.7

    mock_delay_seconds: float = 1.0

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    generation_timeout_seconds: Optional[float] = 60.0
    # "substitute": an errored dependency contributes "" to its dependents
    # "propagate": dependents of an errored node fail without generating
    dependency_failure_policy: Literal["substitute", "propagate"] = "substitute"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    flow_data_dir: Path = DEFAULT_FLOW_DIR
    flow_id: str = "flow-data"

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure the root logger from settings."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
