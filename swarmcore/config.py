"""Global configuration — loaded from environment variables."""

import logging
from pathlib import Path

from pydantic_settings import BaseSettings


class SwarmSettings(BaseSettings):
    log_level: str = "INFO"
    db_path: Path = Path(".swarmcore/state.db")

    # Stimulus routing
    router_history_limit: int = 1000

    # Mood
    mood_history_limit: int = 100  # audit records kept per agent
    mood_decay_rate: float = 0.05  # fraction of the gap to baseline closed per decay step

    # Reflection LLM (optional; any text-in/text-out callback works)
    anthropic_api_key: str = ""
    default_model: str = "claude-sonnet-4-20250514"
    reflection_max_tokens: int = 400

    model_config = {"env_prefix": "SWARMCORE_"}


settings = SwarmSettings()


def configure_logging(level: str | None = None) -> None:
    """Apply the configured log level to the swarmcore logger tree."""
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("swarmcore").setLevel((level or settings.log_level).upper())
