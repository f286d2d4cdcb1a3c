"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """StoryLoom configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/storyloom.db"))

    # Completion backends, tried in order
    completion_backends: str = Field(default="ollama,proxy")
    completion_timeout: float = Field(default=30.0)

    # Ollama (local)
    ollama_base_url: str = Field(default="http://localhost:11434")
    ollama_model: str = Field(default="mistral")

    # Chat proxy (hosted)
    proxy_api_url: str = Field(default="http://localhost:3002")

    # Anthropic
    anthropic_api_key: str = Field(default="")
    claude_model: str = Field(default="claude-sonnet-4-5-20250929")

    # Memory retrieval
    relevance_scorer: str = Field(default="jaccard")
    memory_limit: int = Field(default=5)
    memory_min_score: float = Field(default=0.1)
    personality_memory_limit: int = Field(default=7)
    general_memory_fallback: int = Field(default=3)
    campaign_memory_limit: int = Field(default=10)

    # Prompt assembly
    history_window: int = Field(default=5)
    default_rp_mode: str = Field(default="lax")

    # Campaigns
    max_responders: int = Field(default=2)

    # Auto-save
    autosave_delay_ms: int = Field(default=500)
    transcripts_dir: Path = Field(default=Path("data/transcripts"))

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_completion_backends(self) -> list[str]:
        """Parse COMPLETION_BACKENDS into an ordered list of backend names."""
        if not self.completion_backends.strip():
            return []
        return [
            name.strip().lower()
            for name in self.completion_backends.split(",")
            if name.strip()
        ]


settings = Settings()
