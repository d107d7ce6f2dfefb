"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# Values are read from two sources, in priority order:
#
#   1. Environment variables, e.g. AI_PROVIDER=openai (always win)
#   2. The .env file in the project root (local development)
#
# Field ``ai_provider`` maps to env var ``AI_PROVIDER``; pydantic-settings
# uppercases and matches.  Defaults apply when neither source sets a value.
#
# .env is git-ignored.  .env.example lists every variable.
# ──────────────────────────────────────────────────────────────────────
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Ollama ignores the key, but provider configs must carry a non-blank one.
OLLAMA_PLACEHOLDER_KEY = "ollama"


class Settings(BaseSettings):
    """noteScribe application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === AI Provider ===
    ai_provider: str = "claude"
    ai_model: str = ""  # Empty = the provider's default model
    ai_base_url: str = ""  # Custom endpoint for Claude/OpenAI-compatible APIs
    ai_timeout: float = Field(default=30.0, gt=0)
    ai_max_retries: int = Field(default=3, ge=0)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # === Pub/Sub ===
    pubsub_backend: Literal["memory", "postgres"] = "memory"
    database_url: str = ""  # Required when pubsub_backend=postgres

    # === Storage ===
    notes_db_path: str = "data/notes.db"
    jobs_db_path: str = "data/failed_jobs.db"

    # === Summarization ===
    summary_history_limit: int = Field(default=10, ge=1)
    summary_max_retries: int = Field(default=3, ge=1)
    dedup_ttl_seconds: float = Field(default=300.0, gt=0)

    # === Retry Scheduler ===
    retry_interval_seconds: float = Field(default=30.0, gt=0)
    retry_batch_size: int = Field(default=10, ge=1)
    retry_lease_seconds: float = Field(default=600.0, gt=0)

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def api_key_for(self, provider_type: str) -> str:
        """Return the configured credential for *provider_type* (empty if unset)."""
        if provider_type == "claude":
            return self.anthropic_api_key
        if provider_type == "openai":
            return self.openai_api_key
        if provider_type == "ollama":
            return OLLAMA_PLACEHOLDER_KEY
        return ""

    def base_url_for(self, provider_type: str) -> str | None:
        if provider_type == "ollama":
            return self.ollama_base_url or None
        return self.ai_base_url or None

    def get_available_ai_providers(self) -> list[str]:
        """Return the provider types that have credentials configured."""
        providers: list[str] = []
        if self.anthropic_api_key:
            providers.append("claude")
        if self.openai_api_key:
            providers.append("openai")
        if self.ollama_base_url:
            providers.append("ollama")
        return providers
