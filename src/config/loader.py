"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  — static defaults checked into the repo
#   2. .env file           — local developer overrides (not committed)
#   3. Environment vars    — set at deploy time
#
# The YAML file is the only place for tables that do not fit in flat
# env vars: per-use-case sampling settings and default models per
# provider.  Everything else comes from Settings and overrides YAML.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import yaml

from src.config.settings import Settings
from src.models.completion import UseCaseSettings


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.  A missing file is
            treated as empty.
        settings: Settings to merge; read from the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "ai": {
            "provider": settings.ai_provider,
            "model": settings.ai_model,
            "timeout": settings.ai_timeout,
            "max_retries": settings.ai_max_retries,
            "available_providers": settings.get_available_ai_providers(),
        },
        "pubsub": {
            "backend": settings.pubsub_backend,
        },
        "summary": {
            "history_limit": settings.summary_history_limit,
            "max_retries": settings.summary_max_retries,
        },
        "retry": {
            "interval_seconds": settings.retry_interval_seconds,
            "batch_size": settings.retry_batch_size,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def use_case_settings(config: dict) -> dict[str, UseCaseSettings]:
    """Return the ``use_cases`` table as validated :class:`UseCaseSettings`."""
    table: dict[str, Any] = config.get("use_cases") or {}
    return {name: UseCaseSettings.model_validate(values) for name, values in table.items()}


def default_models(config: dict) -> dict[str, str]:
    """Return the ``default_models`` table (provider type → model name)."""
    table: dict[str, Any] = config.get("default_models") or {}
    return {provider: str(model) for provider, model in table.items()}


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
