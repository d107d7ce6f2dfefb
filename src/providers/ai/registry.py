"""Provider registry: constructor table, model defaults, and the active provider.

# ─── HOW PROVIDER SELECTION WORKS ─────────────────────────────────────
#
#   startup:  registry.activate("claude", config)         no health check
#   runtime:  snapshot = registry.current()               ActiveProvider
#             snapshot.provider.generate_completion(req)  lock not held
#   admin:    registry.switch_provider("openai", key)     build → health
#                                                         check → swap
#
# The active provider is an immutable ActiveProvider snapshot.  Swapping
# replaces the whole snapshot under a lock, so a caller always sees a
# consistent (type, model, provider) triple, and a call that started
# before a swap finishes against the provider it started with.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from src.interfaces.ai_provider import IAIProvider
from src.models.completion import ProviderConfig, UseCaseSettings
from src.providers.ai.claude_provider import ClaudeProvider
from src.providers.ai.ollama_provider import OllamaProvider
from src.providers.ai.openai_provider import OpenAIProvider
from src.utils.errors import ConfigurationError, ProviderSwitchError, UnsupportedProviderError

logger = structlog.get_logger(logger_name=__name__)

ProviderFactory = Callable[[], IAIProvider]

SUMMARIZATION = "summarization"

DEFAULT_MODELS: dict[str, str] = {
    "claude": "claude-3-5-sonnet-20241022",
    "openai": "gpt-4-turbo",
    "ollama": "llama3.1",
}

DEFAULT_USE_CASE_SETTINGS: dict[str, UseCaseSettings] = {
    "summarization": UseCaseSettings(temperature=0.1, max_tokens=1500),
    "analysis": UseCaseSettings(temperature=0.2, max_tokens=2000),
    "conversation": UseCaseSettings(temperature=0.7, max_tokens=1000),
    "creative": UseCaseSettings(temperature=0.9, max_tokens=2000),
}


def default_factories() -> dict[str, ProviderFactory]:
    """The provider table built at startup."""
    return {
        "claude": ClaudeProvider,
        "openai": OpenAIProvider,
        "ollama": OllamaProvider,
    }


@dataclass(frozen=True)
class ActiveProvider:
    """The provider currently serving completions, with its type and model."""

    provider_type: str
    model: str
    provider: IAIProvider


class ProviderRegistry:
    """Maps provider types to constructors and holds the active provider.

    Parameters
    ----------
    factories:
        Provider type → zero-argument constructor.  Defaults to
        :func:`default_factories`.
    use_case_settings:
        Overrides for the recommended ``temperature`` / ``max_tokens``
        per use case; merged over :data:`DEFAULT_USE_CASE_SETTINGS`.
    default_models:
        Overrides for the default model per provider type.
    base_urls:
        Optional endpoint override per provider type, used when the
        registry builds a config for :meth:`switch_provider`.
    timeout, max_retries:
        Connection settings applied to providers built by
        :meth:`switch_provider`.
    """

    def __init__(
        self,
        factories: Mapping[str, ProviderFactory] | None = None,
        use_case_settings: Mapping[str, UseCaseSettings] | None = None,
        default_models: Mapping[str, str] | None = None,
        base_urls: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
    ) -> None:
        self._factories: dict[str, ProviderFactory] = dict(
            factories if factories is not None else default_factories()
        )
        self._use_case_settings = {**DEFAULT_USE_CASE_SETTINGS, **(use_case_settings or {})}
        self._default_models = {**DEFAULT_MODELS, **(default_models or {})}
        self._base_urls = dict(base_urls or {})
        self._timeout = timeout
        self._max_retries = max_retries

        self._active: ActiveProvider | None = None
        self._lock = asyncio.Lock()
        self._switch_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Constructor table
    # ------------------------------------------------------------------

    def register_provider(
        self,
        provider_type: str,
        factory: ProviderFactory,
        default_model: str | None = None,
    ) -> None:
        """Add or replace the constructor for *provider_type*."""
        self._factories[provider_type] = factory
        if default_model:
            self._default_models[provider_type] = default_model
        logger.info("ai_provider_registered", provider=provider_type)

    def supported_providers(self) -> list[str]:
        return list(self._factories)

    def get_capabilities(self, provider_type: str) -> list[str]:
        factory = self._factories.get(provider_type)
        if factory is None:
            return []
        return factory().get_provider_info().capabilities

    def default_model(self, provider_type: str) -> str:
        return self._default_models.get(provider_type, "")

    def recommended_settings(self, use_case: str) -> UseCaseSettings:
        try:
            return self._use_case_settings[use_case]
        except KeyError:
            raise ConfigurationError(message=f"No recommended settings for use case '{use_case}'") from None

    def build_config(self, provider_type: str, api_key: str) -> ProviderConfig:
        """Build a :class:`ProviderConfig` from the registry's connection settings."""
        return ProviderConfig(
            api_key=api_key,
            base_url=self._base_urls.get(provider_type) or None,
            timeout=self._timeout,
            max_retries=self._max_retries,
        )

    async def create_provider(self, provider_type: str, config: ProviderConfig) -> IAIProvider:
        """Construct and initialize a provider.

        Raises
        ------
        UnsupportedProviderError
            If *provider_type* has no registered constructor.
        InvalidConfigError
            If the provider rejects *config* (e.g. blank API key).
        """
        factory = self._factories.get(provider_type)
        if factory is None:
            raise UnsupportedProviderError(
                message=(
                    f"Unsupported AI provider type: {provider_type}. "
                    f"Supported: {', '.join(self.supported_providers())}"
                ),
            )
        provider = factory()
        await provider.initialize(config)
        return provider

    # ------------------------------------------------------------------
    # Active provider
    # ------------------------------------------------------------------

    def current(self) -> ActiveProvider:
        """Return the active provider snapshot.

        Raises
        ------
        ConfigurationError
            If no provider has been activated yet.
        """
        active = self._active
        if active is None:
            raise ConfigurationError(message="No AI provider is active")
        return active

    @property
    def has_active(self) -> bool:
        return self._active is not None

    async def activate(
        self,
        provider_type: str,
        config: ProviderConfig,
        model: str | None = None,
    ) -> ActiveProvider:
        """Create *provider_type* and make it active without a health check.

        Used at startup, where an unreachable backend should not stop the
        service from accepting notes; failures are retried later.
        """
        provider = await self.create_provider(provider_type, config)
        snapshot = ActiveProvider(
            provider_type=provider_type,
            model=model or self.default_model(provider_type),
            provider=provider,
        )
        async with self._lock:
            self._active = snapshot
        logger.info("ai_provider_activated", provider=provider_type, model=snapshot.model)
        return snapshot

    async def switch_provider(
        self,
        provider_type: str,
        api_key: str,
        model: str | None = None,
    ) -> ActiveProvider:
        """Replace the active provider after the candidate passes a health check.

        On any failure the previously active provider stays in place.

        Raises
        ------
        ProviderSwitchError
            If the candidate fails its health check or does not support
            *model*.
        UnsupportedProviderError, InvalidConfigError
            If the candidate cannot be constructed.
        """
        async with self._switch_lock:
            previous = self._active
            logger.info(
                "ai_provider_switch_started",
                from_provider=previous.provider_type if previous else None,
                to_provider=provider_type,
            )
            candidate = await self.create_provider(
                provider_type, self.build_config(provider_type, api_key)
            )
            resolved_model = model or self.default_model(provider_type)
            if candidate.supported_models and resolved_model not in candidate.supported_models:
                raise ProviderSwitchError(
                    message=f"Model {resolved_model} is not supported by {provider_type}",
                    provider_name=provider_type,
                )
            if not await candidate.health_check():
                logger.warning("ai_provider_switch_rejected", provider=provider_type)
                raise ProviderSwitchError(
                    message="New provider failed health check",
                    provider_name=provider_type,
                )

            snapshot = ActiveProvider(
                provider_type=provider_type, model=resolved_model, provider=candidate
            )
            async with self._lock:
                self._active = snapshot
            logger.info("ai_provider_switched", provider=provider_type, model=resolved_model)
            return snapshot

    async def get_provider_status(self) -> dict[str, Any]:
        """Report the active provider, its model, health and info."""
        active = self._active
        if active is None:
            return {
                "provider": None,
                "model": None,
                "status": "not_initialized",
                "healthy": False,
                "info": None,
            }
        healthy = await active.provider.health_check()
        return {
            "provider": active.provider_type,
            "model": active.model,
            "status": "initialized",
            "healthy": healthy,
            "info": active.provider.get_provider_info().model_dump(),
        }
