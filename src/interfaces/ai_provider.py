"""Abstract base class for AI completion providers.

Defines the contract every AI backend (Anthropic Claude, OpenAI, a local
Ollama server) implements so the summary orchestrator never depends on a
vendor SDK.  Providers are interchangeable at runtime through
:class:`src.providers.ai.registry.ProviderRegistry`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.completion import (
    CompletionRequest,
    CompletionResult,
    ProviderConfig,
    ProviderInfo,
)


# Concrete implementations: ClaudeProvider, OpenAIProvider, OllamaProvider
# Located in: src/providers/ai/
class IAIProvider(ABC):
    """Uniform contract for AI completion backends.

    Lifecycle: construct with no arguments, call :meth:`initialize` once
    with a :class:`ProviderConfig`, then issue completions.
    """

    #: Registry key, e.g. ``"claude"``.
    name: str
    #: Model identifiers this backend accepts; empty accepts any name.
    supported_models: tuple[str, ...]

    @abstractmethod
    async def initialize(self, config: ProviderConfig) -> None:
        """Validate *config* and create the underlying client.

        Raises
        ------
        src.utils.errors.InvalidConfigError
            If ``config.api_key`` is empty or blank.
        """

    @abstractmethod
    async def generate_completion(self, request: CompletionRequest) -> CompletionResult:
        """Generate a completion for *request*.

        Raises
        ------
        src.utils.errors.InvalidRequestError
            If the request violates this provider's limits.  Raised before
            any network call.
        src.utils.errors.AIProviderError
            For every network or protocol failure, with ``retryable`` set
            according to the failure class.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Issue a minimal completion and report whether it succeeded.

        Never raises; any exception yields ``False``.
        """

    @abstractmethod
    def get_provider_info(self) -> ProviderInfo:
        """Return display name, version and capability tags."""
