"""Ollama provider adapter.

Ollama exposes an OpenAI-compatible ``/v1`` API, so this adapter reuses
:class:`OpenAIProvider` pointed at the local server.  Ollama ignores the
API key, but the config still has to carry a non-blank placeholder
(``"ollama"``) because key validation is shared by every provider.

The model set is whatever the operator has pulled (``llama3.1:8b``,
``mistral:latest``...), so model names are not validated locally; the
server rejects unknown ones.
"""

from __future__ import annotations

from src.models.completion import ProviderConfig, ProviderInfo
from src.providers.ai.openai_provider import OpenAIProvider

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class OllamaProvider(OpenAIProvider):
    """AI provider backed by a local Ollama server."""

    name = "ollama"
    supported_models = ()
    max_tokens_limit = 8192
    max_temperature = 2.0
    api_label = "Ollama"

    def _resolve_base_url(self, config: ProviderConfig) -> str | None:
        return f"{(config.base_url or DEFAULT_OLLAMA_URL).rstrip('/')}/v1"

    async def _ping(self) -> bool:
        """List installed models; proves the server answers without running inference."""
        assert self._client is not None
        await self._client.models.list()
        return True

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(
            name="Ollama (local)",
            version="2024.1",
            capabilities=["text-generation", "conversation", "summarization"],
        )
