"""OpenAI-compatible provider adapter.

Wraps the ``openai`` async client to implement :class:`IAIProvider`.  When
a custom ``base_url`` is configured the client talks to that endpoint
instead, which is how the Ollama adapter reuses this class.
"""

from __future__ import annotations

import openai
import structlog

from src.models.completion import (
    CompletionRequest,
    CompletionResult,
    ProviderConfig,
    ProviderInfo,
    TokenUsage,
)
from src.providers.ai.base import BaseAIProvider
from src.utils.errors import AIProviderError, TransientProviderError

logger = structlog.get_logger(logger_name=__name__)


class OpenAIProvider(BaseAIProvider):
    """AI provider backed by the OpenAI chat completions API."""

    name = "openai"
    supported_models = (
        "gpt-4",
        "gpt-4-turbo",
        "gpt-4-turbo-preview",
        "gpt-4o",
        "gpt-4o-mini",
        "gpt-3.5-turbo",
        "gpt-3.5-turbo-16k",
    )
    max_tokens_limit = 16384
    max_temperature = 2.0
    health_check_model = "gpt-3.5-turbo"
    #: Prefix used in error codes and messages.
    api_label = "OpenAI"

    def __init__(self) -> None:
        super().__init__()
        self._client: openai.AsyncOpenAI | None = None

    def _create_client(self, config: ProviderConfig) -> None:
        client_kwargs: dict = {
            "api_key": config.api_key,
            "timeout": openai.Timeout(config.timeout, connect=5.0),
            "max_retries": config.max_retries,
        }
        base_url = self._resolve_base_url(config)
        if base_url:
            client_kwargs["base_url"] = base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)

    def _resolve_base_url(self, config: ProviderConfig) -> str | None:
        return config.base_url or None

    async def _send(self, request: CompletionRequest) -> CompletionResult:
        assert self._client is not None
        messages = []
        system_prompt = request.resolved_system_prompt()
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(self._as_wire_messages(request.conversation()))

        response = await self._client.chat.completions.create(
            model=request.model,
            messages=messages,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )

        choice = response.choices[0] if response.choices else None
        usage = None
        if response.usage is not None:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        logger.info(
            "openai_completion",
            provider=self.name,
            model=response.model,
            tokens=usage.total_tokens if usage else None,
        )
        return CompletionResult(
            content=(choice.message.content if choice else None) or "",
            usage=usage,
            model=response.model,
            finish_reason=(choice.finish_reason if choice else None) or "stop",
        )

    async def _ping(self) -> bool:
        assert self._client is not None
        response = await self._client.chat.completions.create(
            model=self.health_check_model,
            messages=self._as_wire_messages(self._health_probe()),
            max_tokens=5,
            temperature=0,
        )
        return bool(response.choices)

    def _translate_error(self, exc: Exception) -> AIProviderError:
        code_prefix = self.api_label.upper()
        if isinstance(exc, openai.APITimeoutError):
            return TransientProviderError(
                message=f"Request to {self.api_label} API timed out",
                provider_name=self.name,
                code="TIMEOUT_ERROR",
            )
        if isinstance(exc, openai.APIConnectionError):
            return TransientProviderError(
                message=f"Network error connecting to {self.api_label} API",
                provider_name=self.name,
                code="NETWORK_ERROR",
            )
        if isinstance(exc, openai.APIStatusError):
            return self._status_error(
                f"{code_prefix}_API_ERROR",
                f"{self.api_label} API error: {exc.message}",
                exc.status_code,
            )
        if isinstance(exc, openai.APIError):
            return AIProviderError(
                message=f"{self.api_label} API error: {exc.message}",
                provider_name=self.name,
                code=f"{code_prefix}_API_ERROR",
                retryable=False,
            )
        return super()._translate_error(exc)

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(
            name="OpenAI GPT",
            version="2024.1",
            capabilities=[
                "text-generation",
                "conversation",
                "analysis",
                "reasoning",
                "summarization",
                "code-generation",
                "function-calling",
            ],
        )
