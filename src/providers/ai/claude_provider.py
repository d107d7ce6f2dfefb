"""Anthropic Claude provider adapter.

Wraps the ``anthropic`` async client to implement :class:`IAIProvider`.

Key differences from the OpenAI adapter:
    - Uses Anthropic's Messages API (not chat.completions)
    - System prompt is a separate parameter, not a message in the list
    - Response content is a list of blocks, so text blocks are joined
    - Token usage is reported as input/output tokens; the total is derived
"""

from __future__ import annotations

import anthropic
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


class ClaudeProvider(BaseAIProvider):
    """AI provider backed by the Anthropic Claude API."""

    name = "claude"
    supported_models = (
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
        "claude-sonnet-4-20250514",
    )
    max_tokens_limit = 8192
    max_temperature = 1.0
    health_check_model = "claude-3-haiku-20240307"

    def __init__(self) -> None:
        super().__init__()
        self._client: anthropic.AsyncAnthropic | None = None

    def _create_client(self, config: ProviderConfig) -> None:
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url or None,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    async def _send(self, request: CompletionRequest) -> CompletionResult:
        assert self._client is not None
        kwargs = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": self._as_wire_messages(request.conversation()),
        }
        system_prompt = request.resolved_system_prompt()
        if system_prompt:
            kwargs["system"] = system_prompt

        response = await self._client.messages.create(**kwargs)

        text_blocks = [block.text for block in response.content if block.type == "text"]
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        logger.info(
            "claude_completion",
            model=response.model,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
        )
        return CompletionResult(
            content="\n".join(text_blocks),
            usage=usage,
            model=response.model,
            finish_reason=response.stop_reason or "stop",
        )

    async def _ping(self) -> bool:
        assert self._client is not None
        response = await self._client.messages.create(
            model=self.health_check_model,
            max_tokens=10,
            messages=self._as_wire_messages(self._health_probe()),
        )
        return len(response.content) > 0

    def _translate_error(self, exc: Exception) -> AIProviderError:
        # APITimeoutError subclasses APIConnectionError, so check it first.
        if isinstance(exc, anthropic.APITimeoutError):
            return TransientProviderError(
                message="Request to Claude API timed out",
                provider_name=self.name,
                code="TIMEOUT_ERROR",
            )
        if isinstance(exc, anthropic.APIConnectionError):
            return TransientProviderError(
                message="Network error connecting to Claude API",
                provider_name=self.name,
                code="NETWORK_ERROR",
            )
        if isinstance(exc, anthropic.APIStatusError):
            return self._status_error(
                "CLAUDE_API_ERROR", f"Claude API error: {exc.message}", exc.status_code
            )
        if isinstance(exc, anthropic.APIError):
            return AIProviderError(
                message=f"Claude API error: {exc.message}",
                provider_name=self.name,
                code="CLAUDE_API_ERROR",
                retryable=False,
            )
        return super()._translate_error(exc)

    def get_provider_info(self) -> ProviderInfo:
        return ProviderInfo(
            name="Anthropic Claude",
            version="2024.1",
            capabilities=[
                "text-generation",
                "conversation",
                "analysis",
                "reasoning",
                "summarization",
                "code-generation",
            ],
        )
