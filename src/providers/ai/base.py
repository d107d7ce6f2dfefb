"""Shared behaviour for every AI provider adapter.

:class:`BaseAIProvider` is a template: it owns config validation, request
validation, the per-call timeout and error classification, and leaves the
vendor-specific parts to four hooks:

    _create_client(config)   build the SDK client
    _send(request)           perform the completion call
    _translate_error(exc)    map an SDK exception to AIProviderError
    _ping()                  cheapest call that proves the backend answers

Retry policy for HTTP failures lives here so every backend classifies a
429 the same way.
"""

from __future__ import annotations

import asyncio
from abc import abstractmethod

import structlog

from src.interfaces.ai_provider import IAIProvider
from src.models.completion import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    MessageRole,
    ProviderConfig,
)
from src.utils.errors import (
    AIProviderError,
    InvalidConfigError,
    InvalidRequestError,
    TransientProviderError,
)

logger = structlog.get_logger(logger_name=__name__)

_RETRYABLE_STATUS_CODES = frozenset({408, 429})


def is_retryable_status(status_code: int) -> bool:
    """Server errors, rate limits and request timeouts are worth retrying."""
    return status_code >= 500 or status_code in _RETRYABLE_STATUS_CODES


class BaseAIProvider(IAIProvider):
    """Common lifecycle, validation and error mapping for AI adapters."""

    name: str = "base"
    supported_models: tuple[str, ...] = ()
    #: Hard ceiling on ``max_tokens`` accepted by the backend.
    max_tokens_limit: int = 4096
    #: Upper bound of the accepted temperature range (lower bound is 0).
    max_temperature: float = 1.0
    #: Model used by :meth:`health_check`; the cheapest one available.
    health_check_model: str = ""

    def __init__(self) -> None:
        self._config: ProviderConfig | None = None
        self._initialized = False

    # ------------------------------------------------------------------
    # IAIProvider implementation
    # ------------------------------------------------------------------

    async def initialize(self, config: ProviderConfig) -> None:
        self._validate_config(config)
        self._config = config
        self._create_client(config)
        self._initialized = True
        logger.debug("ai_provider_initialized", provider=self.name, timeout=config.timeout)

    async def generate_completion(self, request: CompletionRequest) -> CompletionResult:
        config = self._ensure_initialized()
        self._validate_request(request)
        try:
            return await asyncio.wait_for(self._send(request), timeout=config.timeout)
        except AIProviderError:
            raise
        except asyncio.TimeoutError as exc:
            raise TransientProviderError(
                message=f"Request timed out after {config.timeout:g}s",
                provider_name=self.name,
                code="TIMEOUT_ERROR",
            ) from exc
        except Exception as exc:
            raise self._translate_error(exc) from exc

    async def health_check(self) -> bool:
        if not self._initialized or self._config is None:
            return False
        try:
            return await asyncio.wait_for(self._ping(), timeout=self._config.timeout)
        except Exception as exc:
            logger.warning("ai_health_check_failed", provider=self.name, error=str(exc))
            return False

    # ------------------------------------------------------------------
    # Vendor hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _create_client(self, config: ProviderConfig) -> None:
        """Build the vendor SDK client from *config*."""

    @abstractmethod
    async def _send(self, request: CompletionRequest) -> CompletionResult:
        """Perform the completion call.  SDK exceptions propagate unchanged."""

    @abstractmethod
    async def _ping(self) -> bool:
        """Issue a minimal completion; return ``True`` if content came back."""

    def _translate_error(self, exc: Exception) -> AIProviderError:
        """Map an unexpected exception to the uniform error type.

        Subclasses handle their SDK's exception classes first and defer
        here for anything else.
        """
        if isinstance(exc, (ConnectionError, OSError)):
            return TransientProviderError(
                message=f"Network error connecting to {self.name}: {exc}",
                provider_name=self.name,
                code="NETWORK_ERROR",
            )
        return AIProviderError(
            message=f"Unexpected error: {exc}",
            provider_name=self.name,
            code="UNKNOWN_ERROR",
            retryable=False,
        )

    def _status_error(self, code: str, message: str, status_code: int) -> AIProviderError:
        """Build the error for an HTTP failure with the shared retry policy."""
        if is_retryable_status(status_code):
            return TransientProviderError(
                message=message,
                provider_name=self.name,
                code=code,
                status_code=status_code,
            )
        return AIProviderError(
            message=message,
            provider_name=self.name,
            code=code,
            retryable=False,
            status_code=status_code,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_config(self, config: ProviderConfig) -> None:
        if not config.api_key or not config.api_key.strip():
            raise InvalidConfigError(message="API key is required", provider_name=self.name)

    def _ensure_initialized(self) -> ProviderConfig:
        if not self._initialized or self._config is None:
            raise AIProviderError(
                message="AI provider not initialized. Call initialize() first.",
                provider_name=self.name,
                code="PROVIDER_NOT_INITIALIZED",
                retryable=False,
            )
        return self._config

    def _validate_request(self, request: CompletionRequest) -> None:
        if self.supported_models and request.model not in self.supported_models:
            raise InvalidRequestError(
                message=f"Model {request.model} is not supported by {self.name} provider",
                provider_name=self.name,
                code="UNSUPPORTED_MODEL",
            )
        if request.max_tokens > self.max_tokens_limit:
            raise InvalidRequestError(
                message=f"{self.name} max tokens cannot exceed {self.max_tokens_limit}",
                provider_name=self.name,
            )
        if not 0 <= request.temperature <= self.max_temperature:
            raise InvalidRequestError(
                message=f"Temperature must be between 0 and {self.max_temperature:g}",
                provider_name=self.name,
            )
        if not request.conversation():
            raise InvalidRequestError(
                message="At least one non-system message is required",
                provider_name=self.name,
            )

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    @staticmethod
    def _as_wire_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
        return [{"role": m.role.value, "content": m.content} for m in messages]

    @staticmethod
    def _health_probe() -> list[ChatMessage]:
        return [ChatMessage(role=MessageRole.USER, content="Health check")]
