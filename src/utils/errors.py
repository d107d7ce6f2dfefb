"""Custom exception hierarchy for noteScribe.

All application exceptions inherit from :class:`NoteScribeError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "claude", "openai", "postgres") caused the failure.

The hierarchy is organized by subsystem:

    NoteScribeError  (base -- catch-all for any noteScribe error)
    +-- ConfigurationError         (bad/missing credentials or settings -- fatal)
    |   +-- InvalidConfigError     (provider initialized with a blank API key)
    |   +-- UnsupportedProviderError (unknown provider type)
    +-- AIProviderError            (uniform provider failure: code + retryable)
    |   +-- InvalidRequestError    (request rejected before any network call)
    |   +-- TransientProviderError (timeouts, 5xx, 429, 408, connection resets)
    +-- ProviderSwitchError        (hot-swap candidate failed its health check)
    +-- SubscriptionError          (listener could not establish subscriptions)
    +-- RetryError
    |   +-- UnknownJobTypeError    (no handler registered for a job type)
    |   +-- JobNotFoundError       (manual retry of a missing job)
    +-- StorageError               (note / job persistence failure)

Retryability is a property of the error, not of the call site: the retry
subsystem asks :func:`is_retryable` instead of matching on exception types.
"""

from __future__ import annotations


class NoteScribeError(Exception):
    """Base exception for all noteScribe errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Request timed out``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------

class ConfigurationError(NoteScribeError):
    """Raised when configuration is invalid or missing.  Never retried."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidConfigError(ConfigurationError):
    """Raised by ``initialize()`` when the provider config is unusable."""

    code = "INVALID_CONFIG"

    def __init__(
        self,
        message: str = "API key is required",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedProviderError(ConfigurationError):
    """Raised when a provider type has no registered constructor."""

    def __init__(
        self,
        message: str = "Unsupported AI provider type",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# AI provider errors
# ---------------------------------------------------------------------------

class AIProviderError(NoteScribeError):
    """Uniform failure raised by every AI provider.

    ``code`` is a stable machine-readable identifier (``"TIMEOUT_ERROR"``,
    ``"CLAUDE_API_ERROR"``...), ``retryable`` tells the retry subsystem
    whether another attempt can succeed, and ``status_code`` carries the
    upstream HTTP status when there was one.
    """

    def __init__(
        self,
        message: str = "AI provider call failed",
        provider_name: str | None = None,
        code: str = "UNKNOWN_ERROR",
        retryable: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._code = code
        self._retryable = retryable
        self._status_code = status_code

    @property
    def code(self) -> str:
        return self._code

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def status_code(self) -> int | None:
        return self._status_code


class InvalidRequestError(AIProviderError):
    """Raised when a request violates the provider's limits.  Never retried."""

    def __init__(
        self,
        message: str = "Invalid completion request",
        provider_name: str | None = None,
        code: str = "INVALID_REQUEST",
    ) -> None:
        super().__init__(
            message=message,
            provider_name=provider_name,
            code=code,
            retryable=False,
        )


class TransientProviderError(AIProviderError):
    """Raised for failures that may succeed on a later attempt."""

    def __init__(
        self,
        message: str = "Transient AI provider failure",
        provider_name: str | None = None,
        code: str = "TRANSIENT_ERROR",
        status_code: int | None = None,
    ) -> None:
        super().__init__(
            message=message,
            provider_name=provider_name,
            code=code,
            retryable=True,
            status_code=status_code,
        )


class ProviderSwitchError(NoteScribeError):
    """Raised when a runtime provider switch is refused."""

    def __init__(
        self,
        message: str = "Provider switch failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Listener errors
# ---------------------------------------------------------------------------

class SubscriptionError(NoteScribeError):
    """Raised when the notification listener cannot subscribe to a channel."""

    def __init__(
        self,
        message: str = "Channel subscription failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Retry subsystem errors
# ---------------------------------------------------------------------------

class RetryError(NoteScribeError):
    """Base class for retry-subsystem failures."""

    def __init__(
        self,
        message: str = "Retry processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnknownJobTypeError(RetryError):
    """Raised when a failed job has a type no handler is registered for."""

    def __init__(self, job_type: str) -> None:
        super().__init__(message=f"Unknown job type: {job_type}")
        self.job_type = job_type


class JobNotFoundError(RetryError):
    """Raised when a manual retry names a job that does not exist."""

    def __init__(self, job_id: str) -> None:
        super().__init__(message=f"Job {job_id} not found")
        self.job_id = job_id


class StorageError(NoteScribeError):
    """Raised when a persistence operation fails."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` if another attempt at the failed work could succeed.

    Provider errors carry their own flag; configuration and validation
    errors are permanent; anything unrecognised (database hiccups, network
    errors outside a provider) is treated as transient.
    """
    if isinstance(exc, AIProviderError):
        return exc.retryable
    if isinstance(exc, (ConfigurationError, UnknownJobTypeError)):
        return False
    return True
