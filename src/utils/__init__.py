"""Utility modules for noteScribe.

Available utility modules:

- **errors** -- Domain exception hierarchy rooted at NoteScribeError, plus
  ``is_retryable`` which the retry service uses to classify failures.
- **backoff** -- Retry delay ladder with symmetric jitter.
- **concurrency** -- the background task tracker used by pub/sub deliveries and the retry scheduler.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    AIProviderError,
    ConfigurationError,
    InvalidConfigError,
    InvalidRequestError,
    JobNotFoundError,
    NoteScribeError,
    ProviderSwitchError,
    RetryError,
    StorageError,
    SubscriptionError,
    TransientProviderError,
    UnknownJobTypeError,
    UnsupportedProviderError,
    is_retryable,
)

# -- Retry backoff ----------------------------------------------------------
from src.utils.backoff import base_delay, jittered_delay, next_retry_at

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import TaskGroupTracker

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

__all__ = [
    "AIProviderError",
    "ConfigurationError",
    "InvalidConfigError",
    "InvalidRequestError",
    "JobNotFoundError",
    "NoteScribeError",
    "ProviderSwitchError",
    "RetryError",
    "StorageError",
    "SubscriptionError",
    "TaskGroupTracker",
    "TransientProviderError",
    "UnknownJobTypeError",
    "UnsupportedProviderError",
    "base_delay",
    "configure_logging",
    "get_logger",
    "is_retryable",
    "jittered_delay",
    "next_retry_at",
]
