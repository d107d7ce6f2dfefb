"""Unit tests for the error hierarchy, retry classification and HTTP mapping."""

from __future__ import annotations

import pytest

from src.api.middleware import status_for_error
from src.utils.errors import (
    AIProviderError,
    ConfigurationError,
    InvalidConfigError,
    InvalidRequestError,
    JobNotFoundError,
    NoteScribeError,
    ProviderSwitchError,
    StorageError,
    SubscriptionError,
    TransientProviderError,
    UnknownJobTypeError,
    UnsupportedProviderError,
    is_retryable,
)


class TestErrorFormatting:
    def test_provider_prefix(self) -> None:
        assert str(TransientProviderError(message="timed out", provider_name="openai")) == "[openai] timed out"

    def test_without_provider(self) -> None:
        assert str(StorageError(message="disk full")) == "disk full"

    def test_job_errors_carry_ids(self) -> None:
        assert JobNotFoundError("j1").job_id == "j1"
        assert UnknownJobTypeError("mystery").job_type == "mystery"
        assert "mystery" in str(UnknownJobTypeError("mystery"))


class TestIsRetryable:
    @pytest.mark.parametrize(
        "error",
        [
            TransientProviderError(),
            AIProviderError(retryable=True),
            StorageError(),
            SubscriptionError(),
            ConnectionResetError("reset"),
            RuntimeError("anything else"),
        ],
    )
    def test_retryable(self, error: BaseException) -> None:
        assert is_retryable(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            InvalidRequestError(),
            AIProviderError(retryable=False),
            InvalidConfigError(),
            UnsupportedProviderError(),
            ConfigurationError(),
            UnknownJobTypeError("mystery"),
        ],
    )
    def test_not_retryable(self, error: BaseException) -> None:
        assert is_retryable(error) is False


class TestStatusForError:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (JobNotFoundError("j1"), 404),
            (UnsupportedProviderError(), 400),
            (InvalidConfigError(), 400),
            (InvalidRequestError(), 400),
            (ProviderSwitchError(), 409),
            (ConfigurationError(), 500),
            (StorageError(), 500),
            (NoteScribeError(), 500),
        ],
    )
    def test_mapping(self, error: NoteScribeError, expected: int) -> None:
        assert status_for_error(error) == expected
