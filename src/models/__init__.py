"""noteScribe domain models: re-exports all public model classes.

The models are organized across four submodules by concern:
    - completion.py  — provider request/response contract and configs
    - events.py      — pub/sub channel names and payloads
    - notes.py       — admin notes and generated summaries
    - jobs.py        — failed jobs, retry log, stats and summary outcomes
"""

from __future__ import annotations

from src.models.completion import (
    ChatMessage,
    CompletionRequest,
    CompletionResult,
    MessageRole,
    ProviderConfig,
    ProviderInfo,
    TokenUsage,
    UseCaseSettings,
)
from src.models.events import (
    JobAbandonedEvent,
    JobFailedEvent,
    JobRetrySucceededEvent,
    NoteCreatedEvent,
    SummaryCompletedEvent,
    SummaryFailedEvent,
)
from src.models.jobs import (
    FailedJob,
    FailedJobStats,
    JobStatus,
    OutcomeStatus,
    RetryLogEntry,
    SummaryOutcome,
)
from src.models.notes import AdminNote, AISummary

__all__ = [
    # completion
    "ChatMessage",
    "CompletionRequest",
    "CompletionResult",
    "MessageRole",
    "ProviderConfig",
    "ProviderInfo",
    "TokenUsage",
    "UseCaseSettings",
    # events
    "JobAbandonedEvent",
    "JobFailedEvent",
    "JobRetrySucceededEvent",
    "NoteCreatedEvent",
    "SummaryCompletedEvent",
    "SummaryFailedEvent",
    # jobs
    "FailedJob",
    "FailedJobStats",
    "JobStatus",
    "OutcomeStatus",
    "RetryLogEntry",
    "SummaryOutcome",
    # notes
    "AdminNote",
    "AISummary",
]
