"""Retry-subsystem models: failed jobs, their audit log, and outcomes.

# ─── FAILED JOB LIFECYCLE ─────────────────────────────────────────────
#
#   record_failed_job ──→ FAILED (attempt_count=1, next_retry_at=now+backoff)
#                           │
#        scheduler picks it │ (next_retry_at ≤ now, attempt_count < max_retries)
#                           ▼
#                        RETRYING ──success──→ row deleted
#                           │
#                        failure
#                           ├─ attempt_count+1 < max_retries ──→ FAILED (rescheduled)
#                           └─ otherwise ──────────────────────→ ABANDONED (terminal)
#
# Abandoned rows are kept for audit until cleanup_old_jobs() removes them.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

NOTE_SUMMARY_JOB = "note_summary"


class JobStatus(str, Enum):  # noqa: UP042
    FAILED = "failed"
    RETRYING = "retrying"
    ABANDONED = "abandoned"


class FailedJob(BaseModel):
    """A durable record of failed work awaiting retry.

    ``payload`` is opaque to the retry subsystem; the handler registered
    for ``job_type`` knows how to interpret it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    job_type: str
    payload: dict[str, Any]
    error_message: str
    error_detail: str | None = None
    attempt_count: int = Field(default=1, ge=1)
    max_retries: int = Field(default=3, ge=1)
    next_retry_at: datetime | None = None
    failed_at: datetime
    last_attempted_at: datetime
    status: JobStatus = JobStatus.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.status == JobStatus.ABANDONED


class RetryLogEntry(BaseModel):
    """One failed retry attempt.  Append-only."""

    model_config = ConfigDict(frozen=True)

    id: str
    failed_job_id: str
    attempt_number: int = Field(ge=1)
    error: str
    attempted_at: datetime


class FailedJobStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)


class OutcomeStatus(str, Enum):  # noqa: UP042
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class SummaryOutcome(BaseModel):
    """Result of one summarization attempt, returned instead of raised.

    ``SKIPPED`` means there was nothing to summarize (no notes) and is a
    success for retry purposes.  ``FAILED`` always carries ``error``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: OutcomeStatus
    summary_id: str | None = None
    note_count: int = 0
    error: Exception | None = None

    @model_validator(mode="after")
    def _failed_carries_error(self) -> SummaryOutcome:
        if self.status == OutcomeStatus.FAILED and self.error is None:
            raise ValueError("a failed outcome requires an error")
        return self

    @property
    def succeeded(self) -> bool:
        return self.status != OutcomeStatus.FAILED

    @classmethod
    def completed(cls, summary_id: str, note_count: int) -> SummaryOutcome:
        return cls(status=OutcomeStatus.COMPLETED, summary_id=summary_id, note_count=note_count)

    @classmethod
    def skipped(cls) -> SummaryOutcome:
        return cls(status=OutcomeStatus.SKIPPED)

    @classmethod
    def failed(cls, error: Exception) -> SummaryOutcome:
        return cls(status=OutcomeStatus.FAILED, error=error)
