"""Pub/sub event payloads.

These are the JSON wire contracts on the notification channels.  The
listener decodes incoming payloads with ``model_validate_json`` and the
publishers serialize with ``model_dump_json``, so the shape is defined in
exactly one place.

# ─── CHANNEL MAP ──────────────────────────────────────────────────────
#
#   admin_notes_created  NoteCreatedEvent        note store → orchestrator
#   summary_completed    SummaryCompletedEvent   orchestrator → monitoring
#   summary_failed       SummaryFailedEvent      orchestrator → monitoring
#   job_failed           JobFailedEvent          retry service → monitoring
#   job_retry_success    JobRetrySucceededEvent  retry service → monitoring
#   job_abandoned        JobAbandonedEvent       retry service → monitoring
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NOTE_CREATED_CHANNEL = "admin_notes_created"
SUMMARY_COMPLETED_CHANNEL = "summary_completed"
SUMMARY_FAILED_CHANNEL = "summary_failed"
JOB_FAILED_CHANNEL = "job_failed"
JOB_RETRY_SUCCESS_CHANNEL = "job_retry_success"
JOB_ABANDONED_CHANNEL = "job_abandoned"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NoteCreatedEvent(BaseModel):
    """A note row was inserted.  Delivered at least once."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Id of the inserted note.")
    student_id: str = Field(min_length=1, description="Subject the note is about.")
    author_id: str
    created_at: datetime
    event_type: Literal["admin_note_created"] = "admin_note_created"


class SummaryCompletedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    student_id: str
    note_count: int
    created_at: datetime = Field(default_factory=_utcnow)
    event_type: Literal["summary_completed"] = "summary_completed"


class SummaryFailedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_id: str
    note_id: str
    error: str
    created_at: datetime = Field(default_factory=_utcnow)
    event_type: Literal["summary_failed"] = "summary_failed"


class JobFailedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    job_type: str
    error: str
    timestamp: datetime = Field(default_factory=_utcnow)


class JobRetrySucceededEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    job_type: str
    attempt_count: int
    timestamp: datetime = Field(default_factory=_utcnow)


class JobAbandonedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    job_type: str
    final_error: str
    total_attempts: int
    timestamp: datetime = Field(default_factory=_utcnow)
