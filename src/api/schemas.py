"""Pydantic request/response schemas for the noteScribe API.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These models define the shape of every HTTP request and response body.
# FastAPI uses them to validate incoming JSON (422 on failure), to
# serialize responses (response_model=...), and to generate the OpenAPI
# docs at /docs.
#
# Convention: request schemas end with "Request", response schemas end
# with "Response".
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.models.completion import UseCaseSettings
from src.models.jobs import FailedJob, FailedJobStats, RetryLogEntry
from src.models.notes import AdminNote, AISummary


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    components: dict[str, Any]


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


class CreateNoteRequest(BaseModel):
    student_id: str = Field(min_length=1)
    author_id: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=10000)


class NoteResponse(BaseModel):
    """A stored note.  Its summary is generated asynchronously."""

    note: AdminNote


class NoteListResponse(BaseModel):
    student_id: str
    notes: list[AdminNote]


class SummaryListResponse(BaseModel):
    student_id: str
    summaries: list[AISummary]


# ---------------------------------------------------------------------------
# AI provider administration
# ---------------------------------------------------------------------------


class ProviderStatusResponse(BaseModel):
    provider: str | None
    model: str | None
    status: str
    healthy: bool
    info: dict[str, Any] | None = None


class ProviderDescriptor(BaseModel):
    type: str
    default_model: str
    capabilities: list[str] = Field(default_factory=list)


class ProvidersResponse(BaseModel):
    """Every registered provider type, plus the one currently active."""

    providers: list[ProviderDescriptor]
    current: str | None


class SwitchProviderRequest(BaseModel):
    """Hot-swap request.  An empty ``api_key`` falls back to the configured one."""

    provider: str = Field(min_length=1)
    api_key: str = ""
    model: str | None = None


class SwitchProviderResponse(BaseModel):
    message: str
    status: ProviderStatusResponse


class UseCaseSettingsResponse(BaseModel):
    use_case: str
    settings: UseCaseSettings


# ---------------------------------------------------------------------------
# Failed jobs
# ---------------------------------------------------------------------------


class FailedJobStatsResponse(BaseModel):
    stats: FailedJobStats


class FailedJobDetailResponse(BaseModel):
    job: FailedJob
    retry_log: list[RetryLogEntry] = Field(default_factory=list)


class RetryJobResponse(BaseModel):
    job_id: str
    succeeded: bool
    message: str


class CleanupResponse(BaseModel):
    deleted_count: int
    message: str


class ProcessorResponse(BaseModel):
    running: bool
    message: str
