"""FastAPI API routes for noteScribe.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.  Domain errors raised here
are turned into JSON error bodies by ``ErrorHandlingMiddleware``.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                   Method  Description
# ──────────────────────────────────────────────────────────────────────
# /api/v1/health                             GET     Listener / scheduler / provider state
# /api/v1/notes                              POST    Store a note (summary runs async)
# /api/v1/students/{sid}/notes               GET     Recent notes, newest first
# /api/v1/students/{sid}/summaries           GET     Generated summaries, newest first
# /api/v1/ai/provider/status                 GET     Active provider + health
# /api/v1/ai/providers                       GET     Registered provider types
# /api/v1/ai/provider/switch                 POST    Hot-swap the active provider
# /api/v1/ai/settings/{use_case}             GET     Recommended sampling settings
# /api/v1/failed-jobs/stats                  GET     Counts by type and status
# /api/v1/failed-jobs/cleanup                DELETE  Drop old abandoned jobs
# /api/v1/failed-jobs/processor/start        POST    Start the retry scheduler
# /api/v1/failed-jobs/processor/stop         POST    Stop the retry scheduler
# /api/v1/failed-jobs/{job_id}               GET     One job + its retry log
# /api/v1/failed-jobs/{job_id}/retry         POST    Retry one job now
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.schemas import (
    CleanupResponse,
    CreateNoteRequest,
    FailedJobDetailResponse,
    FailedJobStatsResponse,
    HealthResponse,
    NoteListResponse,
    NoteResponse,
    ProcessorResponse,
    ProviderDescriptor,
    ProvidersResponse,
    ProviderStatusResponse,
    RetryJobResponse,
    SummaryListResponse,
    SwitchProviderRequest,
    SwitchProviderResponse,
    UseCaseSettingsResponse,
)
from src.config.settings import Settings
from src.interfaces.note_store import INoteStore
from src.pipeline.notification_listener import NotificationListener
from src.pipeline.retry_service import RetryService
from src.providers.ai.registry import ProviderRegistry
from src.utils.errors import ConfigurationError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

APP_VERSION = "0.1.0"

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency helpers: read components placed on app.state by main.py.
# ---------------------------------------------------------------------------


def _get_note_store(request: Request) -> INoteStore:
    return request.app.state.note_store


def _get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def _get_retry_service(request: Request) -> RetryService:
    return request.app.state.retry_service


def _get_listener(request: Request) -> NotificationListener:
    return request.app.state.listener


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


NoteStoreDep = Annotated[INoteStore, Depends(_get_note_store)]
RegistryDep = Annotated[ProviderRegistry, Depends(_get_registry)]
RetryServiceDep = Annotated[RetryService, Depends(_get_retry_service)]
ListenerDep = Annotated[NotificationListener, Depends(_get_listener)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(
    registry: RegistryDep,
    listener: ListenerDep,
    retry_service: RetryServiceDep,
) -> HealthResponse:
    """Report listener, retry scheduler and provider state without calling the provider."""
    active = registry.current() if registry.has_active else None
    components = {
        "listener_running": listener.is_running(),
        "listener_connected": listener.is_connected(),
        "retry_processor_running": retry_service.is_processing,
        "ai_provider": active.provider_type if active else None,
        "ai_model": active.model if active else None,
    }

    if listener.is_connected() and active is not None:
        status = "healthy"
    elif listener.is_running():
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=APP_VERSION, components=components)


# ---------------------------------------------------------------------------
# Notes and summaries
# ---------------------------------------------------------------------------


@router.post(
    "/notes",
    response_model=NoteResponse,
    status_code=202,
    summary="Store a note; its summary is generated asynchronously",
)
async def create_note(body: CreateNoteRequest, note_store: NoteStoreDep) -> NoteResponse:
    note = await note_store.add_note(body.student_id, body.author_id, body.content)
    return NoteResponse(note=note)


@router.get("/students/{student_id}/notes", response_model=NoteListResponse)
async def list_notes(
    student_id: str,
    note_store: NoteStoreDep,
    limit: int = Query(default=10, ge=1, le=100),
) -> NoteListResponse:
    notes = await note_store.get_recent_notes(student_id, limit)
    return NoteListResponse(student_id=student_id, notes=notes)


@router.get("/students/{student_id}/summaries", response_model=SummaryListResponse)
async def list_summaries(
    student_id: str,
    note_store: NoteStoreDep,
    limit: int = Query(default=20, ge=1, le=100),
) -> SummaryListResponse:
    summaries = await note_store.get_summaries(student_id, limit)
    return SummaryListResponse(student_id=student_id, summaries=summaries)


# ---------------------------------------------------------------------------
# AI provider administration
# ---------------------------------------------------------------------------


@router.get("/ai/provider/status", response_model=ProviderStatusResponse)
async def provider_status(registry: RegistryDep) -> ProviderStatusResponse:
    return ProviderStatusResponse.model_validate(await registry.get_provider_status())


@router.get("/ai/providers", response_model=ProvidersResponse)
async def list_providers(registry: RegistryDep) -> ProvidersResponse:
    providers = [
        ProviderDescriptor(
            type=provider_type,
            default_model=registry.default_model(provider_type),
            capabilities=registry.get_capabilities(provider_type),
        )
        for provider_type in registry.supported_providers()
    ]
    current = registry.current().provider_type if registry.has_active else None
    return ProvidersResponse(providers=providers, current=current)


@router.post("/ai/provider/switch", response_model=SwitchProviderResponse)
async def switch_provider(
    body: SwitchProviderRequest,
    registry: RegistryDep,
    app_settings: SettingsDep,
) -> SwitchProviderResponse:
    """Hot-swap the active provider.  The previous one stays active on failure."""
    api_key = body.api_key or app_settings.api_key_for(body.provider)
    await registry.switch_provider(body.provider, api_key, body.model)
    status = ProviderStatusResponse.model_validate(await registry.get_provider_status())
    _logger.info("provider_switched_via_api", provider=body.provider, model=status.model)
    return SwitchProviderResponse(
        message=f"Switched to {body.provider} provider",
        status=status,
    )


@router.get("/ai/settings/{use_case}", response_model=UseCaseSettingsResponse)
async def recommended_settings(use_case: str, registry: RegistryDep) -> UseCaseSettingsResponse:
    try:
        settings = registry.recommended_settings(use_case)
    except ConfigurationError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    return UseCaseSettingsResponse(use_case=use_case, settings=settings)


# ---------------------------------------------------------------------------
# Failed jobs
# ---------------------------------------------------------------------------


@router.get("/failed-jobs/stats", response_model=FailedJobStatsResponse)
async def failed_job_stats(retry_service: RetryServiceDep) -> FailedJobStatsResponse:
    return FailedJobStatsResponse(stats=await retry_service.get_failed_jobs_stats())


@router.delete("/failed-jobs/cleanup", response_model=CleanupResponse)
async def cleanup_failed_jobs(
    retry_service: RetryServiceDep,
    days_old: int = Query(default=30, ge=1, le=365),
) -> CleanupResponse:
    deleted = await retry_service.cleanup_old_jobs(days_old)
    return CleanupResponse(
        deleted_count=deleted,
        message=f"Cleaned up {deleted} abandoned jobs older than {days_old} days",
    )


@router.post("/failed-jobs/processor/start", response_model=ProcessorResponse)
async def start_processor(
    retry_service: RetryServiceDep,
    app_settings: SettingsDep,
) -> ProcessorResponse:
    retry_service.start_retry_processor(app_settings.retry_interval_seconds)
    return ProcessorResponse(running=retry_service.is_processing, message="Retry processor started")


@router.post("/failed-jobs/processor/stop", response_model=ProcessorResponse)
async def stop_processor(retry_service: RetryServiceDep) -> ProcessorResponse:
    await retry_service.stop_retry_processor()
    return ProcessorResponse(running=retry_service.is_processing, message="Retry processor stopped")


@router.get("/failed-jobs/{job_id}", response_model=FailedJobDetailResponse)
async def get_failed_job(job_id: str, retry_service: RetryServiceDep) -> FailedJobDetailResponse:
    job = await retry_service.get_job(job_id)
    retry_log = await retry_service.get_retry_log(job_id)
    return FailedJobDetailResponse(job=job, retry_log=retry_log)


@router.post("/failed-jobs/{job_id}/retry", response_model=RetryJobResponse)
async def retry_failed_job(job_id: str, retry_service: RetryServiceDep) -> RetryJobResponse:
    succeeded = await retry_service.retry_job_by_id(job_id)
    message = "Job succeeded and was removed" if succeeded else "Job failed again; see its retry log"
    return RetryJobResponse(job_id=job_id, succeeded=succeeded, message=message)
