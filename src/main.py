"""noteScribe FastAPI application entry point.

Wires together the pub/sub transport, stores, provider registry, pipeline
components and routes.  Loads configuration from ``.env`` and
``config/config.yaml`` and configures structured logging.

# ─── STARTUP ORDER ────────────────────────────────────────────────────
#
#   1. stores create their tables
#   2. pub/sub transport connects
#   3. the configured AI provider is activated (no health check).  A
#      missing key is logged and leaves no provider active; notes that
#      arrive before a switch are stored as abandoned jobs and need a
#      manual retry afterwards
#   4. listener subscribes, then the retry scheduler starts
#
# Shutdown runs the reverse: scheduler, listener, transport.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import APP_VERSION
from src.api.routes import router as api_router
from src.config.loader import default_models, load_config, use_case_settings
from src.config.settings import Settings
from src.interfaces.pubsub_provider import IPubSubProvider
from src.models.jobs import NOTE_SUMMARY_JOB
from src.pipeline.notification_listener import NotificationListener, default_channel_handlers
from src.pipeline.orchestrator import SummaryOrchestrator
from src.pipeline.retry_service import RetryService
from src.providers.ai.registry import ProviderRegistry
from src.providers.pubsub.memory_pubsub import InMemoryPubSubProvider
from src.providers.pubsub.postgres_pubsub import PostgresPubSubProvider
from src.providers.store.sqlite_failed_job_store import SQLiteFailedJobStore
from src.providers.store.sqlite_note_store import SQLiteNoteStore
from src.utils.errors import ConfigurationError, NoteScribeError
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component construction
# ---------------------------------------------------------------------------


def _build_pubsub(app_settings: Settings) -> IPubSubProvider:
    if app_settings.pubsub_backend == "postgres":
        if not app_settings.database_url:
            raise ConfigurationError(message="DATABASE_URL is required when PUBSUB_BACKEND=postgres")
        return PostgresPubSubProvider(dsn=app_settings.database_url)
    return InMemoryPubSubProvider()


def _build_registry(app_settings: Settings, app_config: dict) -> ProviderRegistry:
    base_urls = {
        provider_type: url
        for provider_type in ("claude", "openai", "ollama")
        if (url := app_settings.base_url_for(provider_type))
    }
    return ProviderRegistry(
        use_case_settings=use_case_settings(app_config),
        default_models=default_models(app_config),
        base_urls=base_urls,
        timeout=app_settings.ai_timeout,
        max_retries=app_settings.ai_max_retries,
    )


def _build_all(app_settings: Settings, app_config: dict) -> dict[str, Any]:
    """Construct every component for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    pubsub = _build_pubsub(app_settings)
    note_store = SQLiteNoteStore(db_path=app_settings.notes_db_path, pubsub=pubsub)
    job_store = SQLiteFailedJobStore(db_path=app_settings.jobs_db_path)
    registry = _build_registry(app_settings, app_config)

    retry_service = RetryService(
        job_store=job_store,
        pubsub=pubsub,
        batch_size=app_settings.retry_batch_size,
        lease_seconds=app_settings.retry_lease_seconds,
    )
    orchestrator = SummaryOrchestrator(
        note_store=note_store,
        registry=registry,
        retry_service=retry_service,
        pubsub=pubsub,
        history_limit=app_settings.summary_history_limit,
        max_retries=app_settings.summary_max_retries,
        dedup_ttl_seconds=app_settings.dedup_ttl_seconds,
    )
    retry_service.register_handler(NOTE_SUMMARY_JOB, orchestrator.execute_job)

    listener = NotificationListener(
        pubsub=pubsub,
        handlers=default_channel_handlers(orchestrator.process_note_created),
    )

    return {
        "settings": app_settings,
        "pubsub": pubsub,
        "note_store": note_store,
        "job_store": job_store,
        "registry": registry,
        "retry_service": retry_service,
        "orchestrator": orchestrator,
        "listener": listener,
    }


async def _activate_configured_provider(registry: ProviderRegistry, app_settings: Settings) -> None:
    provider_type = app_settings.ai_provider
    config = registry.build_config(provider_type, app_settings.api_key_for(provider_type))
    try:
        await registry.activate(provider_type, config, model=app_settings.ai_model or None)
    except NoteScribeError as exc:
        _logger.error(
            "ai_provider_activation_failed",
            provider=provider_type,
            error=exc.message,
            hint="set the provider API key or switch via /api/v1/ai/provider/switch",
        )


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise stores and background loops on startup, stop them on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await components["note_store"].initialize()
    await components["job_store"].initialize()
    await components["pubsub"].connect()
    await _activate_configured_provider(components["registry"], settings)

    listener: NotificationListener = components["listener"]
    retry_service: RetryService = components["retry_service"]
    await listener.start_listening()
    retry_service.start_retry_processor(settings.retry_interval_seconds)

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        ai_provider=settings.ai_provider,
        pubsub=components["pubsub"].get_provider_name(),
    )

    yield

    await retry_service.stop_retry_processor()
    await listener.stop_listening()
    await components["pubsub"].close()
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="noteScribe API",
        version=APP_VERSION,
        description=(
            "Store admin notes about students and keep an AI-generated summary "
            "of each student's recent notes, with durable retry of failed runs."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(api_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
