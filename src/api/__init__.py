"""noteScribe API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    CreateNoteRequest,
    ErrorResponse,
    FailedJobStatsResponse,
    HealthResponse,
    ProvidersResponse,
    ProviderStatusResponse,
    SwitchProviderRequest,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "CreateNoteRequest",
    "ErrorResponse",
    "FailedJobStatsResponse",
    "HealthResponse",
    "ProvidersResponse",
    "ProviderStatusResponse",
    "SwitchProviderRequest",
]
