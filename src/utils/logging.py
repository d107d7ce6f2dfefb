"""Structured logging setup using structlog.

The same shared processor chain (context vars, log level, timestamps,
stack info) feeds either a coloured ConsoleRenderer for local development
or a JSONRenderer for production.  The renderer is picked from the
``APP_ENV`` environment variable unless ``json_output`` forces JSON.

Standard-library ``logging`` is rewired through the same formatter so
asyncpg, httpx and uvicorn output lines look like ours.  The background
tasks (listener deliveries, retry ticks) bind ``job_id`` / ``channel``
through :func:`bind_task_context` so every line they emit is attributable.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog

# Third-party loggers that are chatty at INFO and only useful when debugging.
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncpg", "anthropic", "openai")


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Configure structlog with environment-appropriate rendering.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        json_output: Force JSON output.  When False, JSON is still used
                     if ``APP_ENV`` is ``production``.

    Returns:
        A configured structlog BoundLogger.
    """
    app_env = os.environ.get("APP_ENV", "development")
    use_json = json_output or app_env == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if use_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *shared_processors,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    if log_level.upper() != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a named structlog logger, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()

    return structlog.get_logger(logger_name=name)


def bind_task_context(**values: Any) -> None:
    """Bind key/value pairs to the current asyncio task's log context.

    Each asyncio task owns a copy of the context, so bindings made inside a
    delivery or retry task never leak into unrelated tasks.
    """
    structlog.contextvars.bind_contextvars(**values)


def clear_task_context() -> None:
    """Drop every binding made with :func:`bind_task_context`."""
    structlog.contextvars.clear_contextvars()
