"""Channel subscriptions with an idempotent start/stop lifecycle.

# ─── STATE MACHINE ────────────────────────────────────────────────────
#
#   STOPPED ──start_listening (all channels subscribed)──→ RUNNING
#      ▲                                                     │
#      └──────────────── stop_listening ─────────────────────┤
#                                                            │ transport lost
#                                                            ▼
#                                         RUNNING, disconnected
#                                         resubscribe after 1s, 2s, 5s,
#                                         10s, 30s, 30s, ... until it
#                                         works or stop_listening runs
# ──────────────────────────────────────────────────────────────────────

Every delivery is decoded into the channel's pydantic model and handed to
its callback.  A payload that fails validation, or a callback that raises,
is logged and dropped; the next delivery is unaffected.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from src.interfaces.pubsub_provider import IPubSubProvider, ISubscription, MessageHandler
from src.models.events import (
    JOB_ABANDONED_CHANNEL,
    NOTE_CREATED_CHANNEL,
    SUMMARY_COMPLETED_CHANNEL,
    SUMMARY_FAILED_CHANNEL,
    JobAbandonedEvent,
    NoteCreatedEvent,
    SummaryCompletedEvent,
    SummaryFailedEvent,
)
from src.utils.errors import SubscriptionError
from src.utils.logging import bind_task_context, get_logger

EventCallback = Callable[[Any], Awaitable[Any]]

RECONNECT_DELAYS: tuple[float, ...] = (1.0, 2.0, 5.0, 10.0, 30.0)


@dataclass(frozen=True)
class ChannelHandler:
    """The payload model for a channel and the callback that receives it."""

    model: type[BaseModel]
    callback: EventCallback


class NotificationListener:
    """Keeps one subscription per configured channel while running.

    Parameters
    ----------
    pubsub:
        The transport to subscribe on.
    handlers:
        Channel name → :class:`ChannelHandler`.
    reconnect_delays:
        Seconds to wait before each resubscription attempt after the
        transport drops; the last value repeats.
    """

    def __init__(
        self,
        pubsub: IPubSubProvider,
        handlers: Mapping[str, ChannelHandler],
        reconnect_delays: Sequence[float] = RECONNECT_DELAYS,
    ) -> None:
        self._pubsub = pubsub
        self._handlers = dict(handlers)
        self._reconnect_delays = tuple(reconnect_delays) or RECONNECT_DELAYS
        self._subscriptions: list[ISubscription] = []
        self._running = False
        self._connected = False
        self._lock = asyncio.Lock()
        self._reconnect_task: asyncio.Task[None] | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def channels(self) -> list[str]:
        return list(self._handlers)

    def is_running(self) -> bool:
        return self._running

    def is_connected(self) -> bool:
        return self._running and self._connected

    async def start_listening(self) -> None:
        """Subscribe to every channel.  No-op when already running.

        Raises
        ------
        SubscriptionError
            If any channel cannot be subscribed.  Channels subscribed
            during this call are unsubscribed again before raising.
        """
        async with self._lock:
            if self._running:
                return
            await self._subscribe_all()
            self._running = True
            self._connected = True
            self._pubsub.add_disconnect_callback(self._on_disconnect)
        self._logger.info("listener_started", channels=self.channels)

    async def stop_listening(self) -> None:
        """Unsubscribe everything.  No-op when not running."""
        async with self._lock:
            if not self._running:
                return
            self._running = False
            self._connected = False
            self._pubsub.remove_disconnect_callback(self._on_disconnect)

            reconnect, self._reconnect_task = self._reconnect_task, None
            if reconnect is not None and not reconnect.done():
                reconnect.cancel()

            subscriptions, self._subscriptions = self._subscriptions, []
            await self._unsubscribe(subscriptions)
        self._logger.info("listener_stopped")

    # ------------------------------------------------------------------
    # Subscription management
    # ------------------------------------------------------------------

    async def _subscribe_all(self) -> None:
        established: list[ISubscription] = []
        for channel, handler in self._handlers.items():
            try:
                established.append(
                    await self._pubsub.subscribe(channel, self._make_dispatch(channel, handler))
                )
            except Exception as exc:
                self._logger.error("listener_subscribe_failed", channel=channel, error=str(exc))
                await self._unsubscribe(established)
                raise SubscriptionError(
                    message=f"Failed to subscribe to {channel}: {exc}",
                    provider_name=self._pubsub.get_provider_name(),
                ) from exc
        self._subscriptions = established

    async def _unsubscribe(self, subscriptions: list[ISubscription]) -> None:
        results = await asyncio.gather(
            *(sub.unsubscribe() for sub in subscriptions), return_exceptions=True
        )
        for sub, result in zip(subscriptions, results):
            if isinstance(result, BaseException):
                self._logger.warning("listener_unsubscribe_failed", channel=sub.channel, error=str(result))

    def _make_dispatch(self, channel: str, handler: ChannelHandler) -> MessageHandler:
        async def _dispatch(raw: str) -> None:
            bind_task_context(channel=channel)
            try:
                event = handler.model.model_validate_json(raw)
            except ValidationError as exc:
                self._logger.warning(
                    "malformed_event_dropped",
                    channel=channel,
                    errors=exc.error_count(),
                    payload=raw[:200],
                )
                return
            try:
                await handler.callback(event)
            except Exception as exc:
                self._logger.error(
                    "event_handler_failed",
                    channel=channel,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        return _dispatch

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    async def _on_disconnect(self, error: BaseException | None) -> None:
        if not self._running:
            return
        self._connected = False
        self._subscriptions = []
        self._logger.warning("listener_disconnected", error=str(error) if error else None)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(
                self._reconnect_loop(), name="listener_reconnect"
            )

    async def _reconnect_loop(self) -> None:
        attempt = 0
        while self._running:
            delay = self._reconnect_delays[min(attempt, len(self._reconnect_delays) - 1)]
            await asyncio.sleep(delay)
            async with self._lock:
                if not self._running:
                    return
                try:
                    await self._pubsub.connect()
                    await self._subscribe_all()
                except Exception as exc:
                    attempt += 1
                    self._logger.warning("listener_reconnect_failed", attempt=attempt, error=str(exc))
                    continue
                self._connected = True
            self._logger.info("listener_reconnected", attempts=attempt + 1)
            return


def default_channel_handlers(
    on_note_created: Callable[[NoteCreatedEvent], Awaitable[Any]],
) -> dict[str, ChannelHandler]:
    """Note events go to *on_note_created*; outcome channels are logged."""
    logger = get_logger(__name__)

    async def _log_completed(event: SummaryCompletedEvent) -> None:
        logger.info(
            "summary_completed_received",
            summary_id=event.id,
            student_id=event.student_id,
            note_count=event.note_count,
        )

    async def _log_failed(event: SummaryFailedEvent) -> None:
        logger.warning(
            "summary_failed_received",
            student_id=event.student_id,
            note_id=event.note_id,
            error=event.error,
        )

    async def _log_abandoned(event: JobAbandonedEvent) -> None:
        logger.error(
            "job_abandoned_received",
            job_id=event.job_id,
            job_type=event.job_type,
            total_attempts=event.total_attempts,
            final_error=event.final_error,
        )

    return {
        NOTE_CREATED_CHANNEL: ChannelHandler(NoteCreatedEvent, on_note_created),
        SUMMARY_COMPLETED_CHANNEL: ChannelHandler(SummaryCompletedEvent, _log_completed),
        SUMMARY_FAILED_CHANNEL: ChannelHandler(SummaryFailedEvent, _log_failed),
        JOB_ABANDONED_CHANNEL: ChannelHandler(JobAbandonedEvent, _log_abandoned),
    }
