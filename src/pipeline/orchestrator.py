"""Turns one "note created" event into one persisted summary or one failed job.

# ─── FLOW ─────────────────────────────────────────────────────────────
#
#   process_note_created(event)
#     ├─ duplicate delivery (same event id within TTL) → ignored
#     └─ summarize(event) → SummaryOutcome
#          ├─ SKIPPED    no notes for the student; nothing written
#          ├─ COMPLETED  AISummary saved, summary_completed published
#          └─ FAILED     RetryService.record_failed_job(...),
#                        summary_failed published
#
#   RetryService → execute_job(payload) → summarize(event)
#     Retries run summarize() directly and never record a second job;
#     the retry service owns the row for the original failure.
# ──────────────────────────────────────────────────────────────────────

Provider errors never escape this module.  They come back as a FAILED
outcome and are converted into a failed job exactly once, here at the
boundary.  Monitoring notifications are best-effort: a publish failure is
logged and does not undo a saved summary.
"""

from __future__ import annotations

from typing import Any

import structlog
from cachetools import TTLCache
from pydantic import BaseModel, ValidationError

from src.interfaces.note_store import INoteStore
from src.interfaces.pubsub_provider import IPubSubProvider
from src.models.completion import ChatMessage, CompletionRequest, MessageRole
from src.models.events import (
    SUMMARY_COMPLETED_CHANNEL,
    SUMMARY_FAILED_CHANNEL,
    NoteCreatedEvent,
    SummaryCompletedEvent,
    SummaryFailedEvent,
)
from src.models.jobs import NOTE_SUMMARY_JOB, SummaryOutcome
from src.models.notes import AdminNote
from src.pipeline.retry_service import RetryService
from src.providers.ai.registry import SUMMARIZATION, ProviderRegistry
from src.utils.logging import get_logger

DEFAULT_HISTORY_LIMIT = 10
DEFAULT_DEDUP_TTL_SECONDS = 300.0
_DEDUP_MAX_ENTRIES = 10_000

SUMMARY_SYSTEM_PROMPT = (
    "Write a short summary of every note provided in the input. Use at most "
    "three sentences. Call out areas where the student excels and one area "
    "for improvement, and flag any concerns."
)


def build_summary_prompt(notes: list[AdminNote]) -> str:
    """Render chronologically ordered notes into the user prompt."""
    first = notes[0].created_at.date().isoformat()
    last = notes[-1].created_at.date().isoformat()
    sections = [
        f"--- Note {index} ({note.created_at.date().isoformat()}) ---\n{note.content}"
        for index, note in enumerate(notes, start=1)
    ]
    return (
        f"Summarize these {len(notes)} admin notes about a student ({first} - {last}):\n\n"
        + "\n\n".join(sections)
        + "\n\nKeep it to three sentences at most: only what an admin must know at a glance."
    )


class SummaryOrchestrator:
    """Coordinates note lookup, the active AI provider and persistence.

    Parameters
    ----------
    note_store:
        Source of recent notes and sink for summaries.
    registry:
        Supplies the active provider snapshot and the summarization
        sampling settings.
    retry_service:
        Receives failures as ``note_summary`` jobs.
    pubsub:
        Transport for ``summary_completed`` / ``summary_failed``.
        ``None`` disables those notifications.
    history_limit:
        Number of most recent notes fed to the provider.
    max_retries:
        ``max_retries`` stamped on recorded failed jobs.
    dedup_ttl_seconds:
        How long a delivered event id is remembered for duplicate
        suppression.
    """

    def __init__(
        self,
        note_store: INoteStore,
        registry: ProviderRegistry,
        retry_service: RetryService,
        pubsub: IPubSubProvider | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        max_retries: int = 3,
        dedup_ttl_seconds: float = DEFAULT_DEDUP_TTL_SECONDS,
    ) -> None:
        self._note_store = note_store
        self._registry = registry
        self._retry_service = retry_service
        self._pubsub = pubsub
        self._history_limit = history_limit
        self._max_retries = max_retries
        self._seen_events: TTLCache[str, bool] = TTLCache(
            maxsize=_DEDUP_MAX_ENTRIES, ttl=dedup_ttl_seconds
        )
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def process_note_created(self, event: NoteCreatedEvent) -> SummaryOutcome | None:
        """Handle one delivery from ``admin_notes_created``.  Never raises.

        Returns
        -------
        SummaryOutcome | None
            The outcome of the run, or ``None`` for a suppressed duplicate.
        """
        if event.id in self._seen_events:
            self._logger.info("duplicate_event_ignored", note_id=event.id, student_id=event.student_id)
            return None
        self._seen_events[event.id] = True

        outcome = await self.summarize(event)
        error = outcome.error
        if outcome.succeeded or error is None:
            return outcome

        await self._retry_service.record_failed_job(
            NOTE_SUMMARY_JOB,
            event.model_dump(mode="json"),
            error,
            max_retries=self._max_retries,
        )
        await self._notify(
            SUMMARY_FAILED_CHANNEL,
            SummaryFailedEvent(student_id=event.student_id, note_id=event.id, error=str(error)),
        )
        return outcome

    async def execute_job(self, payload: dict[str, Any]) -> SummaryOutcome:
        """Retry entry point: rebuild the event from a stored payload and summarize."""
        try:
            event = NoteCreatedEvent.model_validate(payload)
        except ValidationError as exc:
            return SummaryOutcome.failed(exc)
        return await self.summarize(event)

    async def summarize(self, event: NoteCreatedEvent) -> SummaryOutcome:
        """Summarize the student's recent notes.  Failures are returned, not raised."""
        log = self._logger.bind(student_id=event.student_id, note_id=event.id)
        try:
            recent = await self._note_store.get_recent_notes(event.student_id, self._history_limit)
            if not recent:
                log.info("summary_skipped", reason="no notes")
                return SummaryOutcome.skipped()

            notes = list(reversed(recent))
            active = self._registry.current()
            settings = self._registry.recommended_settings(SUMMARIZATION)
            request = CompletionRequest(
                model=active.model,
                messages=[ChatMessage(role=MessageRole.USER, content=build_summary_prompt(notes))],
                max_tokens=settings.max_tokens,
                temperature=settings.temperature,
                system_prompt=SUMMARY_SYSTEM_PROMPT,
            )

            log.info(
                "summary_generation_started",
                provider=active.provider_type,
                model=active.model,
                note_count=len(notes),
            )
            result = await active.provider.generate_completion(request)
            log.info(
                "summary_generated",
                provider=active.provider_type,
                total_tokens=result.usage.total_tokens if result.usage else None,
            )

            summary = await self._note_store.save_summary(
                student_id=event.student_id,
                summary=result.content,
                note_count=len(notes),
                last_processed_note_id=event.id,
            )
        except Exception as exc:
            log.error("summary_failed", error=str(exc), error_type=type(exc).__name__)
            return SummaryOutcome.failed(exc)

        await self._notify(
            SUMMARY_COMPLETED_CHANNEL,
            SummaryCompletedEvent(
                id=summary.id,
                student_id=summary.student_id,
                note_count=summary.note_count,
                created_at=summary.created_at,
            ),
        )
        return SummaryOutcome.completed(summary.id, summary.note_count)

    async def _notify(self, channel: str, event: BaseModel) -> None:
        if self._pubsub is None:
            return
        try:
            await self._pubsub.publish(channel, event)
        except Exception as exc:
            self._logger.warning("notify_failed", channel=channel, error=str(exc))
