"""Unit tests for the SQLite note store and failed-job store."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from src.models.events import NOTE_CREATED_CHANNEL, NoteCreatedEvent
from src.models.jobs import NOTE_SUMMARY_JOB, FailedJob, JobStatus, RetryLogEntry
from src.providers.pubsub.memory_pubsub import InMemoryPubSubProvider
from src.providers.store.sqlite_failed_job_store import SQLiteFailedJobStore
from src.providers.store.sqlite_note_store import SQLiteNoteStore


def _utc(minutes: float = 0) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def _job(
    *,
    attempt_count: int = 1,
    max_retries: int = 3,
    next_retry_at: datetime | None = None,
    status: JobStatus = JobStatus.FAILED,
    failed_at: datetime | None = None,
    job_type: str = NOTE_SUMMARY_JOB,
) -> FailedJob:
    failed = failed_at or _utc()
    return FailedJob(
        id=str(uuid.uuid4()),
        job_type=job_type,
        payload={"id": "n1", "student_id": "s1"},
        error_message="Request timed out",
        error_detail="Traceback ...",
        attempt_count=attempt_count,
        max_retries=max_retries,
        next_retry_at=next_retry_at,
        failed_at=failed,
        last_attempted_at=failed,
        status=status,
    )


# ======================================================================
# Note store
# ======================================================================


class TestSQLiteNoteStore:
    @pytest.mark.asyncio
    async def test_add_and_get_note(self, note_store: SQLiteNoteStore) -> None:
        note = await note_store.add_note("s1", "admin-1", "Great participation today")

        fetched = await note_store.get_note(note.id)
        assert fetched == note
        assert fetched.created_at.tzinfo is not None
        assert await note_store.get_note("missing") is None

    @pytest.mark.asyncio
    async def test_recent_notes_newest_first_and_limited(self, note_store: SQLiteNoteStore) -> None:
        for i in range(12):
            await note_store.add_note("s1", "admin-1", f"entry-{i:02d}")
        await note_store.add_note("s2", "admin-1", "other student")

        recent = await note_store.get_recent_notes("s1", limit=10)

        assert [n.content for n in recent] == [f"entry-{i:02d}" for i in range(11, 1, -1)]
        assert all(n.student_id == "s1" for n in recent)
        assert await note_store.get_recent_notes("nobody") == []

    @pytest.mark.asyncio
    async def test_summaries_newest_first(self, note_store: SQLiteNoteStore) -> None:
        await note_store.save_summary("s1", "first", 1, "n1")
        second = await note_store.save_summary("s1", "second", 2, "n2")
        await note_store.save_summary("s2", "elsewhere", 1, "n9")

        summaries = await note_store.get_summaries("s1")

        assert [s.summary for s in summaries] == ["second", "first"]
        assert summaries[0] == second
        assert summaries[0].last_processed_note_id == "n2"
        assert len(await note_store.get_summaries("s1", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_add_note_publishes_created_event(self, tmp_path: Path) -> None:
        pubsub = InMemoryPubSubProvider()
        store = SQLiteNoteStore(db_path=tmp_path / "notes.db", pubsub=pubsub)
        await store.initialize()

        note = await store.add_note("s1", "admin-1", "hello")

        channel, payload = pubsub.published[0]
        assert channel == NOTE_CREATED_CHANNEL
        event = NoteCreatedEvent.model_validate_json(payload)
        assert event.id == note.id
        assert event.student_id == "s1"
        assert event.author_id == "admin-1"

    @pytest.mark.asyncio
    async def test_publish_failure_keeps_the_note(self, tmp_path: Path) -> None:
        pubsub = InMemoryPubSubProvider()
        pubsub.publish = AsyncMock(side_effect=ConnectionError("NOTIFY failed"))
        store = SQLiteNoteStore(db_path=tmp_path / "notes.db", pubsub=pubsub)
        await store.initialize()

        note = await store.add_note("s1", "admin-1", "still stored")

        assert await store.get_note(note.id) is not None

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, note_store: SQLiteNoteStore) -> None:
        await note_store.add_note("s1", "admin-1", "kept")
        await note_store.initialize()
        assert len(await note_store.get_recent_notes("s1")) == 1


# ======================================================================
# Failed-job store
# ======================================================================


class TestSQLiteFailedJobStore:
    @pytest.mark.asyncio
    async def test_create_and_get_round_trip(self, job_store: SQLiteFailedJobStore) -> None:
        job = _job(next_retry_at=_utc(1))
        await job_store.create(job)

        fetched = await job_store.get(job.id)
        assert fetched == job
        assert await job_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_find_due_filters_and_orders(self, job_store: SQLiteFailedJobStore) -> None:
        later = _job(next_retry_at=_utc(-1))
        earlier = _job(next_retry_at=_utc(-5))
        future = _job(next_retry_at=_utc(5))
        exhausted = _job(attempt_count=3, max_retries=3, next_retry_at=_utc(-5))
        abandoned = _job(status=JobStatus.ABANDONED)
        retrying = _job(status=JobStatus.RETRYING, next_retry_at=_utc(-5))
        for job in (later, earlier, future, exhausted, abandoned, retrying):
            await job_store.create(job)

        due = await job_store.find_due(_utc(), limit=10)
        assert [j.id for j in due] == [earlier.id, later.id]

        assert [j.id for j in await job_store.find_due(_utc(), limit=1)] == [earlier.id]

    @pytest.mark.asyncio
    async def test_find_due_reclaims_stale_retrying_rows(self, job_store: SQLiteFailedJobStore) -> None:
        due = _job(next_retry_at=_utc(-1))
        stale = _job(next_retry_at=_utc(-30))
        fresh = _job(next_retry_at=_utc(-30))
        exhausted = _job(attempt_count=3, max_retries=3, next_retry_at=None)
        for job in (due, stale, fresh, exhausted):
            await job_store.create(job)
        await job_store.mark_retrying(stale.id, _utc(-20))
        await job_store.mark_retrying(fresh.id, _utc())
        await job_store.mark_retrying(exhausted.id, _utc(-60))

        reclaimed = await job_store.find_due(_utc(), limit=10, stale_before=_utc(-10))

        assert [j.id for j in reclaimed] == [exhausted.id, stale.id, due.id]
        assert [j.id for j in await job_store.find_due(_utc(), limit=10)] == [due.id]

    @pytest.mark.asyncio
    async def test_status_transitions(self, job_store: SQLiteFailedJobStore) -> None:
        job = _job(next_retry_at=_utc(-1))
        await job_store.create(job)

        attempted = _utc()
        await job_store.mark_retrying(job.id, attempted)
        retrying = await job_store.get(job.id)
        assert retrying.status == JobStatus.RETRYING
        assert retrying.last_attempted_at == attempted

        retry_at = _utc(5)
        await job_store.reschedule(job.id, 2, retry_at, "again", "detail", attempted)
        rescheduled = await job_store.get(job.id)
        assert rescheduled.status == JobStatus.FAILED
        assert rescheduled.attempt_count == 2
        assert rescheduled.next_retry_at == retry_at
        assert rescheduled.error_message == "again"

        await job_store.abandon(job.id, 3, "final", None, attempted)
        abandoned = await job_store.get(job.id)
        assert abandoned.status == JobStatus.ABANDONED
        assert abandoned.next_retry_at is None
        assert abandoned.attempt_count == 3
        assert abandoned.error_detail is None

    @pytest.mark.asyncio
    async def test_delete_reports_whether_a_row_went(self, job_store: SQLiteFailedJobStore) -> None:
        job = _job()
        await job_store.create(job)
        assert await job_store.delete(job.id) is True
        assert await job_store.delete(job.id) is False

    @pytest.mark.asyncio
    async def test_retry_log_outlives_its_job(self, job_store: SQLiteFailedJobStore) -> None:
        job = _job()
        await job_store.create(job)
        for attempt in (3, 2):
            await job_store.append_retry_log(
                RetryLogEntry(
                    id=str(uuid.uuid4()),
                    failed_job_id=job.id,
                    attempt_number=attempt,
                    error=f"attempt {attempt}",
                    attempted_at=_utc(),
                )
            )
        await job_store.delete(job.id)

        log = await job_store.list_retry_log(job.id)
        assert [entry.attempt_number for entry in log] == [2, 3]

    @pytest.mark.asyncio
    async def test_counts_by_type_and_status(self, job_store: SQLiteFailedJobStore) -> None:
        await job_store.create(_job())
        await job_store.create(_job())
        await job_store.create(_job(status=JobStatus.ABANDONED))
        await job_store.create(_job(job_type="other"))

        counts = sorted(await job_store.count_by_type_and_status())
        assert counts == [
            (NOTE_SUMMARY_JOB, "abandoned", 1),
            (NOTE_SUMMARY_JOB, "failed", 2),
            ("other", "failed", 1),
        ]

    @pytest.mark.asyncio
    async def test_delete_abandoned_before(self, job_store: SQLiteFailedJobStore) -> None:
        old_abandoned = _job(status=JobStatus.ABANDONED, failed_at=_utc(-60 * 24 * 40))
        new_abandoned = _job(status=JobStatus.ABANDONED)
        old_failed = _job(failed_at=_utc(-60 * 24 * 40))
        for job in (old_abandoned, new_abandoned, old_failed):
            await job_store.create(job)

        deleted = await job_store.delete_abandoned_before(_utc(-60 * 24 * 30))

        assert deleted == 1
        assert await job_store.get(old_abandoned.id) is None
        assert await job_store.get(new_abandoned.id) is not None
        assert await job_store.get(old_failed.id) is not None

    @pytest.mark.asyncio
    async def test_delete_retry_logs_before(self, job_store: SQLiteFailedJobStore) -> None:
        for minutes in (-60 * 24 * 100, 0):
            await job_store.append_retry_log(
                RetryLogEntry(
                    id=str(uuid.uuid4()),
                    failed_job_id="job-1",
                    attempt_number=2,
                    error="x",
                    attempted_at=_utc(minutes),
                )
            )

        assert await job_store.delete_retry_logs_before(_utc(-60 * 24 * 90)) == 1
        assert len(await job_store.list_retry_log("job-1")) == 1
