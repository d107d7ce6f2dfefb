"""Durable retry of failed summarization work.

Failures are captured as :class:`FailedJob` rows by
:meth:`RetryService.record_failed_job`.  A periodic scheduler picks up due
jobs, dispatches each to the handler registered for its ``job_type`` and
moves the row along its lifecycle (see ``src/models/jobs.py``):

    success            → row deleted, ``job_retry_success`` published
    retryable failure  → attempt_count + 1, rescheduled with backoff
    exhausted / fatal  → ``abandoned``, ``job_abandoned`` published

Every failed attempt appends a :class:`RetryLogEntry`.  The service is
the only component that mutates failed-job rows.

The scheduler's own bookkeeping failures (database down, notify failed)
are logged and swallowed so a broken store cannot turn into a crash loop.
A job whose bookkeeping fails is put back with its attempt count
unchanged; one left in ``retrying`` by a crashed process is picked up
again once its lease runs out.
"""

from __future__ import annotations

import asyncio
import random
import traceback
import uuid
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import BaseModel

from src.interfaces.failed_job_store import IFailedJobStore
from src.interfaces.pubsub_provider import IPubSubProvider
from src.models.events import (
    JOB_ABANDONED_CHANNEL,
    JOB_FAILED_CHANNEL,
    JOB_RETRY_SUCCESS_CHANNEL,
    JobAbandonedEvent,
    JobFailedEvent,
    JobRetrySucceededEvent,
)
from src.models.jobs import FailedJob, FailedJobStats, JobStatus, RetryLogEntry, SummaryOutcome
from src.utils.backoff import DEFAULT_JITTER, next_retry_at
from src.utils.concurrency import TaskGroupTracker
from src.utils.errors import JobNotFoundError, UnknownJobTypeError, is_retryable
from src.utils.logging import get_logger

JobHandler = Callable[[dict[str, Any]], Awaitable[SummaryOutcome]]

DEFAULT_MAX_RETRIES = 3
DEFAULT_BATCH_SIZE = 10
DEFAULT_INTERVAL_SECONDS = 30.0
DEFAULT_LEASE_SECONDS = 600.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_detail(error: BaseException) -> str:
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


class RetryService:
    """Records failed jobs and retries them on a schedule.

    Parameters
    ----------
    job_store:
        Persistence for failed jobs and the retry log.
    pubsub:
        Transport for the best-effort monitoring events.  ``None``
        disables them.
    handlers:
        ``job_type`` → async handler taking the stored payload and
        returning a :class:`SummaryOutcome`.  More can be added with
        :meth:`register_handler`.
    batch_size:
        Maximum number of due jobs processed per scheduler tick.
    lease_seconds:
        How long a job may sit in ``retrying`` before the scheduler treats
        the attempt as lost and picks the job up again.
    jitter:
        Fractional jitter applied to every backoff delay.
    rng:
        Random source for jitter; injectable for deterministic tests.
    """

    def __init__(
        self,
        job_store: IFailedJobStore,
        pubsub: IPubSubProvider | None = None,
        handlers: Mapping[str, JobHandler] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        jitter: float = DEFAULT_JITTER,
        rng: random.Random | None = None,
    ) -> None:
        self._store = job_store
        self._pubsub = pubsub
        self._handlers: dict[str, JobHandler] = dict(handlers or {})
        self._batch_size = batch_size
        self._lease = timedelta(seconds=lease_seconds)
        self._jitter = jitter
        self._rng = rng
        self._loop_task: asyncio.Task[None] | None = None
        self._batches = TaskGroupTracker("retry_batches")
        self._batch_running = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def register_handler(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[job_type] = handler

    # ------------------------------------------------------------------
    # Failure capture
    # ------------------------------------------------------------------

    async def record_failed_job(
        self,
        job_type: str,
        payload: dict[str, Any],
        error: BaseException,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> FailedJob | None:
        """Persist a first failure.  Never raises.

        Errors that will not succeed on retry (bad credentials, rejected
        requests) are stored directly as ``abandoned``.

        Returns
        -------
        FailedJob | None
            The stored job, or ``None`` if it could not be persisted.
        """
        now = _utcnow()
        retryable = is_retryable(error)
        job = FailedJob(
            id=str(uuid.uuid4()),
            job_type=job_type,
            payload=payload,
            error_message=str(error),
            error_detail=_format_detail(error),
            attempt_count=1,
            max_retries=max_retries,
            next_retry_at=self._backoff(1, now) if retryable else None,
            failed_at=now,
            last_attempted_at=now,
            status=JobStatus.FAILED if retryable else JobStatus.ABANDONED,
        )
        try:
            await self._store.create(job)
        except Exception as exc:
            self._logger.error(
                "failed_job_record_error",
                job_type=job_type,
                original_error=str(error),
                error=str(exc),
            )
            return None

        self._logger.warning(
            "failed_job_recorded",
            job_id=job.id,
            job_type=job_type,
            status=job.status.value,
            next_retry_at=job.next_retry_at.isoformat() if job.next_retry_at else None,
            error=job.error_message,
        )
        await self._notify(
            JOB_FAILED_CHANNEL,
            JobFailedEvent(job_id=job.id, job_type=job_type, error=job.error_message, timestamp=now),
        )
        if job.is_terminal:
            await self._notify(
                JOB_ABANDONED_CHANNEL,
                JobAbandonedEvent(
                    job_id=job.id,
                    job_type=job_type,
                    final_error=job.error_message,
                    total_attempts=job.attempt_count,
                    timestamp=now,
                ),
            )
        return job

    # ------------------------------------------------------------------
    # Scheduler
    # ------------------------------------------------------------------

    def start_retry_processor(self, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        """Start the periodic scheduler.  No-op when it is already running."""
        if self.is_processing:
            return
        self._loop_task = asyncio.create_task(
            self._run_loop(interval_seconds), name="retry_processor"
        )
        self._logger.info("retry_processor_started", interval_seconds=interval_seconds)

    async def stop_retry_processor(self) -> None:
        """Cancel future ticks.  A batch already in progress runs to completion."""
        task, self._loop_task = self._loop_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._logger.info("retry_processor_stopped")

    @property
    def is_processing(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def _run_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            if self._batch_running:
                self._logger.debug("retry_tick_skipped", reason="previous batch still running")
                continue
            self._batches.spawn(self.process_retries(), task_name="retry_batch")

    async def process_retries(self) -> int:
        """Process one batch of due jobs sequentially.

        Returns
        -------
        int
            Number of jobs attempted.
        """
        self._batch_running = True
        try:
            try:
                now = _utcnow()
                due = await self._store.find_due(
                    now, self._batch_size, stale_before=now - self._lease
                )
            except Exception as exc:
                self._logger.error("retry_scan_failed", error=str(exc))
                return 0

            if due:
                self._logger.info("retry_batch_started", jobs=len(due))
            for job in due:
                try:
                    await self._retry(job)
                except UnknownJobTypeError as exc:
                    await self._defer_unknown(job, exc)
                except Exception as exc:
                    self._logger.error("retry_job_error", job_id=job.id, error=str(exc))
            return len(due)
        finally:
            self._batch_running = False

    # ------------------------------------------------------------------
    # Manual operations
    # ------------------------------------------------------------------

    async def retry_job_by_id(self, job_id: str) -> bool:
        """Run one retry attempt for *job_id* now, outside the schedule.

        Returns
        -------
        bool
            ``True`` if the attempt succeeded and the job was removed.

        Raises
        ------
        JobNotFoundError
            If no job has that id.
        UnknownJobTypeError
            If no handler is registered for the job's type.
        """
        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        self._logger.info("manual_retry_requested", job_id=job_id, status=job.status.value)
        return await self._retry(job)

    async def get_job(self, job_id: str) -> FailedJob:
        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def get_retry_log(self, job_id: str) -> list[RetryLogEntry]:
        return await self._store.list_retry_log(job_id)

    async def get_failed_jobs_stats(self) -> FailedJobStats:
        rows = await self._store.count_by_type_and_status()
        by_type: dict[str, int] = {}
        by_status: dict[str, int] = {}
        total = 0
        for job_type, status, count in rows:
            by_type[job_type] = by_type.get(job_type, 0) + count
            by_status[status] = by_status.get(status, 0) + count
            total += count
        return FailedJobStats(total=total, by_type=by_type, by_status=by_status)

    async def cleanup_old_jobs(self, days_old: int = 30) -> int:
        """Delete abandoned jobs that failed more than *days_old* days ago."""
        cutoff = _utcnow() - timedelta(days=days_old)
        deleted = await self._store.delete_abandoned_before(cutoff)
        self._logger.info("abandoned_jobs_cleaned", deleted=deleted, days_old=days_old)
        return deleted

    async def cleanup_retry_logs(self, days_old: int = 90) -> int:
        """Delete retry-log entries older than *days_old* days."""
        cutoff = _utcnow() - timedelta(days=days_old)
        deleted = await self._store.delete_retry_logs_before(cutoff)
        self._logger.info("retry_logs_cleaned", deleted=deleted, days_old=days_old)
        return deleted

    # ------------------------------------------------------------------
    # Retry path
    # ------------------------------------------------------------------

    async def _retry(self, job: FailedJob) -> bool:
        handler = self._handlers.get(job.job_type)
        if handler is None:
            raise UnknownJobTypeError(job.job_type)

        attempted_at = _utcnow()
        await self._store.mark_retrying(job.id, attempted_at)
        log = self._logger.bind(job_id=job.id, job_type=job.job_type, attempt=job.attempt_count + 1)
        log.info("job_retry_started")

        try:
            outcome = await handler(job.payload)
            error = None if outcome.succeeded else outcome.error
        except Exception as exc:
            error = exc

        try:
            if error is None:
                await self._store.delete(job.id)
            else:
                await self._record_attempt_failure(job, error, attempted_at)
        except Exception:
            await self._release(job, attempted_at)
            raise

        if error is not None:
            return False
        log.info("job_retry_succeeded")
        await self._notify(
            JOB_RETRY_SUCCESS_CHANNEL,
            JobRetrySucceededEvent(
                job_id=job.id,
                job_type=job.job_type,
                attempt_count=job.attempt_count + 1,
                timestamp=_utcnow(),
            ),
        )
        return True

    async def _record_attempt_failure(
        self, job: FailedJob, error: BaseException, attempted_at: datetime
    ) -> None:
        new_attempt_count = job.attempt_count + 1
        message = str(error)
        detail = _format_detail(error)

        await self._store.append_retry_log(
            RetryLogEntry(
                id=str(uuid.uuid4()),
                failed_job_id=job.id,
                attempt_number=new_attempt_count,
                error=message,
                attempted_at=attempted_at,
            )
        )

        if new_attempt_count < job.max_retries and is_retryable(error):
            retry_at = self._backoff(new_attempt_count, _utcnow())
            await self._store.reschedule(
                job.id, new_attempt_count, retry_at, message, detail, attempted_at
            )
            self._logger.warning(
                "job_retry_failed",
                job_id=job.id,
                attempt=new_attempt_count,
                max_retries=job.max_retries,
                next_retry_at=retry_at.isoformat(),
                error=message,
            )
            return

        await self._store.abandon(job.id, new_attempt_count, message, detail, attempted_at)
        self._logger.error(
            "job_abandoned",
            job_id=job.id,
            job_type=job.job_type,
            total_attempts=new_attempt_count,
            error=message,
        )
        await self._notify(
            JOB_ABANDONED_CHANNEL,
            JobAbandonedEvent(
                job_id=job.id,
                job_type=job.job_type,
                final_error=message,
                total_attempts=new_attempt_count,
                timestamp=_utcnow(),
            ),
        )

    async def _release(self, job: FailedJob, attempted_at: datetime) -> None:
        """Return a job whose bookkeeping failed to its previous state.

        The attempt count is left unchanged; a job with no attempts left goes
        back to ``abandoned``, any other to ``failed`` with a fresh backoff.

        If this write fails too, the row stays ``retrying`` until the lease
        runs out and the scan picks it up again.
        """
        try:
            if job.attempt_count >= job.max_retries:
                await self._store.abandon(
                    job.id, job.attempt_count, job.error_message, job.error_detail, attempted_at
                )
            else:
                await self._store.reschedule(
                    job.id,
                    job.attempt_count,
                    self._backoff(job.attempt_count, _utcnow()),
                    job.error_message,
                    job.error_detail,
                    attempted_at,
                )
        except Exception as exc:
            self._logger.error("retry_release_failed", job_id=job.id, error=str(exc))
            return
        self._logger.warning("retry_released", job_id=job.id, attempt=job.attempt_count)

    async def _defer_unknown(self, job: FailedJob, exc: UnknownJobTypeError) -> None:
        """Push an undispatchable job back without counting an attempt."""
        self._logger.error("unknown_job_type", job_id=job.id, job_type=exc.job_type)
        now = _utcnow()
        try:
            await self._store.reschedule(
                job.id,
                job.attempt_count,
                self._backoff(job.attempt_count, now),
                job.error_message,
                job.error_detail,
                now,
            )
        except Exception as store_exc:
            self._logger.error("retry_job_error", job_id=job.id, error=str(store_exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _backoff(self, attempt: int, now: datetime) -> datetime:
        return next_retry_at(attempt, now=now, jitter=self._jitter, rng=self._rng)

    async def _notify(self, channel: str, event: BaseModel) -> None:
        if self._pubsub is None:
            return
        try:
            await self._pubsub.publish(channel, event)
        except Exception as exc:
            self._logger.warning("notify_failed", channel=channel, error=str(exc))
