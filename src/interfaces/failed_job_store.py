"""Abstract base class for the durable failed-job store.

Only :class:`src.pipeline.retry_service.RetryService` talks to this
interface; every job state transition goes through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from src.models.jobs import FailedJob, RetryLogEntry


# Concrete implementation: SQLiteFailedJobStore
# Located in: src/providers/store/
class IFailedJobStore(ABC):
    """Contract for persisting failed jobs and their retry audit log."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def create(self, job: FailedJob) -> None:
        """Insert a new failed job."""

    @abstractmethod
    async def get(self, job_id: str) -> FailedJob | None:
        """Return the job with *job_id*, or ``None``."""

    @abstractmethod
    async def find_due(
        self, now: datetime, limit: int, stale_before: datetime | None = None
    ) -> list[FailedJob]:
        """Return up to *limit* retry candidates, oldest first.

        A candidate either has ``status == failed``, ``next_retry_at <= now``
        and ``attempt_count < max_retries``, or is still ``retrying`` with
        ``last_attempted_at <= stale_before`` (an attempt that never
        finished).  ``stale_before=None`` skips the second kind.
        """

    @abstractmethod
    async def mark_retrying(self, job_id: str, attempted_at: datetime) -> None:
        """Set ``status=retrying`` and ``last_attempted_at``."""

    @abstractmethod
    async def reschedule(
        self,
        job_id: str,
        attempt_count: int,
        next_retry_at: datetime,
        error_message: str,
        error_detail: str | None,
        attempted_at: datetime,
    ) -> None:
        """Put a job back into ``failed`` with a new attempt count and retry time."""

    @abstractmethod
    async def abandon(
        self,
        job_id: str,
        attempt_count: int,
        error_message: str,
        error_detail: str | None,
        attempted_at: datetime,
    ) -> None:
        """Move a job to the terminal ``abandoned`` state."""

    @abstractmethod
    async def delete(self, job_id: str) -> bool:
        """Delete a job.  Returns ``True`` if a row was removed."""

    @abstractmethod
    async def append_retry_log(self, entry: RetryLogEntry) -> None:
        """Append one retry attempt to the audit log."""

    @abstractmethod
    async def list_retry_log(self, job_id: str) -> list[RetryLogEntry]:
        """Return the audit log for *job_id* in attempt order."""

    @abstractmethod
    async def count_by_type_and_status(self) -> list[tuple[str, str, int]]:
        """Return ``(job_type, status, count)`` rows for every group present."""

    @abstractmethod
    async def delete_abandoned_before(self, cutoff: datetime) -> int:
        """Delete abandoned jobs with ``failed_at < cutoff``.  Returns the count."""

    @abstractmethod
    async def delete_retry_logs_before(self, cutoff: datetime) -> int:
        """Delete audit entries with ``attempted_at < cutoff``.  Returns the count."""
