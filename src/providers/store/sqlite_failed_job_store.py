"""SQLite-backed failed-job store.

Persists failed jobs and their retry audit log to ``data/failed_jobs.db``
using ``aiosqlite``.  Timestamps are stored as UTC ISO-8601 strings with a
fixed width, so string comparison in SQL orders them correctly.

``job_retry_log`` intentionally has no foreign key to ``failed_jobs``: log
entries outlive the job they describe and are pruned by their own
retention routine.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.failed_job_store import IFailedJobStore
from src.models.jobs import FailedJob, JobStatus, RetryLogEntry

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/failed_jobs.db")

_CREATE_FAILED_JOBS_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS failed_jobs (
    id                 TEXT    PRIMARY KEY,
    job_type           TEXT    NOT NULL,
    payload            TEXT    NOT NULL,
    error              TEXT    NOT NULL,
    error_detail       TEXT,
    attempt_count      INTEGER NOT NULL DEFAULT 1,
    max_retries        INTEGER NOT NULL DEFAULT 3,
    next_retry_at      TEXT,
    failed_at          TEXT    NOT NULL,
    last_attempted_at  TEXT    NOT NULL,
    status             TEXT    NOT NULL DEFAULT 'failed'
);
"""

_CREATE_RETRY_LOG_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS job_retry_log (
    id              TEXT    PRIMARY KEY,
    failed_job_id   TEXT    NOT NULL,
    attempt_number  INTEGER NOT NULL,
    error           TEXT    NOT NULL,
    attempted_at    TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_failed_jobs_status ON failed_jobs(status);",
    "CREATE INDEX IF NOT EXISTS idx_failed_jobs_next_retry ON failed_jobs(status, next_retry_at);",
    "CREATE INDEX IF NOT EXISTS idx_failed_jobs_job_type ON failed_jobs(job_type);",
    "CREATE INDEX IF NOT EXISTS idx_retry_log_job_id ON job_retry_log(failed_job_id);",
]

_JOB_COLUMNS = (
    "id, job_type, payload, error, error_detail, attempt_count, max_retries, "
    "next_retry_at, failed_at, last_attempted_at, status"
)

_INSERT_JOB_SQL = f"""\
INSERT INTO failed_jobs ({_JOB_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_SELECT_JOB_SQL = f"SELECT {_JOB_COLUMNS} FROM failed_jobs WHERE id = ?;"

# A retrying row whose last attempt started before the lease cutoff belongs
# to an attempt that never finished (crash, failed bookkeeping).
_SELECT_DUE_JOBS_SQL = f"""\
SELECT {_JOB_COLUMNS}
FROM failed_jobs
WHERE (status = 'failed'
       AND next_retry_at IS NOT NULL
       AND next_retry_at <= ?
       AND attempt_count < max_retries)
   OR (status = 'retrying' AND last_attempted_at <= ?)
ORDER BY COALESCE(next_retry_at, last_attempted_at) ASC
LIMIT ?;
"""

_MARK_RETRYING_SQL = """\
UPDATE failed_jobs SET status = 'retrying', last_attempted_at = ? WHERE id = ?;
"""

_RESCHEDULE_SQL = """\
UPDATE failed_jobs
SET status = 'failed', attempt_count = ?, next_retry_at = ?, error = ?,
    error_detail = ?, last_attempted_at = ?
WHERE id = ?;
"""

_ABANDON_SQL = """\
UPDATE failed_jobs
SET status = 'abandoned', attempt_count = ?, next_retry_at = NULL, error = ?,
    error_detail = ?, last_attempted_at = ?
WHERE id = ?;
"""

_DELETE_JOB_SQL = "DELETE FROM failed_jobs WHERE id = ?;"

_INSERT_RETRY_LOG_SQL = """\
INSERT INTO job_retry_log (id, failed_job_id, attempt_number, error, attempted_at)
VALUES (?, ?, ?, ?, ?);
"""

_SELECT_RETRY_LOG_SQL = """\
SELECT id, failed_job_id, attempt_number, error, attempted_at
FROM job_retry_log
WHERE failed_job_id = ?
ORDER BY attempt_number ASC, attempted_at ASC;
"""

_COUNT_GROUPS_SQL = """\
SELECT job_type, status, COUNT(*) AS n
FROM failed_jobs
GROUP BY job_type, status;
"""

_DELETE_ABANDONED_SQL = """\
DELETE FROM failed_jobs WHERE status = 'abandoned' AND failed_at < ?;
"""

_DELETE_RETRY_LOGS_SQL = "DELETE FROM job_retry_log WHERE attempted_at < ?;"


def _ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteFailedJobStore(IFailedJobStore):
    """SQLite-backed failed job persistence."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the failed_jobs and job_retry_log tables and indices."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_FAILED_JOBS_TABLE_SQL)
            await db.execute(_CREATE_RETRY_LOG_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("failed_job_store_initialized", path=str(self._db_path))

    async def create(self, job: FailedJob) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_JOB_SQL,
                (
                    job.id,
                    job.job_type,
                    json.dumps(job.payload),
                    job.error_message,
                    job.error_detail,
                    job.attempt_count,
                    job.max_retries,
                    _ts(job.next_retry_at),
                    _ts(job.failed_at),
                    _ts(job.last_attempted_at),
                    job.status.value,
                ),
            )
            await db.commit()

    async def get(self, job_id: str) -> FailedJob | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_JOB_SQL, (job_id,))
            row = await cursor.fetchone()
        return self._row_to_job(row) if row else None

    async def find_due(
        self, now: datetime, limit: int, stale_before: datetime | None = None
    ) -> list[FailedJob]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                _SELECT_DUE_JOBS_SQL, (_ts(now), _ts(stale_before), limit)
            )
            rows = await cursor.fetchall()
        return [self._row_to_job(row) for row in rows]

    async def mark_retrying(self, job_id: str, attempted_at: datetime) -> None:
        await self._execute(_MARK_RETRYING_SQL, (_ts(attempted_at), job_id))

    async def reschedule(
        self,
        job_id: str,
        attempt_count: int,
        next_retry_at: datetime,
        error_message: str,
        error_detail: str | None,
        attempted_at: datetime,
    ) -> None:
        await self._execute(
            _RESCHEDULE_SQL,
            (
                attempt_count,
                _ts(next_retry_at),
                error_message,
                error_detail,
                _ts(attempted_at),
                job_id,
            ),
        )

    async def abandon(
        self,
        job_id: str,
        attempt_count: int,
        error_message: str,
        error_detail: str | None,
        attempted_at: datetime,
    ) -> None:
        await self._execute(
            _ABANDON_SQL,
            (attempt_count, error_message, error_detail, _ts(attempted_at), job_id),
        )

    async def delete(self, job_id: str) -> bool:
        return await self._execute(_DELETE_JOB_SQL, (job_id,)) > 0

    async def append_retry_log(self, entry: RetryLogEntry) -> None:
        await self._execute(
            _INSERT_RETRY_LOG_SQL,
            (
                entry.id,
                entry.failed_job_id,
                entry.attempt_number,
                entry.error,
                _ts(entry.attempted_at),
            ),
        )

    async def list_retry_log(self, job_id: str) -> list[RetryLogEntry]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_RETRY_LOG_SQL, (job_id,))
            rows = await cursor.fetchall()
        return [
            RetryLogEntry(
                id=row["id"],
                failed_job_id=row["failed_job_id"],
                attempt_number=row["attempt_number"],
                error=row["error"],
                attempted_at=_parse_ts(row["attempted_at"]),
            )
            for row in rows
        ]

    async def count_by_type_and_status(self) -> list[tuple[str, str, int]]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(_COUNT_GROUPS_SQL)
            rows = await cursor.fetchall()
        return [(row[0], row[1], row[2]) for row in rows]

    async def delete_abandoned_before(self, cutoff: datetime) -> int:
        return await self._execute(_DELETE_ABANDONED_SQL, (_ts(cutoff),))

    async def delete_retry_logs_before(self, cutoff: datetime) -> int:
        return await self._execute(_DELETE_RETRY_LOGS_SQL, (_ts(cutoff),))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute(self, sql: str, params: tuple) -> int:
        """Run a single write statement and return the affected row count."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(sql, params)
            await db.commit()
            return cursor.rowcount

    @staticmethod
    def _row_to_job(row: aiosqlite.Row) -> FailedJob:
        return FailedJob(
            id=row["id"],
            job_type=row["job_type"],
            payload=json.loads(row["payload"]),
            error_message=row["error"],
            error_detail=row["error_detail"],
            attempt_count=row["attempt_count"],
            max_retries=row["max_retries"],
            next_retry_at=_parse_ts(row["next_retry_at"]),
            failed_at=_parse_ts(row["failed_at"]),
            last_attempted_at=_parse_ts(row["last_attempted_at"]),
            status=JobStatus(row["status"]),
        )
