"""SQLite-backed note and summary store.

Persists admin notes and generated summaries to a local SQLite database
at ``data/notes.db``.  Uses ``aiosqlite`` for async I/O.

When constructed with a pub/sub transport, :meth:`add_note` announces each
insert on ``admin_notes_created`` after the commit, which is what the
database trigger does in a PostgreSQL deployment.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.note_store import INoteStore
from src.interfaces.pubsub_provider import IPubSubProvider
from src.models.events import NOTE_CREATED_CHANNEL, NoteCreatedEvent
from src.models.notes import AdminNote, AISummary

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/notes.db")

_CREATE_NOTES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS admin_notes (
    seq         INTEGER PRIMARY KEY AUTOINCREMENT,
    id          TEXT    NOT NULL UNIQUE,
    student_id  TEXT    NOT NULL,
    author_id   TEXT    NOT NULL,
    content     TEXT    NOT NULL,
    created_at  TEXT    NOT NULL
);
"""

_CREATE_SUMMARIES_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS ai_summaries (
    seq                     INTEGER PRIMARY KEY AUTOINCREMENT,
    id                      TEXT    NOT NULL UNIQUE,
    student_id              TEXT    NOT NULL,
    summary                 TEXT    NOT NULL,
    note_count              INTEGER NOT NULL,
    last_processed_note_id  TEXT    NOT NULL,
    created_at              TEXT    NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_admin_notes_student ON admin_notes(student_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_ai_summaries_student ON ai_summaries(student_id, created_at DESC);",
]

_INSERT_NOTE_SQL = """\
INSERT INTO admin_notes (id, student_id, author_id, content, created_at)
VALUES (?, ?, ?, ?, ?);
"""

_SELECT_NOTE_SQL = """\
SELECT id, student_id, author_id, content, created_at
FROM admin_notes
WHERE id = ?;
"""

_SELECT_RECENT_NOTES_SQL = """\
SELECT id, student_id, author_id, content, created_at
FROM admin_notes
WHERE student_id = ?
ORDER BY created_at DESC, seq DESC
LIMIT ?;
"""

_INSERT_SUMMARY_SQL = """\
INSERT INTO ai_summaries (id, student_id, summary, note_count, last_processed_note_id, created_at)
VALUES (?, ?, ?, ?, ?, ?);
"""

_SELECT_SUMMARIES_SQL = """\
SELECT id, student_id, summary, note_count, last_processed_note_id, created_at
FROM ai_summaries
WHERE student_id = ?
ORDER BY created_at DESC, seq DESC
LIMIT ?;
"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class SQLiteNoteStore(INoteStore):
    """SQLite-backed note and summary persistence."""

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        pubsub: IPubSubProvider | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._pubsub = pubsub

    async def initialize(self) -> None:
        """Create the admin_notes and ai_summaries tables and indices."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_NOTES_TABLE_SQL)
            await db.execute(_CREATE_SUMMARIES_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("note_store_initialized", path=str(self._db_path))

    async def add_note(self, student_id: str, author_id: str, content: str) -> AdminNote:
        note = AdminNote(
            id=str(uuid.uuid4()),
            student_id=student_id,
            author_id=author_id,
            content=content,
            created_at=datetime.fromisoformat(_now_iso()),
        )
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_NOTE_SQL,
                (
                    note.id,
                    note.student_id,
                    note.author_id,
                    note.content,
                    note.created_at.isoformat(timespec="microseconds"),
                ),
            )
            await db.commit()
        logger.info("note_created", note_id=note.id, student_id=student_id)

        if self._pubsub is not None:
            event = NoteCreatedEvent(
                id=note.id,
                student_id=note.student_id,
                author_id=note.author_id,
                created_at=note.created_at,
            )
            try:
                await self._pubsub.publish(NOTE_CREATED_CHANNEL, event)
            except Exception as exc:
                # The note is committed; a missed notification only delays its summary.
                logger.error("note_created_notify_failed", note_id=note.id, error=str(exc))
        return note

    async def get_note(self, note_id: str) -> AdminNote | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_NOTE_SQL, (note_id,))
            row = await cursor.fetchone()
        return self._row_to_note(row) if row else None

    async def get_recent_notes(self, student_id: str, limit: int = 10) -> list[AdminNote]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_RECENT_NOTES_SQL, (student_id, limit))
            rows = await cursor.fetchall()
        return [self._row_to_note(row) for row in rows]

    async def save_summary(
        self,
        student_id: str,
        summary: str,
        note_count: int,
        last_processed_note_id: str,
    ) -> AISummary:
        record = AISummary(
            id=str(uuid.uuid4()),
            student_id=student_id,
            summary=summary,
            note_count=note_count,
            last_processed_note_id=last_processed_note_id,
            created_at=datetime.fromisoformat(_now_iso()),
        )
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                _INSERT_SUMMARY_SQL,
                (
                    record.id,
                    record.student_id,
                    record.summary,
                    record.note_count,
                    record.last_processed_note_id,
                    record.created_at.isoformat(timespec="microseconds"),
                ),
            )
            await db.commit()
        return record

    async def get_summaries(self, student_id: str, limit: int = 20) -> list[AISummary]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_SUMMARIES_SQL, (student_id, limit))
            rows = await cursor.fetchall()
        return [
            AISummary(
                id=row["id"],
                student_id=row["student_id"],
                summary=row["summary"],
                note_count=row["note_count"],
                last_processed_note_id=row["last_processed_note_id"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_note(row: aiosqlite.Row) -> AdminNote:
        return AdminNote(
            id=row["id"],
            student_id=row["student_id"],
            author_id=row["author_id"],
            content=row["content"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
