"""aiosqlite-backed datastores."""

from src.providers.store.sqlite_failed_job_store import SQLiteFailedJobStore
from src.providers.store.sqlite_note_store import SQLiteNoteStore

__all__ = ["SQLiteFailedJobStore", "SQLiteNoteStore"]
