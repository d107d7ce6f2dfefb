"""Abstract base class for note and summary persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.notes import AdminNote, AISummary


# Concrete implementation: SQLiteNoteStore
# Located in: src/providers/store/
class INoteStore(ABC):
    """Contract for storing admin notes and their generated summaries."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

    @abstractmethod
    async def add_note(self, student_id: str, author_id: str, content: str) -> AdminNote:
        """Insert a note and return it.

        Implementations attached to a pub/sub transport announce the
        insert on ``admin_notes_created`` after the commit.
        """

    @abstractmethod
    async def get_note(self, note_id: str) -> AdminNote | None:
        """Return the note with *note_id*, or ``None``."""

    @abstractmethod
    async def get_recent_notes(self, student_id: str, limit: int = 10) -> list[AdminNote]:
        """Return at most *limit* notes for *student_id*, newest first."""

    @abstractmethod
    async def save_summary(
        self,
        student_id: str,
        summary: str,
        note_count: int,
        last_processed_note_id: str,
    ) -> AISummary:
        """Persist a generated summary and return the stored record."""

    @abstractmethod
    async def get_summaries(self, student_id: str, limit: int = 20) -> list[AISummary]:
        """Return at most *limit* summaries for *student_id*, newest first."""
