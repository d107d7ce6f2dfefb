"""Note and summary records owned by the storage collaborator."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AdminNote(BaseModel):
    """A free-text note written by an admin about a student."""

    model_config = ConfigDict(frozen=True)

    id: str
    student_id: str
    author_id: str
    content: str = Field(min_length=1, max_length=10000)
    created_at: datetime


class AISummary(BaseModel):
    """A generated summary of a student's most recent notes.

    ``note_count`` is the number of notes fed to the provider (bounded by
    the history limit) and ``last_processed_note_id`` the note whose
    creation triggered the run.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    student_id: str
    summary: str
    note_count: int = Field(ge=1)
    last_processed_note_id: str
    created_at: datetime
