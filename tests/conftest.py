"""Shared pytest fixtures for the noteScribe test suite."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from src.interfaces.ai_provider import IAIProvider
from src.models.completion import CompletionResult, ProviderConfig, ProviderInfo, TokenUsage
from src.models.events import NoteCreatedEvent
from src.providers.ai.registry import ProviderRegistry
from src.providers.pubsub.memory_pubsub import InMemoryPubSubProvider
from src.providers.store.sqlite_failed_job_store import SQLiteFailedJobStore
from src.providers.store.sqlite_note_store import SQLiteNoteStore

FAKE_PROVIDER = "fake"
FAKE_MODEL = "fake-model"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_completion(content: str = "S") -> CompletionResult:
    return CompletionResult(
        content=content,
        usage=TokenUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
        model=FAKE_MODEL,
        finish_reason="stop",
    )


def make_fake_provider(
    content: str = "S",
    healthy: bool = True,
    models: tuple[str, ...] = (),
    name: str = FAKE_PROVIDER,
) -> MagicMock:
    """A provider double whose completion and health check are AsyncMocks."""
    provider = MagicMock(spec=IAIProvider)
    provider.name = name
    provider.supported_models = models
    provider.initialize = AsyncMock()
    provider.generate_completion = AsyncMock(return_value=make_completion(content))
    provider.health_check = AsyncMock(return_value=healthy)
    provider.get_provider_info = MagicMock(
        return_value=ProviderInfo(name=f"{name} provider", version="1.0", capabilities=["summarization"])
    )
    return provider


def make_note_event(student_id: str = "student-1", note_id: str | None = None) -> NoteCreatedEvent:
    return NoteCreatedEvent(
        id=note_id or str(uuid.uuid4()),
        student_id=student_id,
        author_id="admin-1",
        created_at=datetime.now(timezone.utc),
    )


async def activate_fake(provider: Any, **registry_kwargs: Any) -> ProviderRegistry:
    """Build a registry whose only entry is *provider* and make it active."""
    registry = ProviderRegistry(
        factories={FAKE_PROVIDER: lambda: provider},
        default_models={FAKE_PROVIDER: FAKE_MODEL},
        **registry_kwargs,
    )
    await registry.activate(FAKE_PROVIDER, ProviderConfig(api_key="test-key"))
    return registry


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def pubsub() -> InMemoryPubSubProvider:
    return InMemoryPubSubProvider()


@pytest.fixture
def fake_provider() -> MagicMock:
    return make_fake_provider()


@pytest_asyncio.fixture
async def registry(fake_provider: MagicMock) -> ProviderRegistry:
    return await activate_fake(fake_provider)


@pytest_asyncio.fixture
async def note_store(tmp_path: Path) -> SQLiteNoteStore:
    """Note store backed by a temp database, without notifications."""
    store = SQLiteNoteStore(db_path=tmp_path / "notes.db")
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def job_store(tmp_path: Path) -> SQLiteFailedJobStore:
    store = SQLiteFailedJobStore(db_path=tmp_path / "failed_jobs.db")
    await store.initialize()
    return store
