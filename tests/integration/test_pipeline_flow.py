"""End-to-end flow: note insert → notification → summary, and failure → retry.

Everything runs in-process on the memory transport with real SQLite
stores; only the AI provider is a double.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from src.models.events import (
    JOB_FAILED_CHANNEL,
    JOB_RETRY_SUCCESS_CHANNEL,
    NOTE_CREATED_CHANNEL,
    SUMMARY_COMPLETED_CHANNEL,
    SUMMARY_FAILED_CHANNEL,
)
from src.models.jobs import NOTE_SUMMARY_JOB
from src.pipeline.notification_listener import NotificationListener, default_channel_handlers
from src.pipeline.orchestrator import SummaryOrchestrator
from src.pipeline.retry_service import RetryService
from src.providers.ai.registry import ProviderRegistry
from src.providers.pubsub.memory_pubsub import InMemoryPubSubProvider
from src.providers.store.sqlite_failed_job_store import SQLiteFailedJobStore
from src.providers.store.sqlite_note_store import SQLiteNoteStore
from src.utils.errors import TransientProviderError


class _Pipeline:
    def __init__(self, pubsub, note_store, job_store, retry_service, orchestrator, listener) -> None:
        self.pubsub = pubsub
        self.note_store = note_store
        self.job_store = job_store
        self.retry_service = retry_service
        self.orchestrator = orchestrator
        self.listener = listener

    def channels(self) -> list[str]:
        return [channel for channel, _ in self.pubsub.published]


@pytest_asyncio.fixture
async def pipeline(tmp_path: Path, registry: ProviderRegistry):
    pubsub = InMemoryPubSubProvider()
    note_store = SQLiteNoteStore(db_path=tmp_path / "notes.db", pubsub=pubsub)
    job_store = SQLiteFailedJobStore(db_path=tmp_path / "failed_jobs.db")
    await note_store.initialize()
    await job_store.initialize()

    retry_service = RetryService(job_store, pubsub=pubsub)
    orchestrator = SummaryOrchestrator(note_store, registry, retry_service, pubsub=pubsub)
    retry_service.register_handler(NOTE_SUMMARY_JOB, orchestrator.execute_job)
    listener = NotificationListener(
        pubsub, default_channel_handlers(orchestrator.process_note_created), reconnect_delays=(0.0,)
    )
    await listener.start_listening()

    yield _Pipeline(pubsub, note_store, job_store, retry_service, orchestrator, listener)

    await retry_service.stop_retry_processor()
    await listener.stop_listening()


class TestNoteToSummary:
    @pytest.mark.asyncio
    async def test_note_insert_produces_summary(self, pipeline: _Pipeline, fake_provider: MagicMock) -> None:
        note = await pipeline.note_store.add_note("s1", "admin-1", "Led the group project")
        await pipeline.pubsub.drain()

        summaries = await pipeline.note_store.get_summaries("s1")
        assert len(summaries) == 1
        assert summaries[0].last_processed_note_id == note.id
        assert summaries[0].note_count == 1
        assert pipeline.channels() == [NOTE_CREATED_CHANNEL, SUMMARY_COMPLETED_CHANNEL]
        fake_provider.generate_completion.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_each_note_gets_its_own_summary(self, pipeline: _Pipeline) -> None:
        for i in range(3):
            await pipeline.note_store.add_note("s1", "admin-1", f"note {i}")
            await pipeline.pubsub.drain()

        summaries = await pipeline.note_store.get_summaries("s1")
        assert [s.note_count for s in summaries] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_redelivered_notification_is_summarized_once(
        self, pipeline: _Pipeline, fake_provider: MagicMock
    ) -> None:
        await pipeline.note_store.add_note("s1", "admin-1", "hello")
        await pipeline.pubsub.drain()

        _, payload = pipeline.pubsub.published[0]
        await pipeline.pubsub.publish_raw(NOTE_CREATED_CHANNEL, payload)
        await pipeline.pubsub.drain()

        fake_provider.generate_completion.assert_awaited_once()
        assert len(await pipeline.note_store.get_summaries("s1")) == 1

    @pytest.mark.asyncio
    async def test_listener_recovers_after_disconnect(self, pipeline: _Pipeline) -> None:
        await pipeline.pubsub.simulate_disconnect(ConnectionError("server restarted"))
        for _ in range(100):
            if pipeline.listener.is_connected():
                break
            await asyncio.sleep(0.01)
        assert pipeline.listener.is_connected()

        await pipeline.note_store.add_note("s1", "admin-1", "after reconnect")
        await pipeline.pubsub.drain()

        assert len(await pipeline.note_store.get_summaries("s1")) == 1


class TestFailureAndRetry:
    @pytest.mark.asyncio
    async def test_failed_summary_is_retried_to_success(
        self, pipeline: _Pipeline, fake_provider: MagicMock
    ) -> None:
        fake_provider.generate_completion.side_effect = TransientProviderError(
            message="Request timed out after 30s", provider_name="fake", code="TIMEOUT_ERROR"
        )
        note = await pipeline.note_store.add_note("s1", "admin-1", "hello")
        await pipeline.pubsub.drain()

        assert await pipeline.note_store.get_summaries("s1") == []
        assert JOB_FAILED_CHANNEL in pipeline.channels()
        assert SUMMARY_FAILED_CHANNEL in pipeline.channels()
        (job,) = await pipeline.job_store.find_due(datetime.max.replace(tzinfo=timezone.utc), 10)
        assert job.payload["id"] == note.id

        # Not due yet: the first backoff is about a minute away.
        assert await pipeline.retry_service.process_retries() == 0

        fake_provider.generate_completion.side_effect = None
        assert await pipeline.retry_service.retry_job_by_id(job.id) is True
        await pipeline.pubsub.drain()

        summaries = await pipeline.note_store.get_summaries("s1")
        assert len(summaries) == 1
        assert summaries[0].last_processed_note_id == note.id
        assert await pipeline.job_store.get(job.id) is None
        assert pipeline.channels()[-2:] == [SUMMARY_COMPLETED_CHANNEL, JOB_RETRY_SUCCESS_CHANNEL]
        stats = await pipeline.retry_service.get_failed_jobs_stats()
        assert stats.total == 0
