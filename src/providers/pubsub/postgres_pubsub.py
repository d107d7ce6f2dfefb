"""PostgreSQL LISTEN/NOTIFY transport using ``asyncpg``.

A single dedicated connection carries every ``LISTEN`` and ``NOTIFY``.
asyncpg allows only one statement at a time per connection, so every
statement goes through ``self._lock``.  Notifications are published with a
parameterized ``SELECT pg_notify($1, $2)``; the payload is never spliced
into SQL text.
"""

from __future__ import annotations

import asyncio
from typing import Any

import asyncpg
import structlog
from pydantic import BaseModel

from src.interfaces.pubsub_provider import (
    DisconnectCallback,
    IPubSubProvider,
    ISubscription,
    MessageHandler,
)
from src.utils.concurrency import TaskGroupTracker
from src.utils.errors import StorageError, SubscriptionError

logger = structlog.get_logger(logger_name=__name__)

_NOTIFY_SQL = "SELECT pg_notify($1, $2)"

# Errors asyncpg raises for a broken or busy connection.
_CONNECTION_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class _PostgresSubscription(ISubscription):
    def __init__(self, provider: PostgresPubSubProvider, channel: str, callback: Any) -> None:
        self.channel = channel
        self._provider = provider
        self._callback = callback
        self._active = True

    async def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        await self._provider._unlisten(self.channel, self._callback)


class PostgresPubSubProvider(IPubSubProvider):
    """Pub/sub over PostgreSQL ``LISTEN`` / ``NOTIFY``.

    Parameters
    ----------
    dsn:
        libpq connection string, e.g. ``postgresql://user:pw@host/db``.
    connect_timeout:
        Seconds to wait for the connection to open.
    """

    def __init__(self, dsn: str, connect_timeout: float = 10.0) -> None:
        self._dsn = dsn
        self._connect_timeout = connect_timeout
        self._conn: asyncpg.Connection | None = None
        self._lock = asyncio.Lock()
        self._disconnect_callbacks: list[DisconnectCallback] = []
        self._deliveries = TaskGroupTracker("postgres_pubsub")
        self._closing = False

    # ------------------------------------------------------------------
    # IPubSubProvider implementation
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self._conn is not None and not self._conn.is_closed():
            return
        try:
            self._conn = await asyncpg.connect(dsn=self._dsn, timeout=self._connect_timeout)
        except _CONNECTION_ERRORS as exc:
            raise SubscriptionError(
                message=f"Could not connect to PostgreSQL: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        self._closing = False
        self._conn.add_termination_listener(self._on_termination)
        logger.info("postgres_pubsub_connected")

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None or conn.is_closed():
            return
        self._closing = True
        conn.remove_termination_listener(self._on_termination)
        await conn.close()
        logger.info("postgres_pubsub_closed")

    async def subscribe(self, channel: str, handler: MessageHandler) -> ISubscription:
        await self.connect()
        assert self._conn is not None

        def _callback(connection: Any, pid: int, notified_channel: str, payload: str) -> None:
            self._deliveries.spawn(handler(payload), task_name=f"postgres:{notified_channel}")

        try:
            async with self._lock:
                await self._conn.add_listener(channel, _callback)
        except _CONNECTION_ERRORS as exc:
            raise SubscriptionError(
                message=f"LISTEN {channel} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("postgres_pubsub_subscribed", channel=channel)
        return _PostgresSubscription(self, channel, _callback)

    async def publish(self, channel: str, payload: BaseModel) -> None:
        await self.connect()
        assert self._conn is not None
        try:
            async with self._lock:
                await self._conn.execute(_NOTIFY_SQL, channel, payload.model_dump_json())
        except _CONNECTION_ERRORS as exc:
            raise StorageError(
                message=f"NOTIFY {channel} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def add_disconnect_callback(self, callback: DisconnectCallback) -> None:
        if callback not in self._disconnect_callbacks:
            self._disconnect_callbacks.append(callback)

    def remove_disconnect_callback(self, callback: DisconnectCallback) -> None:
        if callback in self._disconnect_callbacks:
            self._disconnect_callbacks.remove(callback)

    def get_provider_name(self) -> str:
        return "postgres"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _unlisten(self, channel: str, callback: Any) -> None:
        conn = self._conn
        if conn is None or conn.is_closed():
            return
        async with self._lock:
            await conn.remove_listener(channel, callback)

    def _on_termination(self, connection: Any) -> None:
        if self._closing:
            return
        logger.warning("postgres_pubsub_connection_lost")
        self._conn = None
        for callback in list(self._disconnect_callbacks):
            self._deliveries.spawn(callback(None), task_name="postgres:disconnect")
