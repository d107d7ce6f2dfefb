"""In-process pub/sub transport.

Suitable for development, single-process deployments and tests.  Every
delivery runs as its own asyncio task, matching the PostgreSQL transport's
behaviour so handlers on different channels never block each other.
"""

from __future__ import annotations

from collections import defaultdict

import structlog
from pydantic import BaseModel

from src.interfaces.pubsub_provider import (
    DisconnectCallback,
    IPubSubProvider,
    ISubscription,
    MessageHandler,
)
from src.utils.concurrency import TaskGroupTracker
from src.utils.errors import SubscriptionError

logger = structlog.get_logger(logger_name=__name__)


class _MemorySubscription(ISubscription):
    def __init__(self, provider: InMemoryPubSubProvider, channel: str, handler: MessageHandler) -> None:
        self.channel = channel
        self.handler = handler
        self._provider = provider
        self.active = True

    async def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._provider._remove(self)


class InMemoryPubSubProvider(IPubSubProvider):
    """Channel fan-out inside the current event loop.

    ``published`` keeps every ``(channel, payload_json)`` pair that went
    through :meth:`publish`, which is handy for inspecting side effects.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_MemorySubscription]] = defaultdict(list)
        self._disconnect_callbacks: list[DisconnectCallback] = []
        self._deliveries = TaskGroupTracker("memory_pubsub")
        self._connected = False
        self.published: list[tuple[str, str]] = []

    # ------------------------------------------------------------------
    # IPubSubProvider implementation
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        for subs in self._subscriptions.values():
            for sub in subs:
                sub.active = False
        self._subscriptions.clear()
        self._connected = False

    async def subscribe(self, channel: str, handler: MessageHandler) -> ISubscription:
        if not channel:
            raise SubscriptionError(message="Channel name must not be empty", provider_name="memory")
        await self.connect()
        subscription = _MemorySubscription(self, channel, handler)
        self._subscriptions[channel].append(subscription)
        logger.debug("memory_pubsub_subscribed", channel=channel)
        return subscription

    async def publish(self, channel: str, payload: BaseModel) -> None:
        await self.publish_raw(channel, payload.model_dump_json())

    def add_disconnect_callback(self, callback: DisconnectCallback) -> None:
        if callback not in self._disconnect_callbacks:
            self._disconnect_callbacks.append(callback)

    def remove_disconnect_callback(self, callback: DisconnectCallback) -> None:
        if callback in self._disconnect_callbacks:
            self._disconnect_callbacks.remove(callback)

    def get_provider_name(self) -> str:
        return "memory"

    # ------------------------------------------------------------------
    # Extras
    # ------------------------------------------------------------------

    async def publish_raw(self, channel: str, data: str) -> None:
        """Deliver an already-serialized payload to every subscriber of *channel*."""
        self.published.append((channel, data))
        for subscription in list(self._subscriptions.get(channel, ())):
            self._deliveries.spawn(subscription.handler(data), task_name=f"memory:{channel}")

    def subscriber_count(self, channel: str | None = None) -> int:
        if channel is not None:
            return len(self._subscriptions.get(channel, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    async def simulate_disconnect(self, error: BaseException | None = None) -> None:
        """Drop every subscription and notify disconnect callbacks, like a lost connection."""
        for subs in self._subscriptions.values():
            for sub in subs:
                sub.active = False
        self._subscriptions.clear()
        for callback in list(self._disconnect_callbacks):
            await callback(error)

    async def drain(self) -> None:
        """Wait for every in-flight delivery to finish."""
        await self._deliveries.wait_idle()

    def _remove(self, subscription: _MemorySubscription) -> None:
        subs = self._subscriptions.get(subscription.channel)
        if subs and subscription in subs:
            subs.remove(subscription)
