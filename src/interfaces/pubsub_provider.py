"""Abstract base classes for the pub/sub notification transport.

The listener and the publishers only see :class:`IPubSubProvider`.  The
in-memory implementation serves development and tests; the PostgreSQL
implementation maps onto ``LISTEN`` / ``NOTIFY``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from pydantic import BaseModel

#: Receives the raw payload string of one notification.
MessageHandler = Callable[[str], Awaitable[None]]

#: Invoked with the exception (or ``None``) when the transport connection drops.
DisconnectCallback = Callable[[BaseException | None], Awaitable[None]]


class ISubscription(ABC):
    """Handle returned by :meth:`IPubSubProvider.subscribe`."""

    channel: str

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivering messages to this subscription's handler.

        Calling it more than once is a no-op.
        """


# Concrete implementations: InMemoryPubSubProvider, PostgresPubSubProvider
# Located in: src/providers/pubsub/
class IPubSubProvider(ABC):
    """Contract for a channel-based publish/subscribe transport.

    Delivery is at-least-once.  Each delivered message must be handed to
    its handler in an independent task so a slow handler on one channel
    never blocks deliveries on another.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the transport connection (idempotent)."""

    @abstractmethod
    async def close(self) -> None:
        """Close the transport connection and drop all subscriptions."""

    @abstractmethod
    async def subscribe(self, channel: str, handler: MessageHandler) -> ISubscription:
        """Start delivering *channel* messages to *handler*.

        Raises
        ------
        src.utils.errors.SubscriptionError
            If the transport rejects the subscription.
        """

    @abstractmethod
    async def publish(self, channel: str, payload: BaseModel) -> None:
        """Publish *payload* serialized as JSON on *channel*."""

    @abstractmethod
    def add_disconnect_callback(self, callback: DisconnectCallback) -> None:
        """Register *callback* to run when the connection is lost mid-life."""

    @abstractmethod
    def remove_disconnect_callback(self, callback: DisconnectCallback) -> None:
        """Unregister a callback added with :meth:`add_disconnect_callback`."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"memory"`` or ``"postgres"``."""
