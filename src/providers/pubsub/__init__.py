"""Pub/sub transports implementing IPubSubProvider."""

from src.providers.pubsub.memory_pubsub import InMemoryPubSubProvider
from src.providers.pubsub.postgres_pubsub import PostgresPubSubProvider

__all__ = ["InMemoryPubSubProvider", "PostgresPubSubProvider"]
