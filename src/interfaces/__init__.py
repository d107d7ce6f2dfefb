"""Public interface definitions for all external collaborators.

Every AI backend, notification transport and datastore used by noteScribe
is accessed exclusively through the abstract base classes in this package.
Services depend on these contracts, never on concrete implementations, so
providers can be swapped by configuration alone.

Interface → implementations
---------------------------
    IAIProvider       →  ClaudeProvider, OpenAIProvider, OllamaProvider
    IPubSubProvider   →  InMemoryPubSubProvider, PostgresPubSubProvider
    INoteStore        →  SQLiteNoteStore
    IFailedJobStore   →  SQLiteFailedJobStore
"""

from src.interfaces.ai_provider import IAIProvider
from src.interfaces.failed_job_store import IFailedJobStore
from src.interfaces.note_store import INoteStore
from src.interfaces.pubsub_provider import (
    DisconnectCallback,
    IPubSubProvider,
    ISubscription,
    MessageHandler,
)

__all__ = [
    "DisconnectCallback",
    "IAIProvider",
    "IFailedJobStore",
    "INoteStore",
    "IPubSubProvider",
    "ISubscription",
    "MessageHandler",
]
