"""Event-driven summarization pipeline: listener, orchestrator and retry service."""

from src.pipeline.notification_listener import ChannelHandler, NotificationListener
from src.pipeline.orchestrator import SummaryOrchestrator
from src.pipeline.retry_service import RetryService

__all__ = [
    "ChannelHandler",
    "NotificationListener",
    "RetryService",
    "SummaryOrchestrator",
]
