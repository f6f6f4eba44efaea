"""Service layer for live classroom sessions."""
from lara.services.classroom import ClassroomService
from lara.services.container import ServiceContainer
from lara.services.events import EventBus
from lara.services.orchestrator import BatchResult, FeedbackOrchestrator

__all__ = [
    "BatchResult",
    "ClassroomService",
    "EventBus",
    "FeedbackOrchestrator",
    "ServiceContainer",
]
