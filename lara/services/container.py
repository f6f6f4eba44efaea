"""Wiring of the long-lived service handles."""
from __future__ import annotations

import logging
from typing import Optional

from lara.config import Settings
from lara.db import Database
from lara.session_store import ExpiringStore, build_store
from lara.services.alignment import AlignmentDetector, KeywordAlignmentDetector
from lara.services.classroom import ClassroomService
from lara.services.events import EventBus
from lara.services.generator import AnthropicFeedbackGenerator, FeedbackGenerator
from lara.services.live_state import LiveSessionState
from lara.services.orchestrator import FeedbackOrchestrator
from lara.services.persistence import PersistenceBridge
from lara.services.quota import QuotaGuard
from lara.services.session_records import SessionRecords

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Builds every handle once and hands them to the routes.

    Collaborators can be passed in explicitly; anything omitted is created
    from ``settings``.
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[ExpiringStore] = None,
        database: Optional[Database] = None,
        generator: Optional[FeedbackGenerator] = None,
        bus: Optional[EventBus] = None,
        detector: Optional[AlignmentDetector] = None,
    ):
        self.settings = settings
        self.store = store or build_store(settings)
        self.database = database or Database.from_settings(settings)
        self.generator = generator or AnthropicFeedbackGenerator(
            settings.ANTHROPIC_API_KEY, settings.FEEDBACK_MODEL, settings.FEEDBACK_MAX_TOKENS
        )
        self.bus = bus or EventBus(settings.EVENT_SEND_TIMEOUT_SECONDS)
        self.detector = detector or KeywordAlignmentDetector()

        ttl = settings.SESSION_TTL_SECONDS
        self.live = LiveSessionState(self.store, ttl)
        self.records = SessionRecords(self.database, ttl)
        self.quota = QuotaGuard(self.database, settings.FEEDBACK_MODEL)
        self.persistence = PersistenceBridge(self.database, self.live)
        self.orchestrator = FeedbackOrchestrator(
            self.live,
            self.records,
            self.quota,
            self.generator,
            self.persistence,
            self.bus,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
        )
        self.classroom = ClassroomService(
            self.live,
            self.records,
            self.quota,
            self.persistence,
            self.orchestrator,
            self.bus,
            self.detector,
        )

    async def start(self) -> None:
        await self.database.create_all()
        logger.info("Services ready (store=%s)", type(self.store).__name__)

    async def aclose(self) -> None:
        close = getattr(self.generator, "close", None)
        if close is not None:
            await close()
        await self.store.close()
        await self.database.dispose()
