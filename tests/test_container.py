"""Service wiring and application lifecycle."""
import asyncio

from fastapi.testclient import TestClient

from lara.app import app
from lara.config import Settings
from lara.session_store import MemoryStore
from lara.services.container import ServiceContainer
from lara.services.generator import AnthropicFeedbackGenerator


def test_container_builds_from_settings(tmp_path):
    settings = Settings(
        ENVIRONMENT="test",
        STORE_BACKEND="memory",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'wired.db'}",
        GENERATION_TIMEOUT_SECONDS=12.5,
    )
    services = ServiceContainer(settings)

    assert isinstance(services.store, MemoryStore)
    assert isinstance(services.generator, AnthropicFeedbackGenerator)
    assert services.orchestrator.timeout == 12.5
    assert services.classroom.orchestrator is services.orchestrator

    async def lifecycle():
        await services.start()
        await services.aclose()

    asyncio.run(lifecycle())
    assert (tmp_path / "wired.db").exists()


def test_routes_unavailable_without_services():
    app.state.services = None
    client = TestClient(app)
    response = client.post("/api/session/validate-code", json={"task_code": "ABC123"})
    assert response.status_code == 503
