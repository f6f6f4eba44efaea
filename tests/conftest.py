"""Pytest configuration and fixtures."""
import asyncio
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from lara.app import app
from lara.auth import student_token, teacher_token
from lara.config import Settings
from lara.db import Task, Teacher
from lara.models import Feedback, FeedbackItem, NextStep
from lara.session_store import MemoryStore
from lara.services.container import ServiceContainer

TASK_CODE = "ABC123"
TEACHER_ID = "teacher-1"
OTHER_TEACHER_ID = "teacher-2"
CRITERIA = [
    "Clear claim stated in the opening sentence",
    "Supporting evidence from the source text",
]


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_feedback(mastery: bool = False) -> Feedback:
    return Feedback(
        goal="Write a persuasive paragraph with a clear claim",
        mastery_achieved=mastery,
        strengths=[
            FeedbackItem(id="str-0", type="task", text="Your claim is stated up front", anchors=["Dogs are better"]),
            FeedbackItem(id="str-1", type="process", text="You planned before drafting", anchors=["First,"]),
        ],
        growth_areas=[
            FeedbackItem(
                id="grow-0",
                type="self_reg",
                text="Check each reason links back to your claim",
                anchors=["because they bark"],
            ),
        ],
        next_steps=[
            NextStep(
                id="next-0",
                action_verb="Add",
                target="evidence quote from the source",
                success_indicator="each reason has a quoted example",
                reflection_prompt="Which quote supports you best?",
                cta_text="Add evidence",
            ),
        ],
    )


class ScriptedGenerator:
    """Feedback generator double keyed by submission text."""

    def __init__(self):
        self.calls: list[tuple[str, list[str], str]] = []
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}

    async def generate(self, prompt: str, criteria: list[str], submission_text: str) -> Feedback:
        self.calls.append((prompt, list(criteria), submission_text))
        if submission_text in self.delays:
            await asyncio.sleep(self.delays[submission_text])
        if submission_text in self.failures:
            raise self.failures[submission_text]
        return make_feedback()


class RecordingSubscriber:
    def __init__(self):
        self.messages: list[dict] = []

    async def send(self, message: dict) -> None:
        self.messages.append(message)

    @property
    def events(self) -> list[str]:
        return [message["event"] for message in self.messages]


async def _seed(services: ServiceContainer) -> None:
    await services.database.create_all()
    async with services.database.session() as db:
        db.add_all(
            [
                Teacher(id=TEACHER_ID, email="ms.rivera@example.edu", name="Ms Rivera", tier="starter"),
                Teacher(id=OTHER_TEACHER_ID, email="mr.okafor@example.edu", name="Mr Okafor", tier="classroom"),
                Task(
                    id="task-1",
                    teacher_id=TEACHER_ID,
                    title="Persuasive paragraph",
                    prompt="Argue whether dogs or cats make better pets.",
                    task_code=TASK_CODE,
                    universal_expectations=False,
                    success_criteria=CRITERIA,
                    status="active",
                ),
                Task(
                    id="task-archived",
                    teacher_id=TEACHER_ID,
                    title="Old task",
                    prompt="Describe your weekend.",
                    task_code="OLD999",
                    status="archived",
                ),
            ]
        )
        await db.commit()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        ENVIRONMENT="test",
        STORE_BACKEND="memory",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'lara.db'}",
        SESSION_TTL_SECONDS=3600,
        GENERATION_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def services(settings, clock, generator):
    """Service container backed by a fake-clock memory store and a seeded SQLite file."""
    container = ServiceContainer(settings, store=MemoryStore(clock), generator=generator)
    asyncio.run(_seed(container))
    yield container
    asyncio.run(container.database.dispose())


@pytest.fixture
def join(services):
    """Join the seeded task's live session as a new student."""

    def _join(name: str = "Ada", code: str = TASK_CODE):
        student, session, _ = asyncio.run(services.classroom.join(code, name))
        return student, session

    return _join


@pytest.fixture
def update_row(services):
    """Apply a column update to a durable-store row."""

    def _update(model, row_id: str, **values):
        async def run():
            async with services.database.session() as db:
                await db.execute(update(model).where(model.id == row_id).values(**values))
                await db.commit()

        asyncio.run(run())

    return _update


@pytest.fixture
def get_row(services):
    def _get(model, row_id: str):
        async def run():
            async with services.database.session() as db:
                return await db.get(model, row_id)

        return asyncio.run(run())

    return _get


@pytest.fixture
def client(services):
    """Create test client wired to the test services."""
    app.state.services = services
    with TestClient(app) as test_client:
        yield test_client
    app.state.services = None


@pytest.fixture
def teacher_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {teacher_token(TEACHER_ID)}"}


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def student_headers():
    def _headers(student_id: str, session_id: Optional[str]):
        return bearer(student_token(student_id, session_id))

    return _headers

