"""Typed access to a live session's roster and submissions in the expiring store."""
from __future__ import annotations

from typing import Optional

from lara.models import Student, Submission
from lara.session_store import ExpiringStore


def session_prefix(session_id: str) -> str:
    return f"session:{session_id}:"


def student_key(session_id: str, student_id: str) -> str:
    return f"session:{session_id}:students:{student_id}"


def submission_key(session_id: str, student_id: str) -> str:
    return f"session:{session_id}:submissions:{student_id}"


class LiveSessionState:
    """Reads and writes ``Student``/``Submission`` records for live sessions.

    Every write refreshes the TTL of all keys belonging to the session so the
    session's data expires as one unit, roughly ``ttl`` after the last write.
    """

    def __init__(self, store: ExpiringStore, ttl: int):
        self.store = store
        self.ttl = ttl

    async def get_student(self, session_id: str, student_id: str) -> Optional[Student]:
        raw = await self.store.get(student_key(session_id, student_id))
        return Student.model_validate_json(raw) if raw else None

    async def list_students(self, session_id: str) -> list[Student]:
        raw = await self.store.get_all(f"{session_prefix(session_id)}students:")
        students = [Student.model_validate_json(value) for value in raw.values()]
        return sorted(students, key=lambda s: s.joined_at)

    async def put_student(self, student: Student) -> None:
        await self.store.put(student_key(student.session_id, student.id), student.model_dump_json(), self.ttl)
        await self.touch(student.session_id)

    async def get_submission(self, session_id: str, student_id: str) -> Optional[Submission]:
        raw = await self.store.get(submission_key(session_id, student_id))
        return Submission.model_validate_json(raw) if raw else None

    async def list_submissions(self, session_id: str) -> dict[str, Submission]:
        raw = await self.store.get_all(f"{session_prefix(session_id)}submissions:")
        submissions = (Submission.model_validate_json(value) for value in raw.values())
        return {submission.student_id: submission for submission in submissions}

    async def put_submission(self, submission: Submission) -> None:
        await self.store.put(
            submission_key(submission.session_id, submission.student_id),
            submission.model_dump_json(),
            self.ttl,
        )
        await self.touch(submission.session_id)

    async def touch(self, session_id: str) -> None:
        """Extend every key of the session to at least a full TTL from now."""
        for key in await self.store.keys(session_prefix(session_id)):
            await self.store.extend_ttl(key, self.ttl)
