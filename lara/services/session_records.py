"""Durable session and task records used by the live session operations."""
from __future__ import annotations

import logging
import re
import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lara.db import Database, Task, TaskSession, Teacher
from lara.errors import NotFound
from lara.models import SessionInfo, TaskSummary, utcnow

logger = logging.getLogger(__name__)

COUNTERS = ("total_students", "submissions", "feedbacks_generated", "feedback_sent")


def normalize_task_code(code: str) -> str:
    return re.sub(r"[-\s]", "", code).upper()


def _session_info(row: TaskSession) -> SessionInfo:
    return SessionInfo(
        id=row.id,
        task_id=row.task_id,
        teacher_id=row.teacher_id,
        is_live=row.is_live,
        started_at=row.started_at,
        data_expires_at=row.data_expires_at,
        data_persisted=row.data_persisted,
        total_students=row.total_students,
        submissions=row.submissions,
        feedbacks_generated=row.feedbacks_generated,
        feedback_sent=row.feedback_sent,
    )


def _task_summary(row: Task) -> TaskSummary:
    return TaskSummary(
        id=row.id,
        teacher_id=row.teacher_id,
        title=row.title,
        prompt=row.prompt,
        success_criteria=list(row.success_criteria or []),
        universal_expectations=row.universal_expectations,
        status=row.status,
    )


class SessionRecords:
    def __init__(self, database: Database, ttl: int):
        self.database = database
        self.ttl = ttl

    async def get_session(self, session_id: str, teacher_id: Optional[str] = None) -> SessionInfo:
        """Load a session, optionally requiring that ``teacher_id`` owns it."""
        async with self.database.session() as db:
            row = await db.get(TaskSession, session_id)
        if row is None or (teacher_id is not None and row.teacher_id != teacher_id):
            raise NotFound("Session not found")
        return _session_info(row)

    async def get_task(self, task_id: str) -> TaskSummary:
        async with self.database.session() as db:
            row = await db.get(Task, task_id)
        if row is None:
            raise NotFound("Task not found")
        return _task_summary(row)

    async def teacher_tier(self, teacher_id: str) -> Optional[str]:
        async with self.database.session() as db:
            teacher = await db.get(Teacher, teacher_id)
        return teacher.tier if teacher else None

    async def find_task_by_code(self, task_code: str) -> Optional[TaskSummary]:
        async with self.database.session() as db:
            row = await db.scalar(select(Task).where(Task.task_code == normalize_task_code(task_code)))
        return _task_summary(row) if row else None

    async def find_or_create_live_session(self, task: TaskSummary) -> SessionInfo:
        """Return the task's live session, creating it on first join."""
        for _ in range(2):
            async with self.database.session() as db:
                row = await db.scalar(
                    select(TaskSession).where(TaskSession.task_id == task.id, TaskSession.is_live.is_(True))
                )
                if row is not None:
                    return _session_info(row)
                now = utcnow()
                row = TaskSession(
                    id=str(uuid.uuid4()),
                    task_id=task.id,
                    teacher_id=task.teacher_id,
                    is_live=True,
                    started_at=now,
                    data_expires_at=now + timedelta(seconds=self.ttl),
                )
                db.add(row)
                try:
                    await db.commit()
                except IntegrityError:
                    # another join created the live session first
                    await db.rollback()
                    continue
                logger.info("Started live session %s for task %s", row.id, task.id)
                return _session_info(row)
        raise NotFound("Could not open a live session for this task")

    async def increment(self, session_id: str, **counts: int) -> None:
        """Best-effort counter bump; analytics never fail the caller."""
        values = {name: getattr(TaskSession, name) + amount for name, amount in counts.items() if name in COUNTERS}
        if not values:
            return
        try:
            async with self.database.session() as db:
                await db.execute(update(TaskSession).where(TaskSession.id == session_id).values(**values))
                await db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to update counters %s for session %s", sorted(values), session_id)

    async def is_persisted(self, session_id: str) -> bool:
        """Best-effort ``data_persisted`` read; an unreachable durable store reads as not saved."""
        try:
            async with self.database.session() as db:
                row = await db.get(TaskSession, session_id)
        except SQLAlchemyError:
            logger.exception("Could not read persisted flag for session %s; skipping mirror", session_id)
            return False
        return bool(row is not None and row.data_persisted)

    async def refresh_expiry(self, session_id: str) -> None:
        """Keep ``data_expires_at`` in step with the expiring store TTL."""
        try:
            async with self.database.session() as db:
                await db.execute(
                    update(TaskSession)
                    .where(TaskSession.id == session_id)
                    .values(data_expires_at=utcnow() + timedelta(seconds=self.ttl))
                )
                await db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to refresh expiry for session %s", session_id)
