"""One-way promotion of live session state into the durable store.

``persist`` snapshots the whole roster and latest submissions before opening a
write transaction, then upserts by entity id so repeated or interrupted
attempts never duplicate rows. Afterwards, ``mirror`` copies individual
changes across on a best-effort basis: the expiring store write is what makes
an operation succeed, so mirror failures are logged and swallowed.
``load_student`` reads a saved student back once the live keys are gone.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import select

from lara.db import Database, FeedbackRecord, StudentRecord, SubmissionRecord, TaskSession
from lara.errors import AlreadyPersisted, NotFound, NotLive, SessionExpired
from lara.models import Feedback, Student, Submission, utcnow
from lara.services.live_state import LiveSessionState

logger = logging.getLogger(__name__)


def student_record(student: Student) -> StudentRecord:
    return StudentRecord(
        id=student.id,
        session_id=student.session_id,
        name=student.name,
        status=student.status.value,
        joined_at=student.joined_at,
    )


def submission_record(submission: Submission) -> SubmissionRecord:
    return SubmissionRecord(
        id=submission.id,
        student_id=submission.student_id,
        session_id=submission.session_id,
        content=submission.content,
        previous_content=submission.previous_content,
        time_elapsed=submission.time_elapsed,
        revision_count=submission.revision_count,
        is_revision=submission.is_revision,
        feedback_status=submission.feedback_status.value,
        validation_warnings=list(submission.validation_warnings),
        selected_next_step_id=submission.selected_next_step_id,
        detection_result=submission.detection_result,
        timestamp=submission.timestamp,
    )


def feedback_record(submission: Submission) -> FeedbackRecord:
    feedback = submission.feedback
    return FeedbackRecord(
        # one feedback per submission, so the submission id is a stable key
        id=submission.id,
        submission_id=submission.id,
        goal=feedback.goal,
        mastery_achieved=feedback.mastery_achieved,
        strengths=[item.model_dump() for item in feedback.strengths],
        growth_areas=[item.model_dump() for item in feedback.growth_areas],
        next_steps=[step.model_dump() for step in feedback.next_steps],
    )


def student_from_record(row: StudentRecord) -> Student:
    return Student(id=row.id, session_id=row.session_id, name=row.name, joined_at=row.joined_at, status=row.status)


def submission_from_record(row: SubmissionRecord, feedback: Optional[FeedbackRecord]) -> Submission:
    return Submission(
        id=row.id,
        student_id=row.student_id,
        session_id=row.session_id,
        content=row.content,
        timestamp=row.timestamp,
        time_elapsed=row.time_elapsed,
        revision_count=row.revision_count,
        previous_content=row.previous_content,
        feedback_status=row.feedback_status,
        validation_warnings=list(row.validation_warnings or []),
        is_revision=row.is_revision,
        selected_next_step_id=row.selected_next_step_id,
        detection_result=row.detection_result,
        feedback=Feedback(
            goal=feedback.goal,
            mastery_achieved=feedback.mastery_achieved,
            strengths=feedback.strengths,
            growth_areas=feedback.growth_areas,
            next_steps=feedback.next_steps,
        )
        if feedback is not None
        else None,
    )


class PersistenceBridge:
    def __init__(self, database: Database, live: LiveSessionState):
        self.database = database
        self.live = live

    async def _upsert(self, db, students: Iterable[Student], submissions: Iterable[Submission]) -> None:
        for student in students:
            await db.merge(student_record(student))
        await db.flush()
        submissions = list(submissions)
        for submission in submissions:
            await db.merge(submission_record(submission))
        await db.flush()
        for submission in submissions:
            if submission.feedback is not None:
                await db.merge(feedback_record(submission))

    async def persist(self, session_id: str, teacher_id: str) -> dict[str, int]:
        async with self.database.session() as db:
            session = await db.get(TaskSession, session_id)
        if session is None or session.teacher_id != teacher_id:
            raise NotFound("Session not found")
        if not session.is_live:
            raise NotLive()
        if session.data_persisted:
            raise AlreadyPersisted()
        if session.data_expires_at is not None and session.data_expires_at < utcnow():
            raise SessionExpired()

        # Read everything from the expiring store before any write transaction.
        students = await self.live.list_students(session_id)
        submissions = list((await self.live.list_submissions(session_id)).values())

        async with self.database.session() as db:
            async with db.begin():
                await self._upsert(db, students, submissions)
                row = await db.get(TaskSession, session_id)
                row.data_persisted = True

        logger.info(
            "Persisted session %s: %d students, %d submissions", session_id, len(students), len(submissions)
        )
        return {"students": len(students), "submissions": len(submissions)}

    async def mirror(
        self,
        students: Iterable[Student] = (),
        submissions: Iterable[Submission] = (),
    ) -> bool:
        """Copy changed entities of a saved session. Never raises."""
        try:
            async with self.database.session() as db:
                async with db.begin():
                    await self._upsert(db, students, submissions)
        except Exception:
            logger.exception("Durable mirror write failed; live state remains authoritative")
            return False
        return True

    async def load_student(
        self, session_id: str, student_id: str
    ) -> Optional[tuple[Student, Optional[Submission]]]:
        """Read a saved student and their latest submission back from the durable store."""
        async with self.database.session() as db:
            row = await db.get(StudentRecord, student_id)
            if row is None or row.session_id != session_id:
                return None
            latest = await db.scalar(
                select(SubmissionRecord)
                .where(SubmissionRecord.student_id == student_id)
                .order_by(SubmissionRecord.timestamp.desc())
                .limit(1)
            )
            feedback = None
            if latest is not None:
                feedback = await db.scalar(select(FeedbackRecord).where(FeedbackRecord.submission_id == latest.id))
        submission = submission_from_record(latest, feedback) if latest is not None else None
        return student_from_record(row), submission
