"""Live classroom operations: join, submit, restore, review, release and removal.

Every operation follows the same order: check the state machine, write the
expiring store, mirror to the durable store when the session has been saved,
then publish events. Only the expiring store write can fail the operation.
"""
from __future__ import annotations

import logging
import uuid
from collections import Counter
from typing import Any, Optional

from pydantic import ValidationError

from lara.errors import AlreadyPersisted, InvalidTransition, LimitExceeded, NotFound, Unauthorized
from lara.models import Feedback, FeedbackStatus, SessionInfo, Student, StudentStatus, Submission, utcnow
from lara.services import state_machine
from lara.services.alignment import AlignmentDetector
from lara.services.events import EventBus
from lara.services.live_state import LiveSessionState
from lara.services.orchestrator import BatchResult, FeedbackOrchestrator
from lara.services.persistence import PersistenceBridge
from lara.services.quota import QuotaGuard, tier_config
from lara.services.session_records import SessionRecords

logger = logging.getLogger(__name__)


class ClassroomService:
    def __init__(
        self,
        live: LiveSessionState,
        records: SessionRecords,
        quota: QuotaGuard,
        persistence: PersistenceBridge,
        orchestrator: FeedbackOrchestrator,
        bus: EventBus,
        detector: AlignmentDetector,
    ):
        self.live = live
        self.records = records
        self.quota = quota
        self.persistence = persistence
        self.orchestrator = orchestrator
        self.bus = bus
        self.detector = detector

    async def _require_student(self, session_id: str, student_id: str) -> Student:
        student = await self.live.get_student(session_id, student_id)
        if student is None:
            raise NotFound("Student not found")
        return student

    async def _require_submission(self, session_id: str, student_id: str) -> Submission:
        submission = await self.live.get_submission(session_id, student_id)
        if submission is None:
            raise NotFound("Submission not found")
        return submission

    # -- students -----------------------------------------------------------

    async def validate_code(self, task_code: str) -> dict[str, Any]:
        task = await self.records.find_task_by_code(task_code)
        if task is None:
            raise NotFound("Invalid code. Please check and try again.")
        if task.status != "active":
            raise Unauthorized("This task is not currently active.")
        return {"valid": True, "task_title": task.title}

    async def join(self, task_code: str, student_name: str) -> tuple[Student, SessionInfo, dict[str, Any]]:
        task = await self.records.find_task_by_code(task_code)
        if task is None:
            raise NotFound("Task not found")
        if task.status != "active":
            raise Unauthorized("Task is not active")

        session = await self.records.find_or_create_live_session(task)
        roster = await self.live.list_students(session.id)
        limit = tier_config(await self.records.teacher_tier(task.teacher_id)).max_students_per_session
        if sum(1 for s in roster if s.status != StudentStatus.REMOVED) >= limit:
            raise LimitExceeded(f"This session is full ({limit} students).", limit=limit)

        student = Student(id=str(uuid.uuid4()), session_id=session.id, name=student_name.strip())
        await self.live.put_student(student)

        await self.records.increment(session.id, total_students=1)
        await self.records.refresh_expiry(session.id)
        if session.data_persisted:
            await self.persistence.mirror(students=[student])

        await self.bus.emit_to_session_teacher(
            session.id, "student-joined", {"student_id": student.id, "student_name": student.name}
        )
        await self.bus.emit_to_teacher(
            task.teacher_id,
            "student-joined",
            {"session_id": session.id, "task_id": task.id, "student_id": student.id, "student_name": student.name},
        )
        logger.info("Student %s joined session %s", student.id, session.id)
        return student, session, task.model_dump(exclude={"teacher_id"})

    async def submit(
        self,
        session_id: str,
        student_id: str,
        content: str,
        time_elapsed: Optional[int] = None,
        selected_next_step_id: Optional[str] = None,
    ) -> Submission:
        student = await self._require_student(session_id, student_id)
        next_status = state_machine.on_submit(student.status)

        existing = await self.live.get_submission(session_id, student_id)
        revision_count = existing.revision_count + 1 if existing else 0
        submission = Submission(
            id=str(uuid.uuid4()),
            student_id=student_id,
            session_id=session_id,
            content=content,
            time_elapsed=time_elapsed,
            revision_count=revision_count,
            previous_content=existing.content if existing else None,
            is_revision=revision_count > 0,
        )

        step = None
        if existing and existing.feedback and selected_next_step_id:
            step = existing.feedback.find_next_step(selected_next_step_id)
        if step is not None:
            submission.selected_next_step_id = step.id
            submission.selected_next_step = step
            submission.detection_result = self._detect(existing.content, content, step)

        await self.live.put_submission(submission)
        student.status = next_status
        await self.live.put_student(student)

        await self.records.increment(session_id, submissions=1)
        await self.records.refresh_expiry(session_id)
        if await self.records.is_persisted(session_id):
            await self.persistence.mirror(students=[student], submissions=[submission])

        await self.bus.emit_to_session_teacher(
            session_id,
            "student-submitted",
            {"student_id": student_id, "revision_count": revision_count, "is_revision": submission.is_revision},
        )
        return submission

    def _detect(self, previous: str, current: str, step) -> Optional[str]:
        try:
            return self.detector.detect(previous, current, step)
        except Exception:
            logger.exception("Revision alignment detection failed; omitting result")
            return None

    async def poll_feedback(self, session_id: str, student_id: str) -> dict[str, Any]:
        student = await self._require_student(session_id, student_id)
        submission = await self.live.get_submission(session_id, student_id)
        if submission and submission.feedback_status == FeedbackStatus.RELEASED and submission.feedback:
            return {
                "status": student.status,
                "feedback_ready": True,
                "feedback": submission.feedback,
                "mastery_confirmed": submission.feedback.mastery_achieved,
            }
        waiting = student.status in (StudentStatus.READY_FOR_FEEDBACK, StudentStatus.GENERATING)
        return {
            "status": student.status,
            "feedback_ready": False,
            "message": "Your teacher is preparing your feedback." if waiting else "Waiting for feedback.",
        }

    async def restore(self, session_id: str, student_id: str) -> dict[str, Any]:
        """State a returning student needs to pick up where they left off.

        The expiring store is authoritative. Durable rows are only consulted
        once the live keys are gone and the session was saved.
        """
        student = await self.live.get_student(session_id, student_id)
        submission = await self.live.get_submission(session_id, student_id) if student else None
        session = await self.records.get_session(session_id)
        if student is None:
            saved = await self.persistence.load_student(session_id, student_id) if session.data_persisted else None
            if saved is None:
                raise NotFound("Student not found")
            student, submission = saved
        if student.status == StudentStatus.REMOVED:
            raise Unauthorized("You have been removed from this session.")

        task = await self.records.get_task(session.task_id)
        released = (
            submission is not None
            and submission.feedback_status == FeedbackStatus.RELEASED
            and submission.feedback is not None
        )
        return {
            "student": student,
            "session_id": session_id,
            "status": student.status,
            "task": task.model_dump(exclude={"teacher_id"}),
            "feedback_ready": released,
            "feedback": submission.feedback if released else None,
            "mastery_confirmed": bool(released and submission.feedback.mastery_achieved),
            "submission": {"content": submission.content, "timestamp": submission.timestamp} if submission else None,
        }

    # -- teachers -----------------------------------------------------------

    async def dashboard(self, session_id: str, teacher_id: str) -> dict[str, Any]:
        session = await self.records.get_session(session_id, teacher_id)
        task = await self.records.get_task(session.task_id)
        students = await self.live.list_students(session_id)
        submissions = await self.live.list_submissions(session_id)
        counts = Counter(student.status for student in students)
        quota = await self.quota.check(teacher_id)
        return {
            "session": session,
            "task": task,
            "students": [
                {**student.model_dump(), "submission": submissions.get(student.id)} for student in students
            ],
            "stats": {"total": len(students), **{status.value: counts.get(status, 0) for status in StudentStatus}},
            "usage": quota,
        }

    async def generate_feedback(
        self, session_id: str, teacher_id: str, student_ids: Optional[list[str]] = None
    ) -> BatchResult:
        session = await self.records.get_session(session_id, teacher_id)
        task = await self.records.get_task(session.task_id)
        return await self.orchestrator.generate(session, task, student_ids)

    async def approve(self, session_id: str, teacher_id: str, student_id: str, is_mastered: bool) -> dict[str, Any]:
        session = await self.records.get_session(session_id, teacher_id)
        submission = await self._require_submission(session_id, student_id)
        student = await self._require_student(session_id, student_id)
        if submission.feedback is None:
            raise InvalidTransition("No generated feedback to approve.")

        next_status = state_machine.on_approval(student.status, is_mastered)
        submission.feedback_status = state_machine.advance_feedback(
            submission.feedback_status, FeedbackStatus.RELEASED
        )
        released_at = utcnow()
        submission.feedback.mastery_achieved = is_mastered or submission.feedback.mastery_achieved
        submission.feedback.approved_by = teacher_id
        submission.feedback.approved_at = released_at
        await self.live.put_submission(submission)
        student.status = next_status
        await self.live.put_student(student)

        await self.records.increment(session_id, feedback_sent=1)
        await self.records.refresh_expiry(session_id)
        if session.data_persisted:
            await self.persistence.mirror(students=[student], submissions=[submission])

        await self.bus.emit_to_student(
            student_id,
            "feedback-released",
            {"status": student.status, "mastery_confirmed": submission.feedback.mastery_achieved},
        )
        await self.bus.emit_to_session_teacher(
            session_id, "status-changed", {"student_id": student_id, "status": student.status}
        )
        return {"approved": True, "status": student.status, "released_at": released_at}

    async def edit_feedback(
        self, session_id: str, teacher_id: str, student_id: str, changes: dict[str, Any]
    ) -> Feedback:
        session = await self.records.get_session(session_id, teacher_id)
        submission = await self._require_submission(session_id, student_id)
        if submission.feedback is None:
            raise InvalidTransition("No feedback to edit yet.")

        merged = {**submission.feedback.model_dump(), **changes}
        try:
            submission.feedback = Feedback.model_validate(merged)
        except ValidationError as exc:
            raise InvalidTransition("Edited feedback is not valid.", errors=exc.errors(include_url=False)) from exc
        await self.live.put_submission(submission)
        await self.records.refresh_expiry(session_id)

        if session.data_persisted:
            await self.persistence.mirror(submissions=[submission])
        if submission.feedback_status == FeedbackStatus.RELEASED:
            await self.bus.emit_to_student(student_id, "feedback-updated", {"feedback": submission.feedback})
        return submission.feedback

    async def remove_student(self, session_id: str, teacher_id: str, student_id: str) -> Student:
        session = await self.records.get_session(session_id, teacher_id)
        student = await self._require_student(session_id, student_id)
        student.status = state_machine.on_removal(student.status)
        await self.live.put_student(student)
        await self.records.refresh_expiry(session_id)

        if session.data_persisted:
            await self.persistence.mirror(students=[student])
        await self.bus.emit_to_student(student_id, "student-removed", {"session_id": session_id})
        await self.bus.emit_to_session_teacher(session_id, "student-removed", {"student_id": student_id})
        return student

    async def persist(self, session_id: str, teacher_id: str) -> dict[str, Any]:
        try:
            counts = await self.persistence.persist(session_id, teacher_id)
        except AlreadyPersisted as exc:
            return {"persisted": True, "already_persisted": True, "message": exc.detail}
        await self.bus.emit_to_session_teacher(session_id, "session-persisted", counts)
        await self.bus.emit_to_session(session_id, "session-persisted", {"session_id": session_id})
        return {"persisted": True, "already_persisted": False, **counts}

    async def usage(self, teacher_id: str) -> dict[str, Any]:
        quota = await self.quota.check(teacher_id)
        return {**quota.model_dump(), "reset_date": await self.quota.reset_date(teacher_id)}
