"""Batch feedback generation with per-student failure isolation."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Optional

from lara.errors import GenerationFailed, InsufficientQuota, InvalidTransition, LaraError, NoSubmission, NotFound
from lara.models import FeedbackStatus, SessionInfo, Student, StudentStatus, TaskSummary
from lara.services import state_machine
from lara.services.events import EventBus
from lara.services.generator import FeedbackGenerator
from lara.services.live_state import LiveSessionState
from lara.services.persistence import PersistenceBridge
from lara.services.quota import QuotaGuard
from lara.services.session_records import SessionRecords
from lara.services.validation import validate_feedback

logger = logging.getLogger(__name__)

UNIVERSAL_LEARNING_EXPECTATIONS = [
    "Clarity of response - Is the answer clear and easy to understand?",
    "Use of evidence and/or examples - Does the response include relevant evidence or examples?",
    "Reasoning and explanation - Is the thinking process explained?",
    "Organisation - Is the response well-structured?",
    "Language for audience and purpose - Is the language appropriate?",
]

FEEDBACK_OPERATION = "single_feedback"


def select_criteria(task: TaskSummary) -> list[str]:
    """The task's own criteria, or the universal rubric when the task opts in."""
    if task.universal_expectations or not task.success_criteria:
        return list(UNIVERSAL_LEARNING_EXPECTATIONS)
    return list(task.success_criteria)


@dataclass
class StudentOutcome:
    student_id: str
    success: bool
    error: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class BatchResult:
    results: list[StudentOutcome] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def generated(self) -> int:
        return sum(1 for outcome in self.results if outcome.success)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.results if not outcome.success)

    def to_dict(self) -> dict:
        payload = {
            "generated": self.generated,
            "failed": self.failed,
            "results": [asdict(outcome) for outcome in self.results],
        }
        if self.message:
            payload["message"] = self.message
        return payload


class FeedbackOrchestrator:
    def __init__(
        self,
        live: LiveSessionState,
        records: SessionRecords,
        quota: QuotaGuard,
        generator: FeedbackGenerator,
        persistence: PersistenceBridge,
        bus: EventBus,
        timeout: float = 60.0,
    ):
        self.live = live
        self.records = records
        self.quota = quota
        self.generator = generator
        self.persistence = persistence
        self.bus = bus
        self.timeout = timeout

    async def resolve_targets(self, session_id: str, student_ids: Optional[list[str]]) -> list[str]:
        if student_ids:
            return list(dict.fromkeys(student_ids))
        students = await self.live.list_students(session_id)
        return [s.id for s in students if s.status == StudentStatus.READY_FOR_FEEDBACK]

    async def generate(
        self, session: SessionInfo, task: TaskSummary, student_ids: Optional[list[str]] = None
    ) -> BatchResult:
        targets = await self.resolve_targets(session.id, student_ids)
        if not targets:
            return BatchResult(message="No students ready for feedback")

        quota = await self.quota.check(session.teacher_id)
        if not quota.allowed or quota.remaining < len(targets):
            raise InsufficientQuota(required=len(targets), remaining=quota.remaining)

        criteria = select_criteria(task)
        batch = BatchResult()
        # sequential; each generator call is bounded by its own timeout
        for student_id in targets:
            batch.results.append(await self._generate_one(session, task, criteria, student_id))
        await self.records.refresh_expiry(session.id)

        logger.info(
            "Feedback batch for session %s: %d generated, %d failed", session.id, batch.generated, batch.failed
        )
        return batch

    async def _generate_one(
        self, session: SessionInfo, task: TaskSummary, criteria: list[str], student_id: str
    ) -> StudentOutcome:
        try:
            student = await self.live.get_student(session.id, student_id)
            if student is None:
                raise NotFound("Student not found")
            student.status = state_machine.on_generation_start(student.status)
            await self.live.put_student(student)
        except (NotFound, InvalidTransition) as exc:
            return StudentOutcome(student_id, False, type(exc).__name__, exc.detail)

        await self.bus.emit_to_session_teacher(
            session.id, "status-changed", {"student_id": student_id, "status": student.status}
        )

        try:
            submission = await self.live.get_submission(session.id, student_id)
            if submission is None:
                # left in generating for review
                logger.error("Student %s in session %s has no submission", student_id, session.id)
                return StudentOutcome(student_id, False, NoSubmission.__name__, NoSubmission.default_detail)

            try:
                feedback = await asyncio.wait_for(
                    self.generator.generate(task.prompt, criteria, submission.content), timeout=self.timeout
                )
            except asyncio.TimeoutError as exc:
                raise GenerationFailed(f"Generation timed out after {self.timeout:g}s") from exc

            warnings = [str(warning) for warning in validate_feedback(feedback, criteria)]
            submission.feedback = feedback
            submission.feedback_status = state_machine.advance_feedback(
                submission.feedback_status, FeedbackStatus.GENERATED
            )
            submission.validation_warnings = warnings
            await self.live.put_submission(submission)

            await self.quota.consume(
                session.teacher_id,
                FEEDBACK_OPERATION,
                1,
                task_id=task.id,
                session_id=session.id,
                validation_warnings=warnings,
            )

            student.status = state_machine.on_generation_success(student.status)
            await self.live.put_student(student)
        except Exception as exc:
            logger.exception("Failed to generate feedback for %s", student_id)
            await self._revert(session.id, student_id)
            reason = exc.detail if isinstance(exc, LaraError) else "Generation failed"
            return StudentOutcome(student_id, False, GenerationFailed.__name__, reason)

        await self.records.increment(session.id, feedbacks_generated=1)
        if session.data_persisted:
            await self.persistence.mirror(students=[student], submissions=[submission])
        await self.bus.emit_to_session_teacher(
            session.id,
            "feedback-generated",
            {"student_id": student_id, "status": student.status, "warnings": len(submission.validation_warnings)},
        )
        return StudentOutcome(student_id, True)

    async def _revert(self, session_id: str, student_id: str) -> Optional[Student]:
        """Put a failed student back in the queue. Best-effort: errors are logged."""
        try:
            student = await self.live.get_student(session_id, student_id)
            if student is None or student.status != StudentStatus.GENERATING:
                return student
            student.status = state_machine.on_generation_failure(student.status)
            await self.live.put_student(student)
        except Exception:
            logger.exception("Could not revert %s to ready_for_feedback", student_id)
            return None
        await self.bus.emit_to_session_teacher(
            session_id, "status-changed", {"student_id": student_id, "status": student.status}
        )
        return student
