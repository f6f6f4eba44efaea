"""Typed records for live session state.

Students, submissions and feedback are kept as these models inside the
service and only become JSON at the expiring store boundary.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the durable store hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StudentStatus(str, Enum):
    ACTIVE = "active"
    READY_FOR_FEEDBACK = "ready_for_feedback"
    GENERATING = "generating"
    SUBMITTED = "submitted"
    FEEDBACK_READY = "feedback_ready"
    REVISING = "revising"
    COMPLETED = "completed"
    REMOVED = "removed"


class FeedbackStatus(str, Enum):
    PENDING = "pending"
    GENERATED = "generated"
    RELEASED = "released"


FeedbackType = Literal["task", "process", "self_reg"]
ActionType = Literal["revise", "improve_section", "reupload", "rehearse"]
DetectionResult = Literal["aligned", "uncertain"]


class FeedbackItem(BaseModel):
    id: str
    type: FeedbackType = "task"
    text: str
    anchors: list[str] = Field(default_factory=list)
    criterion_ref: Optional[int] = None


class NextStep(BaseModel):
    id: str
    action_verb: str
    target: str
    success_indicator: str
    reflection_prompt: Optional[str] = None
    cta_text: str = "Continue"
    action_type: ActionType = "revise"


class Feedback(BaseModel):
    goal: str
    mastery_achieved: bool = False
    strengths: list[FeedbackItem] = Field(default_factory=list)
    growth_areas: list[FeedbackItem] = Field(default_factory=list)
    next_steps: list[NextStep] = Field(default_factory=list)
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None

    def find_next_step(self, step_id: str) -> Optional[NextStep]:
        return next((step for step in self.next_steps if step.id == step_id), None)


class Student(BaseModel):
    id: str
    session_id: str
    name: str
    joined_at: datetime = Field(default_factory=utcnow)
    status: StudentStatus = StudentStatus.ACTIVE


class Submission(BaseModel):
    id: str
    student_id: str
    session_id: str
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    time_elapsed: Optional[int] = None
    revision_count: int = 0
    previous_content: Optional[str] = None
    feedback_status: FeedbackStatus = FeedbackStatus.PENDING
    validation_warnings: list[str] = Field(default_factory=list)
    is_revision: bool = False
    selected_next_step_id: Optional[str] = None
    selected_next_step: Optional[NextStep] = None
    detection_result: Optional[DetectionResult] = None
    feedback: Optional[Feedback] = None


class QuotaStatus(BaseModel):
    allowed: bool
    used: int
    limit: int
    remaining: int


class TaskSummary(BaseModel):
    """The slice of a task the live session core needs."""

    id: str
    teacher_id: str
    title: str
    prompt: str
    success_criteria: list[str] = Field(default_factory=list)
    universal_expectations: bool = False
    status: str = "active"


class SessionInfo(BaseModel):
    id: str
    task_id: str
    teacher_id: str
    is_live: bool
    started_at: Optional[datetime] = None
    data_expires_at: Optional[datetime] = None
    data_persisted: bool = False
    total_students: int = 0
    submissions: int = 0
    feedbacks_generated: int = 0
    feedback_sent: int = 0
