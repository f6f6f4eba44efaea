"""Live session routes for submissions, teacher review and saving."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from lara.auth import Identity
from lara.dependencies import get_current_student, get_current_teacher, get_services
from lara.errors import Unauthorized
from lara.services.container import ServiceContainer

router = APIRouter()


class SubmitRequest(BaseModel):
    content: str = Field(min_length=1)
    time_elapsed: Optional[int] = Field(default=None, ge=0)
    selected_next_step_id: Optional[str] = None


class GenerateRequest(BaseModel):
    student_ids: Optional[list[str]] = None


class ApproveRequest(BaseModel):
    is_mastered: bool = False


class EditRequest(BaseModel):
    feedback: dict[str, Any]


def _require_session_member(identity: Identity, session_id: str, student_id: Optional[str] = None) -> None:
    if identity.session_id != session_id or (student_id is not None and identity.subject_id != student_id):
        raise Unauthorized("Not authorised for this session.")


@router.get("/usage")
async def usage(
    teacher_id: str = Depends(get_current_teacher),
    services: ServiceContainer = Depends(get_services),
):
    """Current month's AI usage for the teacher."""
    return await services.classroom.usage(teacher_id)


@router.post("/{session_id}/submit")
async def submit(
    session_id: str,
    body: SubmitRequest,
    identity: Identity = Depends(get_current_student),
    services: ServiceContainer = Depends(get_services),
):
    _require_session_member(identity, session_id)
    submission = await services.classroom.submit(
        session_id,
        identity.subject_id,
        body.content,
        time_elapsed=body.time_elapsed,
        selected_next_step_id=body.selected_next_step_id,
    )
    return {
        "success": True,
        "submission_id": submission.id,
        "revision_count": submission.revision_count,
        "is_revision": submission.is_revision,
        "detection_result": submission.detection_result,
    }


@router.get("/{session_id}/feedback/{student_id}")
async def poll_feedback(
    session_id: str,
    student_id: str,
    identity: Identity = Depends(get_current_student),
    services: ServiceContainer = Depends(get_services),
):
    """Student polling fallback for released feedback."""
    _require_session_member(identity, session_id, student_id)
    return await services.classroom.poll_feedback(session_id, student_id)


@router.get("/{session_id}/dashboard")
async def dashboard(
    session_id: str,
    teacher_id: str = Depends(get_current_teacher),
    services: ServiceContainer = Depends(get_services),
):
    return await services.classroom.dashboard(session_id, teacher_id)


@router.post("/{session_id}/generate-feedback")
async def generate_feedback(
    session_id: str,
    body: Optional[GenerateRequest] = None,
    teacher_id: str = Depends(get_current_teacher),
    services: ServiceContainer = Depends(get_services),
):
    """Generate feedback for the given students, or everyone who is ready."""
    student_ids = body.student_ids if body else None
    result = await services.classroom.generate_feedback(session_id, teacher_id, student_ids)
    return result.to_dict()


@router.patch("/{session_id}/feedback/{student_id}/approve")
async def approve_feedback(
    session_id: str,
    student_id: str,
    body: ApproveRequest,
    teacher_id: str = Depends(get_current_teacher),
    services: ServiceContainer = Depends(get_services),
):
    return await services.classroom.approve(session_id, teacher_id, student_id, body.is_mastered)


@router.patch("/{session_id}/feedback/{student_id}/edit")
async def edit_feedback(
    session_id: str,
    student_id: str,
    body: EditRequest,
    teacher_id: str = Depends(get_current_teacher),
    services: ServiceContainer = Depends(get_services),
):
    feedback = await services.classroom.edit_feedback(session_id, teacher_id, student_id, body.feedback)
    return {"success": True, "feedback": feedback}


@router.post("/{session_id}/persist")
async def persist_session(
    session_id: str,
    teacher_id: str = Depends(get_current_teacher),
    services: ServiceContainer = Depends(get_services),
):
    """Save the live roster and submissions to the durable store."""
    return await services.classroom.persist(session_id, teacher_id)


@router.delete("/{session_id}/students/{student_id}")
async def remove_student(
    session_id: str,
    student_id: str,
    teacher_id: str = Depends(get_current_teacher),
    services: ServiceContainer = Depends(get_services),
):
    student = await services.classroom.remove_student(session_id, teacher_id, student_id)
    return {"success": True, "student_id": student.id, "status": student.status}
