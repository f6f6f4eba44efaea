"""Student entry routes: task code validation, joining and restoring a live session."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from lara.auth import student_token
from lara.dependencies import get_services
from lara.services.container import ServiceContainer

router = APIRouter()


class CodeRequest(BaseModel):
    task_code: str = Field(min_length=1, max_length=32)


class JoinRequest(CodeRequest):
    student_name: str = Field(min_length=1, max_length=100)


@router.post("/validate-code")
async def validate_code(body: CodeRequest, services: ServiceContainer = Depends(get_services)):
    """Check a task code without revealing more than the task title."""
    return await services.classroom.validate_code(body.task_code)


@router.post("/join")
async def join_session(body: JoinRequest, services: ServiceContainer = Depends(get_services)):
    """Join the task's live session, starting it if nobody has joined yet."""
    student, session, task = await services.classroom.join(body.task_code, body.student_name)
    return {
        "token": student_token(student.id, session.id),
        "student": student,
        "session_id": session.id,
        "task": task,
    }


@router.get("/restore/{student_id}")
async def restore_session(
    student_id: str,
    session_id: str = Query(min_length=1),
    services: ServiceContainer = Depends(get_services),
):
    """Hand a returning student a fresh token and their latest state."""
    restored = await services.classroom.restore(session_id, student_id)
    return {"token": student_token(student_id, session_id), **restored}
