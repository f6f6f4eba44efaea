"""WebSocket endpoint delivering room events to teachers and students."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from lara.auth import verify_token
from lara.errors import NotFound
from lara.services.events import (
    WebSocketSubscriber,
    session_room,
    session_teacher_room,
    student_room,
    teacher_room,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _reply(subscriber: WebSocketSubscriber, payload: dict[str, Any]) -> None:
    await subscriber.send(payload)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    token = websocket.query_params.get("token")
    identity = verify_token(token or "")
    if identity is None:
        await websocket.close(code=4401, reason="Authentication required")
        return

    services = websocket.app.state.services
    if not identity.is_teacher:
        student = await services.live.get_student(identity.session_id, identity.subject_id)
        if student is None:
            await websocket.close(code=4404, reason="Student not found")
            return

    await websocket.accept()
    subscriber = WebSocketSubscriber(websocket)
    if identity.is_teacher:
        rooms = [teacher_room(identity.subject_id)]
    else:
        rooms = [session_room(identity.session_id), student_room(identity.subject_id)]
    for room in rooms:
        services.bus.join(room, subscriber)
    await _reply(subscriber, {"type": "connected", "role": identity.role, "rooms": rooms})

    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await _reply(subscriber, {"type": "error", "detail": "Invalid JSON payload"})
                continue

            message_type = str(payload.get("type") or "").strip().lower() if isinstance(payload, dict) else ""
            if message_type == "ping":
                await _reply(subscriber, {"type": "pong"})
                continue

            if message_type not in ("join-session", "leave-session"):
                await _reply(subscriber, {"type": "error", "detail": "Unsupported message type"})
                continue

            if not identity.is_teacher:
                await _reply(subscriber, {"type": "error", "detail": "Only teachers can join session rooms"})
                continue

            session_id = str(payload.get("session_id") or "")
            try:
                await services.records.get_session(session_id, identity.subject_id)
            except NotFound as exc:
                await _reply(subscriber, {"type": "error", "detail": exc.detail})
                continue

            room = session_teacher_room(session_id)
            if message_type == "join-session":
                services.bus.join(room, subscriber)
            else:
                services.bus.leave(room, subscriber)
            await _reply(subscriber, {"type": message_type, "session_id": session_id, "room": room})
    except WebSocketDisconnect:
        logger.debug("Realtime client disconnected (%s %s)", identity.role, identity.subject_id)
    finally:
        services.bus.leave_all(subscriber)
