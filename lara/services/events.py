"""Room-addressed fan-out of state changes to connected clients.

Publishing is best-effort: no delivery guarantee, no replay, no backpressure.
A subscriber that fails to receive is dropped and has to reconcile by polling.
Callers publish only after the expiring store write has gone through.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Protocol

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

from lara.models import utcnow

logger = logging.getLogger(__name__)


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


def session_teacher_room(session_id: str) -> str:
    return f"session:{session_id}:teacher"


def student_room(student_id: str) -> str:
    return f"student:{student_id}"


def teacher_room(teacher_id: str) -> str:
    return f"teacher:{teacher_id}"


class Subscriber(Protocol):
    async def send(self, message: dict[str, Any]) -> None: ...


class WebSocketSubscriber:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)


class EventBus:
    def __init__(self, send_timeout: float = 2.0):
        self.send_timeout = send_timeout
        self._rooms: dict[str, list[Subscriber]] = {}
        self._lock = threading.Lock()

    def join(self, room: str, subscriber: Subscriber) -> None:
        with self._lock:
            members = self._rooms.setdefault(room, [])
            if subscriber not in members:
                members.append(subscriber)

    def leave(self, room: str, subscriber: Subscriber) -> None:
        with self._lock:
            members = [member for member in self._rooms.get(room, []) if member is not subscriber]
            if members:
                self._rooms[room] = members
            else:
                self._rooms.pop(room, None)

    def leave_all(self, subscriber: Subscriber) -> None:
        with self._lock:
            rooms = [room for room, members in self._rooms.items() if subscriber in members]
        for room in rooms:
            self.leave(room, subscriber)

    def members(self, room: str) -> list[Subscriber]:
        with self._lock:
            return list(self._rooms.get(room, []))

    async def publish(self, room: str, event: str, data: dict[str, Any]) -> int:
        """Send ``event`` to every member of ``room``. Returns the number reached."""
        message = jsonable_encoder({"event": event, "room": room, "data": data, "sent_at": utcnow()})
        delivered = 0
        for subscriber in self.members(room):
            try:
                await asyncio.wait_for(subscriber.send(message), timeout=self.send_timeout)
                delivered += 1
            except Exception as exc:
                logger.info("Dropping subscriber from %s after failed send: %s", room, exc)
                self.leave_all(subscriber)
        return delivered

    async def emit_to_session_teacher(self, session_id: str, event: str, data: dict[str, Any]) -> None:
        await self.publish(session_teacher_room(session_id), event, data)

    async def emit_to_session(self, session_id: str, event: str, data: dict[str, Any]) -> None:
        await self.publish(session_room(session_id), event, data)

    async def emit_to_student(self, student_id: str, event: str, data: dict[str, Any]) -> None:
        await self.publish(student_room(student_id), event, data)

    async def emit_to_teacher(self, teacher_id: str, event: str, data: dict[str, Any]) -> None:
        await self.publish(teacher_room(teacher_id), event, data)
