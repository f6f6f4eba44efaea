"""Signed bearer tokens for teachers and students."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from lara.config import get_settings

TOKEN_SALT = "lara-bearer"

Role = Literal["teacher", "student"]


@dataclass(frozen=True)
class Identity:
    role: Role
    subject_id: str
    session_id: Optional[str] = None

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"


def _serializer(secret_key: Optional[str] = None) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key or get_settings().SECRET_KEY, salt=TOKEN_SALT)


def issue_token(identity: Identity, secret_key: Optional[str] = None) -> str:
    """Sign ``identity`` into an opaque bearer token."""
    payload = {"role": identity.role, "sub": identity.subject_id}
    if identity.session_id:
        payload["sid"] = identity.session_id
    return _serializer(secret_key).dumps(payload)


def verify_token(token: str, secret_key: Optional[str] = None, max_age_hours: Optional[int] = None) -> Optional[Identity]:
    """Return the identity in ``token``, or None if it is forged, expired or malformed."""
    if not token:
        return None
    max_age = (max_age_hours or get_settings().TOKEN_MAX_AGE_HOURS) * 3600
    try:
        payload = _serializer(secret_key).loads(token, max_age=max_age)
    except (SignatureExpired, BadSignature):
        return None
    if not isinstance(payload, dict) or payload.get("role") not in ("teacher", "student") or not payload.get("sub"):
        return None
    if payload["role"] == "student" and not payload.get("sid"):
        return None
    return Identity(payload["role"], payload["sub"], payload.get("sid"))


def teacher_token(teacher_id: str) -> str:
    return issue_token(Identity("teacher", teacher_id))


def student_token(student_id: str, session_id: str) -> str:
    return issue_token(Identity("student", student_id, session_id))
