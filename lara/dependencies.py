"""Reusable FastAPI dependencies."""
from fastapi import Depends, HTTPException, Request, status

from lara.auth import Identity, verify_token
from lara.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Return the service handles built at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting up.")
    return services


def bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_identity(request: Request) -> Identity:
    """Ensure the request carries a valid bearer token."""
    identity = verify_token(bearer_token(request) or "")
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required.")
    return identity


def get_current_teacher(identity: Identity = Depends(get_identity)) -> str:
    """Return the authenticated teacher's id."""
    if not identity.is_teacher:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Teacher access required.")
    return identity.subject_id


def get_current_student(identity: Identity = Depends(get_identity)) -> Identity:
    """Return the authenticated student's identity."""
    if identity.is_teacher:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Student access required.")
    return identity
