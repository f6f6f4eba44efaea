"""FastAPI application entry point for the LARA live feedback service."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lara.config import get_settings
from lara.errors import LaraError
from lara.services.container import ServiceContainer


logger = logging.getLogger("lara.web")
logging.basicConfig(level=logging.INFO)

settings = get_settings()

app = FastAPI(title="LARA Live Feedback", debug=settings.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup() -> None:
    """Build the service handles unless they were supplied already."""
    if getattr(app.state, "services", None) is None:
        app.state.services = ServiceContainer(get_settings())
        app.state.owns_services = True
        await app.state.services.start()
    logger.info("LARA live feedback service starting up")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if getattr(app.state, "owns_services", False):
        await app.state.services.aclose()
        app.state.services = None
        app.state.owns_services = False
    logger.info("LARA live feedback service stopped")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@app.exception_handler(LaraError)
async def lara_error_handler(request: Request, exc: LaraError):
    """Render typed service failures with their own status code."""
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.detail)
    return JSONResponse({"error": type(exc).__name__, **exc.to_dict()}, status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Custom HTTP exception responses."""
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        detail = exc.detail or "Authentication required."
    elif exc.status_code == status.HTTP_404_NOT_FOUND:
        detail = exc.detail or "The requested resource was not found."
    else:
        detail = exc.detail or "An error occurred while processing the request."
    return JSONResponse({"detail": detail}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unhandled errors."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        {"detail": "Internal server error. Please try again later."},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


# Import routes after the app is configured to avoid circular imports.
from lara.routes import join as join_routes  # noqa: E402  pylint: disable=wrong-import-position
from lara.routes import realtime as realtime_routes  # noqa: E402  pylint: disable=wrong-import-position
from lara.routes import sessions as session_routes  # noqa: E402  pylint: disable=wrong-import-position

app.include_router(join_routes.router, prefix="/api/session")
app.include_router(session_routes.router, prefix="/api/sessions")
app.include_router(realtime_routes.router)
