"""Run the LARA API with auto-reload against an in-memory expiring store."""
from __future__ import annotations

import os

import uvicorn

from lara.config import get_settings


def main() -> None:
    """Launch uvicorn with settings-aware defaults."""
    os.environ.setdefault("STORE_BACKEND", "memory")
    get_settings.cache_clear()
    settings = get_settings()
    uvicorn.run(
        "lara.app:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )


if __name__ == "__main__":
    main()
