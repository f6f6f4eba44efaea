"""Utility script to scaffold a local .env file."""
from __future__ import annotations

import secrets
from pathlib import Path

ENV_TEMPLATE = """# Environment configuration for LARA live feedback
SECRET_KEY={secret}
DEBUG=true
ENVIRONMENT=development
STORE_BACKEND=redis
REDIS_URL=redis://localhost:6379/0
DATABASE_URL=sqlite+aiosqlite:///./lara.db
ANTHROPIC_API_KEY=
"""


def main() -> None:
    env_path = Path(".env")
    if env_path.exists():
        print(".env already exists. No changes made.")
        return

    env_path.write_text(ENV_TEMPLATE.format(secret=secrets.token_hex(32)), encoding="utf-8")
    print("Created .env with a generated SECRET_KEY. Add ANTHROPIC_API_KEY before generating feedback.")


if __name__ == "__main__":
    main()
