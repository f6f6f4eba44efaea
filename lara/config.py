"""Application configuration for the LARA live feedback service."""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    SECRET_KEY: str = Field(
        default="dev-secret-key",
        description="Secret key used for signing bearer tokens",
    )
    DEBUG: bool = Field(default=False, description="Enable FastAPI debug mode")
    ENVIRONMENT: str = Field(default="development", description="development, test or production")
    STORE_BACKEND: str = Field(default="redis", description="Expiring store backend: redis or memory")
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    SESSION_TTL_SECONDS: int = Field(
        default=16 * 60 * 60, ge=1, description="Lifetime of live session data after the last activity"
    )
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./lara.db")
    ANTHROPIC_API_KEY: str | None = Field(default=None)
    FEEDBACK_MODEL: str = Field(default="claude-sonnet-4-5")
    FEEDBACK_MAX_TOKENS: int = Field(default=8192, ge=256)
    GENERATION_TIMEOUT_SECONDS: float = Field(
        default=60.0, gt=0, description="Upper bound for a single feedback generator call"
    )
    TOKEN_MAX_AGE_HOURS: int = Field(default=24, ge=1, description="Bearer token lifetime")
    EVENT_SEND_TIMEOUT_SECONDS: float = Field(default=2.0, gt=0)
    ALLOWED_ORIGINS: list[str] = Field(default_factory=lambda: ["*"])

    model_config = {
        "env_file": ".env",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""
    return Settings()
