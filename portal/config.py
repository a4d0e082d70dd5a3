"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
    - Per-owner Twilio credentials live in the database, not here: only the
      REST base URL and retry policy are process-wide
"""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    environment: Literal["development", "production"] = "development"

    # Database
    database_url: str = (
        "postgresql+asyncpg://portal:portal@db:5432/portal"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # API
    cors_origins: list[str] = ["http://localhost:3000"]
    identity_header: str = "X-Portal-User-Id"
    public_base_url: str = "http://localhost:8000"

    # Twilio REST
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"
    twilio_timeout_seconds: float = 20.0
    twilio_max_retries: int = 2
    twilio_base_delay_ms: int = 500
    twilio_validate_signatures: bool = False

    # AI receptionist
    voice_agent_stream_url: str = ""
    call_reconcile_after_seconds: int = 90
    call_reconcile_batch: int = 3

    # Media library
    media_zip_max_files: int = 1000
    media_zip_max_bytes: int = 200 * 1024 * 1024
    media_upload_max_files: int = 20
    media_upload_max_bytes: int = 25 * 1024 * 1024
    inbound_attachment_max_count: int = 10
    inbound_attachment_max_bytes: int = 10 * 1024 * 1024

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
