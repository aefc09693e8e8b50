"""Configuration with pydantic-settings.

Every component receives a ``Settings`` instance at construction time instead of
reading module-level globals, so tests can build one with explicit values.

Usage:
    from archplan.config import get_settings

    settings = get_settings()
    machine = ProjectStateMachine(session_maker, job_queue, settings)
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict

MB = 1024 * 1024


class BaseSettings(PydanticBaseSettings):
    """Base application settings.

    All fields here are optional with sensible defaults.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging configuration
    service_name: str = Field(
        default="archplan",
        description="Service name for structured logging",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v


class Settings(BaseSettings):
    """Architecture planner settings.

    Requires: DATABASE_URL, REDIS_URL
    Optional: OPENAI_API_KEY, OPEN_ROUTER_KEY (generation degrades to the
    fallback plan without them)
    """

    # Required
    database_url: str = Field(
        ...,
        description="SQLAlchemy async database URL",
        examples=["postgresql+asyncpg://user:pass@db:5432/archplan"],
    )
    redis_url: str = Field(
        ...,
        description="Redis connection URL for the job queue",
        examples=["redis://redis:6379/0"],
    )

    # Generation providers
    default_llm_provider: str = Field(
        default="openai",
        description="Provider used when a project names none or an unknown one",
    )
    openai_api_key: str | None = Field(default=None, description="Direct OpenAI key")
    open_router_key: str | None = Field(
        default=None,
        description="OpenRouter key, used for every non-OpenAI backend",
    )
    openrouter_app_name: str = Field(default="Architecture Planner")
    llm_timeout_seconds: float = Field(default=120.0, gt=0)
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    enhance_max_tokens: int = Field(
        default=4000,
        ge=1,
        description="Token budget for BRD enhancement and raw conversion",
    )
    plan_max_tokens: int = Field(
        default=16000,
        ge=1,
        description="Token budget for architectural plan generation",
    )
    raw_conversion_byte_limit: int = Field(
        default=5000,
        ge=1,
        description="Bytes of a raw upload forwarded to the provider in llm_raw mode",
    )
    record_artifacts: bool = Field(default=True)

    # Uploads
    max_upload_bytes: int = Field(default=100 * MB, ge=1)
    doc_max_bytes: int = Field(
        default=10 * MB,
        ge=1,
        description="Ceiling for best-effort legacy .doc extraction",
    )
    uploads_dir: str = Field(default="var/uploads")
    uploads_bucket: str = Field(default="architecture-planner-uploads")

    # Plan generation jobs
    plan_job_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_base_seconds: float = Field(default=15.0, ge=0)
    retry_backoff_max_seconds: float = Field(default=600.0, ge=0)
    worker_concurrency: int = Field(default=10, ge=1)
    stale_job_grace_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Idle time beyond the provider timeout before a pending job is reclaimed",
    )
    plan_job_max_deliveries: int = Field(
        default=3,
        ge=1,
        description="Deliveries of one stream entry before it is dead-lettered unprocessed",
    )

    # Workflow
    allowed_deployment_envs: list[str] = Field(default_factory=lambda: ["Fly.io"])


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Validates required env vars on first call.
    Raises ValidationError if DATABASE_URL or REDIS_URL are missing.
    """
    return Settings()
