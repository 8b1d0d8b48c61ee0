# feedpress/config.py
"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="PostgreSQL connection URL",
    )

    # Authentication
    ADMIN_API_KEY: str | None = Field(
        default=None,
        description="API key for admin endpoints",
    )
    CRON_SECRET: str | None = Field(
        default=None,
        description="Bearer token expected from the external cron caller",
    )

    # Generation service
    GENERATION_API_URL: str | None = Field(
        default=None,
        description="Endpoint of the article generation service",
    )
    GENERATION_API_KEY: str | None = Field(
        default=None,
        description="Bearer key for the generation service",
    )
    GENERATION_DEFAULT_WORD_COUNT: int = Field(
        default=800,
        description="Target word count sent with each generation request",
    )
    GENERATION_DEFAULT_TONE: str = Field(
        default="professional",
        description="Tone sent with each generation request",
    )
    GENERATION_DEFAULT_STYLE: str = Field(
        default="journalistic",
        description="Style sent with each generation request",
    )

    # Image service
    IMAGE_API_URL: str | None = Field(
        default=None,
        description="Endpoint of the featured image service",
    )
    IMAGE_API_KEY: str | None = Field(
        default=None,
        description="Bearer key for the image service",
    )

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout for generation, image and CMS requests",
    )

    # Auto-publish scheduler
    AUTO_PUBLISH_BATCH_SIZE: int = Field(
        default=10,
        description="Articles published per scheduler run",
    )
    AUTO_PUBLISH_DELAY_SECONDS: float = Field(
        default=2.0,
        description="Pause between articles within one scheduler run",
    )
    SCHEDULER_LOCK_TTL_SECONDS: int = Field(
        default=600,
        description="Expiry of the scheduler advisory lock (stale runs release after this)",
    )
    SCHEDULER_INTERVAL_SECONDS: int = Field(
        default=300,
        description="Interval for the in-process scheduler ticker",
    )
    SCHEDULER_ENABLED: bool = Field(
        default=False,
        description="Run the auto-publish ticker inside the API process (otherwise rely on the cron endpoint)",
    )

    # Logging
    LOG_JSON: bool = Field(
        default=True,
        description="Emit single-line JSON logs (False for human-readable dev output)",
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Root log level",
    )

    # Application
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Hosted Postgres hands out postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
