"""
Application configuration management using Pydantic Settings.

This module provides a type-safe, centralized configuration system
that loads from environment variables with sensible defaults.
"""

from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All settings can be overridden via .env file or environment variables.
    Settings are validated at startup using Pydantic.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== AI Generation =====
    OPENAI_API_KEY: str | None = Field(
        default=None,
        description="OpenAI API key for image generation (required for renders)"
    )

    IMAGE_MODEL: str = Field(
        default="gpt-image-1",
        description="OpenAI image model used for images.edit"
    )

    IMAGE_SIZE: Literal["1024x1024", "1536x1024", "1024x1536", "auto"] = Field(
        default="1024x1024",
        description="Output size requested from the image model"
    )

    OPENAI_TIMEOUT_SECONDS: float = Field(
        default=180.0,
        ge=10.0,
        le=900.0,
        description="Timeout for a single generation call (3 minutes by default)"
    )

    INPUT_FETCH_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Timeout for downloading user-supplied input images"
    )

    # ===== Supabase Configuration =====
    SUPABASE_URL: str | None = Field(
        default=None,
        description="Supabase project URL"
    )

    SUPABASE_ANON_KEY: str | None = Field(
        default=None,
        description="Supabase anon/public key (for client-side auth)"
    )

    SUPABASE_SERVICE_KEY: str | None = Field(
        default=None,
        description="Supabase service role key (for server-side operations, bypasses RLS)"
    )

    # ===== Artifact Storage =====
    STORAGE_BACKEND: Literal["supabase", "local"] = Field(
        default="local",
        description="Where generated renders are persisted (supabase in prod, local in dev)"
    )

    STORAGE_BUCKET: str = Field(
        default="renders",
        description="Supabase Storage bucket for generated renders"
    )

    LOCAL_STORAGE_PATH: str = Field(
        default="./generated_renders",
        description="Directory for renders when STORAGE_BACKEND=local"
    )

    # ===== Redis / Queue Configuration =====
    REDIS_URL: str | None = Field(
        default=None,
        description="Redis URL for the render queue and live status events"
    )

    RENDER_QUEUE_NAME: str = Field(
        default="renders",
        description="Name of the RQ queue render jobs are enqueued on"
    )

    QUEUE_JOB_TIMEOUT_SECONDS: int = Field(
        default=600,
        ge=30,
        le=3600,
        description="RQ job_timeout; an attempt still running after this is killed (10 minutes)"
    )

    QUEUE_MAX_ATTEMPTS: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Attempts per render before RQ moves it to the failed registry"
    )

    QUEUE_KEEP_COMPLETED_SECONDS: int = Field(
        default=3600,
        ge=0,
        description="RQ result_ttl for finished render jobs (1 hour)"
    )

    QUEUE_KEEP_FAILED_SECONDS: int = Field(
        default=86400,
        ge=0,
        description="RQ failure_ttl for failed render jobs (24 hours)"
    )

    QUEUE_KEEP_FAILED_COUNT: int = Field(
        default=100,
        ge=1,
        description="Maximum number of entries kept in the failed registry"
    )

    QUEUE_TRIM_INTERVAL_SECONDS: int = Field(
        default=300,
        ge=10,
        le=86400,
        description="How often the maintenance scheduler trims the failed registry"
    )

    WORKER_CONCURRENCY: int = Field(
        default=1,
        ge=1,
        le=32,
        description="RQ worker processes started by one worker service"
    )

    ENABLE_MAINTENANCE_SCHEDULER: bool = Field(
        default=False,
        description="Run the timeout sweep and registry trim inside the web process"
    )

    # ===== Render Settings =====
    RENDER_TIMEOUT_MINUTES: int = Field(
        default=6,
        ge=1,
        le=120,
        description="Jobs not finished this long after creation are failed by the reaper"
    )

    REAPER_SWEEP_INTERVAL_SECONDS: int = Field(
        default=60,
        ge=5,
        le=3600,
        description="How often the maintenance scheduler scans for timed-out jobs nobody polls"
    )

    # ===== Live Status Events =====
    EVENT_CHANNEL_PREFIX: str = Field(
        default="user-events",
        description="Prefix of the per-user pub/sub channel"
    )

    SSE_KEEPALIVE_SECONDS: float = Field(
        default=15.0,
        ge=1.0,
        le=300.0,
        description="Interval between keep-alive comments on the event stream"
    )

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    DEBUG: bool = Field(
        default=True,
        description="Enable debug mode (auto-set to False in production)"
    )

    DEV_MODE: bool = Field(
        default=True,
        description="Allow unauthenticated requests as the dev user (disable in production)"
    )

    DEV_USER_ID: str = Field(
        default="dev-user-id",
        description="User ID assumed for unauthenticated requests in dev mode"
    )

    DEV_ACCOUNT_ID: str = Field(
        default="dev-account-id",
        description="Billing account assumed for unauthenticated requests in dev mode"
    )

    @field_validator(
        "ENABLE_MAINTENANCE_SCHEDULER", "DEBUG", "DEV_MODE",
        mode="before"
    )
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (Railway env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="API server host"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="API server port"
    )

    APP_BASE_URL: str = Field(
        default="http://localhost:8000",
        description="Base URL for the application (used for local storage URLs)"
    )

    # ===== Security Settings =====
    API_KEYS: str | None = Field(
        default=None,
        description="Comma-separated list of admin API keys. If empty/None and DEV_MODE=True, auth is bypassed."
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins. Use '*' for all (dev only)."
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Get list of valid API keys."""
        if not self.API_KEYS:
            return []
        return [k.strip() for k in self.API_KEYS.split(",") if k.strip()]

    @property
    def allowed_origins_list(self) -> list[str]:
        """Get list of allowed CORS origins.

        In production (DEV_MODE=false), '*' is not allowed and falls back
        to APP_BASE_URL.
        """
        if self.ALLOWED_ORIGINS == "*":
            if self.DEV_MODE:
                return ["*"]
            return [self.APP_BASE_URL]
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def auth_required(self) -> bool:
        """Check if API key authentication is required (False in dev mode with no keys)."""
        return bool(self.api_keys_list) or not self.DEV_MODE

    # ===== Computed Properties =====

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase is properly configured."""
        return (
            self.SUPABASE_URL is not None
            and self.SUPABASE_ANON_KEY is not None
            and self.SUPABASE_SERVICE_KEY is not None
        )


# Global configuration instance
# Import this in other modules: from renderspace.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Image model: {config.IMAGE_MODEL} ({config.IMAGE_SIZE})")
    print(f"Storage: {config.STORAGE_BACKEND}")
    print(f"Queue: {config.RENDER_QUEUE_NAME} (timeout {config.QUEUE_JOB_TIMEOUT_SECONDS}s, "
          f"{config.QUEUE_MAX_ATTEMPTS} attempts)")
    print(f"Image Generation: {'✓' if config.OPENAI_API_KEY else '✗'}")
    print(f"Supabase: {'✓' if config.supabase_configured else '✗'}")
    print(f"Redis: {'✓' if config.REDIS_URL else '✗'}")
