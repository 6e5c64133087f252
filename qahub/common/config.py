"""
Configuration module using Pydantic Settings.

CRITICAL: This module uses lazy loading pattern.
No environment variables are loaded at import time.
Each service must call get_settings() explicitly.
"""

from typing import Literal, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    IMPORTANT: Do NOT set env_file in Config.
    Environment variables must be loaded externally by the service.
    """

    model_config = SettingsConfigDict(
        env_file=None,
        case_sensitive=False,
        extra="ignore"
    )

    # Key-value store
    database_url: str = Field(
        default="sqlite:///./storage/kv_store.db",
        description="SQLAlchemy URL of the key-value store database"
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (locks and Celery broker)"
    )

    # Index locking
    lock_backend: Literal["local", "redis"] = Field(
        default="local",
        description="Per-type index lock backend"
    )
    lock_timeout_seconds: float = Field(
        default=10.0,
        description="Auto-release time for redis index locks"
    )

    # Supabase (required by the API, unused by the worker)
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL"
    )
    supabase_service_role_key: Optional[str] = Field(
        default=None,
        description="Supabase service role secret key"
    )
    identity_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for identity provider requests"
    )

    # Admin provisioning
    admin_secret: str = Field(
        default="change-this-secret",
        description="Shared secret required by admin signup"
    )

    # Worker
    reconcile_interval_seconds: int = Field(
        default=3600,
        description="Interval of the pending index reconciliation task"
    )

    # Sentry
    sentry_dsn: Optional[str] = Field(
        default=None,
        description="Sentry DSN for error tracking"
    )
    sentry_environment: str = Field(
        default="development",
        description="Sentry environment name"
    )
    sentry_traces_sample_rate: float = Field(
        default=0.1,
        description="Sentry traces sample rate"
    )
    sentry_profiles_sample_rate: float = Field(
        default=1.0,
        description="Sentry profiles sample rate"
    )

    # Application
    app_name: str = Field(
        default="QA Resource Hub API",
        description="Application name"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode flag"
    )

    @computed_field  # type: ignore[misc]
    @property
    def log_level(self) -> str:
        return "DEBUG" if self.debug else "INFO"


def get_settings() -> Settings:
    """
    Factory function to create Settings instance.

    This function should be called by each service explicitly.
    DO NOT call this at module level.

    Returns:
        Settings: Configured settings instance

    Note:
        Settings() will automatically load values from environment
        variables. Required fields must be set in the environment
        before calling this function.
    """
    return Settings()  # type: ignore[call-arg]
