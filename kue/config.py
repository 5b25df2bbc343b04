"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from kue.constants import DEFAULT_KEY_PREFIX, DEFAULT_MAX_ATTEMPTS, DEFAULT_POLL_INTERVAL_SECONDS


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KUE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str | None = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None
    redis_socket_timeout_seconds: float | None = None
    key_prefix: str = DEFAULT_KEY_PREFIX

    # Queue behaviour
    original_mode: bool = False
    default_max_attempts: int = DEFAULT_MAX_ATTEMPTS

    # Worker Configuration
    worker_id: str | None = None
    worker_job_type: str | None = None
    worker_poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    worker_handler_modules: list[str] = []

    # Observability
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "kue-worker"
    tracing_enabled: bool = False
    prometheus_port: int | None = None
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
