"""
Application configuration management using Pydantic Settings.

This module provides a type-safe, centralized configuration system
that loads from environment variables with sensible defaults.
"""

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

    # ===== Durable Store =====
    REDIS_URL: str | None = Field(
        default=None,
        description="Redis URL for jobs, pages and the dispatch queue (rediss:// enables TLS)"
    )

    DISPATCH_QUEUE_NAME: str = Field(
        default="dispatch:units",
        description="Name of the Redis list holding page dispatch records"
    )

    # ===== Generator =====
    ANTHROPIC_API_KEY: str | None = Field(
        default=None,
        description="Anthropic API key for page generation"
    )

    MODEL_NAME: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Claude model used to write page chunks"
    )

    TEMPERATURE: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="LLM temperature for creativity control"
    )

    # ===== Chunk Generation =====
    CHUNK_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for the first attempt at a chunk"
    )

    CHUNK_TIMEOUT_MAX_SECONDS: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound for the per-attempt chunk timeout"
    )

    BACKOFF_MULTIPLIER: float = Field(
        default=1.5,
        ge=1.0,
        description="Growth factor applied to the chunk timeout on each retry"
    )

    MAX_RETRIES: int = Field(
        default=4,
        ge=1,
        le=10,
        description="Attempts per chunk before falling back"
    )

    RETRY_BASE_DELAY_SECONDS: float = Field(
        default=1.0,
        ge=0,
        description="Delay before the second attempt (doubles each retry)"
    )

    RETRY_MAX_DELAY_SECONDS: float = Field(
        default=10.0,
        ge=0,
        description="Upper bound for the delay between attempts"
    )

    MIN_CHUNK_CHARS: int = Field(
        default=20,
        ge=1,
        description="Cached chunks shorter than this are regenerated on resume"
    )

    MIN_PARTIAL_CHARS: int = Field(
        default=120,
        ge=1,
        description="Minimum streamed partial text accepted after retries are exhausted"
    )

    # ===== Worker / Scheduler =====
    WORKER_POLL_SECONDS: int = Field(
        default=5,
        ge=1,
        le=300,
        description="Blocking pop timeout for an idle worker"
    )

    WORKER_ERROR_BACKOFF_SECONDS: float = Field(
        default=5.0,
        ge=0,
        description="Pause after a store error before the worker loops again"
    )

    RECONCILE_INTERVAL_SECONDS: int = Field(
        default=60,
        ge=5,
        description="How often the scheduler recomputes job counters"
    )

    PROCESSING_TIMEOUT_SECONDS: int = Field(
        default=900,
        ge=30,
        description="Pages stuck in processing longer than this are marked failed"
    )

    RECONCILE_ENABLED: bool = Field(
        default=True,
        description="Run the counter reconciler from the scheduler process"
    )

    @field_validator('RECONCILE_ENABLED', mode='before')
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (platform env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False

    # ===== Application Settings =====
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment mode: development or production"
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # ===== Computed Properties =====

    @property
    def redis_configured(self) -> bool:
        """Check if the durable store is configured."""
        return bool(self.REDIS_URL)

    @property
    def generator_configured(self) -> bool:
        """Check if the page generator has credentials."""
        return self.ANTHROPIC_API_KEY is not None


# Global configuration instance
# Import this in other modules: from ebookgen.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Model: {config.MODEL_NAME}")
    print(f"Dispatch queue: {config.DISPATCH_QUEUE_NAME}")
    print(f"Chunk retries: {config.MAX_RETRIES} (timeout {config.CHUNK_TIMEOUT_SECONDS}s)")
    print(f"Redis: {'✓' if config.redis_configured else '✗'}")
    print(f"Generator: {'✓' if config.generator_configured else '✗'}")
