"""Configuration management for Fencehook."""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Attempt 1 failed -> 60s, attempt 2 -> 300s, attempt 3 -> 900s.
DEFAULT_RETRY_BACKOFF_SECONDS: tuple[int, ...] = (60, 300, 900)
DEFAULT_MAX_ATTEMPTS = 4


class Settings(BaseSettings):
    """Fencehook configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the FENCEHOOK_ prefix. For example:
        FENCEHOOK_QDRANT_URL=http://localhost:6333
        FENCEHOOK_RETRY_INTERVAL_SECONDS=30

    The retry schedule is a fixed table rather than a formula:
    ``retry_backoff_seconds[n - 1]`` is the delay after the n-th failed
    attempt, and a record is finalized as failed once ``max_attempts``
    attempts have failed.
    """

    model_config = SettingsConfigDict(
        env_prefix="FENCEHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="fencehook",
        description="Prefix for Qdrant collection names",
    )

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=30.0,
        description="HTTP timeout for retry worker attempts",
    )
    inline_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        le=30.0,
        description="HTTP timeout for the first attempt made on the producer's path",
    )
    inline_delivery: bool = Field(
        default=True,
        description=(
            "Attempt the first delivery inline during dispatch. "
            "When False, records are created pending and left to the retry worker."
        ),
    )
    dispatch_concurrency: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum concurrent inline attempts per dispatch",
    )
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        le=10,
        description="Attempts (including the first) before a delivery is failed",
    )
    retry_backoff_seconds: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RETRY_BACKOFF_SECONDS),
        description="Delay after the n-th failed attempt, indexed from attempt 1",
    )

    # Circuit breaker
    circuit_failure_threshold: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Consecutive failures that open a webhook's circuit",
    )
    circuit_cooldown_seconds: int = Field(
        default=300,
        ge=1,
        description="How long an opened circuit stays open",
    )

    # Retry worker
    retry_interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between retry worker cycles",
    )
    retry_batch_size: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum due deliveries claimed per cycle",
    )
    retry_concurrency: int = Field(
        default=4,
        ge=1,
        le=100,
        description="Maximum concurrent attempts within a cycle",
    )
    claim_lease_seconds: int = Field(
        default=120,
        ge=1,
        description=(
            "How long a claimed delivery stays hidden from other cycles. "
            "Must exceed the delivery timeout so a live attempt is never re-claimed."
        ),
    )

    # Cleanup
    delivery_retention_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Days to keep terminal delivery records",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    @model_validator(mode="after")
    def _validate_retry_schedule(self) -> "Settings":
        """Check the backoff table covers every retry and the lease covers a call."""
        if any(delay < 0 for delay in self.retry_backoff_seconds):
            raise ValueError("retry_backoff_seconds entries must be non-negative")
        if len(self.retry_backoff_seconds) < self.max_attempts - 1:
            raise ValueError(
                f"retry_backoff_seconds has {len(self.retry_backoff_seconds)} entries, "
                f"max_attempts={self.max_attempts} needs {self.max_attempts - 1}"
            )
        if self.claim_lease_seconds <= max(
            self.delivery_timeout_seconds, self.inline_timeout_seconds
        ):
            raise ValueError("claim_lease_seconds must exceed the delivery timeouts")
        if self.env == "production" and self.log_format != "json":
            logger.warning("Non-JSON log format configured in production")
        return self


# Global settings instance
settings = Settings()
