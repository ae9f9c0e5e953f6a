"""Webhook registration model.

Registrations are created and edited by the management plane. The
delivery pipeline reads them and only ever writes the two circuit
breaker fields, ``consecutive_failures`` and ``circuit_open_until``.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from .base import ensure_utc, generate_id, utc_now


class Webhook(BaseModel):
    """A registered delivery target.

    Attributes:
        id: Unique identifier for this webhook.
        owner_id: Device or organization that owns the webhook.
        name: Human-readable name.
        target_url: HTTPS endpoint that receives events.
        secret: Shared key for HMAC-SHA256 signatures. Never re-exposed.
        enabled: Disabled webhooks are skipped at resolution time.
        consecutive_failures: Failed attempts since the last success.
        circuit_open_until: While in the future, no attempts are made.
        created_at: When the webhook was registered.
        updated_at: When the webhook was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    owner_id: str = Field(description="Device or organization that owns this webhook")
    name: str = Field(default="webhook", min_length=1, max_length=100)
    target_url: HttpUrl = Field(description="HTTPS endpoint to receive events")
    secret: str = Field(
        min_length=16,
        max_length=256,
        repr=False,
        description="Shared secret for HMAC-SHA256 signatures",
    )
    enabled: bool = Field(default=True, description="Whether webhook is active")
    consecutive_failures: int = Field(default=0, ge=0)
    circuit_open_until: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("target_url")
    @classmethod
    def _require_https(cls, value: HttpUrl) -> HttpUrl:
        if value.scheme != "https":
            raise ValueError("target_url must use HTTPS")
        return value

    @field_validator("circuit_open_until", "created_at", "updated_at")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def is_circuit_open(self, now: datetime | None = None) -> bool:
        """Check if the circuit breaker is currently open."""
        if self.circuit_open_until is None:
            return False
        return self.circuit_open_until > (now or utc_now())

    def is_available(self, now: datetime | None = None) -> bool:
        """Check if webhook is enabled and its circuit is closed."""
        return self.enabled and not self.is_circuit_open(now)

    def public_dict(self) -> dict[str, Any]:
        """Serialize for management-plane reads, without the secret."""
        return self.model_dump(mode="json", exclude={"secret"})


__all__ = ["Webhook"]
