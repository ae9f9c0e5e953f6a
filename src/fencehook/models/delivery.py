"""Delivery record model and its status transitions.

A DeliveryRecord is one attempt lineage for one (webhook, event) pair.
The transitions below are the only way its state changes:

    pending --record_attempt + mark_retry--> pending (next_retry_at set)
    pending --record_attempt + mark_success--> success
    pending --record_attempt + mark_failed--> failed
    pending --defer--> pending (circuit open, attempts unchanged)
    pending --cancel--> failed (webhook gone or disabled)

Terminal records refuse every transition.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fencehook.exceptions import DeliveryStateError

from .base import ensure_utc, generate_id, utc_now

# Response bodies and error text are truncated before storage
MAX_ERROR_LENGTH = 1000


class DeliveryStatus(str, Enum):
    """Delivery status."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class DeliveryRecord(BaseModel):
    """Durable record of a delivery and its attempts.

    Attributes:
        id: Unique identifier, distinct from any event ID.
        webhook_id: Target webhook.
        event_id: Originating event, None for deliveries not sourced from an event.
        owner_id: Owner of the target webhook.
        event_type: Wire tag such as ``geofence.enter``.
        payload: Exact serialized body, identical on every attempt.
        status: pending, success or failed.
        attempts: Completed attempts. Skips behind an open circuit don't count.
        created_at: When the record was created.
        last_attempt_at: When the most recent attempt finished.
        next_retry_at: When the record becomes due again; None while awaiting
            the first attempt or once terminal.
        response_code: HTTP status of the most recent attempt, if any.
        error_message: Error from the most recent attempt, if any.
        claimed_until: Lease hiding the record from other worker cycles.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    webhook_id: str
    event_id: str | None = None
    owner_id: str
    event_type: str
    payload: str
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: datetime | None = None
    next_retry_at: datetime | None = None
    response_code: int | None = None
    error_message: str | None = Field(default=None, max_length=MAX_ERROR_LENGTH)
    claimed_until: datetime | None = None

    @field_validator("created_at", "last_attempt_at", "next_retry_at", "claimed_until")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    @field_validator("error_message", mode="before")
    @classmethod
    def _truncate_error(cls, value: str | None) -> str | None:
        if value is not None and len(value) > MAX_ERROR_LENGTH:
            return value[:MAX_ERROR_LENGTH]
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status is not DeliveryStatus.PENDING

    @property
    def body(self) -> bytes:
        """Payload as transmitted."""
        return self.payload.encode("utf-8")

    def is_due(self, now: datetime | None = None) -> bool:
        """Pending and either never attempted or past its retry time."""
        if self.is_terminal:
            return False
        return self.next_retry_at is None or self.next_retry_at <= (now or utc_now())

    def is_claimed(self, now: datetime | None = None) -> bool:
        return self.claimed_until is not None and self.claimed_until > (now or utc_now())

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise DeliveryStateError(self.id, self.status.value)

    def record_attempt(
        self,
        attempted_at: datetime,
        response_code: int | None = None,
        error_message: str | None = None,
    ) -> "DeliveryRecord":
        """Count a completed attempt and store its outcome."""
        self._ensure_mutable()
        self.attempts += 1
        self.last_attempt_at = attempted_at
        self.response_code = response_code
        self.error_message = error_message
        return self

    def mark_success(self) -> "DeliveryRecord":
        """Finalize as delivered."""
        self._ensure_mutable()
        self.status = DeliveryStatus.SUCCESS
        self.next_retry_at = None
        self.claimed_until = None
        return self

    def mark_retry(self, next_retry_at: datetime) -> "DeliveryRecord":
        """Keep pending and schedule the next attempt."""
        self._ensure_mutable()
        self.next_retry_at = next_retry_at
        self.claimed_until = None
        return self

    def mark_failed(self, error_message: str | None = None) -> "DeliveryRecord":
        """Finalize as failed. No further attempts."""
        self._ensure_mutable()
        self.status = DeliveryStatus.FAILED
        self.next_retry_at = None
        self.claimed_until = None
        if error_message is not None:
            self.error_message = error_message
        return self

    def defer(self, until: datetime) -> "DeliveryRecord":
        """Push the record behind an open circuit without counting an attempt."""
        self._ensure_mutable()
        self.next_retry_at = until
        self.claimed_until = None
        return self

    def cancel(self, reason: str) -> "DeliveryRecord":
        """Finalize without an attempt because the target is gone or disabled."""
        return self.mark_failed(error_message=reason)


class DeliveryStats(BaseModel):
    """Delivery counts by status."""

    model_config = ConfigDict(extra="forbid")

    pending: int = Field(default=0, ge=0)
    success: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.pending + self.success + self.failed


__all__ = [
    "MAX_ERROR_LENGTH",
    "DeliveryRecord",
    "DeliveryStats",
    "DeliveryStatus",
]
