"""A single delivery attempt, shared by the dispatcher and the retry worker.

One attempt is: sign the stored body, POST it, classify the outcome,
update the webhook's circuit breaker, move the record to its next state
and persist it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from fencehook.exceptions import DeliveryStateError, TransportError
from fencehook.models.base import utc_now

from .schedule import DEFAULT_SCHEDULE, RetrySchedule
from .signing import signature_header

if TYPE_CHECKING:
    from fencehook.models import DeliveryRecord, Webhook
    from fencehook.storage import FencehookStorage

    from .circuit import CircuitBreaker, CircuitState
    from .transport import Transport

logger = logging.getLogger(__name__)

USER_AGENT = "fencehook-webhooks/0.1"
DEFAULT_TIMEOUT_SECONDS = 5.0


class AttemptResult(str, Enum):
    """Where an attempt left the record."""

    SUCCEEDED = "succeeded"
    RESCHEDULED = "rescheduled"
    FAILED = "failed"


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one attempt.

    Attributes:
        record: The record as persisted after the attempt.
        result: succeeded, rescheduled or failed.
        response_code: HTTP status, None if no response was received.
        error: Error text stored on the record, None on success.
        circuit: Breaker state after the attempt, None if the webhook vanished.
    """

    record: DeliveryRecord
    result: AttemptResult
    response_code: int | None = None
    error: str | None = None
    circuit: CircuitState | None = None

    @property
    def succeeded(self) -> bool:
        return self.result is AttemptResult.SUCCEEDED


def build_headers(record: DeliveryRecord, secret: str, attempted_at: datetime) -> dict[str, str]:
    """Request headers for one attempt at a record."""
    return {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "X-Webhook-Signature": signature_header(secret, record.body),
        "X-Webhook-Delivery-Id": record.id,
        "X-Webhook-Event-Id": record.event_id or "",
        "X-Webhook-Event": record.event_type,
        "X-Webhook-Timestamp": str(int(attempted_at.timestamp())),
    }


class DeliveryAttempt:
    """Performs attempts and records their outcome.

    Example:
        ```python
        attempt = DeliveryAttempt(storage, transport, breaker)
        outcome = await attempt.attempt(record, webhook)
        if not outcome.succeeded:
            print(outcome.record.next_retry_at)
        ```
    """

    def __init__(
        self,
        storage: FencehookStorage,
        transport: Transport,
        breaker: CircuitBreaker,
        schedule: RetrySchedule = DEFAULT_SCHEDULE,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the attempt runner.

        Args:
            storage: Where records are persisted.
            transport: Outbound HTTP.
            breaker: Circuit breaker notified of every outcome.
            schedule: Backoff table and attempt limit.
            timeout_seconds: Default timeout per HTTP call.
        """
        self._storage = storage
        self._transport = transport
        self._breaker = breaker
        self._schedule = schedule
        self._timeout = timeout_seconds

    @property
    def schedule(self) -> RetrySchedule:
        return self._schedule

    async def attempt(
        self,
        record: DeliveryRecord,
        webhook: Webhook,
        now: datetime | None = None,
        timeout: float | None = None,
    ) -> AttemptOutcome:
        """Attempt delivery of a pending record to its webhook.

        Delivery failures never raise: they are stored on the record.

        Args:
            record: Pending record, claimed by the caller.
            webhook: Its target webhook.
            now: Attempt time. Defaults to the current time.
            timeout: HTTP timeout, overriding the default.

        Returns:
            AttemptOutcome with the persisted record.

        Raises:
            DeliveryStateError: If the record is already terminal.
            ClaimLostError: If another holder took the record over mid-attempt.
            StorageError: If the outcome could not be persisted.
        """
        if record.is_terminal:
            raise DeliveryStateError(record.id, record.status.value)

        claim = record.claimed_until
        now = now or utc_now()
        timeout = timeout if timeout is not None else self._timeout
        headers = build_headers(record, webhook.secret, now)

        response_code: int | None = None
        error: str | None = None
        try:
            response = await self._transport.post(
                str(webhook.target_url),
                record.body,
                headers,
                timeout,
            )
            response_code = response.status_code
            if not response.is_success:
                error = f"HTTP {response.status_code}"
                if response.body_excerpt:
                    error = f"{error}: {response.body_excerpt}"
        except TransportError as e:
            error = e.message
        except Exception as e:
            error = f"Unexpected error: {e}"
            logger.exception("Webhook delivery error: %s", e)

        if error is None:
            circuit = await self._breaker.record_success(webhook.id)
            record.record_attempt(now, response_code=response_code)
            record.mark_success()
            result = AttemptResult.SUCCEEDED
            logger.info(
                "Webhook delivered: %s to %s (status %d, attempt %d)",
                record.event_type,
                webhook.target_url,
                response_code,
                record.attempts,
            )
        else:
            circuit = await self._breaker.record_failure(webhook.id, now)
            record.record_attempt(now, response_code=response_code, error_message=error)
            next_retry_at = self._schedule.next_retry_at(record.attempts, now)
            if next_retry_at is None:
                record.mark_failed()
                result = AttemptResult.FAILED
                logger.warning(
                    "Webhook max attempts exceeded: %s to %s after %d attempts: %s",
                    record.event_type,
                    webhook.target_url,
                    record.attempts,
                    error,
                )
            else:
                record.mark_retry(next_retry_at)
                result = AttemptResult.RESCHEDULED
                logger.info(
                    "Webhook scheduled for retry: %s to %s (attempt %d failed, next at %s): %s",
                    record.event_type,
                    webhook.target_url,
                    record.attempts,
                    next_retry_at.isoformat(),
                    error,
                )

        await self._storage.update_delivery(record, claim=claim)
        return AttemptOutcome(
            record=record,
            result=result,
            response_code=response_code,
            error=record.error_message,
            circuit=circuit,
        )
