"""Producer-side fan-out of events to webhooks.

Resolves the owner's enabled webhooks, creates one delivery record per
webhook and makes the first attempt inline. Everything after the first
attempt belongs to the retry worker.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from fencehook.exceptions import StorageError, ValidationError
from fencehook.models import DeliveryRecord, WebhookPayload
from fencehook.models.base import utc_now

from .attempt import DEFAULT_TIMEOUT_SECONDS, DeliveryAttempt
from .circuit import CircuitBreaker
from .schedule import DEFAULT_SCHEDULE, RetrySchedule

if TYPE_CHECKING:
    from fencehook.config import Settings
    from fencehook.models import GeofenceEvent, Webhook
    from fencehook.storage import FencehookStorage

    from .transport import Transport

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """Dispatches events to an owner's registered webhooks.

    Handles:
    - Resolving enabled webhooks for the event owner
    - Serializing the payload once per event
    - Deferring webhooks whose circuit is open
    - Making the first attempt inline with a short timeout

    Delivery failures are recorded, never raised. Only a StorageError,
    meaning a record could not be persisted, reaches the caller.

    Example:
        ```python
        dispatcher = WebhookDispatcher(storage, HttpxTransport())

        records = await dispatcher.dispatch(event)
        ```
    """

    def __init__(
        self,
        storage: FencehookStorage,
        transport: Transport,
        breaker: CircuitBreaker | None = None,
        schedule: RetrySchedule = DEFAULT_SCHEDULE,
        inline_delivery: bool = True,
        inline_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_concurrent: int = 10,
        claim_lease: timedelta = timedelta(minutes=2),
    ) -> None:
        """Initialize the dispatcher.

        Args:
            storage: FencehookStorage for webhooks and delivery records.
            transport: Outbound HTTP.
            breaker: Circuit breaker. Defaults to one with standard limits.
            schedule: Backoff table and attempt limit.
            inline_delivery: Attempt immediately. When False, records are
                left pending for the retry worker.
            inline_timeout_seconds: HTTP timeout for the inline attempt.
            max_concurrent: Maximum concurrent inline attempts.
            claim_lease: How long a freshly created record stays hidden
                from the retry worker while its inline attempt runs.
        """
        self._storage = storage
        self._breaker = breaker or CircuitBreaker(storage)
        self._attempt = DeliveryAttempt(
            storage,
            transport,
            self._breaker,
            schedule=schedule,
            timeout_seconds=inline_timeout_seconds,
        )
        self._inline_delivery = inline_delivery
        self._inline_timeout = inline_timeout_seconds
        self._claim_lease = claim_lease
        self._semaphore = asyncio.Semaphore(max_concurrent)

    @classmethod
    def from_settings(
        cls,
        storage: FencehookStorage,
        transport: Transport,
        settings: Settings,
    ) -> WebhookDispatcher:
        return cls(
            storage,
            transport,
            breaker=CircuitBreaker.from_settings(storage, settings),
            schedule=RetrySchedule.from_settings(settings),
            inline_delivery=settings.inline_delivery,
            inline_timeout_seconds=settings.inline_timeout_seconds,
            max_concurrent=settings.dispatch_concurrency,
            claim_lease=timedelta(seconds=settings.claim_lease_seconds),
        )

    async def dispatch(self, event: GeofenceEvent) -> list[DeliveryRecord]:
        """Dispatch a geofence event to all of its owner's webhooks.

        Args:
            event: The fired transition.

        Returns:
            One DeliveryRecord per enabled webhook, as persisted.

        Raises:
            StorageError: If a record could not be persisted.
        """
        return await self._fan_out(event.to_payload(), event_id=event.id)

    async def dispatch_payload(
        self,
        owner_id: str,
        event_type: str,
        data: dict[str, Any],
        event_id: str | None = None,
    ) -> list[DeliveryRecord]:
        """Dispatch an arbitrary payload, e.g. a test ping.

        Args:
            owner_id: Owner whose webhooks receive the payload.
            event_type: Wire tag placed in ``type``.
            data: JSON-serializable event data.
            event_id: Originating event, if any.

        Returns:
            One DeliveryRecord per enabled webhook.

        Raises:
            ValidationError: If the payload is malformed or ``data`` is not
                JSON-serializable. Nothing is stored in that case.
        """
        fields: dict[str, Any] = {"type": event_type, "owner_id": owner_id, "data": data}
        if event_id is not None:
            fields["id"] = event_id
        try:
            payload = WebhookPayload(**fields)
            payload.to_body()
        except ValueError as e:
            raise ValidationError("payload", str(e)) from e
        return await self._fan_out(payload, event_id=event_id)

    async def _fan_out(
        self,
        payload: WebhookPayload,
        event_id: str | None,
    ) -> list[DeliveryRecord]:
        webhooks = await self._storage.resolve_webhooks(payload.owner_id)
        if not webhooks:
            logger.debug("No webhooks registered for %s (owner %s)", payload.type, payload.owner_id)
            return []

        body = payload.to_body()
        results = await asyncio.gather(
            *(self._deliver_to_webhook(webhook, payload.type, body, event_id) for webhook in webhooks),
            return_exceptions=True,
        )

        records: list[DeliveryRecord] = []
        storage_error: StorageError | None = None
        for webhook, result in zip(webhooks, results, strict=True):
            if isinstance(result, StorageError):
                logger.error("Could not persist delivery to webhook %s: %s", webhook.id, result)
                storage_error = storage_error or result
            elif isinstance(result, Exception):
                logger.error("Webhook dispatch failed for %s: %s", webhook.id, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                records.append(result)

        if storage_error is not None:
            raise storage_error
        return records

    async def _deliver_to_webhook(
        self,
        webhook: Webhook,
        event_type: str,
        body: str,
        event_id: str | None,
    ) -> DeliveryRecord:
        """Create the record for one webhook and make its first attempt.

        Returns:
            The persisted DeliveryRecord.
        """
        now = utc_now()
        record = DeliveryRecord(
            webhook_id=webhook.id,
            event_id=event_id,
            owner_id=webhook.owner_id,
            event_type=event_type,
            payload=body,
        )

        if self._breaker.is_open(webhook, now) and webhook.circuit_open_until is not None:
            record.defer(webhook.circuit_open_until)
            await self._storage.create_delivery(record)
            logger.info(
                "Circuit open for webhook %s, delivery %s deferred until %s",
                webhook.id,
                record.id,
                webhook.circuit_open_until.isoformat(),
            )
            return record

        if not self._inline_delivery:
            await self._storage.create_delivery(record)
            return record

        # Hidden from the retry worker until the inline attempt is persisted
        record.claimed_until = now + self._claim_lease
        await self._storage.create_delivery(record)

        async with self._semaphore:
            # The lease runs from the start of the attempt, not from creation
            if not await self._storage.renew_claim(record, utc_now() + self._claim_lease):
                logger.info(
                    "Delivery %s was taken over by the retry worker before its inline attempt",
                    record.id,
                )
                return record
            outcome = await self._attempt.attempt(record, webhook, timeout=self._inline_timeout)
        return outcome.record
