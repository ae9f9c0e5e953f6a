"""Periodic retry of pending deliveries.

Each cycle claims a batch of due records, then for each one either
cancels it (webhook gone or disabled), defers it (circuit open) or makes
another attempt. A record that raises is logged and counted; the rest
of the batch carries on, and the crashed record becomes due again once
its claim lease expires.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fencehook.exceptions import ConfigurationError
from fencehook.logging import bind_context, unbind_context
from fencehook.models.base import generate_id, utc_now

from .attempt import DEFAULT_TIMEOUT_SECONDS, DeliveryAttempt
from .circuit import CircuitBreaker
from .schedule import DEFAULT_SCHEDULE, RetrySchedule

if TYPE_CHECKING:
    from fencehook.config import Settings
    from fencehook.models import DeliveryRecord
    from fencehook.storage import FencehookStorage

    from .transport import Transport

logger = logging.getLogger(__name__)

WEBHOOK_NOT_FOUND = "webhook not found"
WEBHOOK_DISABLED = "webhook disabled"


@dataclass
class RetryCycleResult:
    """Counts from one retry cycle."""

    claimed: int = 0
    succeeded: int = 0
    rescheduled: int = 0
    failed: int = 0
    deferred: int = 0
    cancelled: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class RetryWorker:
    """Retries due deliveries with bounded concurrency.

    Also a scheduler job: register it with ``JobScheduler`` to run
    ``run_once`` every ``interval`` seconds.

    Example:
        ```python
        worker = RetryWorker(storage, HttpxTransport())
        result = await worker.run_once()
        print(result.succeeded, result.rescheduled)
        ```
    """

    name = "webhook_retry"

    def __init__(
        self,
        storage: FencehookStorage,
        transport: Transport,
        breaker: CircuitBreaker | None = None,
        schedule: RetrySchedule = DEFAULT_SCHEDULE,
        batch_size: int = 10,
        concurrency: int = 4,
        claim_lease: timedelta = timedelta(minutes=2),
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        interval_seconds: float = 60.0,
    ) -> None:
        """Initialize the worker.

        Args:
            storage: FencehookStorage for webhooks and delivery records.
            transport: Outbound HTTP.
            breaker: Circuit breaker. Defaults to one with standard limits.
            schedule: Backoff table and attempt limit.
            batch_size: Maximum records claimed per cycle.
            concurrency: Maximum concurrent attempts within a cycle.
            claim_lease: How long claimed records stay hidden from other cycles.
            timeout_seconds: HTTP timeout per attempt.
            interval_seconds: Seconds between cycles when scheduled.
        """
        if claim_lease.total_seconds() <= timeout_seconds:
            raise ConfigurationError("claim_lease must exceed the attempt timeout")
        self._storage = storage
        self._breaker = breaker or CircuitBreaker(storage)
        self._attempt = DeliveryAttempt(
            storage,
            transport,
            self._breaker,
            schedule=schedule,
            timeout_seconds=timeout_seconds,
        )
        self._batch_size = batch_size
        self._concurrency = concurrency
        self._claim_lease = claim_lease
        self._timeout = timeout_seconds
        self.interval = interval_seconds

    @classmethod
    def from_settings(
        cls,
        storage: FencehookStorage,
        transport: Transport,
        settings: Settings,
    ) -> RetryWorker:
        return cls(
            storage,
            transport,
            breaker=CircuitBreaker.from_settings(storage, settings),
            schedule=RetrySchedule.from_settings(settings),
            batch_size=settings.retry_batch_size,
            concurrency=settings.retry_concurrency,
            claim_lease=timedelta(seconds=settings.claim_lease_seconds),
            timeout_seconds=settings.delivery_timeout_seconds,
            interval_seconds=settings.retry_interval_seconds,
        )

    async def execute(self) -> RetryCycleResult:
        return await self.run_once()

    async def run_once(self, now: datetime | None = None) -> RetryCycleResult:
        """Run one retry cycle.

        Args:
            now: Reference time for due checks and attempts. Defaults to
                the current time, taken per record.

        Returns:
            RetryCycleResult with per-outcome counts.

        Raises:
            StorageError: If due records could not be claimed.
        """
        claim_time = now or utc_now()
        bind_context(retry_cycle=generate_id("cyc"))
        try:
            records = await self._storage.claim_due_deliveries(
                claim_time,
                limit=self._batch_size,
                lease=self._claim_lease,
            )
            result = RetryCycleResult(claimed=len(records))
            if not records:
                return result

            semaphore = asyncio.Semaphore(self._concurrency)

            async def _bounded(record: DeliveryRecord) -> str:
                async with semaphore:
                    return await self._process(record, now)

            outcomes = await asyncio.gather(
                *(_bounded(record) for record in records),
                return_exceptions=True,
            )

            for record, outcome in zip(records, outcomes, strict=True):
                if isinstance(outcome, Exception):
                    result.errors += 1
                    logger.error(
                        "Retry of delivery %s failed: %s",
                        record.id,
                        outcome,
                        exc_info=outcome,
                    )
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    setattr(result, outcome, getattr(result, outcome) + 1)

            logger.info(
                "Retry cycle: %d claimed, %d succeeded, %d rescheduled, %d failed, "
                "%d deferred, %d cancelled, %d errors",
                result.claimed,
                result.succeeded,
                result.rescheduled,
                result.failed,
                result.deferred,
                result.cancelled,
                result.errors,
            )
            return result
        finally:
            unbind_context("retry_cycle")

    async def _process(self, record: DeliveryRecord, now: datetime | None) -> str:
        """Handle one claimed record.

        Returns:
            Name of the RetryCycleResult counter to increment.
        """
        claim = record.claimed_until
        webhook = await self._storage.get_webhook(record.webhook_id)
        if webhook is None or not webhook.enabled:
            reason = WEBHOOK_NOT_FOUND if webhook is None else WEBHOOK_DISABLED
            record.cancel(reason)
            await self._storage.update_delivery(record, claim=claim)
            logger.warning("Delivery %s cancelled: %s (%s)", record.id, reason, record.webhook_id)
            return "cancelled"

        check_time = now or utc_now()
        if self._breaker.is_open(webhook, check_time) and webhook.circuit_open_until is not None:
            record.defer(webhook.circuit_open_until)
            await self._storage.update_delivery(record, claim=claim)
            logger.info(
                "Circuit open for webhook %s, delivery %s deferred until %s",
                webhook.id,
                record.id,
                webhook.circuit_open_until.isoformat(),
            )
            return "deferred"

        outcome = await self._attempt.attempt(record, webhook, now=now, timeout=self._timeout)
        return outcome.result.value
