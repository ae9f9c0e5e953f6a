"""Delivery record storage operations for Fencehook.

Provides creation and update of delivery records, the claim-based scan
used by the retry worker, history reads for the management plane, and
retention cleanup.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from qdrant_client import models

from fencehook.exceptions import ClaimLostError, DeliveryStateError, NotFoundError

from .base import to_timestamp

if TYPE_CHECKING:
    from fencehook.models import DeliveryRecord, DeliveryStats, DeliveryStatus

TERMINAL_STATUSES = ("success", "failed")


def _match(key: str, value: str) -> models.FieldCondition:
    return models.FieldCondition(key=key, match=models.MatchValue(value=value))


class DeliveryMixin:
    """Mixin providing delivery record operations for FencehookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert, _retrieve, _scroll, _count, _delete_by_ids
    - _model_to_payload(model, **derived) -> dict
    - _payload_to_model(payload, model_class) -> model
    - _claim_lock: asyncio.Lock
    """

    _upsert: Any
    _retrieve: Any
    _scroll: Any
    _count: Any
    _delete_by_ids: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _claim_lock: asyncio.Lock

    def _delivery_payload(self, record: DeliveryRecord) -> dict[str, Any]:
        payload: dict[str, Any] = self._model_to_payload(
            record,
            due_ts=to_timestamp(record.next_retry_at),
            claimed_until_ts=to_timestamp(record.claimed_until),
            created_ts=to_timestamp(record.created_at),
        )
        return payload

    async def create_delivery(self, record: DeliveryRecord) -> str:
        """Persist a new delivery record.

        Args:
            record: DeliveryRecord to store.

        Returns:
            The delivery ID.

        Raises:
            StorageError: If the record could not be written.
        """
        await self._upsert("deliveries", record.id, self._delivery_payload(record))
        return record.id

    async def update_delivery(
        self,
        record: DeliveryRecord,
        claim: datetime | None = None,
    ) -> str:
        """Persist the new state of an existing delivery record.

        The write is a compare-and-set on the claim: ``claim`` must be the
        lease the caller was handed (by ``claim_due_deliveries``,
        ``renew_claim`` or at creation), or None for an unclaimed record.
        A holder whose lease expired and was taken over cannot overwrite
        the new holder's state.

        Args:
            record: The record with its new state.
            claim: Lease the caller holds on the record.

        Raises:
            NotFoundError: If the record does not exist.
            DeliveryStateError: If the stored record is already terminal.
            ClaimLostError: If the stored lease is no longer ``claim``.
            StorageError: If the record could not be written.
        """
        async with self._claim_lock:
            stored = await self._retrieve("deliveries", record.id)
            if stored is None:
                raise NotFoundError("delivery", record.id)
            if stored.get("status") in TERMINAL_STATUSES:
                raise DeliveryStateError(record.id, str(stored["status"]))
            if stored.get("claimed_until_ts", 0.0) != to_timestamp(claim):
                raise ClaimLostError(record.id)

            await self._upsert("deliveries", record.id, self._delivery_payload(record))
        return record.id

    async def renew_claim(self, record: DeliveryRecord, until: datetime) -> bool:
        """Extend the caller's claim on a record to ``until``.

        Succeeds only while the stored record is pending and still carries
        the lease in ``record.claimed_until``. On success the record's
        ``claimed_until`` is updated in place.

        Returns:
            True if the claim was renewed, False if it was lost.
        """
        async with self._claim_lock:
            stored = await self._retrieve("deliveries", record.id)
            if stored is None or stored.get("status") != "pending":
                return False
            if stored.get("claimed_until_ts", 0.0) != to_timestamp(record.claimed_until):
                return False

            record.claimed_until = until
            await self._upsert("deliveries", record.id, self._delivery_payload(record))
        return True

    async def get_delivery(self, delivery_id: str) -> DeliveryRecord | None:
        """Get a delivery record by ID."""
        from fencehook.models import DeliveryRecord

        payload = await self._retrieve("deliveries", delivery_id)
        if payload is None:
            return None
        record: DeliveryRecord = self._payload_to_model(payload, DeliveryRecord)
        return record

    async def claim_due_deliveries(
        self,
        now: datetime,
        limit: int,
        lease: timedelta,
    ) -> list[DeliveryRecord]:
        """Claim pending deliveries that are due, oldest due first.

        A record is due when it is pending, its ``next_retry_at`` is unset
        or not after ``now``, and nobody holds an unexpired claim on it.
        Each returned record is leased until ``now + lease``; overlapping
        cycles skip it until the lease is cleared by an update or expires.

        Args:
            now: Reference time for due/lease checks.
            limit: Maximum records to claim.
            lease: How long the claim hides the record.

        Returns:
            The claimed records, with ``claimed_until`` set.
        """
        from fencehook.models import DeliveryRecord

        now_ts = now.timestamp()
        due_filter = models.Filter(
            must=[
                _match("status", "pending"),
                models.FieldCondition(key="due_ts", range=models.Range(lte=now_ts)),
                models.FieldCondition(key="claimed_until_ts", range=models.Range(lte=now_ts)),
            ]
        )

        async with self._claim_lock:
            payloads = await self._scroll(
                "deliveries",
                due_filter,
                limit,
                models.OrderBy(key="due_ts", direction=models.Direction.ASC),
            )

            claimed: list[DeliveryRecord] = []
            for payload in payloads:
                record: DeliveryRecord = self._payload_to_model(payload, DeliveryRecord)
                record.claimed_until = now + lease
                await self._upsert("deliveries", record.id, self._delivery_payload(record))
                claimed.append(record)

        return claimed

    async def list_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DeliveryRecord]:
        """List delivery history for a webhook, newest first.

        Args:
            webhook_id: ID of the webhook.
            status: Optional status filter.
            limit: Maximum entries to return.
            offset: Entries to skip.

        Returns:
            DeliveryRecords sorted by created_at descending.
        """
        from fencehook.models import DeliveryRecord

        payloads = await self._scroll(
            "deliveries",
            self._history_filter(webhook_id=webhook_id, status=status),
            offset + limit,
            models.OrderBy(key="created_ts", direction=models.Direction.DESC),
        )
        return [self._payload_to_model(p, DeliveryRecord) for p in payloads[offset:]]

    async def count_deliveries(
        self,
        webhook_id: str,
        status: DeliveryStatus | str | None = None,
    ) -> int:
        """Count deliveries for a webhook with an optional status filter."""
        count: int = await self._count(
            "deliveries", self._history_filter(webhook_id=webhook_id, status=status)
        )
        return count

    async def count_pending(self, webhook_id: str) -> int:
        """Count pending deliveries for a webhook."""
        return await self.count_deliveries(webhook_id, status="pending")

    async def get_delivery_stats(
        self,
        webhook_id: str | None = None,
        since: datetime | None = None,
    ) -> DeliveryStats:
        """Count deliveries by status.

        Args:
            webhook_id: Restrict to one webhook.
            since: Only records created at or after this time.
        """
        from fencehook.models import DeliveryStats

        counts: dict[str, int] = {}
        for status in ("pending", "success", "failed"):
            counts[status] = await self._count(
                "deliveries",
                self._history_filter(webhook_id=webhook_id, status=status, since=since),
            )
        return DeliveryStats(**counts)

    async def delete_terminal_deliveries_before(self, cutoff: datetime) -> int:
        """Delete success/failed records created before ``cutoff``.

        Pending records are never deleted, whatever their age.

        Returns:
            Number of records deleted.
        """
        cutoff_filter = models.Filter(
            must=[
                models.FieldCondition(
                    key="created_ts", range=models.Range(lt=cutoff.timestamp())
                ),
                models.FieldCondition(
                    key="status", match=models.MatchAny(any=list(TERMINAL_STATUSES))
                ),
            ]
        )

        deleted = 0
        while True:
            payloads = await self._scroll("deliveries", cutoff_filter, 256)
            if not payloads:
                return deleted
            await self._delete_by_ids("deliveries", [p["id"] for p in payloads])
            deleted += len(payloads)

    @staticmethod
    def _history_filter(
        webhook_id: str | None = None,
        status: DeliveryStatus | str | None = None,
        since: datetime | None = None,
    ) -> models.Filter | None:
        conditions: list[models.Condition] = []
        if webhook_id is not None:
            conditions.append(_match("webhook_id", webhook_id))
        if status is not None:
            conditions.append(_match("status", getattr(status, "value", status)))
        if since is not None:
            conditions.append(
                models.FieldCondition(key="created_ts", range=models.Range(gte=since.timestamp()))
            )
        return models.Filter(must=conditions) if conditions else None
