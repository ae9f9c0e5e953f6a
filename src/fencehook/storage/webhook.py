"""Webhook storage operations for Fencehook.

Registrations are written by the management plane; the pipeline reads
them through ``resolve_webhooks`` / ``get_webhook`` and changes only the
circuit breaker fields through ``update_webhook_atomically``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from qdrant_client import models

if TYPE_CHECKING:
    from fencehook.models import Webhook

# Owners have a handful of webhooks; this caps a single resolution read.
MAX_WEBHOOKS_PER_OWNER = 100


class WebhookMixin:
    """Mixin providing webhook operations for FencehookStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert(kind, resource_id, payload)
    - _retrieve(kind, resource_id) -> dict | None
    - _scroll(kind, filter, limit, order_by) -> list[dict]
    - _delete_by_ids(kind, ids)
    - _model_to_payload(model) -> dict
    - _payload_to_model(payload, model_class) -> model
    - _webhook_lock(webhook_id) -> async context manager
    """

    _upsert: Any
    _retrieve: Any
    _scroll: Any
    _delete_by_ids: Any
    _model_to_payload: Any
    _payload_to_model: Any
    _webhook_lock: Any

    async def store_webhook(self, webhook: Webhook) -> str:
        """Store a webhook registration.

        Args:
            webhook: Webhook to store.

        Returns:
            The webhook ID.
        """
        await self._upsert("webhooks", webhook.id, self._model_to_payload(webhook))
        return webhook.id

    async def get_webhook(self, webhook_id: str) -> Webhook | None:
        """Get a webhook by ID.

        Args:
            webhook_id: ID of the webhook.

        Returns:
            Webhook or None if not found.
        """
        from fencehook.models import Webhook

        payload = await self._retrieve("webhooks", webhook_id)
        if payload is None:
            return None
        webhook: Webhook = self._payload_to_model(payload, Webhook)
        return webhook

    async def resolve_webhooks(self, owner_id: str) -> list[Webhook]:
        """Get all enabled webhooks belonging to an owner.

        Disabled webhooks are excluded. Webhooks with an open circuit are
        included; the dispatcher decides what to do with them.

        Args:
            owner_id: Device or organization ID.

        Returns:
            Enabled webhooks, oldest registration first.
        """
        from fencehook.models import Webhook

        payloads = await self._scroll(
            "webhooks",
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="owner_id",
                        match=models.MatchValue(value=owner_id),
                    ),
                    models.FieldCondition(
                        key="enabled",
                        match=models.MatchValue(value=True),
                    ),
                ]
            ),
            MAX_WEBHOOKS_PER_OWNER,
        )

        webhooks: list[Webhook] = [self._payload_to_model(p, Webhook) for p in payloads]
        webhooks.sort(key=lambda w: w.created_at)
        return webhooks

    async def delete_webhook(self, webhook_id: str) -> bool:
        """Delete a webhook registration.

        Returns:
            True if it existed.
        """
        async with self._webhook_lock(webhook_id):
            existing = await self._retrieve("webhooks", webhook_id)
            if existing is None:
                return False
            await self._delete_by_ids("webhooks", [webhook_id])
            return True

    async def update_webhook_atomically(
        self,
        webhook_id: str,
        update: Callable[[Webhook], Webhook],
    ) -> Webhook | None:
        """Read-modify-write a webhook with no interleaving writers.

        Updates for the same webhook are serialized, so two attempts
        finishing at once cannot lose a failure count.

        Args:
            webhook_id: ID of the webhook.
            update: Receives the current webhook, returns the new state.

        Returns:
            The stored webhook, or None if it no longer exists.
        """
        async with self._webhook_lock(webhook_id):
            current = await self.get_webhook(webhook_id)
            if current is None:
                return None
            updated = update(current)
            await self._upsert("webhooks", updated.id, self._model_to_payload(updated))
            return updated
