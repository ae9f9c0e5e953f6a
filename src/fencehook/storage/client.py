"""Qdrant storage client for the Fencehook delivery pipeline.

This module provides the main FencehookStorage class that combines
webhook and delivery record operations through mixins.

Example:
    ```python
    from fencehook.storage import FencehookStorage

    async with FencehookStorage() as storage:
        webhooks = await storage.resolve_webhooks("dev_123")
        history = await storage.list_deliveries(webhooks[0].id)
    ```
"""

from __future__ import annotations

from .base import StorageBase
from .delivery import DeliveryMixin
from .webhook import WebhookMixin


class FencehookStorage(WebhookMixin, DeliveryMixin, StorageBase):
    """Async Qdrant storage for webhooks and delivery records.

    Read-modify-write cycles (circuit breaker updates, delivery claims)
    are serialized with asyncio locks held by this instance. Qdrant has
    no compare-and-set, so run one retry worker process per collection
    prefix and share this instance between the dispatcher and the worker.
    """

    async def __aenter__(self) -> FencehookStorage:
        await self.initialize()
        return self
