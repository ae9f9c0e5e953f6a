"""Fencehook service: wires storage, transport and the delivery pipeline.

Example:
    ```python
    from fencehook.service import FencehookService

    async with FencehookService.create() as service:
        await service.start_jobs()
        await service.on_geofence_event(event)
    ```
"""

from __future__ import annotations

import logging
from typing import Any

from fencehook.config import Settings
from fencehook.events import on_geofence_event
from fencehook.jobs import DeliveryCleanupJob, JobScheduler
from fencehook.logging import configure_from_settings
from fencehook.models import DeliveryRecord, GeofenceEvent
from fencehook.storage import FencehookStorage
from fencehook.webhooks import HttpxTransport, RetryWorker, Transport, WebhookDispatcher

logger = logging.getLogger(__name__)


class FencehookService:
    """Owns the pipeline's components and their lifecycle.

    Attributes:
        storage: Webhook and delivery record storage.
        transport: Outbound HTTP.
        dispatcher: Producer-path fan-out.
        worker: Retry worker, also scheduled as a job.
        cleanup: Retention cleanup job.
        scheduler: Runs the worker and cleanup jobs.
    """

    def __init__(
        self,
        storage: FencehookStorage,
        transport: Transport,
        settings: Settings,
    ) -> None:
        self.settings = settings
        self.storage = storage
        self.transport = transport
        self.dispatcher = WebhookDispatcher.from_settings(storage, transport, settings)
        self.worker = RetryWorker.from_settings(storage, transport, settings)
        self.cleanup = DeliveryCleanupJob.from_settings(storage, settings)
        self.scheduler = JobScheduler()
        self.scheduler.register(self.worker)
        self.scheduler.register(self.cleanup)

    @classmethod
    def create(cls, settings: Settings | None = None) -> FencehookService:
        """Create a FencehookService with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.

        Returns:
            Configured FencehookService instance.
        """
        if settings is None:
            settings = Settings()

        return cls(
            storage=FencehookStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
            ),
            transport=HttpxTransport(),
            settings=settings,
        )

    async def initialize(self) -> None:
        """Configure logging and initialize storage collections."""
        configure_from_settings(self.settings)
        await self.storage.initialize()

    async def start_jobs(self) -> None:
        """Start the retry worker and cleanup schedules."""
        await self.scheduler.start()

    async def close(self) -> None:
        """Stop jobs and release connections."""
        await self.scheduler.stop()
        aclose = getattr(self.transport, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.storage.close()

    async def on_geofence_event(self, event: GeofenceEvent) -> list[DeliveryRecord]:
        """Deliver a geofence transition to the owner's webhooks."""
        return await on_geofence_event(event, self.dispatcher)

    async def __aenter__(self) -> FencehookService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
