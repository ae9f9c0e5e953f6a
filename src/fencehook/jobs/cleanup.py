"""Retention cleanup of delivery records."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fencehook.exceptions import ConfigurationError
from fencehook.models.base import utc_now

if TYPE_CHECKING:
    from fencehook.config import Settings
    from fencehook.storage import FencehookStorage

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


class DeliveryCleanupJob:
    """Deletes terminal delivery records past the retention window.

    Pending records are kept whatever their age, so a delivery is never
    dropped before it succeeds or exhausts its attempts.
    """

    name = "webhook_cleanup"

    def __init__(
        self,
        storage: FencehookStorage,
        retention_days: int = 7,
        interval_seconds: float = SECONDS_PER_DAY,
    ) -> None:
        if retention_days < 1:
            raise ConfigurationError("retention_days must be at least 1")
        self._storage = storage
        self.retention = timedelta(days=retention_days)
        self.interval = interval_seconds

    @classmethod
    def from_settings(cls, storage: FencehookStorage, settings: Settings) -> DeliveryCleanupJob:
        return cls(storage, retention_days=settings.delivery_retention_days)

    async def execute(self) -> int:
        return await self.run_once()

    async def run_once(self, now: datetime | None = None) -> int:
        """Delete old terminal records.

        Returns:
            Number of records deleted.
        """
        cutoff = (now or utc_now()) - self.retention
        deleted = await self._storage.delete_terminal_deliveries_before(cutoff)
        if deleted:
            logger.info("Deleted %d delivery records older than %s", deleted, cutoff.isoformat())
        return deleted
