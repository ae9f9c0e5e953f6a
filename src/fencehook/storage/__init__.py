"""Storage backend for Fencehook.

Persists webhook registrations and delivery records to Qdrant,
indexed by owner, webhook, status and due time.

Example:
    ```python
    from fencehook.storage import FencehookStorage

    async with FencehookStorage() as storage:
        await storage.create_delivery(record)
        due = await storage.claim_due_deliveries(now, limit=10, lease=timedelta(minutes=2))
    ```
"""

from .base import COLLECTION_NAMES
from .client import FencehookStorage
from .retry import qdrant_retry, storage_operation

__all__ = [
    "COLLECTION_NAMES",
    "FencehookStorage",
    "qdrant_retry",
    "storage_operation",
]
