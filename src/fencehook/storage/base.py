"""Base storage class and helpers.

Contains client lifecycle, collection management, and the low-level
point operations the webhook and delivery mixins build on.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from qdrant_client import AsyncQdrantClient, models

from fencehook.config import settings

from .retry import storage_operation

ModelT = TypeVar("ModelT", bound=BaseModel)

COLLECTION_NAMES = {
    "webhooks": "webhooks",
    "deliveries": "webhook_deliveries",
}

# Records carry no embeddings; every point gets the same one-dimensional
# placeholder vector so filters and payload indexes do the work.
PLACEHOLDER_VECTOR = [1.0]

# Payload indexes per collection: field name -> schema
PAYLOAD_INDEXES: dict[str, dict[str, models.PayloadSchemaType]] = {
    "webhooks": {
        "owner_id": models.PayloadSchemaType.KEYWORD,
        "enabled": models.PayloadSchemaType.BOOL,
    },
    "deliveries": {
        "webhook_id": models.PayloadSchemaType.KEYWORD,
        "owner_id": models.PayloadSchemaType.KEYWORD,
        "status": models.PayloadSchemaType.KEYWORD,
        "due_ts": models.PayloadSchemaType.FLOAT,
        "claimed_until_ts": models.PayloadSchemaType.FLOAT,
        "created_ts": models.PayloadSchemaType.FLOAT,
    },
}

# Derived numeric fields written alongside the model for range filters
DERIVED_FIELDS = ("due_ts", "claimed_until_ts", "created_ts")


def to_timestamp(value: datetime | None) -> float:
    """Epoch seconds, with None mapped to 0.0 (always in the past)."""
    return value.timestamp() if value is not None else 0.0


class StorageBase:
    """Base class for Fencehook storage with initialization and helpers.

    Provides:
    - Client initialization and lifecycle management
    - Collection creation and indexing
    - Point ID derivation
    - Model <-> payload conversion
    - Per-webhook and claim locks that serialize read-modify-write cycles
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: Qdrant server URL. Defaults to settings.qdrant_url.
            api_key: Qdrant API key. Defaults to settings.qdrant_api_key.
            prefix: Collection name prefix. Defaults to settings.collection_prefix.
        """
        self._url = url or settings.qdrant_url
        self._api_key = api_key or settings.qdrant_api_key
        self._prefix = prefix or settings.collection_prefix
        self._client: AsyncQdrantClient | None = None
        self._collections_initialized = False
        self._webhook_locks: dict[str, asyncio.Lock] = {}
        self._webhook_lock_users: dict[str, int] = {}
        self._claim_lock = asyncio.Lock()

    @property
    def client(self) -> AsyncQdrantClient:
        """Get the Qdrant client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._client

    async def initialize(self) -> None:
        """Initialize the storage client and ensure collections exist."""
        if self._client is None:
            self._client = AsyncQdrantClient(
                url=self._url,
                api_key=self._api_key,
            )
        await self._ensure_collections()
        self._collections_initialized = True

    async def close(self) -> None:
        """Close the storage client connection."""
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._collections_initialized = False

    async def __aenter__(self) -> StorageBase:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @asynccontextmanager
    async def _webhook_lock(self, webhook_id: str) -> AsyncIterator[None]:
        """Hold the lock serializing writes to one webhook.

        The lock is dropped from the table once no task holds or awaits it.
        """
        lock = self._webhook_locks.setdefault(webhook_id, asyncio.Lock())
        self._webhook_lock_users[webhook_id] = self._webhook_lock_users.get(webhook_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._webhook_lock_users[webhook_id] -= 1
            if not self._webhook_lock_users[webhook_id]:
                del self._webhook_lock_users[webhook_id]
                del self._webhook_locks[webhook_id]

    def _collection_name(self, kind: str) -> str:
        """Get full collection name with prefix."""
        return f"{self._prefix}_{COLLECTION_NAMES[kind]}"

    @staticmethod
    def _point_id(kind: str, resource_id: str) -> str:
        """Derive a deterministic UUID-format point ID.

        Qdrant requires point IDs to be UUIDs or unsigned integers.
        """
        h = hashlib.sha256(f"{kind}/{resource_id}".encode()).hexdigest()[:32]
        return f"{h[:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"

    async def _ensure_collections(self) -> None:
        """Ensure all required collections exist with their indexes."""
        collections = await self.client.get_collections()
        existing = {c.name for c in collections.collections}

        for kind in COLLECTION_NAMES:
            collection_name = self._collection_name(kind)
            if collection_name in existing:
                continue

            await self.client.create_collection(
                collection_name=collection_name,
                vectors_config=models.VectorParams(
                    size=len(PLACEHOLDER_VECTOR),
                    distance=models.Distance.DOT,
                ),
            )
            for field_name, schema in PAYLOAD_INDEXES[kind].items():
                await self.client.create_payload_index(
                    collection_name=collection_name,
                    field_name=field_name,
                    field_schema=schema,
                )

    def _model_to_payload(self, model: BaseModel, **derived: float) -> dict[str, Any]:
        """Convert a model to a Qdrant payload plus any derived range fields."""
        data = model.model_dump(mode="json")
        data.update(derived)
        return data

    def _payload_to_model(self, payload: dict[str, Any], model_class: type[ModelT]) -> ModelT:
        """Convert a Qdrant payload back to a model."""
        data = dict(payload)
        for field_name in DERIVED_FIELDS:
            data.pop(field_name, None)
        return model_class.model_validate(data)

    @storage_operation
    async def _upsert(self, kind: str, resource_id: str, payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=self._collection_name(kind),
            points=[
                models.PointStruct(
                    id=self._point_id(kind, resource_id),
                    vector=PLACEHOLDER_VECTOR,
                    payload=payload,
                )
            ],
        )

    @storage_operation
    async def _retrieve(self, kind: str, resource_id: str) -> dict[str, Any] | None:
        results = await self.client.retrieve(
            collection_name=self._collection_name(kind),
            ids=[self._point_id(kind, resource_id)],
            with_payload=True,
        )
        if not results or results[0].payload is None:
            return None
        return dict(results[0].payload)

    @storage_operation
    async def _scroll(
        self,
        kind: str,
        scroll_filter: models.Filter | None,
        limit: int,
        order_by: models.OrderBy | None = None,
    ) -> list[dict[str, Any]]:
        results, _ = await self.client.scroll(
            collection_name=self._collection_name(kind),
            scroll_filter=scroll_filter,
            limit=limit,
            order_by=order_by,
            with_payload=True,
        )
        return [dict(r.payload) for r in results if r.payload is not None]

    @storage_operation
    async def _count(self, kind: str, count_filter: models.Filter | None) -> int:
        result = await self.client.count(
            collection_name=self._collection_name(kind),
            count_filter=count_filter,
            exact=True,
        )
        return result.count

    @storage_operation
    async def _delete_by_ids(self, kind: str, resource_ids: list[str]) -> None:
        if not resource_ids:
            return
        await self.client.delete(
            collection_name=self._collection_name(kind),
            points_selector=models.PointIdsList(
                points=[self._point_id(kind, rid) for rid in resource_ids],
            ),
        )
