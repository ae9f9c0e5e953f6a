"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
from qdrant_client import AsyncQdrantClient

# Add tests directory to path so fakes can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from fakes import OWNER_ID, FakeTransport, build_webhook  # noqa: E402

from fencehook.models import GeofenceEvent, TransitionType, Webhook  # noqa: E402
from fencehook.storage import FencehookStorage  # noqa: E402


@pytest.fixture
async def storage() -> AsyncIterator[FencehookStorage]:
    """Create an in-memory storage instance for testing.

    Uses qdrant-client's local mode with in-memory storage.
    """
    store = FencehookStorage(prefix="test")
    # Override with in-memory client
    store._client = AsyncQdrantClient(location=":memory:")
    await store.initialize()

    yield store

    await store.close()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_webhook(storage: FencehookStorage) -> Callable[..., Awaitable[Webhook]]:
    """Factory that stores a webhook and returns it."""

    async def _make(**overrides: Any) -> Webhook:
        webhook = build_webhook(**overrides)
        await storage.store_webhook(webhook)
        return webhook

    return _make


@pytest.fixture
def geofence_event() -> GeofenceEvent:
    return GeofenceEvent(
        id="evt_fence_enter_1",
        owner_id=OWNER_ID,
        transition=TransitionType.ENTER,
        device_id="dev_123",
        geofence_id="gf_home",
        geofence_name="Home",
        latitude=52.520008,
        longitude=13.404954,
    )
