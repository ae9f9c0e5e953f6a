"""Tests for the producer-side entry point."""

import json
from datetime import UTC, datetime

import pytest
from fakes import OWNER_ID, FakeTransport
from pydantic import ValidationError

from fencehook.events import emit_geofence_event, on_geofence_event
from fencehook.models import DeliveryStatus, GeofenceEvent
from fencehook.storage import FencehookStorage
from fencehook.webhooks import WebhookDispatcher


@pytest.fixture
def dispatcher(storage: FencehookStorage, transport: FakeTransport) -> WebhookDispatcher:
    return WebhookDispatcher(storage, transport)


class TestOnGeofenceEvent:
    @pytest.mark.asyncio
    async def test_dispatches(
        self,
        dispatcher: WebhookDispatcher,
        transport: FakeTransport,
        make_webhook,
        geofence_event: GeofenceEvent,
    ):
        await make_webhook()

        records = await on_geofence_event(geofence_event, dispatcher)

        assert [r.status for r in records] == [DeliveryStatus.SUCCESS]
        assert transport.requests[0].headers["X-Webhook-Event"] == "geofence.enter"

    @pytest.mark.asyncio
    async def test_failure_is_not_raised(
        self,
        dispatcher: WebhookDispatcher,
        transport: FakeTransport,
        make_webhook,
        geofence_event: GeofenceEvent,
    ):
        await make_webhook()
        transport.queue(500)

        [record] = await on_geofence_event(geofence_event, dispatcher)

        assert record.status is DeliveryStatus.PENDING


class TestEmitGeofenceEvent:
    @pytest.mark.asyncio
    async def test_builds_event(
        self,
        dispatcher: WebhookDispatcher,
        transport: FakeTransport,
        make_webhook,
    ):
        await make_webhook()
        at = datetime(2026, 3, 1, 8, 15, tzinfo=UTC)

        [record] = await emit_geofence_event(
            dispatcher,
            owner_id=OWNER_ID,
            transition="dwell",
            device_id="dev_7",
            geofence_id="gf_depot",
            geofence_name="Depot",
            latitude=48.1351,
            longitude=11.582,
            timestamp=at,
        )

        body = json.loads(transport.requests[0].body)
        assert record.event_type == "geofence.dwell"
        assert body["timestamp"].startswith("2026-03-01T08:15:00")
        assert body["data"]["transition"] == "dwell"
        assert body["data"]["geofence_name"] == "Depot"

    @pytest.mark.asyncio
    async def test_invalid_transition(self, dispatcher: WebhookDispatcher):
        with pytest.raises(ValueError):
            await emit_geofence_event(
                dispatcher,
                owner_id=OWNER_ID,
                transition="teleport",
                device_id="dev_7",
                geofence_id="gf_depot",
                latitude=0.0,
                longitude=0.0,
            )

    @pytest.mark.asyncio
    async def test_invalid_coordinates(self, dispatcher: WebhookDispatcher):
        with pytest.raises(ValidationError):
            await emit_geofence_event(
                dispatcher,
                owner_id=OWNER_ID,
                transition="enter",
                device_id="dev_7",
                geofence_id="gf_depot",
                latitude=120.0,
                longitude=0.0,
            )
