"""Producer-side entry point for geofence events.

The geofence engine calls ``on_geofence_event`` once per detected
transition. Delivery failures never surface here; the only exception
the producer can see is StorageError, raised when delivery records
could not be persisted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from fencehook.models import GeofenceEvent, TransitionType

if TYPE_CHECKING:
    from fencehook.models import DeliveryRecord
    from fencehook.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)


async def on_geofence_event(
    event: GeofenceEvent,
    dispatcher: WebhookDispatcher,
) -> list[DeliveryRecord]:
    """Fan a geofence transition out to the owner's webhooks.

    Args:
        event: The detected transition.
        dispatcher: Dispatcher to deliver through.

    Returns:
        Delivery records created, one per enabled webhook.

    Raises:
        StorageError: If records could not be persisted.
    """
    records = await dispatcher.dispatch(event)
    logger.debug(
        "Geofence event %s (%s) dispatched to %d webhooks",
        event.id,
        event.event_type,
        len(records),
    )
    return records


async def emit_geofence_event(
    dispatcher: WebhookDispatcher,
    owner_id: str,
    transition: TransitionType | str,
    device_id: str,
    geofence_id: str,
    latitude: float,
    longitude: float,
    geofence_name: str = "",
    timestamp: datetime | None = None,
) -> list[DeliveryRecord]:
    """Convenience function to build and dispatch a geofence event.

    Returns:
        Delivery records created.
    """
    fields: dict[str, object] = {
        "owner_id": owner_id,
        "transition": TransitionType(transition),
        "device_id": device_id,
        "geofence_id": geofence_id,
        "geofence_name": geofence_name,
        "latitude": latitude,
        "longitude": longitude,
    }
    if timestamp is not None:
        fields["timestamp"] = timestamp

    event = GeofenceEvent.model_validate(fields)
    return await on_geofence_event(event, dispatcher)
