"""Models for the Fencehook delivery pipeline.

Registrations:
    - Webhook: an owner's HTTPS endpoint plus its circuit breaker state

Events:
    - GeofenceEvent: a transition fired by the producer
    - TransitionType: enter, exit, dwell
    - WebhookPayload: the JSON envelope sent to receivers

Deliveries:
    - DeliveryRecord: one attempt lineage for a (webhook, event) pair
    - DeliveryStatus: pending, success, failed
    - DeliveryStats: counts by status
"""

from .base import ensure_utc, generate_id, utc_now
from .delivery import MAX_ERROR_LENGTH, DeliveryRecord, DeliveryStats, DeliveryStatus
from .event import GeofenceEvent, TransitionType, WebhookPayload
from .webhook import Webhook

__all__ = [
    "MAX_ERROR_LENGTH",
    "DeliveryRecord",
    "DeliveryStats",
    "DeliveryStatus",
    "GeofenceEvent",
    "TransitionType",
    "Webhook",
    "WebhookPayload",
    "ensure_utc",
    "generate_id",
    "utc_now",
]
