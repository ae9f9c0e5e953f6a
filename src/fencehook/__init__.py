"""Fencehook: reliable webhook delivery for geofence events.

Takes geofence transitions (enter, exit, dwell) and delivers them to
each owner's registered HTTPS endpoints, signed with HMAC-SHA256,
retried on a fixed backoff table and isolated by a per-webhook circuit
breaker when an endpoint keeps failing.

Quick Start:
    from fencehook.service import FencehookService

    async with FencehookService.create() as service:
        await service.start_jobs()

        records = await service.on_geofence_event(
            GeofenceEvent(
                owner_id="dev_123",
                transition="enter",
                device_id="dev_123",
                geofence_id="gf_home",
                latitude=52.52,
                longitude=13.40,
            )
        )

Delivery lifecycle:
    - pending: awaiting its first attempt or a scheduled retry
    - success: a 2xx response was received
    - failed: attempts exhausted, or the webhook was deleted or disabled
"""

__version__ = "0.1.0"

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ClaimLostError,
    ConfigurationError,
    DeliveryStateError,
    FencehookError,
    NotFoundError,
    StorageError,
    TransportError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryRecord,
    DeliveryStats,
    DeliveryStatus,
    GeofenceEvent,
    TransitionType,
    Webhook,
    WebhookPayload,
)

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "FencehookError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConfigurationError",
    "TransportError",
    "DeliveryStateError",
    "ClaimLostError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "Webhook",
    "GeofenceEvent",
    "TransitionType",
    "WebhookPayload",
    "DeliveryRecord",
    "DeliveryStatus",
    "DeliveryStats",
]
