"""Webhook delivery pipeline for Fencehook.

Provides HMAC-signed delivery with a fixed retry table and a
per-webhook circuit breaker.

Example:
    ```python
    from fencehook.webhooks import HttpxTransport, RetryWorker, WebhookDispatcher

    async with HttpxTransport() as transport:
        dispatcher = WebhookDispatcher(storage, transport)
        await dispatcher.dispatch(event)

        # Later, periodically
        worker = RetryWorker(storage, transport)
        await worker.run_once()
    ```
"""

from .attempt import AttemptOutcome, AttemptResult, DeliveryAttempt, build_headers
from .circuit import CircuitBreaker, CircuitState
from .dispatcher import WebhookDispatcher
from .schedule import RetrySchedule, backoff
from .signing import sign, signature_header, verify_signature
from .transport import HttpxTransport, Transport, TransportResponse
from .worker import RetryCycleResult, RetryWorker

__all__ = [
    "AttemptOutcome",
    "AttemptResult",
    "CircuitBreaker",
    "CircuitState",
    "DeliveryAttempt",
    "HttpxTransport",
    "RetryCycleResult",
    "RetrySchedule",
    "RetryWorker",
    "Transport",
    "TransportResponse",
    "WebhookDispatcher",
    "backoff",
    "build_headers",
    "sign",
    "signature_header",
    "verify_signature",
]
