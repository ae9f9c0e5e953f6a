"""Per-webhook circuit breaker.

Counts consecutive failed attempts against a webhook. Reaching the
threshold opens the circuit for a fixed cooldown, during which no
attempts are made against that webhook. Reopening is purely time based:
once the cooldown has passed the next attempt is an ordinary attempt,
a failure opens a fresh window and a success resets everything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fencehook.exceptions import ConfigurationError
from fencehook.models.base import utc_now

if TYPE_CHECKING:
    from fencehook.config import Settings
    from fencehook.models import Webhook
    from fencehook.storage import FencehookStorage

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_COOLDOWN = timedelta(minutes=5)


@dataclass(frozen=True)
class CircuitState:
    """Breaker fields of a webhook after an update."""

    webhook_id: str
    consecutive_failures: int
    open_until: datetime | None

    def is_open(self, now: datetime | None = None) -> bool:
        return self.open_until is not None and self.open_until > (now or utc_now())


class CircuitBreaker:
    """Tracks failures per webhook and gates attempts while open.

    State lives on the Webhook itself (``consecutive_failures`` and
    ``circuit_open_until``) and every change is a serialized
    read-modify-write through ``storage.update_webhook_atomically``, so
    an inline attempt and a worker attempt finishing together both count.

    Example:
        ```python
        breaker = CircuitBreaker(storage)

        if breaker.is_open(webhook):
            ...  # defer until webhook.circuit_open_until
        state = await breaker.record_failure(webhook.id)
        ```
    """

    def __init__(
        self,
        storage: FencehookStorage,
        threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown: timedelta = DEFAULT_COOLDOWN,
    ) -> None:
        """Initialize the breaker.

        Args:
            storage: Storage holding webhook registrations.
            threshold: Consecutive failures that open the circuit.
            cooldown: How long the circuit stays open.
        """
        if threshold < 1:
            raise ConfigurationError("threshold must be at least 1")
        self._storage = storage
        self.threshold = threshold
        self.cooldown = cooldown

    @classmethod
    def from_settings(cls, storage: FencehookStorage, settings: Settings) -> CircuitBreaker:
        return cls(
            storage,
            threshold=settings.circuit_failure_threshold,
            cooldown=timedelta(seconds=settings.circuit_cooldown_seconds),
        )

    def is_open(self, webhook: Webhook, now: datetime | None = None) -> bool:
        """Check whether attempts against this webhook are blocked."""
        return webhook.is_circuit_open(now)

    async def record_success(self, webhook_id: str) -> CircuitState | None:
        """Reset the failure counter and close the circuit.

        Returns:
            The new state, or None if the webhook no longer exists.
        """
        previous: dict[str, int | datetime | None] = {}

        def _reset(webhook: Webhook) -> Webhook:
            previous["failures"] = webhook.consecutive_failures
            previous["open_until"] = webhook.circuit_open_until
            return webhook.model_copy(
                update={
                    "consecutive_failures": 0,
                    "circuit_open_until": None,
                    "updated_at": utc_now(),
                }
            )

        updated = await self._storage.update_webhook_atomically(webhook_id, _reset)
        if updated is None:
            return None

        if previous.get("open_until") is not None or previous.get("failures"):
            logger.info(
                "circuit_closed webhook=%s after %s consecutive failures",
                webhook_id,
                previous.get("failures"),
            )
        return CircuitState(webhook_id, 0, None)

    async def record_failure(
        self,
        webhook_id: str,
        now: datetime | None = None,
    ) -> CircuitState | None:
        """Count a failed attempt, opening the circuit at the threshold.

        Every failure at or past the threshold pushes ``circuit_open_until``
        to ``now + cooldown``.

        Returns:
            The new state, or None if the webhook no longer exists.
        """
        now = now or utc_now()

        def _increment(webhook: Webhook) -> Webhook:
            failures = webhook.consecutive_failures + 1
            update: dict[str, int | datetime | None] = {
                "consecutive_failures": failures,
                "updated_at": now,
            }
            if failures >= self.threshold:
                update["circuit_open_until"] = now + self.cooldown
            return webhook.model_copy(update=update)

        updated = await self._storage.update_webhook_atomically(webhook_id, _increment)
        if updated is None:
            return None

        state = CircuitState(
            webhook_id=webhook_id,
            consecutive_failures=updated.consecutive_failures,
            open_until=updated.circuit_open_until,
        )
        if updated.consecutive_failures >= self.threshold:
            logger.warning(
                "circuit_opened webhook=%s failures=%d open_until=%s",
                webhook_id,
                updated.consecutive_failures,
                updated.circuit_open_until.isoformat() if updated.circuit_open_until else None,
            )
        return state
