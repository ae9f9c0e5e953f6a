"""Retry schedule for failed deliveries.

The schedule is a fixed table, not a formula: the delay after the n-th
failed attempt is ``backoff_seconds[n - 1]``. The first attempt happens
inline at dispatch with no delay.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from fencehook.config import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_BACKOFF_SECONDS
from fencehook.exceptions import ConfigurationError

if TYPE_CHECKING:
    from fencehook.config import Settings


@dataclass(frozen=True)
class RetrySchedule:
    """Backoff table plus the attempt limit.

    Attributes:
        backoff_seconds: Delay after attempt 1, 2, 3, ...
        max_attempts: Failed attempts after which a delivery is final.
    """

    backoff_seconds: Sequence[int] = field(default=DEFAULT_RETRY_BACKOFF_SECONDS)
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if not self.backoff_seconds and self.max_attempts > 1:
            raise ConfigurationError("backoff_seconds is empty but retries are allowed")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetrySchedule:
        return cls(
            backoff_seconds=tuple(settings.retry_backoff_seconds),
            max_attempts=settings.max_attempts,
        )

    def backoff(self, attempts: int) -> timedelta:
        """Delay before the next attempt, given completed attempts.

        Attempts past the end of the table reuse its last entry.
        """
        if attempts < 1:
            return timedelta(0)
        index = min(attempts, len(self.backoff_seconds)) - 1
        return timedelta(seconds=self.backoff_seconds[index])

    def is_exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def next_retry_at(self, attempts: int, now: datetime) -> datetime | None:
        """When to retry after ``attempts`` failures, or None if exhausted."""
        if self.is_exhausted(attempts):
            return None
        return now + self.backoff(attempts)


DEFAULT_SCHEDULE = RetrySchedule()


def backoff(attempts: int) -> timedelta:
    """Backoff from the default table: 1 -> 60s, 2 -> 300s, 3 -> 900s."""
    return DEFAULT_SCHEDULE.backoff(attempts)
