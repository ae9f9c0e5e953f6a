"""Tests for the fixed retry schedule."""

from datetime import UTC, datetime, timedelta

import pytest

from fencehook.config import Settings
from fencehook.exceptions import ConfigurationError
from fencehook.webhooks.schedule import RetrySchedule, backoff


class TestBackoff:
    """Tests for the default backoff table."""

    @pytest.mark.parametrize(
        ("attempts", "seconds"),
        [(1, 60), (2, 300), (3, 900)],
    )
    def test_table(self, attempts: int, seconds: int):
        """Delay after the n-th failure comes straight from the table."""
        assert backoff(attempts) == timedelta(seconds=seconds)

    def test_zero_attempts_no_delay(self):
        """The inline first attempt has no delay."""
        assert backoff(0) == timedelta(0)

    def test_clamps_past_table(self):
        """Attempts past the table reuse its last entry."""
        assert backoff(7) == timedelta(seconds=900)


class TestRetrySchedule:
    """Tests for RetrySchedule."""

    def test_defaults(self):
        schedule = RetrySchedule()
        assert tuple(schedule.backoff_seconds) == (60, 300, 900)
        assert schedule.max_attempts == 4

    def test_next_retry_at(self):
        """Retries are scheduled relative to the attempt time."""
        now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
        schedule = RetrySchedule()

        assert schedule.next_retry_at(1, now) == now + timedelta(seconds=60)
        assert schedule.next_retry_at(3, now) == now + timedelta(seconds=900)

    def test_exhausted_after_max_attempts(self):
        """The 4th failure has no retry."""
        now = datetime(2026, 1, 1, tzinfo=UTC)
        schedule = RetrySchedule()

        assert not schedule.is_exhausted(3)
        assert schedule.is_exhausted(4)
        assert schedule.next_retry_at(4, now) is None

    def test_from_settings(self):
        """Schedule should follow configured values."""
        settings = Settings(retry_backoff_seconds=[10, 20], max_attempts=3)
        schedule = RetrySchedule.from_settings(settings)

        assert schedule.backoff(2) == timedelta(seconds=20)
        assert schedule.max_attempts == 3

    def test_rejects_zero_max_attempts(self):
        with pytest.raises(ConfigurationError):
            RetrySchedule(max_attempts=0)

    def test_rejects_empty_table_with_retries(self):
        with pytest.raises(ConfigurationError):
            RetrySchedule(backoff_seconds=(), max_attempts=2)
