"""Tests for the per-webhook circuit breaker."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from fakes import build_webhook

from fencehook.config import Settings
from fencehook.exceptions import ConfigurationError
from fencehook.storage import FencehookStorage
from fencehook.webhooks.circuit import CircuitBreaker, CircuitState

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def breaker(storage: FencehookStorage) -> CircuitBreaker:
    return CircuitBreaker(storage)


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def test_defaults(self, breaker: CircuitBreaker):
        assert breaker.threshold == 5
        assert breaker.cooldown == timedelta(minutes=5)

    def test_from_settings(self, storage: FencehookStorage):
        settings = Settings(circuit_failure_threshold=3, circuit_cooldown_seconds=60)
        breaker = CircuitBreaker.from_settings(storage, settings)
        assert breaker.threshold == 3
        assert breaker.cooldown == timedelta(seconds=60)

    def test_rejects_zero_threshold(self, storage: FencehookStorage):
        with pytest.raises(ConfigurationError):
            CircuitBreaker(storage, threshold=0)

    def test_is_open(self, breaker: CircuitBreaker):
        open_webhook = build_webhook(circuit_open_until=NOW + timedelta(seconds=1))
        expired = build_webhook(circuit_open_until=NOW)

        assert breaker.is_open(open_webhook, NOW)
        assert not breaker.is_open(expired, NOW)
        assert not breaker.is_open(build_webhook(), NOW)

    @pytest.mark.asyncio
    async def test_failures_below_threshold_stay_closed(
        self, storage: FencehookStorage, breaker: CircuitBreaker
    ):
        webhook = build_webhook()
        await storage.store_webhook(webhook)

        for _ in range(4):
            state = await breaker.record_failure(webhook.id, NOW)

        assert state == CircuitState(webhook.id, 4, None)

    @pytest.mark.asyncio
    async def test_opens_at_threshold(self, storage: FencehookStorage, breaker: CircuitBreaker):
        """The 5th consecutive failure opens the circuit for 5 minutes."""
        webhook = build_webhook(consecutive_failures=4)
        await storage.store_webhook(webhook)

        state = await breaker.record_failure(webhook.id, NOW)

        assert state is not None
        assert state.consecutive_failures == 5
        assert state.open_until == NOW + timedelta(minutes=5)
        assert state.is_open(NOW)
        stored = await storage.get_webhook(webhook.id)
        assert stored is not None
        assert stored.circuit_open_until == NOW + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_failure_after_cooldown_reopens_full_window(
        self, storage: FencehookStorage, breaker: CircuitBreaker
    ):
        """A failed trial attempt after the cooldown opens a fresh window."""
        webhook = build_webhook(consecutive_failures=5, circuit_open_until=NOW)
        await storage.store_webhook(webhook)
        later = NOW + timedelta(minutes=1)

        state = await breaker.record_failure(webhook.id, later)

        assert state is not None
        assert state.consecutive_failures == 6
        assert state.open_until == later + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_success_resets(self, storage: FencehookStorage, breaker: CircuitBreaker):
        """A success before the threshold resets the counter to 0."""
        webhook = build_webhook(consecutive_failures=3)
        await storage.store_webhook(webhook)

        state = await breaker.record_success(webhook.id)
        assert state == CircuitState(webhook.id, 0, None)

        # Counting starts over: four more failures still leave it closed
        for _ in range(4):
            state = await breaker.record_failure(webhook.id, NOW)
        assert state is not None
        assert state.open_until is None

    @pytest.mark.asyncio
    async def test_success_closes_open_circuit(
        self, storage: FencehookStorage, breaker: CircuitBreaker
    ):
        webhook = build_webhook(consecutive_failures=7, circuit_open_until=NOW)
        await storage.store_webhook(webhook)

        await breaker.record_success(webhook.id)

        stored = await storage.get_webhook(webhook.id)
        assert stored is not None
        assert stored.consecutive_failures == 0
        assert stored.circuit_open_until is None

    @pytest.mark.asyncio
    async def test_missing_webhook(self, breaker: CircuitBreaker):
        assert await breaker.record_failure("whk_gone", NOW) is None
        assert await breaker.record_success("whk_gone") is None

    @pytest.mark.asyncio
    async def test_concurrent_failures_all_counted(
        self, storage: FencehookStorage, breaker: CircuitBreaker
    ):
        """Racing failures for the same webhook are not lost."""
        webhook = build_webhook()
        await storage.store_webhook(webhook)

        await asyncio.gather(*(breaker.record_failure(webhook.id, NOW) for _ in range(5)))

        stored = await storage.get_webhook(webhook.id)
        assert stored is not None
        assert stored.consecutive_failures == 5
        assert stored.circuit_open_until == NOW + timedelta(minutes=5)
