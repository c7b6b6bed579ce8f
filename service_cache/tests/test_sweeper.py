"""
Tests for the background cache sweeper.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from shared.test_helpers import FakeClock, TestDataFactory
from service_cache.app.caching.errors import StoreUnavailable
from service_cache.app.caching.sweeper import CacheSweeper


class TestCacheSweeper:
    """Test cases for CacheSweeper."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def store(self, clock):
        return TestDataFactory.memory_store(clock=clock)

    @pytest.mark.asyncio
    async def test_sweep_once_updates_counters_and_gauge(self, store, clock):
        """A sweep removes expired entries and publishes the entry count."""
        metrics = MetricsCollector("cache", registry=CollectorRegistry())
        sweeper = CacheSweeper(store, 1.0, metrics=metrics)
        await store.put("old", "1", 1.0)
        await store.put("new", "2", 10.0)
        clock.set(5.0)

        assert await sweeper.sweep_once() == 1
        assert sweeper.sweeps == 1
        assert sweeper.removed_total == 1
        assert metrics.registry.get_sample_value("cache_entries", {"cache_type": "response"}) == 1.0

    @pytest.mark.asyncio
    async def test_background_loop_sweeps(self, store, clock):
        """The loop sweeps on its interval until stopped."""
        sweeper = CacheSweeper(store, 0.01)
        await store.put("k", "1", 1.0)
        clock.set(2.0)

        await sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)
        await sweeper.stop()

        assert not sweeper.running
        assert sweeper.sweeps >= 1
        assert await store.size() == 0

    @pytest.mark.asyncio
    async def test_loop_survives_store_errors(self, store):
        """A failing sweep is logged and the loop keeps going."""
        store.sweep = AsyncMock(side_effect=[StoreUnavailable("sweep"), RuntimeError("bug"), 0, 0, 0, 0, 0, 0, 0, 0])
        sweeper = CacheSweeper(store, 0.005)

        await sweeper.start()
        for _ in range(50):
            if store.sweep.await_count >= 3:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert store.sweep.await_count >= 3
        assert sweeper.sweeps >= 1

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, store):
        """Starting twice runs a single loop."""
        sweeper = CacheSweeper(store, 10.0)

        await sweeper.start()
        task = sweeper._task
        await sweeper.start()

        assert sweeper._task is task
        await sweeper.stop()
        assert sweeper._task is None
