"""
Integration tests for the request -> interceptor -> store flow.
"""

import asyncio

import httpx
import pytest

from shared.test_helpers import FakeClock, TestDataFactory
from service_cache.app.caching.store import MemoryCacheStore
from service_cache.app.main import CacheService

INSTRUMENTS = "/api/v1/instruments"


class TestCacheFlow:
    """End-to-end cache behaviour over ASGI."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def cache_service(self, clock):
        store = MemoryCacheStore(TestDataFactory.cache_config(ttl_seconds=1.0), clock=clock)
        return CacheService(store=store, cache_ttl_seconds=1.0, cache_sweep_interval_seconds=0)

    def client(self, cache_service):
        transport = httpx.ASGITransport(app=cache_service.app)
        return httpx.AsyncClient(transport=transport, base_url="http://testserver")

    @pytest.mark.asyncio
    async def test_concurrent_requests_hit_catalog_once(self, cache_service):
        """Ten simultaneous requests are collapsed into one catalog fetch."""
        cache_service.catalog_latency_seconds = 0.05

        async with self.client(cache_service) as client:
            responses = await asyncio.gather(*(client.get(INSTRUMENTS) for _ in range(10)))

        assert all(response.status_code == 200 for response in responses)
        bodies = [response.json() for response in responses]
        assert all(body == bodies[0] for body in bodies)
        assert cache_service.catalog_fetches == 1
        assert cache_service.interceptor.stats()["coalesced"] == 9

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self, cache_service, clock):
        """Responses are reused inside the ttl window only."""
        async with self.client(cache_service) as client:
            first = await client.get(INSTRUMENTS)
            clock.set(0.5)
            second = await client.get(INSTRUMENTS)
            clock.set(1.5)
            third = await client.get(INSTRUMENTS)

        assert second.json() == first.json()
        assert cache_service.catalog_fetches == 2
        assert third.status_code == 200

    @pytest.mark.asyncio
    async def test_invalidation_then_request_refetches(self, cache_service):
        """Clearing the cache between two requests triggers a fresh fetch."""
        async with self.client(cache_service) as client:
            await client.get(INSTRUMENTS)
            cache_service.instrument_catalog.append(
                {"id": "XAU", "name": "Gold", "asset_class": "commodity"}
            )
            stale = await client.get(INSTRUMENTS)
            await client.delete("/api/v1/cache")
            fresh = await client.get(INSTRUMENTS)

        assert stale.json()["count"] == 4
        assert fresh.json()["count"] == 5
