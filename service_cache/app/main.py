"""
Response cache service.

Fronts request handlers with the cache interceptor and exposes cache
administration (stats, invalidation) over HTTP.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Query, Request

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreaker
from .caching.decorators import cached_endpoint, run_endpoint
from .caching.errors import StoreUnavailable
from .caching.interceptor import CacheInterceptor
from .caching.keys import request_key
from .caching.models import CacheConfig
from .caching.redis_store import RedisCacheStore
from .caching.store import CacheStore, MemoryCacheStore
from .caching.sweeper import CacheSweeper


DEFAULT_INSTRUMENTS: List[Dict[str, Any]] = [
    {"id": "EURUSD", "name": "Euro/US Dollar", "asset_class": "forex"},
    {"id": "GBPUSD", "name": "British Pound/US Dollar", "asset_class": "forex"},
    {"id": "USDJPY", "name": "US Dollar/Japanese Yen", "asset_class": "forex"},
    {"id": "BRN", "name": "Brent Crude", "asset_class": "commodity"},
]


class CacheService(BaseService):
    """Response cache service implementation."""

    def __init__(self, store: Optional[CacheStore] = None, **config_overrides):
        super().__init__("cache", 8000, **config_overrides)

        self.cache_config = CacheConfig(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
            eviction_policy=self.config.cache_eviction_policy,
            verify_keys=self.config.cache_verify_keys,
            namespace=self.config.cache_namespace,
        )
        self.store = store or self._build_store(self.cache_config)
        self.store_breaker = CircuitBreaker(
            failure_threshold=self.config.store_failure_threshold,
            recovery_timeout=self.config.store_recovery_timeout_seconds,
            expected_exception=(StoreUnavailable,),
            name="cache_store",
        )
        self.interceptor = CacheInterceptor(
            self.store,
            run_endpoint,
            request_key,
            self.cache_config,
            metrics=self.metrics,
            breaker=self.store_breaker,
            name="response",
        )
        self.sweeper: Optional[CacheSweeper] = None
        if self.config.cache_sweep_interval_seconds > 0:
            self.sweeper = CacheSweeper(
                self.store,
                self.config.cache_sweep_interval_seconds,
                metrics=self.metrics,
            )

        # Stand-in for a downstream reference data service.
        self.instrument_catalog: List[Dict[str, Any]] = list(DEFAULT_INSTRUMENTS)
        self.catalog_latency_seconds = 0.0
        self.catalog_fetches = 0

        @self.app.on_event("startup")
        async def _startup():
            await self.store.start()
            if self.sweeper:
                await self.sweeper.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            if self.sweeper:
                await self.sweeper.stop()
            await self.store.close()

        self._setup_cache_routes()
        self._setup_sample_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.cache_service = self

    def _build_store(self, cache_config: CacheConfig) -> CacheStore:
        if self.config.cache_backend == "redis":
            self.logger.info("Using Redis cache store", redis_url=self.config.redis_url)
            return RedisCacheStore(self.config.redis_url, cache_config)
        return MemoryCacheStore(cache_config)

    def _setup_cache_routes(self):
        """Set up cache administration routes."""

        @self.app.get("/healthz")
        async def healthz():
            """Lightweight liveness endpoint with dependency status."""
            dependencies = await self._check_dependencies()
            return {
                "service": self.service_name,
                "status": "ok" if all(value == "ok" for value in dependencies.values()) else "degraded",
                "dependencies": dependencies,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

        @self.app.get("/api/v1/cache/stats")
        async def get_cache_stats():
            """Get cache statistics."""
            return {
                "interceptor": self.interceptor.stats(),
                "store": await self.store.info(),
                "config": self.cache_config.model_dump(mode="json"),
                "sweeper": self._sweeper_status(),
                "circuit_breaker": self.store_breaker.get_state(),
            }

        @self.app.delete("/api/v1/cache/entries/{key:path}")
        async def invalidate_entry(key: str):
            """Invalidate a single cache key."""
            removed = await self.interceptor.invalidate(key)
            return {"key": key, "removed": removed}

        @self.app.delete("/api/v1/cache/entries")
        async def invalidate_prefix(prefix: str = Query(..., min_length=1)):
            """Invalidate every cache key under a prefix."""
            removed = await self.interceptor.invalidate_prefix(prefix)
            return {"prefix": prefix, "removed": removed}

        @self.app.delete("/api/v1/cache")
        async def clear_cache():
            """Drop every cache entry."""
            removed = await self.interceptor.clear()
            return {"removed": removed}

    def _setup_sample_routes(self):
        """Set up cached sample routes."""

        @self.app.get("/api/v1/instruments")
        @cached_endpoint(self.interceptor)
        async def get_instruments(request: Request, asset_class: Optional[str] = Query(None)):
            """List instruments, served from cache when possible."""
            instruments = await self._fetch_instruments(asset_class)
            return {
                "instruments": instruments,
                "count": len(instruments),
                "generated_at": datetime.now(timezone.utc).isoformat(),
            }

    async def _fetch_instruments(self, asset_class: Optional[str]) -> List[Dict[str, Any]]:
        """Simulate fetching instruments from a downstream service."""
        self.catalog_fetches += 1
        if self.catalog_latency_seconds:
            await asyncio.sleep(self.catalog_latency_seconds)
        if asset_class is None:
            return list(self.instrument_catalog)
        return [item for item in self.instrument_catalog if item["asset_class"] == asset_class]

    def _sweeper_status(self) -> Dict[str, Any]:
        if not self.sweeper:
            return {"enabled": False}
        return {
            "enabled": True,
            "running": self.sweeper.running,
            "interval_seconds": self.sweeper.interval_seconds,
            "sweeps": self.sweeper.sweeps,
            "removed_total": self.sweeper.removed_total,
        }

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check cache service dependencies."""
        return {"cache_store": "ok" if await self.store.ping() else "error"}


def create_app():
    """Create FastAPI application."""
    service = CacheService()
    return service.app


if __name__ == "__main__":
    service = CacheService()
    service.run()
