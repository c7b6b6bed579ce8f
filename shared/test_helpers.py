"""
Test helper functions and factory methods for the response cache layer.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from service_cache.app.caching.errors import StoreUnavailable
from service_cache.app.caching.models import CacheConfig, EvictionPolicy
from service_cache.app.caching.store import MemoryCacheStore


class FakeClock:
    """Manually advanced clock for ttl tests."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now

    def set(self, value: float) -> None:
        self.now = value


class CountingHandler:
    """Async handler returning scripted results and recording invocations."""

    def __init__(self, results: Sequence[Any] = ("X",), delay: float = 0.0):
        self.results: List[Any] = list(results)
        self.delay = delay
        self.calls: List[Any] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def __call__(self, descriptor: Any) -> Any:
        self.calls.append(descriptor)
        if self.delay:
            await asyncio.sleep(self.delay)
        index = min(len(self.calls), len(self.results)) - 1
        result = self.results[index]
        if isinstance(result, BaseException):
            raise result
        return result


class FailingStore(MemoryCacheStore):
    """Memory store whose operations fail while ``available`` is False."""

    def __init__(self, config: Optional[CacheConfig] = None, clock=None):
        super().__init__(config or CacheConfig(), clock=clock or FakeClock())
        self.available = False
        self.attempts: Dict[str, int] = {}

    def _check(self, operation: str) -> None:
        self.attempts[operation] = self.attempts.get(operation, 0) + 1
        if not self.available:
            raise StoreUnavailable(operation, "connection refused")

    async def get(self, key):
        self._check("get")
        return await super().get(key)

    async def put(self, key, value, ttl):
        self._check("put")
        return await super().put(key, value, ttl)

    async def delete(self, key):
        self._check("delete")
        return await super().delete(key)


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def cache_config(
        ttl_seconds: float = 1.0,
        max_entries: int = 100,
        eviction_policy: EvictionPolicy = EvictionPolicy.LRU,
        verify_keys: bool = True,
    ) -> CacheConfig:
        return CacheConfig(
            ttl_seconds=ttl_seconds,
            max_entries=max_entries,
            eviction_policy=eviction_policy,
            verify_keys=verify_keys,
        )

    @staticmethod
    def memory_store(config: Optional[CacheConfig] = None, clock: Optional[FakeClock] = None) -> MemoryCacheStore:
        return MemoryCacheStore(config or TestDataFactory.cache_config(), clock=clock or FakeClock())
