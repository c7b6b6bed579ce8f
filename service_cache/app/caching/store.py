"""
Cache stores: the interface and the in-process implementation.
"""

import asyncio
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger
from .models import CacheConfig, CacheEntry, EvictionPolicy


class CacheStore:
    """Mapping from cache key to CacheEntry.

    Implementations raise ``StoreUnavailable`` when the backing storage
    cannot serve an operation. ``get`` never returns an expired entry.
    """

    backend = "abstract"

    async def start(self) -> None:
        """Acquire connections. Optional."""

    async def close(self) -> None:
        """Release connections. Optional."""

    async def get(self, key: str) -> Optional[CacheEntry]:
        raise NotImplementedError

    async def put(self, key: str, value: str, ttl: float) -> CacheEntry:
        raise NotImplementedError

    async def delete(self, key: str) -> bool:
        raise NotImplementedError

    async def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    async def clear(self) -> int:
        raise NotImplementedError

    async def sweep(self) -> int:
        """Drop expired entries, returning how many were removed."""
        return 0

    async def size(self) -> int:
        raise NotImplementedError

    async def ping(self) -> bool:
        return True

    async def info(self) -> Dict[str, Any]:
        return {"backend": self.backend}


class MemoryCacheStore(CacheStore):
    """In-process store with lazy expiry and bounded capacity."""

    backend = "memory"

    def __init__(self, config: CacheConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.logger = get_logger("cache.store.memory")
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = asyncio.Lock()
        self.evictions = 0
        self.expirations = 0

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self.expirations += 1
                return None

            if self.config.eviction_policy == EvictionPolicy.LRU:
                self._entries.move_to_end(key)
            return entry

    async def put(self, key: str, value: str, ttl: float) -> CacheEntry:
        async with self._lock:
            now = self._clock()
            entry = CacheEntry(key=key, value=value, stored_at=now, ttl=ttl)
            self._entries.pop(key, None)
            self._entries[key] = entry
            self._enforce_capacity(now)
            return entry

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    async def clear(self) -> int:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    async def sweep(self) -> int:
        async with self._lock:
            return self._purge_expired(self._clock())

    async def size(self) -> int:
        return len(self._entries)

    async def info(self) -> Dict[str, Any]:
        return {
            "backend": self.backend,
            "entries": len(self._entries),
            "max_entries": self.config.max_entries,
            "eviction_policy": self.config.eviction_policy.value,
            "evictions": self.evictions,
            "expirations": self.expirations,
        }

    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        self.expirations += len(expired)
        return len(expired)

    def _enforce_capacity(self, now: float) -> None:
        if len(self._entries) <= self.config.max_entries:
            return

        self._purge_expired(now)
        while len(self._entries) > self.config.max_entries:
            if self.config.eviction_policy == EvictionPolicy.LRU:
                victim, _ = self._entries.popitem(last=False)
            else:
                victim = min(self._entries.values(), key=lambda entry: entry.expires_at).key
                del self._entries[victim]
            self.evictions += 1
            self.logger.debug("Evicted cache entry", key=victim, policy=self.config.eviction_policy.value)
