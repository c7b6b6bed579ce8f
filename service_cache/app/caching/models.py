"""
Data models for the response cache.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EvictionPolicy(str, Enum):
    """Capacity eviction policies."""
    LRU = "lru"
    TTL_ONLY = "ttl-only"


class CacheConfig(BaseModel):
    """Interceptor and store configuration."""

    ttl_seconds: float = Field(default=60.0, gt=0)
    max_entries: int = Field(default=10000, ge=1)
    eviction_policy: EvictionPolicy = EvictionPolicy.LRU
    verify_keys: bool = True
    namespace: str = Field(default="cache", min_length=1)


@dataclass
class CacheEntry:
    """A stored, serialized handler result."""
    key: str
    value: str
    stored_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float) -> bool:
        # An entry aged exactly ttl is already stale.
        return self.age(now) >= self.ttl

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl


@dataclass
class CacheStats:
    """Hit/miss counters kept by the interceptor."""
    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    handler_errors: int = 0
    store_errors: int = 0
    bypassed: int = 0
    invalid_keys: int = 0

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        if lookups == 0:
            return 0.0
        return self.hits / lookups

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["hit_ratio"] = round(self.hit_ratio, 4)
        return data
