"""
Redis-backed cache store.
"""

import asyncio
import json
import math
import re
import time
from typing import Any, Callable, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.logging import get_logger
from .errors import StoreUnavailable
from .models import CacheConfig, CacheEntry
from .store import CacheStore

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")
_STORE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisCacheStore(CacheStore):
    """Shared store for multi-process deployments.

    Redis enforces the ttl through ``PX`` expiry; reads re-check the age so
    clock skew between the writer and Redis never serves a stale entry.
    Keys are namespaced with ``config.namespace``.
    """

    backend = "redis"

    def __init__(
        self,
        redis_url: str,
        config: CacheConfig,
        *,
        client: Optional[redis.Redis] = None,
        clock: Callable[[], float] = time.time,
        socket_timeout: float = 0.5,
        delete_batch_size: int = 500,
    ):
        self.redis_url = redis_url
        self.config = config
        self.logger = get_logger("cache.store.redis")
        self.socket_timeout = socket_timeout
        self.delete_batch_size = delete_batch_size
        self._clock = clock
        self._redis: Optional[redis.Redis] = client
        self._prefix = f"{config.namespace}:"

    async def start(self) -> None:
        """Create the client and check connectivity."""
        client = self._get_redis()
        try:
            await client.ping()
            self.logger.info("Redis cache store started", redis_url=self.redis_url)
        except _STORE_ERRORS as exc:
            # Requests keep flowing through fail-open until Redis is back.
            self.logger.error("Redis cache store unreachable at startup", error=str(exc))

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self.logger.info("Redis cache store stopped")

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
            )
        return self._redis

    def _redis_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _pattern(self, prefix: str) -> str:
        escaped = _GLOB_SPECIAL.sub(r"\\\1", self._redis_key(prefix))
        return escaped + "*"

    async def get(self, key: str) -> Optional[CacheEntry]:
        redis_key = self._redis_key(key)
        try:
            payload = await self._get_redis().get(redis_key)
        except _STORE_ERRORS as exc:
            raise StoreUnavailable("get", str(exc)) from exc

        if payload is None:
            return None

        entry = self._decode(key, payload)
        if entry is None or entry.is_expired(self._clock()):
            await self._discard(redis_key)
            return None
        return entry

    async def put(self, key: str, value: str, ttl: float) -> CacheEntry:
        entry = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl=ttl)
        envelope = json.dumps({"value": entry.value, "stored_at": entry.stored_at, "ttl": entry.ttl})
        try:
            await self._get_redis().set(self._redis_key(key), envelope, px=max(1, math.ceil(ttl * 1000)))
        except _STORE_ERRORS as exc:
            raise StoreUnavailable("put", str(exc)) from exc
        return entry

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._get_redis().delete(self._redis_key(key))
        except _STORE_ERRORS as exc:
            raise StoreUnavailable("delete", str(exc)) from exc
        return bool(removed)

    async def delete_prefix(self, prefix: str) -> int:
        client = self._get_redis()
        removed = 0
        batch: List[str] = []
        try:
            async for redis_key in client.scan_iter(match=self._pattern(prefix), count=self.delete_batch_size):
                batch.append(redis_key)
                if len(batch) >= self.delete_batch_size:
                    removed += await client.delete(*batch)
                    batch = []
            if batch:
                removed += await client.delete(*batch)
        except _STORE_ERRORS as exc:
            raise StoreUnavailable("delete_prefix", str(exc)) from exc

        if removed:
            self.logger.info("Cleared cache prefix", prefix=prefix, keys_count=removed)
        return removed

    async def clear(self) -> int:
        return await self.delete_prefix("")

    async def size(self) -> int:
        count = 0
        try:
            async for _ in self._get_redis().scan_iter(match=self._pattern(""), count=self.delete_batch_size):
                count += 1
        except _STORE_ERRORS as exc:
            raise StoreUnavailable("size", str(exc)) from exc
        return count

    async def ping(self) -> bool:
        try:
            return bool(await self._get_redis().ping())
        except _STORE_ERRORS as exc:
            self.logger.warning("Redis ping failed", error=str(exc))
            return False

    async def info(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {
            "backend": self.backend,
            "namespace": self.config.namespace,
            "max_entries": self.config.max_entries,
        }
        try:
            info["entries"] = await self.size()
        except StoreUnavailable as exc:
            info["error"] = exc.message
        return info

    def _decode(self, key: str, payload: str) -> Optional[CacheEntry]:
        try:
            data = json.loads(payload)
            return CacheEntry(
                key=key,
                value=data["value"],
                stored_at=float(data["stored_at"]),
                ttl=float(data["ttl"]),
            )
        except (TypeError, ValueError, KeyError) as exc:
            self.logger.warning("Discarding malformed cache envelope", key=key, error=str(exc))
            return None

    async def _discard(self, redis_key: str) -> None:
        try:
            await self._get_redis().delete(redis_key)
        except _STORE_ERRORS as exc:
            raise StoreUnavailable("delete", str(exc)) from exc
