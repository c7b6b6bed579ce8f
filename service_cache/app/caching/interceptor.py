"""
Response cache interceptor.

Wraps a request handler: serves unexpired results from the cache store,
and on a miss runs the handler once per key no matter how many callers
arrive while it is running. Handler failures are never cached. Store
failures are logged and bypassed so the request still reaches the handler.
"""

import functools
import inspect
import time
from typing import Any, Callable, Dict, Optional, Tuple, TYPE_CHECKING

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.logging import get_logger
from .codec import CodecError, JsonCodec
from .errors import InvalidKey, StoreUnavailable
from .keys import CacheKey, normalize_key, request_key
from .models import CacheConfig, CacheStats
from .single_flight import Flight, SingleFlight
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


Handler = Callable[[Any], Any]
KeyFunction = Callable[[Any], CacheKey]


class CacheInterceptor:
    """Memoizes handler results per cache key within a ttl window."""

    def __init__(
        self,
        store: CacheStore,
        handler: Handler,
        key_fn: KeyFunction = request_key,
        config: Optional[CacheConfig] = None,
        *,
        codec: Optional[JsonCodec] = None,
        metrics: Optional["MetricsCollector"] = None,
        breaker: Optional[CircuitBreaker] = None,
        cacheable: Optional[Callable[[Any], bool]] = None,
        name: str = "response",
    ):
        self.store = store
        self.handler = handler
        self.key_fn = key_fn
        self.config = config or CacheConfig()
        self.codec = codec or JsonCodec()
        self.metrics = metrics
        self.breaker = breaker or CircuitBreaker(
            expected_exception=(StoreUnavailable,),
            name=f"cache_store.{name}",
        )
        self.cacheable = cacheable
        self.name = name
        self.logger = get_logger(f"cache.interceptor.{name}")

        self._flights = SingleFlight()
        self._stats = CacheStats()

    def derive_key(self, descriptor: Any) -> str:
        """Map a request descriptor to a validated cache key."""
        try:
            key = self._call_key_fn(descriptor)
            if self.config.verify_keys:
                repeated = self._call_key_fn(descriptor)
                if repeated != key:
                    raise InvalidKey(
                        "Key function is not deterministic",
                        details={"first": key, "second": repeated},
                    )
        except InvalidKey as exc:
            self._stats.invalid_keys += 1
            self.logger.warning("Rejected cache key", reason=exc.message, details=exc.details)
            raise
        return key

    def _call_key_fn(self, descriptor: Any) -> str:
        try:
            raw = self.key_fn(descriptor)
        except Exception as exc:
            raise InvalidKey("Key function failed", details={"error": str(exc)}) from exc
        return normalize_key(raw)

    async def resolve(self, descriptor: Any) -> Any:
        """Return the cached result for ``descriptor`` or compute it once.

        Every caller gets the result in its stored (decoded JSON) form, so a
        miss and a later hit for the same key return equal values.
        """
        key = self.derive_key(descriptor)

        if key not in self._flights:
            completed = self._flights.completed
            payload, value = await self._lookup(key)
            if payload is not None:
                self._stats.hits += 1
                self._record("cache_hits_total")
                self.logger.debug("Cache hit", key=key)
                return value
            # A flight that finished while the lookup was pending may have
            # stored the result this caller is about to compute.
            recheck = self._flights.completed != completed
        else:
            recheck = False

        self._stats.misses += 1
        self._record("cache_misses_total")

        flight, leader = self._flights.claim(
            key, functools.partial(self._populate, descriptor=descriptor, recheck=recheck)
        )
        if not leader:
            self._stats.coalesced += 1
            self._record("cache_coalesced_total")
            self.logger.debug("Joined in-flight handler execution", key=key, waiters=flight.waiters)

        payload, result = await SingleFlight.wait(flight)
        if payload is None:
            return result
        return self.codec.loads(payload)

    async def invalidate(self, key: CacheKey) -> bool:
        """Remove an entry. Absent keys are a no-op.

        Any in-flight population for the key is detached, so the next
        resolve runs the handler again and the detached result is dropped.
        """
        normalized = normalize_key(key)
        self._flights.forget(normalized)
        removed = await self._guarded_store_call("delete", self.store.delete, normalized)
        if removed:
            self.logger.info("Invalidated cache entry", key=normalized)
        return bool(removed)

    async def invalidate_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``."""
        if not prefix:
            raise InvalidKey("Invalidation prefix is empty")
        self._flights.forget_prefix(prefix)
        removed = await self._guarded_store_call("delete_prefix", self.store.delete_prefix, prefix)
        self.logger.info("Invalidated cache prefix", prefix=prefix, removed=removed)
        return removed

    async def clear(self) -> int:
        """Drop every entry."""
        self._flights.forget_prefix("")
        removed = await self._guarded_store_call("clear", self.store.clear)
        self.logger.info("Cleared cache", removed=removed)
        return removed

    def stats(self) -> Dict[str, Any]:
        """Hit/miss counters for observability."""
        data = self._stats.as_dict()
        data["in_flight"] = len(self._flights)
        data["store_backend"] = self.store.backend
        data["store_circuit"] = self.breaker.get_state()["state"]
        return data

    async def _lookup(self, key: str) -> Tuple[Optional[str], Any]:
        """Return the stored payload and its decoded value, or ``(None, None)``."""
        ok, entry = await self._store_call("get", self.store.get, key)
        if not ok or entry is None:
            return None, None

        try:
            return entry.value, self.codec.loads(entry.value)
        except CodecError as exc:
            self.logger.warning("Dropping undecodable cache entry", key=key, error=str(exc))
            await self._store_call("delete", self.store.delete, key)
            return None, None

    async def _populate(self, flight: Flight, descriptor: Any, recheck: bool = False) -> Tuple[Optional[str], Any]:
        if recheck:
            payload, _ = await self._lookup(flight.key)
            if payload is not None:
                self.logger.debug("Result stored by an earlier flight; skipping handler", key=flight.key)
                return payload, None

        started = time.perf_counter()
        try:
            result = self.handler(descriptor)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            self._stats.handler_errors += 1
            self._record("cache_handler_errors_total")
            self.logger.warning(
                "Handler failed; result not cached",
                key=flight.key,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        finally:
            self._observe_duration(time.perf_counter() - started)

        try:
            payload = self.codec.dumps(result)
        except CodecError as exc:
            self.logger.warning("Result not serializable; serving uncached", key=flight.key, error=str(exc))
            return None, result

        await self._store_result(flight, payload, result)
        return payload, result

    async def _store_result(self, flight: Flight, payload: str, result: Any) -> None:
        if self.cacheable is not None and not self.cacheable(result):
            self.logger.debug("Result rejected by cacheable predicate", key=flight.key)
            return
        if not self._flights.is_current(flight):
            self.logger.debug("Skipping store for invalidated flight", key=flight.key)
            return

        ok, _ = await self._store_call("put", self.store.put, flight.key, payload, self.config.ttl_seconds)
        if ok and not self._flights.is_current(flight):
            # Invalidated while the write was in progress.
            await self._store_call("delete", self.store.delete, flight.key)

    async def _store_call(self, operation: str, func: Callable[..., Any], *args) -> Tuple[bool, Any]:
        """Run a store operation, degrading to a bypass on failure."""
        try:
            return True, await self.breaker.call(func, *args)
        except CircuitBreakerOpenException:
            self._stats.bypassed += 1
            return False, None
        except StoreUnavailable as exc:
            self._stats.store_errors += 1
            self._stats.bypassed += 1
            self._record("cache_store_errors_total", operation=operation)
            self.logger.error(
                "Cache store unavailable; bypassing cache",
                operation=operation,
                error=exc.message,
            )
            return False, None

    async def _guarded_store_call(self, operation: str, func: Callable[..., Any], *args) -> Any:
        """Run a store operation whose failure must reach the caller."""
        try:
            return await self.breaker.call(func, *args)
        except CircuitBreakerOpenException as exc:
            raise StoreUnavailable(operation, "circuit breaker open") from exc
        except StoreUnavailable as exc:
            self._stats.store_errors += 1
            self._record("cache_store_errors_total", operation=operation)
            self.logger.error("Cache store operation failed", operation=operation, error=exc.message)
            raise

    def _record(self, metric_name: str, **labels) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter(metric_name, cache_type=self.name, **labels)
        except Exception as exc:  # pragma: no cover - metrics failures should never break caching
            self.logger.debug("Failed to record cache metric", metric=metric_name, error=str(exc))

    def _observe_duration(self, duration: float) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.observe_histogram("cache_handler_duration_seconds", duration, cache_type=self.name)
        except Exception as exc:  # pragma: no cover - metrics failures should never break caching
            self.logger.debug("Failed to record handler duration", error=str(exc))
