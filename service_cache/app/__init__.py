"""
Response cache service package.

The service fronts expensive request handlers with a response cache,
enforcing:
- TTL-bounded reuse of handler results per cache key
- Single-flight population: one handler execution per key at a time
- Fail-open behaviour when the cache store is unavailable

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.caching: Interceptor, stores, key derivation and sweeper.
"""
