"""
Shared utilities for the response cache layer.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Protection for calls to the cache store
- base_service: FastAPI application scaffolding

Runtime modules here must not import from service packages. test_helpers
is the exception: it builds cache fixtures for the test suites.
"""
