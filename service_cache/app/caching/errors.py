"""
Cache layer error types.
"""

from typing import Any, Dict, Optional

from shared.errors import CacheLayerException


class CacheError(CacheLayerException):
    """Base class for cache component errors."""


class InvalidKey(CacheError):
    """Key function produced an empty, malformed or non-deterministic key."""

    def __init__(self, message: str = "Invalid cache key", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_CACHE_KEY", message, details)


class StoreUnavailable(CacheError):
    """Backing cache store could not serve a read or write."""

    status_code = 503

    def __init__(self, operation: str, message: str = "Cache store unavailable", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("STORE_UNAVAILABLE", f"{operation}: {message}", details)
