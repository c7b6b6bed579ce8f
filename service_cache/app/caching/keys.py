"""
Request descriptors and cache key derivation.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import InvalidKey

KeyPart = Union[str, int, float, bool]
CacheKey = Union[str, Tuple[KeyPart, ...]]

MAX_KEY_LENGTH = 1024
ANONYMOUS_PRINCIPAL = "anonymous"


@dataclass(frozen=True)
class RequestDescriptor:
    """Identity of a request as seen by the cache."""
    path: str
    method: str = "GET"
    params: Mapping[str, Any] = field(default_factory=dict)
    principal: Optional[str] = None
    payload: Any = None

    @classmethod
    def from_request(cls, request: Any, principal_header: str = "authorization") -> "RequestDescriptor":
        """Build a descriptor from a Starlette/FastAPI request."""
        params: Dict[str, List[str]] = {}
        for name, value in request.query_params.multi_items():
            params.setdefault(name, []).append(value)
        return cls(
            path=request.url.path,
            method=request.method.upper(),
            params=params,
            principal=request.headers.get(principal_header),
        )


def canonical_params(params: Mapping[str, Any]) -> str:
    """Serialize parameters so equivalent mappings produce identical text."""
    return json.dumps(params, sort_keys=True, separators=(",", ":"), default=str)


def principal_fingerprint(principal: Optional[str]) -> str:
    """Hash principal identity so credentials never appear in keys."""
    if not principal:
        return ANONYMOUS_PRINCIPAL
    return hashlib.sha256(principal.encode("utf-8")).hexdigest()[:16]


def request_key(descriptor: RequestDescriptor) -> str:
    """Default key function: route + serialized params + principal."""
    material = "|".join([
        canonical_params(descriptor.params),
        principal_fingerprint(descriptor.principal),
    ])
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{descriptor.method.upper()}:{descriptor.path}:{digest}"


def normalize_key(raw: Any) -> str:
    """Validate a derived key and reduce composite keys to a string."""
    if isinstance(raw, (tuple, list)):
        if not raw:
            raise InvalidKey("Composite cache key is empty")
        parts = []
        for part in raw:
            if part is None or not isinstance(part, (str, int, float, bool)):
                raise InvalidKey(
                    "Composite cache key parts must be primitives",
                    details={"part_type": type(part).__name__},
                )
            parts.append(str(part))
        key = ":".join(parts)
    elif isinstance(raw, str):
        key = raw
    else:
        raise InvalidKey(
            "Cache key must be a string or a tuple of primitives",
            details={"key_type": type(raw).__name__},
        )

    if not key.strip():
        raise InvalidKey("Cache key is empty")
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidKey("Cache key is too long", details={"length": len(key), "max_length": MAX_KEY_LENGTH})
    if any(ord(ch) < 32 for ch in key):
        raise InvalidKey("Cache key contains control characters")
    return key
