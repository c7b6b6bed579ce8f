"""
FastAPI route integration for the cache interceptor.
"""

import functools
from dataclasses import replace
from typing import Any, Callable

from fastapi import Request

from shared.logging import set_user_context
from .interceptor import CacheInterceptor
from .keys import RequestDescriptor, principal_fingerprint


def run_endpoint(descriptor: RequestDescriptor) -> Any:
    """Interceptor handler invoking the route call carried by the descriptor."""
    return descriptor.payload()


def _find_request(args: tuple, kwargs: dict) -> Request:
    request = kwargs.get("request")
    if isinstance(request, Request):
        return request
    for arg in args:
        if isinstance(arg, Request):
            return arg
    raise TypeError("cached endpoints must declare a 'request: Request' parameter")


def cached_endpoint(interceptor: CacheInterceptor, *, principal_header: str = "authorization"):
    """Serve a route through ``interceptor``.

    The interceptor must be built with :func:`run_endpoint` as its handler.
    Requests with the same method, path, query parameters and principal
    share one cached result; only the first concurrent request executes
    the route body.

    Usage:
        @app.get("/api/v1/instruments")
        @cached_endpoint(interceptor)
        async def get_instruments(request: Request): ...
    """
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            request = _find_request(args, kwargs)
            descriptor = replace(
                RequestDescriptor.from_request(request, principal_header),
                payload=functools.partial(func, *args, **kwargs),
            )
            if descriptor.principal:
                # Log correlation without exposing the credential.
                set_user_context(user_id=principal_fingerprint(descriptor.principal))
            return await interceptor.resolve(descriptor)

        return wrapper
    return decorator
