"""
Single-flight coordination: at most one in-flight execution per key.

The first caller for a key claims it and starts a shared task; every
caller, the claimant included, awaits that task through ``asyncio.shield``.
Cancelling one caller therefore abandons only its own wait, never the
execution or the other waiters.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple


class Flight:
    """Ticket for one in-flight execution of a key."""

    __slots__ = ("key", "task", "waiters", "detached")

    def __init__(self, key: str):
        self.key = key
        self.task: Optional[asyncio.Task] = None
        self.waiters = 1
        self.detached = False


class SingleFlight:
    """Registry of in-flight executions keyed by cache key."""

    def __init__(self):
        self._flights: Dict[str, Flight] = {}
        # Bumped whenever an execution finishes; callers compare snapshots to
        # learn whether a result may have been stored during their lookup.
        self.completed = 0

    def __len__(self) -> int:
        return len(self._flights)

    def __contains__(self, key: str) -> bool:
        return key in self._flights

    def claim(self, key: str, fn: Callable[[Flight], Awaitable[Any]]) -> Tuple[Flight, bool]:
        """Join the flight for ``key`` or start one running ``fn``.

        Returns the flight and whether this caller started it. Claiming is
        synchronous, so no other coroutine can interleave between the lookup
        and the registration.
        """
        flight = self._flights.get(key)
        if flight is not None:
            flight.waiters += 1
            return flight, False

        flight = Flight(key)
        self._flights[key] = flight
        flight.task = asyncio.ensure_future(self._run(flight, fn))
        flight.task.add_done_callback(_retrieve_exception)
        return flight, True

    @staticmethod
    async def wait(flight: Flight) -> Any:
        """Await the shared outcome without exposing the task to cancellation."""
        return await asyncio.shield(flight.task)

    def is_current(self, flight: Flight) -> bool:
        """Whether ``flight`` still owns its key."""
        return not flight.detached and self._flights.get(flight.key) is flight

    def forget(self, key: str) -> bool:
        """Detach the flight for ``key`` so the next caller starts afresh.

        The detached execution keeps running for its existing waiters.
        """
        flight = self._flights.pop(key, None)
        if flight is None:
            return False
        flight.detached = True
        return True

    def forget_prefix(self, prefix: str) -> int:
        keys = [key for key in self._flights if key.startswith(prefix)]
        for key in keys:
            self.forget(key)
        return len(keys)

    async def _run(self, flight: Flight, fn: Callable[[Flight], Awaitable[Any]]) -> Any:
        try:
            return await fn(flight)
        finally:
            self.completed += 1
            self._release(flight)

    def _release(self, flight: Flight) -> None:
        if self._flights.get(flight.key) is flight:
            del self._flights[flight.key]


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; mark the outcome as observed so
    # the event loop does not report an unretrieved exception.
    if not task.cancelled():
        task.exception()
