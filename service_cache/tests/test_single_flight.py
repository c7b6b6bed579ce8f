"""
Tests for single-flight coordination.
"""

import asyncio

import pytest

from service_cache.app.caching.single_flight import SingleFlight


class TestSingleFlight:
    """Test cases for SingleFlight."""

    @pytest.mark.asyncio
    async def test_second_claim_joins_first(self):
        """Only the first claim starts an execution."""
        flights = SingleFlight()
        release = asyncio.Event()
        runs = []

        async def work(flight):
            runs.append(flight.key)
            await release.wait()
            return "done"

        first, leader = flights.claim("k", work)
        second, joined_leader = flights.claim("k", work)

        assert leader is True
        assert joined_leader is False
        assert first is second
        assert first.waiters == 2
        assert "k" in flights

        release.set()
        assert await SingleFlight.wait(first) == "done"
        assert runs == ["k"]
        assert "k" not in flights
        assert len(flights) == 0

    @pytest.mark.asyncio
    async def test_forget_detaches_flight(self):
        """A forgotten key gets a new flight on the next claim."""
        flights = SingleFlight()
        release = asyncio.Event()

        async def work(flight):
            await release.wait()
            return flight.key

        old, _ = flights.claim("k", work)
        assert flights.is_current(old)

        assert flights.forget("k") is True
        assert not flights.is_current(old)
        assert flights.forget("k") is False

        new, leader = flights.claim("k", work)
        assert leader is True
        assert new is not old

        release.set()
        assert await SingleFlight.wait(old) == "k"
        # The detached flight finishing must not release its successor.
        assert await SingleFlight.wait(new) == "k"
        assert len(flights) == 0

    @pytest.mark.asyncio
    async def test_forget_prefix(self):
        """Prefix forgetting detaches only matching flights."""
        flights = SingleFlight()
        release = asyncio.Event()

        async def work(flight):
            await release.wait()

        claimed = [flights.claim(key, work)[0] for key in ("a:1", "a:2", "b:1")]

        assert flights.forget_prefix("a:") == 2
        assert "b:1" in flights
        release.set()
        await asyncio.gather(*(flight.task for flight in claimed))
        assert len(flights) == 0

    @pytest.mark.asyncio
    async def test_exception_releases_key(self):
        """Failures propagate and the key is free for a retry."""
        flights = SingleFlight()

        async def work(flight):
            raise ValueError("boom")

        flight, _ = flights.claim("k", work)

        with pytest.raises(ValueError):
            await SingleFlight.wait(flight)
        assert "k" not in flights

    @pytest.mark.asyncio
    async def test_cancelled_wait_keeps_task_running(self):
        """Cancelling a waiter leaves the shared task alive."""
        flights = SingleFlight()
        release = asyncio.Event()

        async def work(flight):
            await release.wait()
            return 1

        flight, _ = flights.claim("k", work)
        waiter = asyncio.create_task(SingleFlight.wait(flight))
        await asyncio.sleep(0)
        waiter.cancel()

        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert not flight.task.cancelled()

        release.set()
        assert await SingleFlight.wait(flight) == 1

    @pytest.mark.asyncio
    async def test_completed_counts_finished_executions(self):
        """Successful and failed executions both bump the completion counter."""
        flights = SingleFlight()

        async def ok(flight):
            return 1

        async def fail(flight):
            raise ValueError("boom")

        first, _ = flights.claim("a", ok)
        second, _ = flights.claim("b", fail)
        assert flights.completed == 0

        await SingleFlight.wait(first)
        with pytest.raises(ValueError):
            await SingleFlight.wait(second)

        assert flights.completed == 2
