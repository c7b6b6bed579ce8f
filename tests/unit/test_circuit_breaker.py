"""
Unit tests for the circuit breaker guarding cache store access.
"""

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState
from shared.test_helpers import FakeClock


class StoreDown(Exception):
    pass


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(
            failure_threshold=2,
            recovery_timeout=10.0,
            expected_exception=(StoreDown,),
            name="store",
            clock=clock,
        )

    @staticmethod
    async def failing():
        raise StoreDown("down")

    @staticmethod
    async def succeeding(value="ok"):
        return value

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        """Consecutive expected failures open the circuit."""
        for _ in range(2):
            with pytest.raises(StoreDown):
                await breaker.call(self.failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(self.succeeding)

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        """A success between failures keeps the circuit closed."""
        with pytest.raises(StoreDown):
            await breaker.call(self.failing)
        assert await breaker.call(self.succeeding, "value") == "value"
        with pytest.raises(StoreDown):
            await breaker.call(self.failing)

        assert not breaker.is_open()
        assert breaker.get_state()["failure_count"] == 1

    @pytest.mark.asyncio
    async def test_unexpected_exceptions_do_not_count(self, breaker):
        """Only the configured exception types trip the breaker."""
        async def broken():
            raise KeyError("bug")

        for _ in range(3):
            with pytest.raises(KeyError):
                await breaker.call(broken)

        assert not breaker.is_open()

    @pytest.mark.asyncio
    async def test_half_open_recovers(self, breaker, clock):
        """After the recovery timeout one trial call may close the circuit."""
        for _ in range(2):
            with pytest.raises(StoreDown):
                await breaker.call(self.failing)

        clock.advance(10.0)
        assert breaker.allow_request()
        assert breaker.get_state()["state"] == CircuitBreakerState.HALF_OPEN.value

        await breaker.call(self.succeeding)
        assert breaker.get_state()["state"] == "closed"

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        """A failed trial call reopens immediately."""
        for _ in range(2):
            with pytest.raises(StoreDown):
                await breaker.call(self.failing)

        clock.advance(10.0)
        with pytest.raises(StoreDown):
            await breaker.call(self.failing)

        assert breaker.is_open()
        assert not breaker.allow_request()
