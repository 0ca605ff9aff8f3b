"""
Tests for the circuit breaker.
"""
import pytest

from medalert.core.circuit_breaker import CircuitBreaker, CircuitState
from medalert.core.results import DatabaseResult, ErrorInfo
from medalert.exceptions import DatabaseError, ErrorCode


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


async def succeed():
    return "ok"


async def explode():
    raise DatabaseError(ErrorCode.QUERY_FAILED, "boom", "test")


async def failed_envelope():
    return DatabaseResult.fail(ErrorInfo(code="QUERY_FAILED", message="boom"))


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(threshold=3, reset_timeout=30, context="test", clock=clock)


async def trip(breaker, times):
    for _ in range(times):
        with pytest.raises(DatabaseError):
            await breaker.execute(explode)


@pytest.mark.asyncio
async def test_successes_keep_breaker_closed(breaker):
    assert await breaker.execute(succeed) == "ok"
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failures == 0


@pytest.mark.asyncio
async def test_opens_after_threshold_consecutive_failures(breaker):
    await trip(breaker, 2)
    assert breaker.state == CircuitState.CLOSED

    await trip(breaker, 1)
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(DatabaseError) as excinfo:
        await breaker.execute(succeed)
    assert excinfo.value.code == ErrorCode.CONNECTION_FAILED
    assert "OPEN" in excinfo.value.message


@pytest.mark.asyncio
async def test_success_resets_failure_count(breaker):
    await trip(breaker, 2)
    await breaker.execute(succeed)
    await trip(breaker, 2)
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_failed_envelope_counts_as_failure(breaker):
    for _ in range(3):
        result = await breaker.execute(failed_envelope)
        assert not result.success
    assert breaker.state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_half_open_trial_success_closes(breaker, clock):
    await trip(breaker, 3)
    clock.now = 29
    with pytest.raises(DatabaseError):
        await breaker.execute(succeed)

    clock.now = 30
    assert await breaker.execute(succeed) == "ok"
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failures == 0


@pytest.mark.asyncio
async def test_half_open_trial_failure_reopens(breaker, clock):
    await trip(breaker, 3)
    clock.now = 31

    await trip(breaker, 1)
    assert breaker.state == CircuitState.OPEN

    clock.now = 45
    with pytest.raises(DatabaseError):
        await breaker.execute(succeed)


@pytest.mark.asyncio
async def test_reset_closes(breaker):
    await trip(breaker, 3)
    breaker.reset()
    assert breaker.state == CircuitState.CLOSED
    assert await breaker.execute(succeed) == "ok"
