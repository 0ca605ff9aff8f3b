"""
Tests for the optimistic status cache.
"""
from unittest.mock import patch
import pytest

from medalert.core.circuit_breaker import CircuitBreaker, CircuitState
from medalert.core.results import DatabaseResult, ErrorInfo
from medalert.status.cache import MedicationStatusCache
from medalert.status.engine import StatusEngine
from tests.conftest import FixedClock, at

LISINOPRIL, METFORMIN = 1, 2


@pytest.fixture
async def cache(seeded_store):
    engine = StatusEngine(seeded_store, clock=FixedClock(at(11, 0)))
    cache = MedicationStatusCache(engine, CircuitBreaker(threshold=2, context="status_cache"))
    result = await cache.refresh()
    assert result.success
    return cache


def ids(statuses):
    return [status.medication_id for status in statuses]


@pytest.mark.asyncio
async def test_refresh_loads_every_list(cache):
    assert len(cache.all_today) == 4
    assert ids(cache.overdue) == [LISINOPRIL, 4]
    assert METFORMIN in ids(cache.current)
    assert cache.error is None


@pytest.mark.asyncio
async def test_mark_taken_is_applied_then_confirmed(cache):
    result = await cache.mark_taken(LISINOPRIL)

    assert result.success
    assert LISINOPRIL not in ids(cache.overdue)
    taken = {status.medication_id: status.taken for status in cache.all_today}
    assert taken[LISINOPRIL] is True
    assert cache.pending == {}
    assert cache.error is None


@pytest.mark.asyncio
async def test_change_is_visible_before_write_completes(cache):
    seen = {}
    original = cache.engine.mark_taken

    async def observe(medication_id, day=None):
        seen["pending"] = dict(cache.pending)
        seen["overdue"] = ids(cache.overdue)
        seen["taken"] = {status.medication_id: status.taken for status in cache.all_today}[medication_id]
        seen["aware"] = all(
            status.taken_at.tzinfo is not None for status in cache.all_today if status.medication_id == medication_id
        )
        return await original(medication_id, day)

    with patch.object(cache.engine, "mark_taken", side_effect=observe):
        await cache.mark_taken(LISINOPRIL)

    assert seen == {"pending": {LISINOPRIL: True}, "overdue": [4], "taken": True, "aware": True}


@pytest.mark.asyncio
async def test_failed_write_rolls_back(cache):
    before = cache.view()
    failure = DatabaseResult.fail(ErrorInfo(code="QUERY_FAILED", message="disk full"))

    with patch.object(cache.engine, "mark_taken", return_value=failure):
        result = await cache.mark_taken(LISINOPRIL)

    assert not result.success
    assert ids(cache.overdue) == ids(before["overdue"])
    assert all(not status.taken for status in cache.all_today)
    assert cache.pending == {}
    assert cache.error == "Failed to save your changes. Please try again."


@pytest.mark.asyncio
async def test_mark_not_taken_round_trip(cache):
    await cache.mark_taken(LISINOPRIL)
    result = await cache.mark_not_taken(LISINOPRIL)

    assert result.success
    assert LISINOPRIL in ids(cache.overdue)
    lisinopril = next(status for status in cache.all_today if status.medication_id == LISINOPRIL)
    assert not lisinopril.taken and lisinopril.is_past_due


@pytest.mark.asyncio
async def test_refresh_failures_open_breaker_and_clear_lists(cache):
    failure = DatabaseResult.fail(ErrorInfo(code="CONNECTION_FAILED", message="gone"))

    with patch.object(cache.engine, "today_with_status", return_value=failure):
        assert not (await cache.refresh()).success
        assert cache.all_today == []
        assert cache.error.startswith("Unable to reach your medication data")

        await cache.refresh()
        assert cache.breaker.state == CircuitState.OPEN

    rejected = await cache.refresh()
    assert rejected.error.code == "CONNECTION_FAILED"
    assert "OPEN" in rejected.error.message


@pytest.mark.asyncio
async def test_view_uses_camel_case_keys(cache):
    await cache.mark_taken(METFORMIN)
    view = cache.view()
    assert set(view) == {"current", "upcoming", "overdue", "allToday", "error", "pending"}
    assert view["pending"] == {}
