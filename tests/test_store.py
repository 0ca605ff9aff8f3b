"""
Tests for the validating, retrying store wrapper.
"""
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock
import asyncio
import pytest

from medalert.exceptions import DatabaseError, ErrorCode
from medalert.storage.base import StorageAdapter
from medalert.storage.store import ValidatingRetryingStore

TODAY = date.today()

VALID_MEDICATION = {
    "name": "Aspirin",
    "dosage": "100mg",
    "frequency": "Once daily",
    "time": "8:00",
    "startDate": TODAY.isoformat(),
}


def make_mock_adapter() -> AsyncMock:
    adapter = AsyncMock(spec=StorageAdapter)
    adapter.platform = "mock"
    return adapter


async def make_store(adapter, **kwargs) -> ValidatingRetryingStore:
    sleep = AsyncMock()
    store = ValidatingRetryingStore(adapter, sleep=sleep, **kwargs)
    assert (await store.init()).success
    return store


def transient(operation="test"):
    return DatabaseError(ErrorCode.QUERY_FAILED, "database is locked", operation)


@pytest.mark.asyncio
async def test_calls_before_init_fail_without_touching_adapter():
    adapter = make_mock_adapter()
    store = ValidatingRetryingStore(adapter)

    result = await store.get_all_medications()

    assert not result.success
    assert result.error.code == "CONNECTION_FAILED"
    adapter.get_all.assert_not_called()


@pytest.mark.asyncio
async def test_init_is_idempotent():
    adapter = make_mock_adapter()
    store = ValidatingRetryingStore(adapter)

    results = await asyncio.gather(store.init(), store.init())
    assert all(result.success for result in results)
    assert (await store.init()).success
    adapter.init.assert_awaited_once()


@pytest.mark.asyncio
async def test_init_timeout_is_init_failed():
    adapter = make_mock_adapter()

    async def slow_init():
        await asyncio.sleep(5)

    adapter.init.side_effect = slow_init
    store = ValidatingRetryingStore(adapter, init_timeout=0.05)

    result = await store.init()
    assert not result.success
    assert result.error.code == "INIT_FAILED"
    assert not store.is_initialized


@pytest.mark.asyncio
async def test_init_failure_is_reported():
    adapter = make_mock_adapter()
    adapter.init.side_effect = RuntimeError("disk on fire")
    store = ValidatingRetryingStore(adapter)

    result = await store.init()
    assert result.error.code == "INIT_FAILED"
    assert "disk on fire" in result.error.message


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_backoff():
    adapter = make_mock_adapter()
    adapter.get_all.side_effect = [transient(), transient(), []]
    store = await make_store(adapter, retry_attempts=3, retry_delay=1.0)

    result = await store.get_all_medications()

    assert result.success
    assert result.data == []
    assert adapter.get_all.await_count == 3
    assert [call.args[0] for call in store._sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_retries_stop_after_max_attempts():
    adapter = make_mock_adapter()
    adapter.get_all.side_effect = transient()
    store = await make_store(adapter, retry_attempts=3)

    result = await store.get_all_medications()

    assert result.error.code == "QUERY_FAILED"
    assert adapter.get_all.await_count == 3


@pytest.mark.asyncio
async def test_unclassified_exceptions_are_query_failed_and_retried():
    adapter = make_mock_adapter()
    adapter.get_all.side_effect = [ValueError("boom"), []]
    store = await make_store(adapter)

    result = await store.get_all_medications()
    assert result.success
    assert adapter.get_all.await_count == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [ErrorCode.NOT_FOUND, ErrorCode.CONSTRAINT_VIOLATION, ErrorCode.INVALID_INPUT])
async def test_permanent_failures_are_not_retried(code):
    adapter = make_mock_adapter()
    adapter.delete.side_effect = DatabaseError(code, "permanent", "delete")
    store = await make_store(adapter)

    result = await store.delete_medication(3)

    assert result.error.code == code.value
    adapter.delete.assert_awaited_once_with(3)
    store._sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_seed_is_attempted_once():
    adapter = make_mock_adapter()
    adapter.seed.side_effect = transient("seed")
    store = await make_store(adapter)

    result = await store.seed_data()
    assert not result.success
    adapter.seed.assert_awaited_once()


@pytest.mark.asyncio
async def test_add_medication_validates_and_normalizes():
    adapter = make_mock_adapter()
    adapter.add.return_value = 7
    store = await make_store(adapter)

    result = await store.add_medication(VALID_MEDICATION)

    assert result.success and result.data == 7
    medication = adapter.add.await_args.args[0]
    assert medication.time == "08:00"
    assert medication.start_date == TODAY


@pytest.mark.asyncio
@pytest.mark.parametrize("changes", [
    {"name": ""},
    {"name": "   "},
    {"dosage": None},
    {"time": "25:00"},
    {"time": "8 PM"},
    {"startDate": "not a date"},
    {"endDate": (TODAY - timedelta(days=1)).isoformat()},
])
async def test_invalid_medication_is_rejected_without_adapter_call(changes):
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    result = await store.add_medication({**VALID_MEDICATION, **changes})

    assert not result.success
    assert result.error.code == "INVALID_INPUT"
    adapter.add.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["name", "dosage", "frequency", "time", "startDate"])
async def test_missing_required_field_is_rejected(field):
    adapter = make_mock_adapter()
    store = await make_store(adapter)
    payload = {key: value for key, value in VALID_MEDICATION.items() if key != field}

    result = await store.add_medication(payload)

    assert result.error.code == "INVALID_INPUT"
    adapter.add.assert_not_called()


@pytest.mark.asyncio
async def test_add_accepts_iso_timestamp_dates():
    adapter = make_mock_adapter()
    adapter.add.return_value = 1
    store = await make_store(adapter)

    result = await store.add_medication({**VALID_MEDICATION, "startDate": "2025-02-03T15:45:00.000Z"})

    assert result.success
    assert adapter.add.await_args.args[0].start_date == date(2025, 2, 3)


@pytest.mark.asyncio
@pytest.mark.parametrize("medication_id", [0, -1, "3", 2.5, True, None, 2 ** 63, 2 ** 70])
async def test_invalid_ids_are_rejected(medication_id):
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    result = await store.get_medication_by_id(medication_id)

    assert result.error.code == "INVALID_INPUT"
    adapter.get_by_id.assert_not_called()


@pytest.mark.asyncio
async def test_update_drops_unknown_keys():
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    result = await store.update_medication(4, {"id": 99, "createdAt": "2020-01-01", "dosage": "20mg", "time": "7:30 "})

    assert result.success
    adapter.update.assert_awaited_once_with(4, {"dosage": "20mg", "time": "07:30"})


@pytest.mark.asyncio
@pytest.mark.parametrize("updates", [{}, {"id": 5}, {"createdAt": "2020-01-01"}, "name"])
async def test_empty_update_is_rejected(updates):
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    result = await store.update_medication(4, updates)

    assert result.error.code == "INVALID_INPUT"
    adapter.update.assert_not_called()


@pytest.mark.asyncio
async def test_update_can_clear_optional_fields():
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    await store.update_medication(4, {"endDate": None, "instructions": None})

    adapter.update.assert_awaited_once_with(4, {"end_date": None, "instructions": None})


@pytest.mark.asyncio
async def test_status_update_requires_boolean():
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    result = await store.update_medication_status(1, TODAY, "yes")

    assert result.error.code == "INVALID_INPUT"
    adapter.upsert_status.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("day", [TODAY, datetime.combine(TODAY, datetime.min.time()).replace(hour=23), TODAY.isoformat()])
async def test_status_update_accepts_date_shapes(day):
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    result = await store.update_medication_status(1, day, True)

    assert result.success
    adapter.upsert_status.assert_awaited_once_with(1, TODAY, True)


@pytest.mark.asyncio
async def test_bad_date_is_rejected():
    adapter = make_mock_adapter()
    store = await make_store(adapter)

    result = await store.get_medications_by_date("31/12/2024")

    assert result.error.code == "INVALID_INPUT"
    adapter.get_by_date.assert_not_called()


@pytest.mark.asyncio
async def test_today_medications_uses_injected_day():
    adapter = make_mock_adapter()
    adapter.get_by_date.return_value = []
    store = await make_store(adapter, today=lambda: date(2025, 6, 1))

    await store.get_today_medications()

    adapter.get_by_date.assert_awaited_once_with(date(2025, 6, 1))


@pytest.mark.asyncio
async def test_stats_and_health_check():
    adapter = make_mock_adapter()
    adapter.count.return_value = 4
    adapter.get_all_statuses_for_date.return_value = ["row"]
    store = await make_store(adapter)

    stats = await store.get_stats()
    assert stats.data == {"medicationCount": 4, "todayStatusCount": 1, "platform": "mock", "initialized": True}

    health = await store.health_check()
    assert health["healthy"] is True
    assert health["details"]["medicationCount"] == 4


@pytest.mark.asyncio
async def test_health_check_reports_failures():
    adapter = make_mock_adapter()
    adapter.count.side_effect = DatabaseError(ErrorCode.CONNECTION_FAILED, "gone", "count")
    store = await make_store(adapter, retry_attempts=1)

    health = await store.health_check()
    assert health["healthy"] is False
    assert health["details"]["code"] == "CONNECTION_FAILED"

    await store.close()
    assert not (await store.health_check())["healthy"]
