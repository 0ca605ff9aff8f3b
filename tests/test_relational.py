"""
Tests for the relational backend's schema versioning and SQLite specifics.
"""
from datetime import date
import pytest
from sqlalchemy import create_engine, inspect

from medalert.exceptions import DatabaseError, ErrorCode
from medalert.storage import migrations
from medalert.storage.relational import RelationalAdapter
from medalert.storage.store import ValidatingRetryingStore
from tests.conftest import make_medication

LEGACY_SCHEMA = [
    """CREATE TABLE medications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL, dosage TEXT NOT NULL, frequency TEXT NOT NULL, time TEXT NOT NULL,
        instructions TEXT, startDate DATE NOT NULL, endDate DATE,
        createdAt DATETIME NOT NULL, updatedAt DATETIME NOT NULL
    )""",
    """CREATE TABLE medication_status (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        medicationId INTEGER NOT NULL REFERENCES medications(id) ON DELETE CASCADE,
        date DATE NOT NULL, taken BOOLEAN DEFAULT 0, takenAt DATETIME,
        createdAt DATETIME NOT NULL, updatedAt DATETIME NOT NULL
    )""",
    """CREATE INDEX idx_medication_status_medication_date ON medication_status (medicationId, date)""",
]


def run_sql(database_path, *statements):
    engine = create_engine(f"sqlite:///{database_path}")
    with engine.begin() as connection:
        for statement in statements:
            connection.exec_driver_sql(statement)
    engine.dispose()


def read_version(database_path) -> int:
    engine = create_engine(f"sqlite:///{database_path}")
    with engine.connect() as connection:
        version = migrations.get_schema_version(connection)
    engine.dispose()
    return version


def unique_indexes(database_path):
    engine = create_engine(f"sqlite:///{database_path}")
    with engine.connect() as connection:
        indexes = {index["name"]: index["unique"] for index in inspect(connection).get_indexes("medication_status")}
    engine.dispose()
    return indexes


@pytest.mark.asyncio
async def test_fresh_database_is_migrated_to_latest(database_path):
    adapter = RelationalAdapter(database_path, seed_on_init=False)
    await adapter.init()
    await adapter.close()

    assert read_version(database_path) == migrations.SCHEMA_VERSION
    assert unique_indexes(database_path)[migrations.INDEX_MEDICATION_DATE]


@pytest.mark.asyncio
async def test_init_seeds_empty_database_once(database_path):
    adapter = RelationalAdapter(database_path, seed_on_init=True)
    await adapter.init()
    assert await adapter.count() == 4
    await adapter.close()

    reopened = RelationalAdapter(database_path, seed_on_init=True)
    await reopened.init()
    assert await reopened.count() == 4
    await reopened.close()


@pytest.mark.asyncio
async def test_data_survives_reopen(database_path):
    adapter = RelationalAdapter(database_path, seed_on_init=False)
    await adapter.init()
    medication_id = await adapter.add(make_medication("Persistent"))
    await adapter.upsert_status(medication_id, date.today(), True)
    await adapter.close()

    reopened = RelationalAdapter(database_path, seed_on_init=False)
    await reopened.init()
    assert (await reopened.get_by_id(medication_id)).name == "Persistent"
    assert (await reopened.get_status(medication_id, date.today())).taken
    await reopened.close()


@pytest.mark.asyncio
async def test_unversioned_legacy_tables_are_kept_and_deduplicated(database_path):
    run_sql(
        database_path,
        *LEGACY_SCHEMA,
        "INSERT INTO medications (name, dosage, frequency, time, startDate, createdAt, updatedAt) "
        "VALUES ('Legacy', '5mg', 'Once daily', '08:00', '2024-01-01', '2024-01-01 00:00:00', '2024-01-01 00:00:00')",
        "INSERT INTO medication_status (medicationId, date, taken, createdAt, updatedAt) "
        "VALUES (1, '2024-01-02', 0, '2024-01-02 00:00:00', '2024-01-02 00:00:00')",
        "INSERT INTO medication_status (medicationId, date, taken, createdAt, updatedAt) "
        "VALUES (1, '2024-01-02', 1, '2024-01-02 00:00:00', '2024-01-02 00:00:00')",
    )

    adapter = RelationalAdapter(database_path, seed_on_init=True)
    await adapter.init()

    medications = await adapter.get_all()
    assert [medication.name for medication in medications] == ["Legacy"]
    statuses = await adapter.get_all_statuses_for_date(date(2024, 1, 2))
    assert len(statuses) == 1
    assert statuses[0].taken is True
    await adapter.close()

    assert read_version(database_path) == migrations.SCHEMA_VERSION
    assert unique_indexes(database_path)[migrations.INDEX_MEDICATION_DATE]


@pytest.mark.asyncio
async def test_newer_schema_version_is_reset(database_path):
    run_sql(
        database_path,
        *LEGACY_SCHEMA,
        "INSERT INTO medications (name, dosage, frequency, time, startDate, createdAt, updatedAt) "
        "VALUES ('From the future', '5mg', 'Once daily', '08:00', '2024-01-01', '2024-01-01 00:00:00', '2024-01-01 00:00:00')",
        f"PRAGMA user_version = {migrations.SCHEMA_VERSION + 5}",
    )

    adapter = RelationalAdapter(database_path, seed_on_init=False)
    await adapter.init()
    assert await adapter.get_all() == []
    await adapter.close()

    assert read_version(database_path) == migrations.SCHEMA_VERSION


@pytest.mark.asyncio
async def test_structurally_broken_tables_are_reset(database_path):
    run_sql(
        database_path,
        "CREATE TABLE medications (id INTEGER PRIMARY KEY, name TEXT)",
        "INSERT INTO medications (name) VALUES ('Broken')",
        "PRAGMA user_version = 2",
    )

    adapter = RelationalAdapter(database_path, seed_on_init=False)
    await adapter.init()
    assert await adapter.count() == 0
    medication_id = await adapter.add(make_medication("Fresh"))
    assert (await adapter.get_by_id(medication_id)).name == "Fresh"
    await adapter.close()


@pytest.mark.asyncio
async def test_in_memory_database():
    adapter = RelationalAdapter(":memory:", seed_on_init=True)
    await adapter.init()
    assert await adapter.count() == 4
    await adapter.close()


@pytest.mark.asyncio
async def test_unopenable_path_fails_init(tmp_path):
    adapter = RelationalAdapter(str(tmp_path / "missing" / "dir" / "db.sqlite"), seed_on_init=False)
    with pytest.raises(DatabaseError) as excinfo:
        await adapter.init()
    assert excinfo.value.code == ErrorCode.INIT_FAILED
    assert not adapter.initialized


@pytest.mark.asyncio
async def test_unversioned_tables_without_status_index_are_migrated(database_path):
    run_sql(
        database_path,
        *LEGACY_SCHEMA[:2],
        "INSERT INTO medications (name, dosage, frequency, time, startDate, createdAt, updatedAt) "
        "VALUES ('Legacy', '5mg', 'Once daily', '08:00', '2024-01-01', '2024-01-01 00:00:00', '2024-01-01 00:00:00')",
    )

    adapter = RelationalAdapter(database_path, seed_on_init=False)
    await adapter.init()
    assert [medication.name for medication in await adapter.get_all()] == ["Legacy"]
    await adapter.upsert_status(1, date(2024, 1, 2), True)
    await adapter.upsert_status(1, date(2024, 1, 2), False)
    assert len(await adapter.get_all_statuses_for_date(date(2024, 1, 2))) == 1
    await adapter.close()

    assert read_version(database_path) == migrations.SCHEMA_VERSION
    assert unique_indexes(database_path)[migrations.INDEX_MEDICATION_DATE]


@pytest.mark.asyncio
async def test_out_of_range_id_is_rejected_before_query(database_path):
    store = ValidatingRetryingStore(RelationalAdapter(database_path, seed_on_init=False), retry_delay=0)
    await store.init()

    result = await store.get_medication_by_id(2 ** 70)

    assert result.error.code == "INVALID_INPUT"
    await store.close()
