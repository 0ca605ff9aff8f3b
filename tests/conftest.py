"""
Test configuration for the MedAlert backend.
"""
from datetime import date, datetime, time
import pytest
from fastapi.testclient import TestClient

from medalert.config import Settings
from medalert.main import create_app
from medalert.medications.schemas import NewMedication
from medalert.storage.flat_store import FlatStoreAdapter, MemoryBlobStore
from medalert.storage.relational import RelationalAdapter
from medalert.storage.store import ValidatingRetryingStore


def make_medication(name="Aspirin", time="09:00", start_date=None, end_date=None, **extra) -> NewMedication:
    """
    Build a valid creation payload starting today unless told otherwise.
    """
    return NewMedication(
        name=name,
        dosage=extra.pop("dosage", "100mg"),
        frequency=extra.pop("frequency", "Once daily"),
        time=time,
        instructions=extra.pop("instructions", None),
        start_date=start_date or date.today(),
        end_date=end_date,
    )


def at(hour: int, minute: int = 0) -> datetime:
    """Local datetime today at the given time."""
    return datetime.combine(date.today(), time(hour, minute))


class FixedClock:
    """Clock returning a settable datetime."""
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(scope="function")
def database_path(tmp_path):
    """
    Path of a fresh SQLite file for each test.
    """
    return str(tmp_path / "medalert-test.db")


@pytest.fixture(scope="function", params=["relational", "flat"])
async def adapter(request, database_path):
    """
    Initialized, unseeded adapter for each backend.
    """
    if request.param == "relational":
        adapter = RelationalAdapter(database_path, seed_on_init=False)
    else:
        adapter = FlatStoreAdapter(MemoryBlobStore(), seed_on_init=False)

    await adapter.init()
    try:
        yield adapter
    finally:
        await adapter.close()


@pytest.fixture(scope="function")
async def store(adapter):
    """
    Initialized store without backoff delays.
    """
    store = ValidatingRetryingStore(adapter, retry_delay=0)
    result = await store.init()
    assert result.success
    return store


@pytest.fixture(scope="function")
async def seeded_store(store):
    """
    Store holding the four baseline medications.
    """
    result = await store.seed_data()
    assert result.success and result.data == 4
    return store


@pytest.fixture(scope="function")
def test_settings(database_path):
    """
    Settings pointing at a throwaway database.
    """
    return Settings(
        storage_backend="relational",
        database_path=database_path,
        seed_data=True,
        retry_delay=0,
    )


@pytest.fixture(scope="function")
def client(test_settings):
    """
    Create a test client running the application lifespan.
    """
    app = create_app(test_settings)
    with TestClient(app) as client:
        yield client
