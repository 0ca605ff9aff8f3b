"""
Relational storage adapter backed by SQLite through SQLAlchemy.

SQLAlchemy work is blocking, so every operation runs in a worker thread via
`asyncio.to_thread` while holding the adapter's lock.
"""
from datetime import date
from typing import Any, Callable, Dict, List, Optional, TypeVar
import asyncio
import logging
import threading

from sqlalchemy import func, or_
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from ..database import create_db_engine, create_session_factory
from ..exceptions import DatabaseError, ErrorCode, NotFoundError, InvalidInputError, classify_exception
from ..medications.models import Medication, MedicationStatusEntry
from ..medications.schemas import MedicationRecord, MedicationStatus, NewMedication
from ..medications.seed import seed_medications
from .base import StorageAdapter, utcnow
from . import migrations

# Set up logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Attributes a partial update may touch
UPDATABLE_FIELDS = ("name", "dosage", "frequency", "time", "instructions", "start_date", "end_date")


def _naive_utcnow():
    # SQLite DateTime columns hold naive values; they are always UTC here
    return utcnow().replace(tzinfo=None)


class RelationalAdapter(StorageAdapter):
    """
    Storage adapter for an SQLite database file (or ":memory:").

    On init the schema version is read from `PRAGMA user_version` and pending
    migrations are applied. Tables are only dropped when the database is newer
    than this code or structurally broken. An empty database is seeded when
    `seed_on_init` is set.
    """
    platform = "relational"

    def __init__(self, database_path: str, seed_on_init: bool = True):
        super().__init__()
        self.database_path = database_path
        self.seed_on_init = seed_on_init
        self._engine = None
        self._session_factory = None
        self._lock = threading.RLock()

    async def init(self) -> None:
        if self._initialized:
            return
        try:
            await asyncio.to_thread(self._locked, self._init_sync)
        except DatabaseError:
            await asyncio.to_thread(self._dispose)
            raise
        except Exception as e:
            await asyncio.to_thread(self._dispose)
            logger.error(f"Relational storage initialization failed: {str(e)}")
            raise DatabaseError(
                ErrorCode.INIT_FAILED,
                f"Failed to initialize database: {str(e)}",
                "init",
                {"databasePath": self.database_path}
            ) from e

        if self.seed_on_init:
            count = await self.count()
            if count == 0:
                try:
                    added = await self.seed()
                    logger.info(f"Seeded {added} medications into empty database")
                except DatabaseError as e:
                    # Seeding is attempted once; the store stays usable without it
                    logger.error(f"Seeding failed: {e.message}")

    def _init_sync(self):
        self._engine = create_db_engine(self.database_path)
        self._session_factory = create_session_factory(self._engine)

        with self._engine.begin() as connection:
            version = migrations.get_schema_version(connection)
            tables = migrations.existing_tables(connection)
            logger.info(f"Opened {self.database_path} at schema version {version}")

            if version > migrations.SCHEMA_VERSION:
                logger.warning(
                    f"Schema version {version} is newer than supported version "
                    f"{migrations.SCHEMA_VERSION}; resetting"
                )
                migrations.reset_schema(connection)
                version = 0
            elif version == 0 and tables:
                if migrations.has_valid_structure(connection):
                    logger.info("Found unversioned tables with a valid structure; marking as version 1")
                    migrations.set_schema_version(connection, 1)
                    version = 1
                else:
                    migrations.reset_schema(connection)
            elif version > 0 and not migrations.has_valid_structure(connection):
                migrations.reset_schema(connection)
                version = 0

            version = migrations.apply_migrations(connection, version)

            if not migrations.has_valid_structure(connection):
                raise DatabaseError(
                    ErrorCode.INIT_FAILED,
                    "Schema is invalid after migrations",
                    "init",
                    {"version": version}
                )

        self._initialized = True
        logger.info(f"Relational storage ready at schema version {version}")

    def _dispose(self):
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None
        self._initialized = False

    async def close(self) -> None:
        await asyncio.to_thread(self._locked, self._dispose)
        logger.info("Relational storage closed")

    def _locked(self, func: Callable[..., T], *args) -> T:
        with self._lock:
            return func(*args)

    async def _run(self, operation: str, func: Callable[..., T], *args) -> T:
        self._require_initialized(operation)
        try:
            return await asyncio.to_thread(self._locked, func, *args)
        except DatabaseError:
            raise
        except SQLAlchemyError as e:
            raise classify_exception(e, operation) from e

    # Reads

    async def get_all(self) -> List[MedicationRecord]:
        return await self._run("get_all", self._get_all_sync)

    def _get_all_sync(self) -> List[MedicationRecord]:
        with self._session_factory() as db:
            medications = db.query(Medication).order_by(Medication.time.asc(), Medication.id.asc()).all()
            return [MedicationRecord.model_validate(medication) for medication in medications]

    async def get_by_id(self, medication_id: int) -> Optional[MedicationRecord]:
        return await self._run("get_by_id", self._get_by_id_sync, medication_id)

    def _get_by_id_sync(self, medication_id: int) -> Optional[MedicationRecord]:
        with self._session_factory() as db:
            medication = db.query(Medication).filter(Medication.id == medication_id).first()
            return MedicationRecord.model_validate(medication) if medication else None

    async def get_by_date(self, day: date) -> List[MedicationRecord]:
        return await self._run("get_by_date", self._get_by_date_sync, day)

    def _get_by_date_sync(self, day: date) -> List[MedicationRecord]:
        with self._session_factory() as db:
            medications = (
                db.query(Medication)
                .filter(Medication.start_date <= day)
                .filter(or_(Medication.end_date.is_(None), Medication.end_date >= day))
                .order_by(Medication.time.asc(), Medication.id.asc())
                .all()
            )
            return [MedicationRecord.model_validate(medication) for medication in medications]

    async def get_status(self, medication_id: int, day: date) -> Optional[MedicationStatus]:
        return await self._run("get_status", self._get_status_sync, medication_id, day)

    def _get_status_sync(self, medication_id: int, day: date) -> Optional[MedicationStatus]:
        with self._session_factory() as db:
            entry = (
                db.query(MedicationStatusEntry)
                .filter(MedicationStatusEntry.medication_id == medication_id)
                .filter(MedicationStatusEntry.date == day)
                .first()
            )
            return MedicationStatus.model_validate(entry) if entry else None

    async def get_all_statuses_for_date(self, day: date) -> List[MedicationStatus]:
        return await self._run("get_all_statuses_for_date", self._get_statuses_sync, day)

    def _get_statuses_sync(self, day: date) -> List[MedicationStatus]:
        with self._session_factory() as db:
            entries = (
                db.query(MedicationStatusEntry)
                .filter(MedicationStatusEntry.date == day)
                .order_by(MedicationStatusEntry.medication_id.asc())
                .all()
            )
            return [MedicationStatus.model_validate(entry) for entry in entries]

    async def count(self) -> int:
        return await self._run("count", self._count_sync)

    def _count_sync(self) -> int:
        with self._session_factory() as db:
            return db.query(func.count(Medication.id)).scalar() or 0

    # Writes

    async def add(self, medication: NewMedication) -> int:
        return await self._run("add", self._add_sync, medication)

    def _add_sync(self, medication: NewMedication) -> int:
        now = _naive_utcnow()
        with self._session_factory() as db:
            row = Medication(**medication.model_dump(), created_at=now, updated_at=now)
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info(f"Added medication {row.id} ({row.name})")
            return row.id

    async def update(self, medication_id: int, changes: Dict[str, Any]) -> MedicationRecord:
        return await self._run("update", self._update_sync, medication_id, changes)

    def _update_sync(self, medication_id: int, changes: Dict[str, Any]) -> MedicationRecord:
        with self._session_factory() as db:
            medication = db.query(Medication).filter(Medication.id == medication_id).first()
            if not medication:
                raise NotFoundError("Medication", medication_id, "update")

            for field, value in changes.items():
                if field in UPDATABLE_FIELDS:
                    setattr(medication, field, value)

            if medication.end_date is not None and medication.end_date < medication.start_date:
                db.rollback()
                raise InvalidInputError(
                    "endDate",
                    medication.end_date.isoformat(),
                    "update",
                    "end date must not be before start date"
                )

            medication.updated_at = _naive_utcnow()
            db.commit()
            db.refresh(medication)
            return MedicationRecord.model_validate(medication)

    async def delete(self, medication_id: int) -> None:
        await self._run("delete", self._delete_sync, medication_id)

    def _delete_sync(self, medication_id: int) -> None:
        with self._session_factory() as db:
            medication = db.query(Medication).filter(Medication.id == medication_id).first()
            if not medication:
                raise NotFoundError("Medication", medication_id, "delete")
            db.delete(medication)
            db.commit()
            logger.info(f"Deleted medication {medication_id}")

    async def upsert_status(self, medication_id: int, day: date, taken: bool) -> MedicationStatus:
        return await self._run("upsert_status", self._upsert_status_sync, medication_id, day, taken)

    def _upsert_status_sync(self, medication_id: int, day: date, taken: bool) -> MedicationStatus:
        columns = MedicationStatusEntry.__mapper__.columns
        now = _naive_utcnow()

        with self._session_factory() as db:
            if db.get(Medication, medication_id) is None:
                raise DatabaseError(
                    ErrorCode.CONSTRAINT_VIOLATION,
                    f"Medication with id {medication_id} does not exist",
                    "upsert_status",
                    {"medicationId": medication_id}
                )

            statement = sqlite_insert(MedicationStatusEntry.__table__).values({
                columns["medication_id"]: medication_id,
                columns["date"]: day,
                columns["taken"]: taken,
                columns["taken_at"]: now if taken else None,
                columns["created_at"]: now,
                columns["updated_at"]: now,
            })
            statement = statement.on_conflict_do_update(
                index_elements=[columns["medication_id"], columns["date"]],
                set_={
                    columns["taken"]: statement.excluded[columns["taken"].key],
                    columns["taken_at"]: statement.excluded[columns["taken_at"].key],
                    columns["updated_at"]: statement.excluded[columns["updated_at"].key],
                }
            )
            db.execute(statement)
            db.commit()

            entry = (
                db.query(MedicationStatusEntry)
                .filter(MedicationStatusEntry.medication_id == medication_id)
                .filter(MedicationStatusEntry.date == day)
                .one()
            )
            return MedicationStatus.model_validate(entry)

    async def seed(self) -> int:
        return await self._run("seed", self._seed_sync)

    def _seed_sync(self) -> int:
        now = _naive_utcnow()
        with self._session_factory() as db:
            if db.query(func.count(Medication.id)).scalar():
                logger.info("Medications already present; skipping seed")
                return 0
            seeds = seed_medications()
            for medication in seeds:
                db.add(Medication(**medication.model_dump(), created_at=now, updated_at=now))
            db.commit()
            return len(seeds)
