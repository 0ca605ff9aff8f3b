"""
Flat storage adapter keeping two JSON blobs in a key/value blob store.

Every mutation rewrites a whole blob, so all writes of one adapter go through a
single FIFO write queue; a writer always reads the snapshot left by the
previous writer.
"""
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar
import asyncio
import json
import logging
import uuid

from pydantic import BaseModel, ValidationError

from ..exceptions import DatabaseError, ErrorCode, NotFoundError, InvalidInputError
from ..medications.schemas import MedicationRecord, MedicationStatus, NewMedication
from ..medications.seed import seed_medications
from .base import StorageAdapter, utcnow

# Set up logging
logger = logging.getLogger(__name__)

MEDICATIONS_KEY = "medications"
STATUSES_KEY = "medicationStatuses"

# Attributes a partial update may touch
UPDATABLE_FIELDS = ("name", "dosage", "frequency", "time", "instructions", "start_date", "end_date")

M = TypeVar("M", bound=BaseModel)


class BlobStore(ABC):
    """Asynchronous string key/value store."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Value for the key, or None when it was never written."""

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Replace the value for the key."""

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete the key if present."""


class MemoryBlobStore(BlobStore):
    """Blob store living in a dict; contents vanish with the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


def _atomic_write_text(path: Path, data: str):
    tmp = path.with_suffix(path.suffix + f".tmp.{uuid.uuid4().hex}")
    tmp.parent.mkdir(parents=True, exist_ok=True)
    tmp.write_text(data, encoding="utf-8")
    tmp.replace(path)


class FileBlobStore(BlobStore):
    """
    Blob store keeping one JSON file per key in a directory.

    Writes go to a temporary file that then replaces the target, so a reader
    never observes a half-written blob.
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _remove(self, key: str):
        self._path(key).unlink(missing_ok=True)

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(_atomic_write_text, self._path(key), value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)


class FlatStoreAdapter(StorageAdapter):
    """
    Storage adapter over a BlobStore.

    Medications live under "medications" and status rows under
    "medicationStatuses", both as JSON arrays of camelCase records. Ids are
    assigned as one more than the largest existing id.
    """
    platform = "flat"

    def __init__(self, blob_store: BlobStore, seed_on_init: bool = True):
        super().__init__()
        self.blob_store = blob_store
        self.seed_on_init = seed_on_init
        # asyncio.Lock hands ownership to waiters in arrival order
        self._write_queue = asyncio.Lock()

    async def init(self) -> None:
        if self._initialized:
            return
        try:
            for key in (MEDICATIONS_KEY, STATUSES_KEY):
                if await self.blob_store.get_item(key) is None:
                    await self.blob_store.set_item(key, "[]")
            # Fail early on blobs that cannot be decoded
            await self._load(MEDICATIONS_KEY, MedicationRecord, "init")
            await self._load(STATUSES_KEY, MedicationStatus, "init")
        except DatabaseError as e:
            raise DatabaseError(ErrorCode.INIT_FAILED, f"Failed to initialize flat storage: {e.message}", "init") from e
        except OSError as e:
            raise DatabaseError(ErrorCode.INIT_FAILED, f"Failed to initialize flat storage: {str(e)}", "init") from e

        self._initialized = True
        logger.info("Flat storage ready")

        if self.seed_on_init and await self.count() == 0:
            try:
                added = await self.seed()
                logger.info(f"Seeded {added} medications into empty flat storage")
            except DatabaseError as e:
                logger.error(f"Seeding failed: {e.message}")

    async def close(self) -> None:
        self._initialized = False
        logger.info("Flat storage closed")

    # Blob access

    async def _load(self, key: str, model: Type[M], operation: str) -> List[M]:
        try:
            raw = await self.blob_store.get_item(key)
        except OSError as e:
            raise DatabaseError(ErrorCode.QUERY_FAILED, f"Failed to read {key}: {str(e)}", operation) from e
        if raw is None:
            return []
        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                raise ValueError(f"expected a JSON array, got {type(items).__name__}")
            return [model.model_validate(item) for item in items]
        except (ValueError, ValidationError) as e:
            raise DatabaseError(
                ErrorCode.QUERY_FAILED,
                f"Stored {key} data is corrupt: {str(e)}",
                operation,
                {"key": key}
            ) from e

    async def _save(self, key: str, items: List[BaseModel], operation: str) -> None:
        payload = json.dumps([item.model_dump(mode="json", by_alias=True) for item in items])
        try:
            await self.blob_store.set_item(key, payload)
        except OSError as e:
            raise DatabaseError(ErrorCode.QUERY_FAILED, f"Failed to write {key}: {str(e)}", operation) from e

    @staticmethod
    def _next_id(items: List[Any]) -> int:
        return max((item.id for item in items), default=0) + 1

    @staticmethod
    def _sorted(medications: List[MedicationRecord]) -> List[MedicationRecord]:
        return sorted(medications, key=lambda medication: (medication.time, medication.id))

    # Reads

    async def get_all(self) -> List[MedicationRecord]:
        self._require_initialized("get_all")
        return self._sorted(await self._load(MEDICATIONS_KEY, MedicationRecord, "get_all"))

    async def get_by_id(self, medication_id: int) -> Optional[MedicationRecord]:
        self._require_initialized("get_by_id")
        for medication in await self._load(MEDICATIONS_KEY, MedicationRecord, "get_by_id"):
            if medication.id == medication_id:
                return medication
        return None

    async def get_by_date(self, day: date) -> List[MedicationRecord]:
        self._require_initialized("get_by_date")
        medications = await self._load(MEDICATIONS_KEY, MedicationRecord, "get_by_date")
        return self._sorted([medication for medication in medications if medication.is_active_on(day)])

    async def get_status(self, medication_id: int, day: date) -> Optional[MedicationStatus]:
        self._require_initialized("get_status")
        for status in await self._load(STATUSES_KEY, MedicationStatus, "get_status"):
            if status.medication_id == medication_id and status.date == day:
                return status
        return None

    async def get_all_statuses_for_date(self, day: date) -> List[MedicationStatus]:
        self._require_initialized("get_all_statuses_for_date")
        statuses = await self._load(STATUSES_KEY, MedicationStatus, "get_all_statuses_for_date")
        return [status for status in statuses if status.date == day]

    async def count(self) -> int:
        self._require_initialized("count")
        return len(await self._load(MEDICATIONS_KEY, MedicationRecord, "count"))

    # Writes

    async def add(self, medication: NewMedication) -> int:
        self._require_initialized("add")
        async with self._write_queue:
            medications = await self._load(MEDICATIONS_KEY, MedicationRecord, "add")
            new_id = self._next_id(medications)
            now = utcnow()
            medications.append(MedicationRecord(id=new_id, created_at=now, updated_at=now, **medication.model_dump()))
            await self._save(MEDICATIONS_KEY, medications, "add")
        logger.info(f"Added medication {new_id} ({medication.name})")
        return new_id

    async def update(self, medication_id: int, changes: Dict[str, Any]) -> MedicationRecord:
        self._require_initialized("update")
        async with self._write_queue:
            medications = await self._load(MEDICATIONS_KEY, MedicationRecord, "update")
            for index, medication in enumerate(medications):
                if medication.id == medication_id:
                    break
            else:
                raise NotFoundError("Medication", medication_id, "update")

            applied = {field: value for field, value in changes.items() if field in UPDATABLE_FIELDS}
            updated = medication.model_copy(update={**applied, "updated_at": utcnow()})
            if updated.end_date is not None and updated.end_date < updated.start_date:
                raise InvalidInputError(
                    "endDate",
                    updated.end_date.isoformat(),
                    "update",
                    "end date must not be before start date"
                )

            medications[index] = updated
            await self._save(MEDICATIONS_KEY, medications, "update")
        return updated

    async def delete(self, medication_id: int) -> None:
        self._require_initialized("delete")
        async with self._write_queue:
            medications = await self._load(MEDICATIONS_KEY, MedicationRecord, "delete")
            remaining = [medication for medication in medications if medication.id != medication_id]
            if len(remaining) == len(medications):
                raise NotFoundError("Medication", medication_id, "delete")

            # Status rows first; a failed write leaves the medication in place
            statuses = await self._load(STATUSES_KEY, MedicationStatus, "delete")
            await self._save(
                STATUSES_KEY,
                [status for status in statuses if status.medication_id != medication_id],
                "delete"
            )
            await self._save(MEDICATIONS_KEY, remaining, "delete")
        logger.info(f"Deleted medication {medication_id}")

    async def upsert_status(self, medication_id: int, day: date, taken: bool) -> MedicationStatus:
        self._require_initialized("upsert_status")
        async with self._write_queue:
            medications = await self._load(MEDICATIONS_KEY, MedicationRecord, "upsert_status")
            if not any(medication.id == medication_id for medication in medications):
                raise DatabaseError(
                    ErrorCode.CONSTRAINT_VIOLATION,
                    f"Medication with id {medication_id} does not exist",
                    "upsert_status",
                    {"medicationId": medication_id}
                )

            statuses = await self._load(STATUSES_KEY, MedicationStatus, "upsert_status")
            now = utcnow()
            taken_at = now if taken else None

            for index, status in enumerate(statuses):
                if status.medication_id == medication_id and status.date == day:
                    result = status.model_copy(update={"taken": taken, "taken_at": taken_at, "updated_at": now})
                    statuses[index] = result
                    break
            else:
                result = MedicationStatus(
                    id=self._next_id(statuses),
                    medication_id=medication_id,
                    date=day,
                    taken=taken,
                    taken_at=taken_at,
                    created_at=now,
                    updated_at=now,
                )
                statuses.append(result)

            await self._save(STATUSES_KEY, statuses, "upsert_status")
        return result

    async def seed(self) -> int:
        self._require_initialized("seed")
        async with self._write_queue:
            medications = await self._load(MEDICATIONS_KEY, MedicationRecord, "seed")
            if medications:
                logger.info("Medications already present; skipping seed")
                return 0
            now = utcnow()
            seeds = seed_medications()
            for index, medication in enumerate(seeds, start=1):
                medications.append(MedicationRecord(id=index, created_at=now, updated_at=now, **medication.model_dump()))
            await self._save(MEDICATIONS_KEY, medications, "seed")
        return len(seeds)
