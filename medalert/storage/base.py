"""
Storage adapter contract shared by every backend.

Adapters work on validated schemas and raise DatabaseError on failure; they
never return envelopes. The store wrapper turns their outcome into results.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from ..exceptions import DatabaseError, ErrorCode
from ..medications.schemas import (
    MedicationRecord,
    MedicationStatus,
    MedicationWithStatus,
    NewMedication,
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class StorageAdapter(ABC):
    """
    One storage backend for medications and their daily status.

    Subclasses set `platform` and implement the abstract operations. Every
    operation other than `init` raises CONNECTION_FAILED until `init` has
    completed.
    """
    platform: str = "unknown"

    def __init__(self):
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _require_initialized(self, operation: str):
        if not self._initialized:
            raise DatabaseError(
                ErrorCode.CONNECTION_FAILED,
                f"{self.platform} storage is not initialized",
                operation
            )

    @abstractmethod
    async def init(self) -> None:
        """Open the backend and make sure its schema and seed data are in place."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def get_all(self) -> List[MedicationRecord]:
        """All medications ordered by dose time."""

    @abstractmethod
    async def get_by_id(self, medication_id: int) -> Optional[MedicationRecord]:
        """One medication, or None when the id is unknown."""

    @abstractmethod
    async def add(self, medication: NewMedication) -> int:
        """Insert a medication and return its new id."""

    @abstractmethod
    async def update(self, medication_id: int, changes: Dict[str, Any]) -> MedicationRecord:
        """
        Apply a partial update keyed by attribute name.

        Raises:
            NotFoundError: If the medication does not exist
            InvalidInputError: If the merged record has end_date before start_date
        """

    @abstractmethod
    async def delete(self, medication_id: int) -> None:
        """
        Delete a medication together with its status rows.

        Raises:
            NotFoundError: If the medication does not exist
        """

    @abstractmethod
    async def get_by_date(self, day: date) -> List[MedicationRecord]:
        """Medications active on the day, ordered by dose time."""

    @abstractmethod
    async def get_status(self, medication_id: int, day: date) -> Optional[MedicationStatus]:
        """The status row for a medication and day, if one was written."""

    @abstractmethod
    async def get_all_statuses_for_date(self, day: date) -> List[MedicationStatus]:
        """Every status row written for the day."""

    @abstractmethod
    async def upsert_status(self, medication_id: int, day: date, taken: bool) -> MedicationStatus:
        """
        Create or replace the status row for a medication and day.

        `taken_at` is set to now when taken and cleared otherwise.

        Raises:
            DatabaseError: CONSTRAINT_VIOLATION if the medication does not exist
        """

    @abstractmethod
    async def count(self) -> int:
        """Number of stored medications."""

    @abstractmethod
    async def seed(self) -> int:
        """Insert the baseline medications and return how many were added."""

    async def get_with_status_for_date(self, day: date) -> List[MedicationWithStatus]:
        """
        Medications active on the day, each joined with its status row.

        Reads never create status rows; medications without one get `status=None`.
        """
        self._require_initialized("get_with_status_for_date")
        medications = await self.get_by_date(day)
        statuses = {status.medication_id: status for status in await self.get_all_statuses_for_date(day)}
        return [
            MedicationWithStatus(**medication.model_dump(), status=statuses.get(medication.id))
            for medication in medications
        ]
