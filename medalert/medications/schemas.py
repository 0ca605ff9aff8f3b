"""
Medication Schemas - Pydantic models for medication data validation and serialization.

Attributes are snake_case in Python and camelCase on the wire and in storage
(`startDate`, `takenAt`, ...), matching the persisted record shape.
"""
from typing import Optional, Any
from datetime import date, datetime, timezone
import re

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..core.time_parser import parse_time

# Canonical-ish time accepted on input; normalized to zero-padded HH:MM
TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")

REQUIRED_MEDICATION_FIELDS = ("name", "dosage", "frequency", "time", "start_date")

# Alias for fields that are themselves named "date"
CalendarDate = date


class CamelModel(BaseModel):
    """Base model exposing camelCase aliases."""

    class Config:
        """Configuration for Pydantic model"""
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _as_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _as_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return value
    return value


def _normalize_time(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("time is required and must be a string")
    value = value.strip()
    if not TIME_PATTERN.match(value):
        raise ValueError("Invalid time format. Use HH:MM format.")
    return parse_time(value).formatted24h


def _required_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required and must be a non-empty string")
    return value.strip()


class MedicationRecord(CamelModel):
    """
    Medication Record Schema - A stored medication

    Fields:
    - id: Store-assigned identifier
    - name: Medication name
    - dosage: Dosage description (e.g. "10mg")
    - frequency: Free-text frequency (e.g. "Once daily")
    - time: Nominal daily dose time, "HH:MM"
    - instructions: Optional instructions
    - start_date: First day of the course (inclusive)
    - end_date: Last day of the course (inclusive), None when open-ended
    - created_at / updated_at: UTC timestamps
    """
    id: int
    name: str
    dosage: str
    frequency: str
    time: str
    instructions: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def check_utc(cls, value):
        return _as_utc(value)

    def is_active_on(self, day: date) -> bool:
        """Whether the medication's date range covers the given calendar day."""
        return self.start_date <= day and (self.end_date is None or self.end_date >= day)


class NewMedication(CamelModel):
    """
    Medication Creation Schema - Used when adding a medication

    Requires name, dosage, frequency, time and start date. The time is
    normalized to zero-padded "HH:MM".
    """
    name: str
    dosage: str
    frequency: str
    time: str
    instructions: Optional[str] = None
    start_date: date
    end_date: Optional[date] = None

    @field_validator("name", "dosage", "frequency", mode="before")
    @classmethod
    def check_non_empty(cls, value, info):
        return _required_text(value, info.field_name)

    @field_validator("time", mode="before")
    @classmethod
    def check_time(cls, value):
        return _normalize_time(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def check_dates(cls, value, info):
        if info.field_name == "start_date" and (value is None or value == ""):
            raise ValueError("start_date is required")
        return _as_date(value)

    @model_validator(mode="after")
    def check_date_range(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class MedicationUpdate(CamelModel):
    """
    Medication Update Schema - Partial update payload

    Only fields that are explicitly provided are applied. Unknown keys
    (including id and createdAt) are ignored.
    """
    name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    time: Optional[str] = None
    instructions: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("name", "dosage", "frequency", mode="before")
    @classmethod
    def check_non_empty(cls, value, info):
        return _required_text(value, info.field_name)

    @field_validator("time", mode="before")
    @classmethod
    def check_time(cls, value):
        return _normalize_time(value)

    @field_validator("start_date", mode="before")
    @classmethod
    def check_start_date(cls, value):
        if value is None or value == "":
            raise ValueError("start_date cannot be empty")
        return _as_date(value)

    @field_validator("end_date", mode="before")
    @classmethod
    def check_end_date(cls, value):
        return _as_date(value)

    @model_validator(mode="after")
    def check_date_range(self):
        if self.start_date is not None and self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def changes(self) -> dict:
        """Fields explicitly set on this update, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class MedicationStatus(CamelModel):
    """
    Medication Status Schema - Whether a dose was taken on a given day

    Fields:
    - id: Row identifier
    - medication_id: Owning medication
    - date: Calendar day
    - taken: Whether the dose was taken
    - taken_at: When it was marked taken, None otherwise
    - created_at / updated_at: UTC timestamps
    """
    id: int
    medication_id: int
    date: CalendarDate
    taken: bool = False
    taken_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("taken_at", "created_at", "updated_at", mode="before")
    @classmethod
    def check_utc(cls, value):
        return _as_utc(value)


class MedicationWithStatus(MedicationRecord):
    """A medication together with its status row for one day, if any."""
    status: Optional[MedicationStatus] = Field(None, description="Status row for the queried date")
