"""
Status Schemas - Derived, non-persisted views over medications and their status.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from dataclasses import dataclass

from pydantic import Field

from ..medications.schemas import CamelModel, CalendarDate


class StatusInfo(CamelModel):
    """
    Status Info Schema - One medication's standing for today

    Fields:
    - medication_id: Medication id
    - name / dosage: Copied from the medication
    - time: Dose time for display, "H:MM AM/PM"
    - time_24h: Dose time, "HH:MM"
    - taken / taken_at: From today's status row (False / None without one)
    - minutes_until: Minutes to the next occurrence of the dose time
    - is_past_due: Dose time passed today and not taken
    - is_current: Due within the next hour
    - is_upcoming: Due in more than one and at most four hours
    """
    medication_id: int
    name: str
    dosage: str
    time: str
    time_24h: str = Field(..., alias="time24h")
    taken: bool
    taken_at: Optional[datetime] = None
    minutes_until: int
    is_past_due: bool
    is_current: bool
    is_upcoming: bool


class SortBy(str, Enum):
    TIME = "time"
    NAME = "name"
    STATUS = "status"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class StatusFilterOptions(CamelModel):
    """
    Filter Options Schema - Narrowing and ordering for current medications

    A window bound of None leaves that side of the window open.
    """
    include_taken: bool = False
    hours_before: Optional[float] = Field(2, ge=0)
    hours_after: Optional[float] = Field(2, ge=0)
    sort_by: SortBy = SortBy.TIME
    sort_order: SortOrder = SortOrder.ASC


class DailyCompliance(CamelModel):
    """Taken versus scheduled medications for one day."""
    date: CalendarDate
    total: int
    taken: int
    rate: float


class ComplianceStats(CamelModel):
    """
    Compliance Schema - Adherence over a run of days

    Days without any active medication are left out of both the breakdown and
    the totals.
    """
    days: int
    total: int
    taken: int
    rate: float
    daily: List[DailyCompliance] = []


class StatusSummary(CamelModel):
    """Counts of today's medications by standing."""
    total: int
    taken: int
    pending: int
    overdue: int
    current: int
    upcoming: int


@dataclass(frozen=True)
class TimeWindow:
    """Hours before and after now that a view covers."""
    hours_before: float
    hours_after: float


CURRENT_WINDOW = TimeWindow(hours_before=2, hours_after=2)

# Default look-ahead for upcoming doses
UPCOMING_HOURS = 24

NOTIFICATION_WINDOWS = {
    "immediate": TimeWindow(hours_before=0, hours_after=1),
    "current": TimeWindow(hours_before=2, hours_after=2),
    "extended": TimeWindow(hours_before=6, hours_after=6),
}
