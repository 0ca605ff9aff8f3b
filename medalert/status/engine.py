"""
Status engine - derives today's medication standing from stored data.

Nothing computed here is persisted; every view is rebuilt from the store on
each call using the injected clock.
"""
from datetime import date, datetime, timedelta
from functools import wraps
from typing import Callable, List, Optional
import logging

from ..core.results import DatabaseResult
from ..core.time_parser import parse_time, has_time_passed, minutes_until
from ..exceptions import classify_exception
from ..medications.schemas import MedicationWithStatus
from ..storage.store import ValidatingRetryingStore
from .schemas import (
    ComplianceStats,
    DailyCompliance,
    SortBy,
    SortOrder,
    StatusFilterOptions,
    StatusInfo,
    StatusSummary,
    UPCOMING_HOURS,
)

# Set up logging
logger = logging.getLogger(__name__)

# Minutes ahead that count as "current" and as "upcoming"
CURRENT_THRESHOLD_MINUTES = 60
UPCOMING_THRESHOLD_MINUTES = 240


def enveloped(operation: str):
    """Run an engine coroutine and hand back its outcome as a DatabaseResult."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs) -> DatabaseResult:
            try:
                return DatabaseResult.ok(await func(*args, **kwargs))
            except Exception as e:
                error = classify_exception(e, operation)
                logger.error(f"Failed to {operation.replace('_', ' ')}: {error.message}")
                return DatabaseResult.fail(error.to_info())
        return wrapper
    return decorator


class StatusEngine:
    """
    Computes status views for today's medications.

    Args:
        store: Store used for every read and status write
        clock: Returns the local current datetime
    """
    def __init__(self, store: ValidatingRetryingStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    def build_status(self, medication: MedicationWithStatus, now: datetime) -> Optional[StatusInfo]:
        """
        Derive one medication's standing at `now`.

        Returns:
            StatusInfo | None: None when the stored time cannot be parsed
        """
        parsed = parse_time(medication.time)
        if not parsed.success:
            logger.warning(f"Skipping medication {medication.id} with unparseable time '{medication.time}'")
            return None

        passed = has_time_passed(medication.time, now)
        minutes = minutes_until(medication.time, now)
        taken = bool(medication.status and medication.status.taken)

        return StatusInfo(
            medication_id=medication.id,
            name=medication.name,
            dosage=medication.dosage,
            time=parsed.formatted12h,
            time_24h=parsed.formatted24h,
            taken=taken,
            taken_at=medication.status.taken_at if medication.status else None,
            minutes_until=minutes,
            is_past_due=passed and not taken,
            is_current=not passed and minutes <= CURRENT_THRESHOLD_MINUTES,
            is_upcoming=not passed and CURRENT_THRESHOLD_MINUTES < minutes <= UPCOMING_THRESHOLD_MINUTES,
        )

    async def _statuses_for_today(self) -> List[StatusInfo]:
        now = self.clock()
        medications = (await self.store.get_medications_with_status_for_date(now.date())).unwrap()
        statuses = [self.build_status(medication, now) for medication in medications]
        return [status for status in statuses if status is not None]

    @enveloped("get_today_with_status")
    async def today_with_status(self) -> List[StatusInfo]:
        """All of today's active medications with their derived standing."""
        return await self._statuses_for_today()

    @enveloped("get_current_medications")
    async def current_medications(self, options: Optional[StatusFilterOptions] = None) -> List[StatusInfo]:
        """
        Today's medications within a window around now.

        The window is measured on the current day by the signed offset between
        each dose time and now, so a dose at 07:00 is 60 minutes before an
        08:00 clock. A bound of None leaves that side open.

        Args:
            options: Filters and ordering (defaults: untaken only, 2h either side, by time)

        Returns:
            List[StatusInfo]: Matching medications in the requested order
        """
        options = options or StatusFilterOptions()
        now = self.clock()
        now_minutes = now.hour * 60 + now.minute + now.second / 60

        selected = []
        for status in await self._statuses_for_today():
            if status.taken and not options.include_taken:
                continue
            offset = parse_time(status.time_24h).minutes_of_day - now_minutes
            if options.hours_before is not None and offset < -options.hours_before * 60:
                continue
            if options.hours_after is not None and offset > options.hours_after * 60:
                continue
            selected.append(status)

        if options.sort_by == SortBy.NAME:
            key = lambda status: status.name.casefold()
        elif options.sort_by == SortBy.STATUS:
            key = lambda status: status.taken
        else:
            key = lambda status: parse_time(status.time_24h).minutes_of_day

        return sorted(selected, key=key, reverse=options.sort_order == SortOrder.DESC)

    @enveloped("get_upcoming_medications")
    async def upcoming_medications(self, hours: float = UPCOMING_HOURS) -> List[StatusInfo]:
        """Untaken medications due within `hours`, soonest first."""
        limit = hours * 60
        statuses = [
            status for status in await self._statuses_for_today()
            if not status.taken and 0 < status.minutes_until <= limit
        ]
        return sorted(statuses, key=lambda status: status.minutes_until)

    @enveloped("get_overdue_medications")
    async def overdue_medications(self) -> List[StatusInfo]:
        """Medications whose time passed today without being taken."""
        statuses = [status for status in await self._statuses_for_today() if status.is_past_due]
        return sorted(statuses, key=lambda status: status.minutes_until)

    async def _set_taken(self, medication_id: int, taken: bool, day: Optional[date]):
        day = day or self._today()
        status = (await self.store.update_medication_status(medication_id, day, taken)).unwrap()
        logger.info(f"Medication {medication_id} marked as {'taken' if taken else 'not taken'} for {day}")
        return status

    @enveloped("mark_medication_taken")
    async def mark_taken(self, medication_id: int, day: Optional[date] = None):
        """Record the medication as taken (today unless `day` is given)."""
        return await self._set_taken(medication_id, True, day)

    @enveloped("mark_medication_not_taken")
    async def mark_not_taken(self, medication_id: int, day: Optional[date] = None):
        """Undo a taken mark (today unless `day` is given)."""
        return await self._set_taken(medication_id, False, day)

    @enveloped("toggle_medication_status")
    async def toggle(self, medication_id: int) -> bool:
        """
        Flip today's taken flag for a medication.

        Returns:
            bool: The new taken value
        """
        today = self._today()
        current = (await self.store.get_medication_status(medication_id, today)).unwrap()
        was_taken = bool(current and current.taken)
        (await self.store.update_medication_status(medication_id, today, not was_taken)).unwrap()
        logger.info(f"Medication {medication_id} status toggled: {was_taken} -> {not was_taken}")
        return not was_taken

    @enveloped("get_compliance_stats")
    async def compliance_stats(self, days: int = 7) -> ComplianceStats:
        """
        Adherence over the last `days` days, today included.

        Days without active medications are walked but left out of the
        breakdown and the totals.
        """
        today = self._today()
        daily = []
        for offset in range(days):
            day = today - timedelta(days=offset)
            medications = (await self.store.get_medications_with_status_for_date(day)).unwrap()
            if not medications:
                continue
            taken = sum(1 for medication in medications if medication.status and medication.status.taken)
            daily.append(DailyCompliance(
                date=day,
                total=len(medications),
                taken=taken,
                rate=taken / len(medications) * 100,
            ))

        total = sum(entry.total for entry in daily)
        taken = sum(entry.taken for entry in daily)
        return ComplianceStats(
            days=days,
            total=total,
            taken=taken,
            rate=taken / total * 100 if total else 0,
            daily=daily,
        )

    @enveloped("get_status_summary")
    async def status_summary(self) -> StatusSummary:
        """Dashboard counts built from the current, upcoming and overdue views."""
        everything = (await self.current_medications(
            StatusFilterOptions(include_taken=True, hours_before=None, hours_after=None)
        )).unwrap()
        upcoming = (await self.upcoming_medications(UPCOMING_HOURS)).unwrap()
        overdue = (await self.overdue_medications()).unwrap()

        taken = sum(1 for status in everything if status.taken)
        return StatusSummary(
            total=len(everything),
            taken=taken,
            pending=len(everything) - taken,
            overdue=len(overdue),
            current=sum(1 for status in everything if status.is_current),
            upcoming=len(upcoming),
        )
