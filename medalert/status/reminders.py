"""
Hand-off of pending doses to a notification scheduler.

Delivery is up to the scheduler implementation; this module only decides which
reminders exist and what they say.
"""
from typing import List, NamedTuple, Optional, Protocol
import logging

from ..core.results import DatabaseResult
from ..core.time_parser import parse_time
from ..exceptions import InvalidInputError
from ..medications.schemas import CamelModel
from .engine import StatusEngine
from .schemas import NOTIFICATION_WINDOWS, StatusFilterOptions

# Set up logging
logger = logging.getLogger(__name__)

REMINDER_TITLE = "Time for your medication!"


class Reminder(CamelModel):
    """A daily reminder for one medication at its dose time ("HH:MM")."""
    medication_id: int
    name: str
    dosage: str
    time: str

    @property
    def hour(self) -> int:
        return parse_time(self.time).hour24

    @property
    def minute(self) -> int:
        return parse_time(self.time).minute


class ReminderMessage(NamedTuple):
    title: str
    body: str


class ReminderScheduler(Protocol):
    """Anything able to deliver repeating daily notifications."""

    async def cancel_all(self) -> None:
        ...

    async def schedule_daily(self, hour: int, minute: int, message: ReminderMessage) -> None:
        ...


def reminder_message(reminder: Reminder) -> ReminderMessage:
    return ReminderMessage(
        title=REMINDER_TITLE,
        body=f"Don't forget to take {reminder.name} ({reminder.dosage}).",
    )


async def pending_reminders(engine: StatusEngine, window: Optional[str] = None) -> DatabaseResult:
    """
    Today's untaken medications as reminders.

    Args:
        engine: Status engine to read from
        window: Optional notification window name ("immediate", "current" or
            "extended") restricting reminders to doses around now

    Returns:
        DatabaseResult: List[Reminder] ordered by dose time
    """
    if window is None:
        result = await engine.today_with_status()
    elif window in NOTIFICATION_WINDOWS:
        bounds = NOTIFICATION_WINDOWS[window]
        result = await engine.current_medications(StatusFilterOptions(
            hours_before=bounds.hours_before,
            hours_after=bounds.hours_after,
        ))
    else:
        error = InvalidInputError(
            "window", window, "pending_reminders", f"must be one of {sorted(NOTIFICATION_WINDOWS)}"
        )
        return DatabaseResult.fail(error.to_info())

    if not result.success:
        return result

    reminders = [
        Reminder(medication_id=status.medication_id, name=status.name, dosage=status.dosage, time=status.time_24h)
        for status in result.data
        if not status.taken
    ]
    return DatabaseResult.ok(reminders)


async def schedule_pending_reminders(engine: StatusEngine, scheduler: ReminderScheduler) -> DatabaseResult:
    """
    Replace every scheduled reminder with one per pending medication.

    Returns:
        DatabaseResult: Number of reminders scheduled
    """
    result = await pending_reminders(engine)
    if not result.success:
        return result

    await scheduler.cancel_all()
    reminders: List[Reminder] = result.data
    for reminder in reminders:
        await scheduler.schedule_daily(reminder.hour, reminder.minute, reminder_message(reminder))

    logger.info(f"Scheduled {len(reminders)} medication reminders")
    return DatabaseResult.ok(len(reminders))
