"""
Time-of-day parsing and formatting.

Normalizes human time input ("8", "08:00", "8:00 am", "2:30  PM") into a
canonical 24-hour "HH:MM" form and a display "H:MM AM/PM" form, and offers
comparisons that always work on parsed values rather than raw strings.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, List, Any
import math
import re

MINUTES_PER_DAY = 24 * 60

# Error kinds let callers tell "no input" apart from "bad input"
ERROR_REQUIRED = "required"
ERROR_MALFORMED = "malformed"
ERROR_OUT_OF_RANGE = "out_of_range"

_RE_24H = re.compile(r"^(\d{1,2}):(\d{2})$")
_RE_12H = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)
_RE_HOURS = re.compile(r"^(\d{1,2})$")


@dataclass(frozen=True)
class TimeParseResult:
    """Outcome of parsing a time-of-day string."""
    success: bool
    hour24: int = 0
    minute: int = 0
    formatted12h: str = ""
    formatted24h: str = ""
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def minutes_of_day(self) -> int:
        return self.hour24 * 60 + self.minute


def _failure(message: str, kind: str) -> TimeParseResult:
    return TimeParseResult(success=False, error=message, error_kind=kind)


def _success(hour24: int, minute: int) -> TimeParseResult:
    return TimeParseResult(
        success=True,
        hour24=hour24,
        minute=minute,
        formatted12h=format_12h(hour24, minute),
        formatted24h=format_24h(hour24, minute),
    )


def format_12h(hour24: int, minute: int) -> str:
    """Format as "H:MM AM/PM" with no leading zero on the hour."""
    period = "PM" if hour24 >= 12 else "AM"
    hour12 = hour24 % 12 or 12
    return f"{hour12}:{minute:02d} {period}"


def format_24h(hour24: int, minute: int) -> str:
    """Format as zero-padded "HH:MM"."""
    return f"{hour24:02d}:{minute:02d}"


def parse_time(value: Any) -> TimeParseResult:
    """
    Parse a time string in one of the supported formats.

    Formats are tried in priority order: 24-hour "HH:MM", 12-hour
    "H:MM AM/PM", then hours only ("H" or "HH").

    Args:
        value: Raw time input

    Returns:
        TimeParseResult: Parsed value, or a failure with `error` and `error_kind`
    """
    if not value or not isinstance(value, str) or not value.strip():
        return _failure("Time string is required and must be a string", ERROR_REQUIRED)

    text = value.strip()

    match = _RE_24H.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return _failure(f'Hour must be 0-23 and minute must be 0-59, got "{text}"', ERROR_OUT_OF_RANGE)
        return _success(hour, minute)

    match = _RE_12H.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        period = match.group(3).upper()
        if hour < 1 or hour > 12 or minute > 59:
            return _failure(f'Hour must be 1-12 and minute must be 0-59, got "{text}"', ERROR_OUT_OF_RANGE)
        if period == "PM" and hour < 12:
            hour += 12
        elif period == "AM" and hour == 12:
            hour = 0
        return _success(hour, minute)

    match = _RE_HOURS.match(text)
    if match:
        hour = int(match.group(1))
        if hour > 23:
            return _failure(f'Hour must be 0-23, got "{text}"', ERROR_OUT_OF_RANGE)
        return _success(hour, 0)

    return _failure(
        f'Unable to parse time format: "{value}". Expected formats: "HH:MM", "H:MM AM/PM", "HH:MM AM/PM"',
        ERROR_MALFORMED,
    )


def validate_time_format(value: Any) -> Optional[str]:
    """
    Return the canonical "HH:MM" form of a time, or None if it does not parse.
    """
    result = parse_time(value)
    return result.formatted24h if result.success else None


def current_time(now: Optional[datetime] = None) -> TimeParseResult:
    """Current wall-clock time of day as a parse result."""
    now = now or datetime.now()
    return _success(now.hour, now.minute)


def time_for_today(value: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """Datetime for the given time of day on now's calendar date."""
    result = parse_time(value)
    if not result.success:
        return None
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(minutes=result.minutes_of_day)


def has_time_passed(value: Any, now: Optional[datetime] = None) -> bool:
    """
    Check whether the time of day has been reached today.

    Unparseable input never counts as passed. Only the current calendar day
    is considered; nothing looks across midnight.
    """
    now = now or datetime.now()
    target = time_for_today(value, now)
    if target is None:
        return False
    return now >= target


def minutes_until(value: Any, now: Optional[datetime] = None) -> Optional[int]:
    """
    Minutes from now until the next occurrence of the time.

    When the time today is already reached (including exactly now) the next
    occurrence is tomorrow, so an exact match yields 1440.

    Returns:
        int | None: Whole minutes (rounded half up), None if the time does not parse
    """
    now = now or datetime.now()
    target = time_for_today(value, now)
    if target is None:
        return None
    delta = (target - now).total_seconds() / 60
    if delta <= 0:
        delta += MINUTES_PER_DAY
    return int(math.floor(delta + 0.5))


def time_difference(start: Any, end: Any) -> Optional[int]:
    """
    Minutes from `start` to `end`, wrapping across midnight.

    Returns:
        int | None: Value in [0, 1440), None if either time does not parse
    """
    start_result = parse_time(start)
    end_result = parse_time(end)
    if not start_result.success or not end_result.success:
        return None
    return (end_result.minutes_of_day - start_result.minutes_of_day) % MINUTES_PER_DAY


def is_same_time(first: Any, second: Any) -> bool:
    """Compare two times by hour and minute, ignoring their original format."""
    first_result = parse_time(first)
    second_result = parse_time(second)
    if not first_result.success or not second_result.success:
        return False
    return first_result.minutes_of_day == second_result.minutes_of_day


def sort_times(values: List[Any]) -> List[Any]:
    """
    Sort time strings chronologically.

    The sort is stable. Entries that fail to parse keep their original
    positions and the parseable entries are ordered around them.
    """
    parsed = [parse_time(value) for value in values]
    slots = [index for index, result in enumerate(parsed) if result.success]
    ordered = sorted(slots, key=lambda index: parsed[index].minutes_of_day)

    output = list(values)
    for slot, source in zip(slots, ordered):
        output[slot] = values[source]
    return output


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_duration(minutes: int) -> str:
    """
    Render a duration such as "45 minutes", "1 hour" or "2 hours and 5 minutes".
    """
    if minutes < 60:
        return _plural(minutes, "minute")

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return _plural(hours, "hour")
    return f"{_plural(hours, 'hour')} and {_plural(remaining, 'minute')}"
