"""
Tests for time-of-day parsing and formatting.
"""
import pytest

from medalert.core.time_parser import (
    ERROR_MALFORMED,
    ERROR_OUT_OF_RANGE,
    ERROR_REQUIRED,
    format_duration,
    has_time_passed,
    is_same_time,
    minutes_until,
    parse_time,
    sort_times,
    time_difference,
    time_for_today,
    validate_time_format,
)
from tests.conftest import at


@pytest.mark.parametrize("value, hour, minute", [
    ("08:00", 8, 0),
    ("8:05", 8, 5),
    ("23:59", 23, 59),
    ("12:00 AM", 0, 0),
    ("12:00 PM", 12, 0),
    ("2:30 PM", 14, 30),
    ("2:30pm", 14, 30),
    ("11:15   am", 11, 15),
    ("7", 7, 0),
    ("  21 ", 21, 0),
])
def test_parse_supported_shapes(value, hour, minute):
    result = parse_time(value)
    assert result.success
    assert (result.hour24, result.minute) == (hour, minute)


def test_parse_formats_both_representations():
    result = parse_time("2:30 PM")
    assert result.formatted24h == "14:30"
    assert result.formatted12h == "2:30 PM"

    midnight = parse_time("00:00")
    assert midnight.formatted12h == "12:00 AM"
    noon = parse_time("12:00")
    assert noon.formatted12h == "12:00 PM"


def test_parse_round_trips_through_formatted_values():
    for value in ("0:00", "6:07", "12:30", "13:45", "23:59"):
        first = parse_time(value)
        assert parse_time(first.formatted24h).minutes_of_day == first.minutes_of_day
        assert parse_time(first.formatted12h).minutes_of_day == first.minutes_of_day


@pytest.mark.parametrize("value", [None, "", "   ", 830])
def test_parse_missing_input(value):
    result = parse_time(value)
    assert not result.success
    assert result.error_kind == ERROR_REQUIRED


@pytest.mark.parametrize("value", ["24:00", "12:60", "13:00 PM", "0:30 AM", "25"])
def test_parse_out_of_range(value):
    result = parse_time(value)
    assert not result.success
    assert result.error_kind == ERROR_OUT_OF_RANGE
    assert value.strip() in result.error


@pytest.mark.parametrize("value", ["noon", "8.30", "08:00:00", "8:0", "abc PM"])
def test_parse_malformed(value):
    result = parse_time(value)
    assert not result.success
    assert result.error_kind == ERROR_MALFORMED


def test_validate_time_format_normalizes():
    assert validate_time_format("8:00") == "08:00"
    assert validate_time_format("9:15 pm") == "21:15"
    assert validate_time_format("later") is None


def test_time_for_today_uses_now_date():
    now = at(10, 30)
    target = time_for_today("8:15 PM", now)
    assert target.date() == now.date()
    assert (target.hour, target.minute) == (20, 15)


def test_has_time_passed():
    now = at(12, 0)
    assert has_time_passed("08:00", now)
    assert has_time_passed("12:00", now)
    assert not has_time_passed("12:01", now)
    assert not has_time_passed("bad", now)


def test_minutes_until():
    now = at(8, 0)
    assert minutes_until("09:30", now) == 90
    assert minutes_until("07:00", now) == 23 * 60
    assert minutes_until("bad", now) is None


def test_minutes_until_exact_match_is_a_full_day():
    assert minutes_until("08:00", at(8, 0)) == 1440


def test_minutes_until_rounds_half_up():
    now = at(8, 0).replace(second=30)
    assert minutes_until("08:02", now) == 2


def test_time_difference_wraps_midnight():
    assert time_difference("22:00", "02:00") == 240
    assert time_difference("02:00", "22:00") == 1200
    assert time_difference("08:00", "8:00 AM") == 0
    assert time_difference("08:00", "bad") is None


def test_is_same_time_ignores_format():
    assert is_same_time("14:30", "2:30 PM")
    assert not is_same_time("14:30", "2:30 AM")
    assert not is_same_time("14:30", "bad")


def test_sort_times_mixed_formats():
    assert sort_times(["8:00 PM", "07:30", "12:00 AM", "9"]) == ["12:00 AM", "07:30", "9", "8:00 PM"]


def test_sort_times_keeps_unparseable_in_place():
    assert sort_times(["20:00", "later", "08:00"]) == ["08:00", "later", "20:00"]


@pytest.mark.parametrize("minutes, expected", [
    (1, "1 minute"),
    (45, "45 minutes"),
    (60, "1 hour"),
    (120, "2 hours"),
    (61, "1 hour and 1 minute"),
    (125, "2 hours and 5 minutes"),
])
def test_format_duration(minutes, expected):
    assert format_duration(minutes) == expected
