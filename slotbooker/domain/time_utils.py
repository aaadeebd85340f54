"""
Time-of-day helpers.

Appointments are requested with a calendar date plus a time-of-day that may be
written in 12-hour ("2:30 PM") or 24-hour ("14:30") form. Internally every
time-of-day is handled as minutes since midnight and stored as canonical
24-hour "HH:MM" text.
"""

import re
from datetime import date

import pendulum
from pendulum import DateTime

from .exceptions import InvalidTimeFormatError, OutOfRangeTimeError

MINUTES_PER_DAY = 24 * 60

_TWELVE_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")
_TWENTY_FOUR_HOUR = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_to_minutes(value: str) -> int:
    """
    Convert a textual time-of-day into minutes since midnight.

    Args:
        value: "2:30 PM", "2:30pm" or "14:30"

    Returns:
        Minutes since midnight (0..1439)

    Raises:
        InvalidTimeFormatError: If the value matches neither form
    """
    if not isinstance(value, str):
        raise InvalidTimeFormatError(f"Invalid time format: {value!r}")

    match = _TWELVE_HOUR.match(value)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
        if not 1 <= hour <= 12 or minute > 59:
            raise InvalidTimeFormatError(f"Invalid time format: {value!r}")
        if hour == 12:
            hour = 0
        if meridiem == "PM":
            hour += 12
        return hour * 60 + minute

    match = _TWENTY_FOUR_HOUR.match(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise InvalidTimeFormatError(f"Invalid time format: {value!r}")
        return hour * 60 + minute

    raise InvalidTimeFormatError(
        f"Invalid time format: {value!r}. Use a format like \"2:30 PM\" or \"14:30\""
    )


def is_valid_time_format(value: str) -> bool:
    """Return True if ``value`` parses as a time-of-day."""
    try:
        parse_to_minutes(value)
    except InvalidTimeFormatError:
        return False
    return True


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as canonical 24-hour "HH:MM"."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise OutOfRangeTimeError(f"{minutes} minutes is outside a single day")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_24_hour(value: str) -> str:
    """Normalize either textual form to "HH:MM"."""
    return format_minutes(parse_to_minutes(value))


def to_12_hour(value: str) -> str:
    """Render either textual form as "h:MM AM/PM"."""
    minutes = parse_to_minutes(value)
    hour, minute = divmod(minutes, 60)
    meridiem = "AM" if hour < 12 else "PM"
    hour = hour % 12 or 12
    return f"{hour}:{minute:02d} {meridiem}"


def add_minutes(value: str, minutes: int) -> str:
    """
    Add a duration to a time-of-day.

    Wrapping past midnight is not supported: a result beyond 23:59 is a caller
    error and raises OutOfRangeTimeError.
    """
    total = parse_to_minutes(value) + minutes
    if not 0 <= total < MINUTES_PER_DAY:
        raise OutOfRangeTimeError(
            f"{to_24_hour(value)} plus {minutes} minutes falls outside the day"
        )
    return format_minutes(total)


def is_within_range(candidate: str, range_start: str, range_end: str) -> bool:
    """Inclusive-start, exclusive-end containment of a time-of-day."""
    point = parse_to_minutes(candidate)
    return parse_to_minutes(range_start) <= point < parse_to_minutes(range_end)


def combine(day: date, value: str, timezone: str) -> DateTime:
    """Build the aware instant for a date and time-of-day in ``timezone``."""
    hour, minute = divmod(parse_to_minutes(value), 60)
    return pendulum.datetime(day.year, day.month, day.day, hour, minute, tz=timezone)
