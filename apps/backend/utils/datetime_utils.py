"""
Datetime utility functions.
Parsing and formatting for the booking wire formats (YYYY-MM-DD, HH:MM).
"""

import os
from datetime import date, datetime, time
from typing import Optional, Union
import pytz

from backend.utils.constants import DATE_FORMAT, DEFAULT_VENUE_TIMEZONE, TIME_FORMAT


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a booking date in YYYY-MM-DD format.

    Args:
        value: Date string or an already-parsed date

    Returns:
        The parsed date

    Raises:
        ValueError: If the string is not a valid YYYY-MM-DD date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected date string, got {type(value).__name__}")
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        raise ValueError(f"Invalid date format: {value!r} (expected YYYY-MM-DD)")


def parse_time(value: Union[str, time]) -> time:
    """
    Parse a wall-clock time.

    Accepts "HH:MM" (the wire format), "HH:MM:SS", and ISO datetimes such as
    "0000-01-01T08:00:00Z" whose clock part is used. Seconds are dropped.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0, tzinfo=None)
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise ValueError(f"Expected time string, got {type(value).__name__}")

    text = value.strip()
    for fmt in (TIME_FORMAT, "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            pass

    if "T" in text:
        clock = text.split("T", 1)[1]
        # Strip a trailing zone designator ("Z", "+07:00", "-05:00")
        for sep in ("Z", "+", "-"):
            clock = clock.split(sep, 1)[0]
        for fmt in ("%H:%M:%S", "%H:%M", "%H:%M:%S.%f"):
            try:
                return datetime.strptime(clock, fmt).time().replace(second=0, microsecond=0)
            except ValueError:
                pass

    raise ValueError(f"Invalid time format: {value!r} (expected HH:MM)")


def format_date(value: Optional[date]) -> Optional[str]:
    """Format a date as YYYY-MM-DD."""
    return value.strftime(DATE_FORMAT) if value else None


def format_time(value: Optional[time]) -> Optional[str]:
    """Format a wall-clock time as HH:MM."""
    return value.strftime(TIME_FORMAT) if value else None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format a timestamp as ISO 8601."""
    return value.isoformat() if value else None


def get_timezone(name: str):
    """
    Resolve an IANA timezone name.

    Raises:
        ValueError: If the zone is unknown
    """
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone: {name!r}")


def combine_local(day: date, clock: time, tz) -> datetime:
    """Attach a wall-clock time on ``day`` to the pytz zone ``tz``."""
    return tz.localize(datetime.combine(day, clock))


def venue_timezone():
    """The zone venue wall-clock times are expressed in (VENUE_TIMEZONE env var)."""
    return get_timezone(os.getenv("VENUE_TIMEZONE", DEFAULT_VENUE_TIMEZONE))


def local_today(tz=None) -> date:
    """Today's date in ``tz`` (defaults to the venue timezone)."""
    return utcnow().astimezone(tz or venue_timezone()).date()
