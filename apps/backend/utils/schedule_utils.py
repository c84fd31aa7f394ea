"""
Weekly opening-hours and booking-window arithmetic.

Pure functions only: everything here works on plain ``date``/``time`` values
and the venue ``open_range`` JSON, so it can be tested without a database.
All booking windows are half-open ``[start, end)``.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from backend.utils.constants import SLOT_MINUTES
from backend.utils.datetime_utils import format_time, parse_time

DAYS_OF_WEEK = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


@dataclass(frozen=True)
class DaySchedule:
    """Opening hours for one day of the week."""

    day: str
    is_open: bool
    open_time: Optional[time] = None
    close_time: Optional[time] = None

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "is_open": self.is_open,
            "open_time": format_time(self.open_time),
            "close_time": format_time(self.close_time),
        }


def day_of_week(day: date) -> str:
    """Lowercase English name of the weekday for ``day``."""
    return DAYS_OF_WEEK[day.weekday()]


def parse_open_range(raw: Optional[Sequence[Any]]) -> List[DaySchedule]:
    """
    Parse a venue's ``open_range`` JSON into DaySchedule entries.

    Args:
        raw: List of dicts with day / is_open / open_time / close_time

    Returns:
        Parsed entries (days not listed are treated as closed by callers)

    Raises:
        ValueError: If an entry is malformed, names an unknown day, lists the
            same day twice, or has an open day whose close is not after open
    """
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValueError("Venue open range must be a list of day entries")

    entries: List[DaySchedule] = []
    seen = set()
    for item in raw:
        if isinstance(item, DaySchedule):
            entry = item
        else:
            if not isinstance(item, dict):
                raise ValueError("Venue open range entries must be objects")
            day = str(item.get("day", "")).strip().lower()
            if day not in DAYS_OF_WEEK:
                raise ValueError(f"Unknown day in open range: {item.get('day')!r}")
            is_open = bool(item.get("is_open", False))
            open_time = item.get("open_time")
            close_time = item.get("close_time")
            entry = DaySchedule(
                day=day,
                is_open=is_open,
                open_time=parse_time(open_time) if open_time else None,
                close_time=parse_time(close_time) if close_time else None,
            )

        if entry.day in seen:
            raise ValueError(f"Duplicate schedule entry for {entry.day}")
        seen.add(entry.day)

        if entry.is_open:
            if entry.open_time is None or entry.close_time is None:
                raise ValueError(f"Open day {entry.day} needs open_time and close_time")
            if entry.close_time <= entry.open_time:
                raise ValueError(f"Closing time must be after opening time on {entry.day}")
        entries.append(entry)

    return entries


def find_day_schedule(schedule: Iterable[DaySchedule], day: date) -> Optional[DaySchedule]:
    """Return the schedule entry matching the weekday of ``day``, if any."""
    name = day_of_week(day)
    for entry in schedule:
        if entry.day.lower() == name:
            return entry
    return None


def _clock(value: time) -> Tuple[int, int]:
    """Only hour and minute take part in schedule comparisons."""
    return value.hour, value.minute


def is_open(schedule: Iterable[DaySchedule], day: date, start: time, end: time) -> bool:
    """
    Whether ``[start, end)`` on ``day`` lies inside the venue's opening hours.

    A missing entry or a closed day means the venue is closed. A window ending
    exactly at closing time is allowed.
    """
    entry = find_day_schedule(schedule, day)
    if entry is None or not entry.is_open:
        return False
    if entry.open_time is None or entry.close_time is None:
        return False
    return _clock(entry.open_time) <= _clock(start) and _clock(end) <= _clock(entry.close_time)


def windows_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open interval intersection: touching windows do not overlap."""
    return a_start < b_end and b_start < a_end


def overlaps(a: Any, b: Any) -> bool:
    """
    Whether two bookings collide.

    Both arguments need ``court_id``, ``booking_date``, ``start_time`` and
    ``end_time`` attributes (ORM rows or any lightweight stand-in).
    """
    if a.court_id != b.court_id or a.booking_date != b.booking_date:
        return False
    return windows_overlap(a.start_time, a.end_time, b.start_time, b.end_time)


def duration_between(start: time, end: time) -> timedelta:
    """Length of a same-day window (negative when end precedes start)."""
    anchor = date(2000, 1, 1)
    return datetime.combine(anchor, end) - datetime.combine(anchor, start)


def generate_time_slots(
    entry: Optional[DaySchedule],
    busy_windows: Iterable[Tuple[time, time]],
    slot_minutes: int = SLOT_MINUTES,
) -> List[dict]:
    """
    Enumerate free fixed-size slots within one day's opening hours.

    Args:
        entry: The day's schedule (None or closed yields no slots)
        busy_windows: (start, end) pairs already taken
        slot_minutes: Slot length

    Returns:
        [{"start_time": "HH:MM", "end_time": "HH:MM"}, ...] in time order
    """
    if entry is None or not entry.is_open or entry.open_time is None or entry.close_time is None:
        return []

    busy = list(busy_windows)
    anchor = date(2000, 1, 1)
    cursor = datetime.combine(anchor, entry.open_time)
    closing = datetime.combine(anchor, entry.close_time)
    step = timedelta(minutes=slot_minutes)

    slots = []
    while cursor + step <= closing:
        slot_start = cursor.time()
        slot_end = (cursor + step).time()
        if not any(windows_overlap(slot_start, slot_end, s, e) for s, e in busy):
            slots.append({"start_time": format_time(slot_start), "end_time": format_time(slot_end)})
        cursor += step
    return slots
