"""
Court availability checks.

Combines a venue's weekly opening hours with a conflict scan over the court's
non-cancelled bookings for the requested date. The result is advisory: the
booking service repeats the conflict scan under a row lock before inserting.
"""

import logging
import uuid
from datetime import date, time
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from backend.database.models import Booking
from backend.services import data_service
from backend.services.booking_errors import BookingValidationError, NotFoundError
from backend.utils.datetime_utils import format_date, format_time
from backend.utils.schedule_utils import (
    DaySchedule,
    find_day_schedule,
    generate_time_slots,
    is_open,
    parse_open_range,
    windows_overlap,
)

logger = logging.getLogger(__name__)


def venue_schedule(venue) -> List[DaySchedule]:
    """
    Parsed weekly schedule of a venue.

    Raises:
        BookingValidationError: If the stored open range is malformed
    """
    try:
        return parse_open_range(venue.open_range if venue is not None else None)
    except ValueError as e:
        raise BookingValidationError(f"Venue open range is invalid: {e}")


def booking_slot(booking: Booking) -> Dict:
    """Diagnostic view of a booking's window."""
    status = booking.status.value if hasattr(booking.status, "value") else booking.status
    return {
        "start_time": format_time(booking.start_time),
        "end_time": format_time(booking.end_time),
        "status": status,
    }


async def find_conflicts(
    session: AsyncSession,
    court_id: uuid.UUID,
    booking_date: date,
    start_time: time,
    end_time: time,
) -> List[Booking]:
    """Non-cancelled bookings of the court on ``booking_date`` overlapping [start, end)."""
    existing = await data_service.list_bookings_for_court_on_date(session, court_id, booking_date)
    return [
        b for b in existing if windows_overlap(b.start_time, b.end_time, start_time, end_time)
    ]


async def check_availability(
    session: AsyncSession,
    court_id: uuid.UUID,
    booking_date: date,
    start_time: time,
    end_time: time,
) -> Dict:
    """
    Decide whether a court can be booked for [start_time, end_time) on a date.

    Args:
        session: Database session
        court_id: Court to check
        booking_date: Calendar date of the window
        start_time: Window start (inclusive)
        end_time: Window end (exclusive)

    Returns:
        Dict with court_id, court_name, date, start_time, end_time, available,
        conflicts (every overlapping booking) and time_slots (free 30-minute
        slots for the whole day)

    Raises:
        NotFoundError: If the court does not exist
        BookingValidationError: If the venue's schedule is malformed
    """
    court = await data_service.get_court_with_venue(session, court_id)
    if court is None:
        raise NotFoundError("Court not found")

    existing = await data_service.list_bookings_for_court_on_date(session, court_id, booking_date)
    conflicts = [
        b for b in existing if windows_overlap(b.start_time, b.end_time, start_time, end_time)
    ]
    available = not conflicts

    schedule = venue_schedule(court.venue)
    if available and not is_open(schedule, booking_date, start_time, end_time):
        available = False

    time_slots = generate_time_slots(
        find_day_schedule(schedule, booking_date),
        [(b.start_time, b.end_time) for b in existing],
    )

    logger.debug(
        f"Availability court={court_id} date={booking_date} "
        f"{format_time(start_time)}-{format_time(end_time)}: "
        f"available={available} conflicts={len(conflicts)}"
    )

    return {
        "court_id": str(court.id),
        "court_name": court.name,
        "date": format_date(booking_date),
        "start_time": format_time(start_time),
        "end_time": format_time(end_time),
        "available": available,
        "conflicts": [booking_slot(b) for b in conflicts],
        "time_slots": time_slots,
    }
