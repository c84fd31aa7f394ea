"""
Tests for court availability checks.
"""

import uuid
from datetime import time
from decimal import Decimal

import pytest

from backend.database.models import Booking, BookingStatus
from backend.services import availability_service
from backend.services.booking_errors import BookingValidationError, NotFoundError


async def _add_booking(session, court, user, day, start, end, status=BookingStatus.PENDING):
    booking = Booking(
        court_id=court.id,
        user_id=user.id,
        booking_date=day,
        start_time=start,
        end_time=end,
        total_amount=Decimal("300.00"),
        status=status,
    )
    session.add(booking)
    await session.commit()
    return booking


@pytest.mark.asyncio
async def test_free_court_is_available(db_session, court, monday):
    result = await availability_service.check_availability(
        db_session, court.id, monday, time(10, 0), time(12, 0)
    )
    assert result["available"] is True
    assert result["court_id"] == str(court.id)
    assert result["court_name"] == "Court 1"
    assert result["date"] == monday.isoformat()
    assert result["conflicts"] == []
    # 08:00-22:00 in 30-minute slots
    assert len(result["time_slots"]) == 28
    assert result["time_slots"][0] == {"start_time": "08:00", "end_time": "08:30"}


@pytest.mark.asyncio
async def test_all_overlapping_bookings_reported(db_session, court, player, monday):
    await _add_booking(db_session, court, player, monday, time(9, 0), time(10, 30))
    await _add_booking(
        db_session, court, player, monday, time(11, 0), time(12, 0), BookingStatus.CONFIRMED
    )
    await _add_booking(db_session, court, player, monday, time(12, 0), time(13, 0))

    result = await availability_service.check_availability(
        db_session, court.id, monday, time(10, 0), time(12, 0)
    )
    assert result["available"] is False
    assert result["conflicts"] == [
        {"start_time": "09:00", "end_time": "10:30", "status": "pending"},
        {"start_time": "11:00", "end_time": "12:00", "status": "confirmed"},
    ]
    free = {slot["start_time"] for slot in result["time_slots"]}
    assert "09:00" not in free
    assert "10:30" in free
    assert "12:00" not in free


@pytest.mark.asyncio
async def test_cancelled_bookings_ignored(db_session, court, player, monday):
    await _add_booking(
        db_session, court, player, monday, time(10, 0), time(12, 0), BookingStatus.CANCELLED
    )
    result = await availability_service.check_availability(
        db_session, court.id, monday, time(10, 0), time(12, 0)
    )
    assert result["available"] is True


@pytest.mark.asyncio
async def test_outside_hours_unavailable_without_conflicts(db_session, court, monday, sunday):
    result = await availability_service.check_availability(
        db_session, court.id, monday, time(21, 0), time(23, 0)
    )
    assert result["available"] is False
    assert result["conflicts"] == []

    result = await availability_service.check_availability(
        db_session, court.id, sunday, time(10, 0), time(12, 0)
    )
    assert result["available"] is False
    assert result["time_slots"] == []


@pytest.mark.asyncio
async def test_unknown_court(db_session):
    with pytest.raises(NotFoundError):
        await availability_service.check_availability(
            db_session, uuid.uuid4(), None, time(10, 0), time(12, 0)
        )


@pytest.mark.asyncio
async def test_malformed_open_range(db_session, venue, court, monday):
    venue.open_range = [{"day": "monday", "is_open": True, "open_time": "22:00", "close_time": "08:00"}]
    await db_session.commit()
    with pytest.raises(BookingValidationError):
        await availability_service.check_availability(
            db_session, court.id, monday, time(10, 0), time(12, 0)
        )


@pytest.mark.asyncio
async def test_check_reserves_nothing(db_session, court, monday):
    for _ in range(2):
        result = await availability_service.check_availability(
            db_session, court.id, monday, time(10, 0), time(12, 0)
        )
        assert result["available"] is True
