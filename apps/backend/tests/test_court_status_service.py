"""
Tests for the court status reconciler and its background worker.

Bookings are wall-clock times in the venue timezone (Asia/Bangkok, UTC+7 in
these tests); ``now`` is passed explicitly so every case is deterministic.
"""

import asyncio
from datetime import datetime, time
from decimal import Decimal

import pytest
import pytest_asyncio
import pytz
from sqlalchemy import select

from backend.database.models import Booking, BookingStatus, Court, CourtStatus
from backend.services import court_status_service, data_service
from backend.services.court_status_service import CourtStatusReconciler, reconcile_court_statuses

BANGKOK = pytz.timezone("Asia/Bangkok")


def _bangkok(day, hour, minute=0):
    return BANGKOK.localize(datetime.combine(day, time(hour, minute)))


async def _status(session, court_id):
    result = await session.execute(
        select(Court.status)
        .where(Court.id == court_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@pytest_asyncio.fixture
async def confirmed_booking(db_session, player, court, monday):
    """Confirmed 10:00-12:00 booking on court 1."""
    booking = Booking(
        court_id=court.id,
        user_id=player.id,
        booking_date=monday,
        start_time=time(10, 0),
        end_time=time(12, 0),
        total_amount=Decimal("600.00"),
        status=BookingStatus.CONFIRMED,
    )
    db_session.add(booking)
    await db_session.commit()
    return booking


@pytest_asyncio.fixture
async def maintenance_court(db_session, venue):
    court = Court(
        venue_id=venue.id,
        name="Court 9",
        price_per_hour=Decimal("300.00"),
        status=CourtStatus.MAINTENANCE,
    )
    db_session.add(court)
    await db_session.commit()
    return court


@pytest.mark.asyncio
async def test_in_progress_booking_occupies_court(
    db_session, court, maintenance_court, confirmed_booking, monday
):
    summary = await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 30), tz=BANGKOK)

    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED
    assert await _status(db_session, maintenance_court.id) == CourtStatus.MAINTENANCE
    assert summary == {"occupied": 1, "available": 0, "skipped_maintenance": 1, "changed": 1}


@pytest.mark.asyncio
async def test_court_released_at_end_time(db_session, court, confirmed_booking, monday):
    await reconcile_court_statuses(db_session, now=_bangkok(monday, 11, 0), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED

    summary = await reconcile_court_statuses(db_session, now=_bangkok(monday, 12, 0), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.AVAILABLE
    assert summary["changed"] == 1


@pytest.mark.asyncio
async def test_start_instant_is_not_occupied(db_session, court, confirmed_booking, monday):
    await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 0), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.AVAILABLE

    # One tick later the booking is in progress
    await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 1), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED


@pytest.mark.asyncio
async def test_second_pass_changes_nothing(db_session, court, confirmed_booking, monday):
    now = _bangkok(monday, 10, 30)
    first = await reconcile_court_statuses(db_session, now=now, tz=BANGKOK)
    second = await reconcile_court_statuses(db_session, now=now, tz=BANGKOK)

    assert first["changed"] == 1
    assert second["changed"] == 0
    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED


@pytest.mark.asyncio
async def test_pending_and_cancelled_bookings_do_not_occupy(db_session, court, confirmed_booking, monday):
    confirmed_booking.status = BookingStatus.PENDING
    await db_session.commit()
    await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 30), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.AVAILABLE

    confirmed_booking.status = BookingStatus.CANCELLED
    await db_session.commit()
    await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 30), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.AVAILABLE


@pytest.mark.asyncio
async def test_maintenance_never_overwritten(db_session, court, confirmed_booking, monday):
    """Even a court with a booking in progress keeps its maintenance status."""
    court.status = CourtStatus.MAINTENANCE
    await db_session.commit()

    summary = await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 30), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.MAINTENANCE
    assert summary["skipped_maintenance"] == 1
    assert summary["changed"] == 0


@pytest.mark.asyncio
async def test_timezone_is_respected(db_session, court, confirmed_booking, monday):
    """10:30 in Bangkok is 03:30 UTC; read as UTC wall-clock the booking has not started."""
    instant = _bangkok(monday, 10, 30)

    await reconcile_court_statuses(db_session, now=instant, tz=pytz.UTC)
    assert await _status(db_session, court.id) == CourtStatus.AVAILABLE

    await reconcile_court_statuses(db_session, now=instant, tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED


@pytest.mark.asyncio
async def test_naive_now_is_utc(db_session, court, confirmed_booking, monday):
    naive_utc = _bangkok(monday, 10, 30).astimezone(pytz.UTC).replace(tzinfo=None)
    await reconcile_court_statuses(db_session, now=naive_utc, tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED


@pytest.mark.asyncio
async def test_today_is_taken_in_venue_timezone(db_session, court, player, monday):
    """00:30 Monday in Bangkok is still Sunday in UTC; Monday's bookings apply."""
    db_session.add(
        Booking(
            court_id=court.id,
            user_id=player.id,
            booking_date=monday,
            start_time=time(0, 0),
            end_time=time(1, 0),
            total_amount=Decimal("300.00"),
            status=BookingStatus.CONFIRMED,
        )
    )
    await db_session.commit()

    await reconcile_court_statuses(db_session, now=_bangkok(monday, 0, 30), tz=BANGKOK)
    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED


@pytest.mark.asyncio
async def test_deleted_courts_are_ignored(db_session, court, confirmed_booking, monday):
    from backend.utils.datetime_utils import utcnow

    court.deleted_at = utcnow()
    await db_session.commit()
    summary = await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 30), tz=BANGKOK)
    assert summary == {"occupied": 0, "available": 0, "skipped_maintenance": 0, "changed": 0}


@pytest.mark.asyncio
async def test_repository_failure_aborts_pass(db_session, court, confirmed_booking, monday, monkeypatch):
    async def _boom(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(data_service, "set_court_status", _boom)

    with pytest.raises(RuntimeError, match="went away"):
        await reconcile_court_statuses(db_session, now=_bangkok(monday, 10, 30), tz=BANGKOK)

    assert await _status(db_session, court.id) == CourtStatus.AVAILABLE


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_once_uses_configured_timezone(db_session, court, confirmed_booking, monday):
    reconciler = CourtStatusReconciler(interval_seconds=60, timezone_name="Asia/Bangkok")
    summary = await reconciler.run_once(now=_bangkok(monday, 10, 30))

    assert summary["occupied"] == 1
    assert await _status(db_session, court.id) == CourtStatus.OCCUPIED


@pytest.mark.asyncio
async def test_worker_start_and_stop(db_session, court):
    court.status = CourtStatus.OCCUPIED
    await db_session.commit()

    reconciler = CourtStatusReconciler(interval_seconds=60, timezone_name="Asia/Bangkok")
    reconciler.start()
    assert reconciler.running
    await asyncio.sleep(0.3)
    task = reconciler._worker_task
    await reconciler.stop()

    assert task.done()
    assert not reconciler.running

    # No confirmed bookings today, so the first tick released the court
    assert await _status(db_session, court.id) == CourtStatus.AVAILABLE


@pytest.mark.asyncio
async def test_worker_survives_failed_tick(monkeypatch):
    calls = []

    async def _failing_run_once(self, now=None):
        calls.append(now)
        raise RuntimeError("tick failed")

    monkeypatch.setattr(CourtStatusReconciler, "run_once", _failing_run_once)
    reconciler = CourtStatusReconciler(interval_seconds=0.05, timezone_name="UTC")
    reconciler.start()
    await asyncio.sleep(0.2)
    assert reconciler.running
    await reconciler.stop()

    assert len(calls) >= 2
    assert not reconciler.running


@pytest.mark.asyncio
async def test_stop_without_start():
    reconciler = CourtStatusReconciler(interval_seconds=60, timezone_name="UTC")
    await reconciler.stop()
    assert not reconciler.running


def test_unknown_timezone_rejected():
    reconciler = CourtStatusReconciler(interval_seconds=60, timezone_name="Mars/Olympus")
    with pytest.raises(ValueError):
        reconciler.timezone


def test_singleton():
    assert (
        court_status_service.get_court_status_reconciler()
        is court_status_service.get_court_status_reconciler()
    )
