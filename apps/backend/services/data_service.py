"""
Repository layer for courts, venues, bookings and payments.

Every function takes the caller's AsyncSession. Reads return ORM instances
(with the relationships the booking service needs eagerly loaded); writes
flush but leave committing to the caller so several writes can share one
transaction.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.database.models import (
    Booking,
    BookingStatus,
    Court,
    CourtStatus,
    Payment,
    User,
    Venue,
)
from backend.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

_BOOKING_LOADS = (
    selectinload(Booking.court).selectinload(Court.venue),
    selectinload(Booking.user),
    selectinload(Booking.payment),
)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def get_user_by_id(session: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    """Get a user row (used for role lookups)."""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Venues & courts
# ---------------------------------------------------------------------------


async def get_venue_by_id(session: AsyncSession, venue_id: uuid.UUID) -> Optional[Venue]:
    """Get a non-deleted venue with its status and weekly schedule."""
    result = await session.execute(
        select(Venue).where(Venue.id == venue_id, Venue.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def get_court_by_id(session: AsyncSession, court_id: uuid.UUID) -> Optional[Court]:
    """Get a non-deleted court."""
    result = await session.execute(
        select(Court).where(Court.id == court_id, Court.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def get_court_with_venue(session: AsyncSession, court_id: uuid.UUID) -> Optional[Court]:
    """Get a non-deleted court with ``court.venue`` loaded."""
    result = await session.execute(
        select(Court)
        .options(selectinload(Court.venue))
        .where(Court.id == court_id, Court.deleted_at.is_(None))
    )
    return result.scalar_one_or_none()


async def lock_court(session: AsyncSession, court_id: uuid.UUID) -> Optional[Court]:
    """
    Take a row lock on a court for the rest of the transaction.

    Serializes concurrent booking attempts on the same court on PostgreSQL
    (SELECT ... FOR UPDATE). SQLite ignores FOR UPDATE and only locks at the
    first write, so booking_service.create_booking re-scans for overlaps after
    its insert, while the database write lock is held.
    """
    result = await session.execute(
        select(Court)
        .where(Court.id == court_id, Court.deleted_at.is_(None))
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def list_courts(session: AsyncSession, venue_id: Optional[uuid.UUID] = None) -> List[Court]:
    """List non-deleted courts, optionally for one venue."""
    query = select(Court).where(Court.deleted_at.is_(None)).order_by(Court.name.asc())
    if venue_id is not None:
        query = query.where(Court.venue_id == venue_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def set_court_status(
    session: AsyncSession, court_id: uuid.UUID, status: CourtStatus
) -> bool:
    """Set a court's status. Returns False when no court matched."""
    result = await session.execute(
        update(Court)
        .where(Court.id == court_id, Court.deleted_at.is_(None))
        .values(status=status, updated_at=utcnow())
    )
    return result.rowcount > 0


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


async def create_booking(session: AsyncSession, booking: Booking) -> Booking:
    """Insert a booking row and flush so constraint violations surface here."""
    session.add(booking)
    await session.flush()
    return booking


async def get_booking_by_id(session: AsyncSession, booking_id: uuid.UUID) -> Optional[Booking]:
    """Get a booking with court, venue, user and payment loaded."""
    result = await session.execute(
        select(Booking)
        .options(*_BOOKING_LOADS)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def update_booking(session: AsyncSession, booking: Booking, **values: Any) -> Booking:
    """Apply column values to a booking and flush."""
    for key, value in values.items():
        setattr(booking, key, value)
    booking.updated_at = utcnow()
    await session.flush()
    return booking


async def cancel_booking(session: AsyncSession, booking: Booking) -> Booking:
    """Mark a booking cancelled and stamp cancelled_at."""
    now = utcnow()
    return await update_booking(
        session, booking, status=BookingStatus.CANCELLED, cancelled_at=now
    )


def _apply_booking_filters(query, filters: Dict[str, Any], visible_to: Optional[uuid.UUID]):
    """Shared WHERE clauses for list/count."""
    if filters.get("court_id") is not None:
        query = query.where(Booking.court_id == filters["court_id"])
    if filters.get("venue_id") is not None:
        query = query.where(Court.venue_id == filters["venue_id"])
    if filters.get("user_id") is not None:
        query = query.where(Booking.user_id == filters["user_id"])
    if filters.get("date") is not None:
        query = query.where(Booking.booking_date == filters["date"])
    if filters.get("date_from") is not None:
        query = query.where(Booking.booking_date >= filters["date_from"])
    if filters.get("date_to") is not None:
        query = query.where(Booking.booking_date <= filters["date_to"])
    if filters.get("status") is not None:
        query = query.where(Booking.status == filters["status"])
    if visible_to is not None:
        # Bookings the user made, plus bookings on venues the user owns
        query = query.where(or_(Booking.user_id == visible_to, Venue.owner_id == visible_to))
    return query


async def list_bookings_by_filter(
    session: AsyncSession,
    filters: Dict[str, Any],
    visible_to: Optional[uuid.UUID] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Booking]:
    """
    List bookings matching ``filters``.

    Args:
        filters: Any of court_id, venue_id, user_id, date, date_from, date_to, status
        visible_to: Restrict to bookings visible to this user (None = no restriction)
        limit: Page size (None = unbounded)
        offset: Rows to skip
    """
    query = (
        select(Booking)
        .join(Court, Court.id == Booking.court_id)
        .join(Venue, Venue.id == Court.venue_id)
        .options(*_BOOKING_LOADS)
    )
    query = _apply_booking_filters(query, filters, visible_to)
    query = query.order_by(Booking.booking_date.desc(), Booking.start_time.asc(), Booking.id)
    if limit is not None:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)
    result = await session.execute(query)
    return list(result.scalars().unique().all())


async def count_bookings_by_filter(
    session: AsyncSession,
    filters: Dict[str, Any],
    visible_to: Optional[uuid.UUID] = None,
) -> int:
    """Count bookings matching the same filters as list_bookings_by_filter."""
    query = (
        select(func.count(Booking.id))
        .select_from(Booking)
        .join(Court, Court.id == Booking.court_id)
        .join(Venue, Venue.id == Court.venue_id)
    )
    query = _apply_booking_filters(query, filters, visible_to)
    result = await session.execute(query)
    return result.scalar() or 0


async def list_bookings_for_court_on_date(
    session: AsyncSession,
    court_id: uuid.UUID,
    booking_date: date,
    include_cancelled: bool = False,
) -> List[Booking]:
    """Bookings of one court on one date, ordered by start time."""
    query = select(Booking).where(
        Booking.court_id == court_id, Booking.booking_date == booking_date
    )
    if not include_cancelled:
        query = query.where(Booking.status != BookingStatus.CANCELLED)
    query = query.order_by(Booking.start_time.asc())
    result = await session.execute(query)
    return list(result.scalars().all())


async def list_confirmed_bookings_on_date(session: AsyncSession, booking_date: date) -> List[Booking]:
    """All confirmed bookings on a date, across every court."""
    result = await session.execute(
        select(Booking).where(
            Booking.booking_date == booking_date,
            Booking.status == BookingStatus.CONFIRMED,
        )
    )
    return list(result.scalars().all())


async def list_bookings_for_user(
    session: AsyncSession,
    user_id: uuid.UUID,
    from_date: Optional[date] = None,
) -> List[Booking]:
    """A user's own bookings in chronological order."""
    query = select(Booking).options(*_BOOKING_LOADS).where(Booking.user_id == user_id)
    if from_date is not None:
        query = query.where(Booking.booking_date >= from_date)
    query = query.order_by(Booking.booking_date.asc(), Booking.start_time.asc())
    result = await session.execute(query)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


async def get_payment_for_booking(session: AsyncSession, booking_id: uuid.UUID) -> Optional[Payment]:
    """Get the payment attached to a booking, if any."""
    result = await session.execute(select(Payment).where(Payment.booking_id == booking_id))
    return result.scalar_one_or_none()


async def create_payment(session: AsyncSession, payment: Payment) -> Payment:
    """Insert a payment row and flush."""
    session.add(payment)
    await session.flush()
    return payment


async def update_payment(session: AsyncSession, payment: Payment, **values: Any) -> Payment:
    """Apply column values to a payment and flush."""
    for key, value in values.items():
        setattr(payment, key, value)
    payment.updated_at = utcnow()
    await session.flush()
    return payment
