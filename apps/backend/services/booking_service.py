"""
Booking lifecycle: create, edit, cancel, and record payments.

State machine:
    pending   -> confirmed  (non-cash payment recorded, or payment completed)
    pending   -> cancelled  (explicit cancel, edit to cancelled, or refund)
    cancelled is terminal

Creation is atomic with respect to other bookings of the same court: the
court row is locked, conflicts are re-scanned and the insert happens in the
same transaction. On PostgreSQL an exclusion constraint backs this up, and a
violation is reported as a conflict.
"""

import logging
import uuid
from datetime import date, time, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database.models import (
    Booking,
    BookingStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    UserRole,
    VenueStatus,
)
from backend.services import data_service
from backend.services.availability_service import booking_slot, find_conflicts, venue_schedule
from backend.services.booking_errors import (
    BookingConflictError,
    BookingValidationError,
    NotFoundError,
    UnauthorizedError,
)
from backend.utils.constants import (
    BOOKING_MAX_ADVANCE_DAYS,
    DEFAULT_PAGE_LIMIT,
    MAX_BOOKING_DURATION,
    MAX_PAGE_LIMIT,
    MIN_BOOKING_DURATION,
)
from backend.utils.datetime_utils import (
    format_date,
    format_time,
    format_timestamp,
    local_today,
    parse_date,
    parse_time,
    utcnow,
)
from backend.utils.schedule_utils import duration_between, find_day_schedule, is_open

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

UUIDLike = Union[str, uuid.UUID]


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def is_booking_locked(status: BookingStatus) -> bool:
    """
    Whether a booking refuses edits and cancellation.

    Confirmed bookings are locked together with cancelled ones; this is the
    current product rule and the only place it is decided.
    """
    return status in (BookingStatus.CANCELLED, BookingStatus.CONFIRMED)


# ---------------------------------------------------------------------------
# Parsing & validation helpers
# ---------------------------------------------------------------------------


def _to_uuid(value: UUIDLike, label: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        raise BookingValidationError(f"Invalid {label}: {value!r}")


def _parse_date(value: Union[str, date], label: str = "date") -> date:
    try:
        return parse_date(value)
    except ValueError as e:
        raise BookingValidationError(f"Invalid {label}: {e}")


def _parse_time(value: Union[str, time], label: str) -> time:
    try:
        return parse_time(value)
    except ValueError as e:
        raise BookingValidationError(f"Invalid {label}: {e}")


def validate_window(start_time: time, end_time: time) -> timedelta:
    """
    Check a booking window's ordering and length.

    Returns:
        The window duration

    Raises:
        BookingValidationError: If end <= start or the duration is outside 30 min .. 4 h
    """
    if end_time <= start_time:
        raise BookingValidationError("End time must be after start time")
    duration = duration_between(start_time, end_time)
    if duration < MIN_BOOKING_DURATION:
        raise BookingValidationError("Booking duration must be at least 30 minutes")
    if duration > MAX_BOOKING_DURATION:
        raise BookingValidationError("Booking duration cannot exceed 4 hours")
    return duration


def calculate_total_amount(start_time: time, end_time: time, price_per_hour: Decimal) -> Decimal:
    """duration_hours * price_per_hour, rounded half-up to cents."""
    minutes = Decimal(int(duration_between(start_time, end_time).total_seconds() // 60))
    amount = minutes / Decimal(60) * Decimal(price_per_hour)
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def _to_amount(value: Any) -> Decimal:
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise BookingValidationError(f"Invalid amount: {value!r}")


def _enum(enum_cls, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise BookingValidationError(f"Invalid {label}: {value!r} (expected one of {allowed})")


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def payment_to_dict(payment: Optional[Payment]) -> Optional[Dict]:
    if payment is None:
        return None
    return {
        "id": str(payment.id),
        "booking_id": str(payment.booking_id),
        "amount": float(payment.amount),
        "status": payment.status.value,
        "payment_method": payment.payment_method.value,
        "transaction_id": payment.transaction_id,
        "created_at": format_timestamp(payment.created_at),
        "updated_at": format_timestamp(payment.updated_at),
    }


def booking_to_dict(booking: Booking) -> Dict:
    """Response shape for a booking, with its payment nested when present."""
    court = booking.court
    venue = court.venue if court is not None else None
    duration = duration_between(booking.start_time, booking.end_time)
    return {
        "id": str(booking.id),
        "court_id": str(booking.court_id),
        "user_id": str(booking.user_id),
        "court_name": court.name if court is not None else None,
        "venue_name": venue.name if venue is not None else None,
        "venue_location": venue.location if venue is not None else None,
        "user_name": booking.user.full_name if booking.user is not None else None,
        "date": format_date(booking.booking_date),
        "start_time": format_time(booking.start_time),
        "end_time": format_time(booking.end_time),
        "duration_minutes": int(duration.total_seconds() // 60),
        "total_amount": float(booking.total_amount),
        "status": booking.status.value,
        "notes": booking.notes,
        "created_at": format_timestamp(booking.created_at),
        "updated_at": format_timestamp(booking.updated_at),
        "cancelled_at": format_timestamp(booking.cancelled_at),
        "payment": payment_to_dict(booking.payment),
    }


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


async def _is_admin(session: AsyncSession, user_id: uuid.UUID) -> bool:
    user = await data_service.get_user_by_id(session, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user.role == UserRole.ADMIN


async def _require_owner_or_admin(session: AsyncSession, booking: Booking, user_id: uuid.UUID) -> None:
    if booking.user_id == user_id:
        return
    if not await _is_admin(session, user_id):
        raise UnauthorizedError("Not authorized to modify this booking")


async def _get_booking_or_404(session: AsyncSession, booking_id: UUIDLike) -> Booking:
    booking = await data_service.get_booking_by_id(session, _to_uuid(booking_id, "booking ID"))
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


async def create_booking(
    session: AsyncSession,
    user_id: UUIDLike,
    court_id: UUIDLike,
    booking_date: Union[str, date],
    start_time: Union[str, time],
    end_time: Union[str, time],
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> Dict:
    """
    Reserve a court for [start_time, end_time) on booking_date.

    Args:
        session: Database session (committed on success)
        user_id: Booking owner
        court_id: Court to reserve
        booking_date: YYYY-MM-DD
        start_time: HH:MM
        end_time: HH:MM
        notes: Optional free text
        today: Reference date for past/too-far-ahead checks (defaults to the venue-local date)

    Returns:
        The new booking (status pending)

    Raises:
        BookingValidationError: Bad input, inactive venue, window outside opening hours
        NotFoundError: Court or venue missing
        BookingConflictError: Window overlaps a non-cancelled booking
    """
    user_uuid = _to_uuid(user_id, "user ID")
    court_uuid = _to_uuid(court_id, "court ID")

    court = await data_service.get_court_with_venue(session, court_uuid)
    if court is None:
        raise NotFoundError("Court not found")
    venue = court.venue or await data_service.get_venue_by_id(session, court.venue_id)
    if venue is None or venue.deleted_at is not None:
        raise NotFoundError("Venue not found")
    if venue.status != VenueStatus.ACTIVE:
        raise BookingValidationError("Venue is not active")

    day = _parse_date(booking_date)
    start = _parse_time(start_time, "start time")
    end = _parse_time(end_time, "end time")
    validate_window(start, end)

    reference = today or local_today()
    if day < reference:
        raise BookingValidationError("Booking date must not be in the past")
    if day > reference + timedelta(days=BOOKING_MAX_ADVANCE_DAYS):
        raise BookingValidationError(
            f"Cannot book more than {BOOKING_MAX_ADVANCE_DAYS} days in advance"
        )

    schedule = venue_schedule(venue)
    if not is_open(schedule, day, start, end):
        entry = find_day_schedule(schedule, day)
        if entry is None or not entry.is_open:
            raise BookingValidationError(f"Venue is closed on {day.strftime('%A')}")
        raise BookingValidationError(
            f"Booking must be within venue operating hours "
            f"({format_time(entry.open_time)} - {format_time(entry.close_time)})"
        )

    total_amount = calculate_total_amount(start, end, court.price_per_hour)
    if total_amount <= 0:
        raise BookingValidationError("Total amount must be greater than 0")

    # Check + insert under the court row lock
    await data_service.lock_court(session, court_uuid)
    conflicts = await find_conflicts(session, court_uuid, day, start, end)
    if conflicts:
        slots = ", ".join(f"{s['start_time']}-{s['end_time']}" for s in map(booking_slot, conflicts))
        raise BookingConflictError(f"Court is not available for the selected time slot (taken: {slots})")

    booking = Booking(
        court_id=court_uuid,
        user_id=user_uuid,
        booking_date=day,
        start_time=start,
        end_time=end,
        total_amount=total_amount,
        status=BookingStatus.PENDING,
        notes=notes,
    )
    try:
        await data_service.create_booking(session, booking)
        # The insert holds the write lock until commit: every booking
        # committed before ours is visible to this second scan
        taken = [
            b for b in await find_conflicts(session, court_uuid, day, start, end)
            if b.id != booking.id
        ]
        if taken:
            await session.rollback()
            raise BookingConflictError("Court is not available for the selected time slot")
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if "excl_court_bookings_no_overlap" in str(e.orig):
            raise BookingConflictError("Court is not available for the selected time slot")
        raise

    logger.info(
        f"Booking {booking.id} created: court={court_uuid} date={day} "
        f"{format_time(start)}-{format_time(end)} amount={total_amount}"
    )
    created = await data_service.get_booking_by_id(session, booking.id)
    return booking_to_dict(created)


async def get_booking(session: AsyncSession, booking_id: UUIDLike) -> Dict:
    """Get one booking with its payment."""
    booking = await _get_booking_or_404(session, booking_id)
    return booking_to_dict(booking)


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0 or limit > MAX_PAGE_LIMIT:
        return DEFAULT_PAGE_LIMIT
    return limit


async def list_bookings(
    session: AsyncSession,
    user_id: UUIDLike,
    court_id: Optional[UUIDLike] = None,
    venue_id: Optional[UUIDLike] = None,
    date_from: Optional[Union[str, date]] = None,
    date_to: Optional[Union[str, date]] = None,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Dict:
    """
    List bookings visible to a user with filters and pagination.

    Admins see every booking; everyone else sees bookings they made plus
    bookings on venues they own. ``limit`` falls back to 10 unless it is in
    1..100; a negative ``offset`` is treated as 0.

    Returns:
        {"bookings": [...], "total": int, "limit": int, "offset": int}
    """
    user_uuid = _to_uuid(user_id, "user ID")
    filters: Dict[str, Any] = {}
    if court_id:
        filters["court_id"] = _to_uuid(court_id, "court ID")
    if venue_id:
        filters["venue_id"] = _to_uuid(venue_id, "venue ID")
    if date_from:
        filters["date_from"] = _parse_date(date_from, "date_from")
    if date_to:
        filters["date_to"] = _parse_date(date_to, "date_to")
    if status:
        filters["status"] = _enum(BookingStatus, status, "status")

    page_limit = _clamp_limit(limit)
    page_offset = offset if offset and offset > 0 else 0

    visible_to = None if await _is_admin(session, user_uuid) else user_uuid
    total = await data_service.count_bookings_by_filter(session, filters, visible_to)
    bookings = await data_service.list_bookings_by_filter(
        session, filters, visible_to, limit=page_limit, offset=page_offset
    )
    return {
        "bookings": [booking_to_dict(b) for b in bookings],
        "total": total,
        "limit": page_limit,
        "offset": page_offset,
    }


async def list_user_bookings(
    session: AsyncSession,
    user_id: UUIDLike,
    include_history: bool = False,
    today: Optional[date] = None,
) -> list:
    """The caller's own bookings; without history only those dated today or later."""
    user_uuid = _to_uuid(user_id, "user ID")
    from_date = None if include_history else (today or local_today())
    bookings = await data_service.list_bookings_for_user(session, user_uuid, from_date)
    return [booking_to_dict(b) for b in bookings]


async def update_booking(
    session: AsyncSession,
    booking_id: UUIDLike,
    user_id: UUIDLike,
    status: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict:
    """
    Edit a pending booking's status and/or notes.

    Raises:
        NotFoundError: Booking missing
        UnauthorizedError: Caller is neither owner nor admin
        BookingValidationError: Booking is locked or the status is not allowed
    """
    booking = await _get_booking_or_404(session, booking_id)
    await _require_owner_or_admin(session, booking, _to_uuid(user_id, "user ID"))

    if is_booking_locked(booking.status):
        raise BookingValidationError(f"Cannot update {booking.status.value} booking")

    values: Dict[str, Any] = {}
    if status:
        new_status = _enum(BookingStatus, status, "status")
        if new_status == BookingStatus.PENDING:
            raise BookingValidationError("Status can only be changed to confirmed or cancelled")
        values["status"] = new_status
        if new_status == BookingStatus.CANCELLED:
            values["cancelled_at"] = utcnow()
    if notes is not None:
        values["notes"] = notes

    if values:
        await data_service.update_booking(session, booking, **values)
        await session.commit()
        logger.info(f"Booking {booking.id} updated: {sorted(values)}")

    return booking_to_dict(booking)


async def cancel_booking(session: AsyncSession, booking_id: UUIDLike, user_id: UUIDLike) -> Dict:
    """
    Cancel a booking (owner or admin).

    A completed payment is marked refunded; no money moves.

    Raises:
        NotFoundError: Booking or user missing
        UnauthorizedError: Caller is neither owner nor admin
        BookingValidationError: Booking is locked
    """
    booking = await _get_booking_or_404(session, booking_id)
    await _require_owner_or_admin(session, booking, _to_uuid(user_id, "user ID"))

    if is_booking_locked(booking.status):
        raise BookingValidationError(f"Booking cannot be cancelled ({booking.status.value})")

    await data_service.cancel_booking(session, booking)
    payment = booking.payment
    if payment is not None and payment.status == PaymentStatus.COMPLETED:
        await data_service.update_payment(session, payment, status=PaymentStatus.REFUNDED)
    await session.commit()

    logger.info(f"Booking {booking.id} cancelled by user {user_id}")
    return booking_to_dict(booking)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


async def get_payment(session: AsyncSession, booking_id: UUIDLike) -> Dict:
    """Get the payment attached to a booking."""
    payment = await data_service.get_payment_for_booking(session, _to_uuid(booking_id, "booking ID"))
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment_to_dict(payment)


async def create_payment(
    session: AsyncSession,
    booking_id: UUIDLike,
    user_id: UUIDLike,
    amount: Any,
    payment_method: str,
    transaction_id: Optional[str] = None,
) -> Dict:
    """
    Record a payment for a pending booking.

    Non-cash payments confirm the booking immediately; cash is settled at the
    venue and leaves the booking pending.

    Raises:
        NotFoundError: Booking missing
        BookingValidationError: Booking not pending, bad method, or amount != total_amount
        BookingConflictError: Booking already has a payment
    """
    booking = await _get_booking_or_404(session, booking_id)
    method = _enum(PaymentMethod, payment_method, "payment method")
    paid = _to_amount(amount)

    if booking.payment is not None:
        raise BookingConflictError("Payment already exists for this booking")
    if booking.status != BookingStatus.PENDING:
        raise BookingValidationError("Booking is not in pending state")
    if paid != booking.total_amount:
        raise BookingValidationError(
            f"Payment amount ({paid}) does not match booking amount ({booking.total_amount})"
        )

    payment = Payment(
        booking=booking,
        user_id=_to_uuid(user_id, "user ID"),
        amount=paid,
        status=PaymentStatus.PENDING,
        payment_method=method,
        transaction_id=transaction_id,
    )
    try:
        await data_service.create_payment(session, payment)
        if method != PaymentMethod.CASH:
            await data_service.update_booking(session, booking, status=BookingStatus.CONFIRMED)
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise BookingConflictError("Payment already exists for this booking")
    await session.refresh(payment)

    logger.info(
        f"Payment {payment.id} recorded for booking {booking.id}: "
        f"{method.value} {paid} (booking now {booking.status.value})"
    )
    return payment_to_dict(payment)


async def update_payment(
    session: AsyncSession,
    booking_id: UUIDLike,
    user_id: UUIDLike,
    status: str,
    payment_method: Optional[str] = None,
) -> Dict:
    """
    Move a pending payment to a new status and carry the booking along.

    completed -> booking confirmed; failed -> booking pending;
    refunded -> booking cancelled (cancelled_at stamped); pending -> unchanged.

    Raises:
        NotFoundError: Booking or payment missing
        UnauthorizedError: Caller did not make the payment
        BookingConflictError: Payment already processed
        BookingValidationError: Booking cancelled or bad values
    """
    booking = await _get_booking_or_404(session, booking_id)
    payment = booking.payment
    if payment is None:
        raise NotFoundError("Payment not found")
    if payment.user_id != _to_uuid(user_id, "user ID"):
        raise UnauthorizedError("Not authorized to update this payment")
    if payment.status != PaymentStatus.PENDING:
        raise BookingConflictError(f"Payment already {payment.status.value}")
    if booking.status == BookingStatus.CANCELLED:
        raise BookingValidationError("Booking is cancelled")

    new_status = _enum(PaymentStatus, status, "payment status")
    values: Dict[str, Any] = {"status": new_status}
    if payment_method:
        values["payment_method"] = _enum(PaymentMethod, payment_method, "payment method")
    await data_service.update_payment(session, payment, **values)

    if new_status == PaymentStatus.COMPLETED:
        await data_service.update_booking(session, booking, status=BookingStatus.CONFIRMED)
    elif new_status == PaymentStatus.FAILED:
        await data_service.update_booking(session, booking, status=BookingStatus.PENDING)
    elif new_status == PaymentStatus.REFUNDED:
        await data_service.update_booking(
            session, booking, status=BookingStatus.CANCELLED, cancelled_at=utcnow()
        )
    await session.commit()

    logger.info(
        f"Payment {payment.id} for booking {booking.id} -> {new_status.value} "
        f"(booking now {booking.status.value})"
    )
    return payment_to_dict(payment)
