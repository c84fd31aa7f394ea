"""Booking, availability and payment route handlers."""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth_dependencies import require_user
from backend.api.routes import (
    booking_error_response,
    error_response,
    internal_error_response,
    limiter,
)
from backend.database.db import get_db_session
from backend.models.schemas import (
    AvailabilityResponse,
    BookingListResponse,
    BookingResponse,
    CreateBookingRequest,
    CreatePaymentRequest,
    PaymentResponse,
    UpdateBookingRequest,
    UpdatePaymentRequest,
)
from backend.services import availability_service, booking_service
from backend.services.booking_errors import BookingError
from backend.utils.datetime_utils import parse_date, parse_time

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Availability (public)
# ---------------------------------------------------------------------------


@router.get("/api/bookings/availability", response_model=AvailabilityResponse)
async def check_availability(
    court_id: str = Query(...),
    date: str = Query(..., description="YYYY-MM-DD"),
    start_time: str = Query(..., description="HH:MM"),
    end_time: str = Query(..., description="HH:MM"),
    session: AsyncSession = Depends(get_db_session),
):
    """Check whether a court is free for a window, with the day's free slots."""
    try:
        court_uuid = uuid.UUID(court_id)
        day = parse_date(date)
        start = parse_time(start_time)
        end = parse_time(end_time)
    except ValueError as e:
        raise error_response(400, str(e), "VALIDATION_ERROR")
    if end <= start:
        raise error_response(400, "End time must be after start time", "VALIDATION_ERROR")

    try:
        return await availability_service.check_availability(session, court_uuid, day, start, end)
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error checking availability: {e}", exc_info=True)
        raise internal_error_response("Error checking availability")


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


@router.post(
    "/api/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED
)
@limiter.limit("30/minute")
async def create_booking(
    request: Request,
    payload: CreateBookingRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Book a court for the authenticated user."""
    try:
        return await booking_service.create_booking(
            session,
            user_id=user["id"],
            court_id=payload.court_id,
            booking_date=payload.date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            notes=payload.notes,
        )
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error creating booking: {e}", exc_info=True)
        raise internal_error_response("Error creating booking")


@router.get("/api/bookings", response_model=BookingListResponse)
async def list_bookings(
    court_id: Optional[str] = None,
    venue_id: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    status: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List bookings visible to the caller."""
    try:
        return await booking_service.list_bookings(
            session,
            user["id"],
            court_id=court_id,
            venue_id=venue_id,
            date_from=date_from,
            date_to=date_to,
            status=status,
            limit=limit,
            offset=offset,
        )
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error listing bookings: {e}", exc_info=True)
        raise internal_error_response("Error listing bookings")


@router.get("/api/bookings/user/me", response_model=List[BookingResponse])
async def list_my_bookings(
    include_history: bool = False,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's own bookings (upcoming only unless include_history)."""
    try:
        return await booking_service.list_user_bookings(
            session, user["id"], include_history=include_history
        )
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error listing user bookings: {e}", exc_info=True)
        raise internal_error_response("Error listing user bookings")


@router.get("/api/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get one booking with its payment."""
    try:
        return await booking_service.get_booking(session, booking_id)
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error getting booking {booking_id}: {e}", exc_info=True)
        raise internal_error_response("Error getting booking")


@router.put("/api/bookings/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    payload: UpdateBookingRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit a pending booking's status or notes (owner or admin)."""
    try:
        return await booking_service.update_booking(
            session, booking_id, user["id"], status=payload.status, notes=payload.notes
        )
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error updating booking {booking_id}: {e}", exc_info=True)
        raise internal_error_response("Error updating booking")


@router.post("/api/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a booking (owner or admin)."""
    try:
        return await booking_service.cancel_booking(session, booking_id, user["id"])
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error cancelling booking {booking_id}: {e}", exc_info=True)
        raise internal_error_response("Error cancelling booking")


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@router.get("/api/bookings/{booking_id}/payment", response_model=PaymentResponse)
async def get_payment(
    booking_id: str,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the payment recorded for a booking."""
    try:
        return await booking_service.get_payment(session, booking_id)
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error getting payment for booking {booking_id}: {e}", exc_info=True)
        raise internal_error_response("Error getting payment")


@router.post(
    "/api/bookings/{booking_id}/payment",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    booking_id: str,
    payload: CreatePaymentRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Record a payment; non-cash methods confirm the booking."""
    try:
        return await booking_service.create_payment(
            session,
            booking_id,
            user["id"],
            amount=payload.amount,
            payment_method=payload.payment_method,
            transaction_id=payload.transaction_id,
        )
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error creating payment for booking {booking_id}: {e}", exc_info=True)
        raise internal_error_response("Error creating payment")


@router.put("/api/bookings/{booking_id}/payment", response_model=PaymentResponse)
async def update_payment(
    booking_id: str,
    payload: UpdatePaymentRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Move the payment to a new status (payer only)."""
    try:
        return await booking_service.update_payment(
            session,
            booking_id,
            user["id"],
            status=payload.status,
            payment_method=payload.payment_method,
        )
    except BookingError as e:
        raise booking_error_response(e)
    except Exception as e:
        logger.error(f"Error updating payment for booking {booking_id}: {e}", exc_info=True)
        raise internal_error_response("Error updating payment")
