"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List
from pydantic import BaseModel, Field, model_validator


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    court_status_worker: bool


class TimeSlot(BaseModel):
    """A free slot in a court's day."""

    start_time: str
    end_time: str


class ConflictSlot(BaseModel):
    """An existing booking that overlaps the requested window."""

    start_time: str
    end_time: str
    status: str


class AvailabilityResponse(BaseModel):
    """Result of an availability check."""

    court_id: str
    court_name: str
    date: str
    start_time: str
    end_time: str
    available: bool
    conflicts: List[ConflictSlot] = []
    time_slots: List[TimeSlot] = []


class CreateBookingRequest(BaseModel):
    """Request to book a court."""

    court_id: str
    date: str = Field(description="YYYY-MM-DD")
    start_time: str = Field(description="HH:MM")
    end_time: str = Field(description="HH:MM")
    notes: Optional[str] = Field(default=None, max_length=500)


class UpdateBookingRequest(BaseModel):
    """Request to edit a booking. Status may only become confirmed or cancelled."""

    status: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def validate_has_changes(self):
        """Require at least one field."""
        if self.status is None and self.notes is None:
            raise ValueError("Provide status and/or notes")
        if self.status is not None and self.status not in ("confirmed", "cancelled"):
            raise ValueError("status must be 'confirmed' or 'cancelled'")
        return self


class PaymentResponse(BaseModel):
    """Payment attached to a booking."""

    id: str
    booking_id: str
    amount: float
    status: str
    payment_method: str
    transaction_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class BookingResponse(BaseModel):
    """Booking with denormalized court/venue/user names."""

    id: str
    court_id: str
    user_id: str
    court_name: Optional[str] = None
    venue_name: Optional[str] = None
    venue_location: Optional[str] = None
    user_name: Optional[str] = None
    date: str
    start_time: str
    end_time: str
    duration_minutes: int
    total_amount: float
    status: str
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    payment: Optional[PaymentResponse] = None


class BookingListResponse(BaseModel):
    """Paginated booking list."""

    bookings: List[BookingResponse]
    total: int
    limit: int
    offset: int


class CreatePaymentRequest(BaseModel):
    """Request to record a payment for a pending booking."""

    amount: float = Field(gt=0)
    payment_method: str = Field(description="cash, transfer, card or qr")
    transaction_id: Optional[str] = Field(default=None, max_length=255)


class UpdatePaymentRequest(BaseModel):
    """Request to move a pending payment to a new status."""

    status: str = Field(description="pending, completed, failed or refunded")
    payment_method: Optional[str] = None


class ReconcileResponse(BaseModel):
    """Summary of one court status pass."""

    occupied: int
    available: int
    skipped_maintenance: int
    changed: int
