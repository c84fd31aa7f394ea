"""
Error taxonomy for the booking engine.

All errors subclass ValueError so callers that only care about "bad input"
can keep catching ValueError. Routes map each class to a status code and a
machine-readable code string.
"""


class BookingError(ValueError):
    """Base class for booking failures reported to the caller."""

    code = "BOOKING_ERROR"


class NotFoundError(BookingError):
    """Court, venue, booking, payment or user does not exist."""

    code = "NOT_FOUND"


class BookingValidationError(BookingError):
    """Malformed date/time, window out of bounds, amount mismatch, bad state for an edit."""

    code = "VALIDATION_ERROR"


class UnauthorizedError(BookingError):
    """Caller is neither the owner nor an admin."""

    code = "UNAUTHORIZED"


class BookingConflictError(BookingError):
    """Slot unavailable, or a payment already exists."""

    code = "BOOKING_CONFLICT"


class PaymentRequiredError(BookingError):
    """Operation needs a payment first."""

    code = "PAYMENT_REQUIRED"
