"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from backend.services.booking_errors import BookingError

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Shared error mapping
# ---------------------------------------------------------------------------
ERROR_STATUS_CODES = {
    "NOT_FOUND": 404,
    "VALIDATION_ERROR": 400,
    "UNAUTHORIZED": 403,
    "BOOKING_CONFLICT": 409,
    "PAYMENT_REQUIRED": 402,
}


def error_response(status_code: int, message: str, code: str) -> HTTPException:
    """HTTPException with the ``{"error", "code"}`` detail body."""
    return HTTPException(status_code=status_code, detail={"error": message, "code": code})


def booking_error_response(error: BookingError) -> HTTPException:
    """Translate a service-layer BookingError into its HTTP status and code."""
    return error_response(ERROR_STATUS_CODES.get(error.code, 400), str(error), error.code)


def internal_error_response(message: str) -> HTTPException:
    return error_response(500, message, "INTERNAL_ERROR")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from backend.api.routes.bookings import router as bookings_router
from backend.api.routes.admin import router as admin_router

router = APIRouter()
router.include_router(bookings_router)
router.include_router(admin_router)
