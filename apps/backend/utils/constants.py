"""
Constants used across the court booking system.
"""

from datetime import timedelta

# Booking window limits
MIN_BOOKING_DURATION = timedelta(minutes=30)
MAX_BOOKING_DURATION = timedelta(hours=4)
BOOKING_MAX_ADVANCE_DAYS = 90  # How far ahead a court can be reserved
SLOT_MINUTES = 30  # Granularity of generated availability slots

# Booking list pagination
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

# Wire formats
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"

# Venue wall clock & court status reconciler
DEFAULT_VENUE_TIMEZONE = "Asia/Bangkok"  # ICT, UTC+7
DEFAULT_COURT_STATUS_INTERVAL_SECONDS = 60
