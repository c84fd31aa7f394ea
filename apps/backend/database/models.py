"""
SQLAlchemy ORM models for the court booking system.
"""

import enum
import uuid
from sqlalchemy import (
    Column,
    String,
    Text,
    Date,
    DateTime,
    Time,
    Numeric,
    JSON,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.database.db import Base


def _enum_values(enum_cls):
    """Persist enum values (lowercase wire strings) rather than member names."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    """User role enum."""

    USER = "user"
    VENUE = "venue"
    ADMIN = "admin"


class VenueStatus(str, enum.Enum):
    """Venue operating status enum."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class CourtStatus(str, enum.Enum):
    """Court occupancy status enum."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class BookingStatus(str, enum.Enum):
    """Booking lifecycle status enum."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    """Payment status enum."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    """Payment method enum."""

    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"
    QR = "qr"


# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    """Platform users. Only identity and role are used by bookings."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, server_default="")
    email = Column(String(255), nullable=False, unique=True)
    role = Column(
        Enum(UserRole, name="userrole", values_callable=_enum_values),
        nullable=False,
        default=UserRole.USER,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    venues = relationship("Venue", back_populates="owner")
    bookings = relationship("Booking", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Venue(Base):
    """Facilities that contain one or more courts."""

    __tablename__ = "venues"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    name = Column(String(200), nullable=False)
    location = Column(String(255), nullable=True)
    status = Column(
        Enum(VenueStatus, name="venuestatus", values_callable=_enum_values),
        nullable=False,
        default=VenueStatus.ACTIVE,
    )
    # Weekly schedule: [{"day": "monday", "is_open": true, "open_time": "08:00", "close_time": "22:00"}, ...]
    open_range = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    owner = relationship("User", back_populates="venues")
    courts = relationship("Court", back_populates="venue")

    __table_args__ = (
        Index("idx_venues_owner", "owner_id"),
        Index("idx_venues_status", "status"),
    )


class Court(Base):
    """A single bookable playing surface. Soft-deleted via deleted_at."""

    __tablename__ = "courts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    venue_id = Column(Uuid, ForeignKey("venues.id"), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price_per_hour = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(CourtStatus, name="courtstatus", values_callable=_enum_values),
        nullable=False,
        default=CourtStatus.AVAILABLE,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    venue = relationship("Venue", back_populates="courts")
    bookings = relationship("Booking", back_populates="court")

    __table_args__ = (
        Index("idx_courts_venue", "venue_id"),
        Index("idx_courts_status", "status"),
        CheckConstraint("price_per_hour >= 0", name="ck_courts_price_non_negative"),
    )


class Booking(Base):
    """Reservation of one court for one date and [start_time, end_time) window."""

    __tablename__ = "court_bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    court_id = Column(Uuid, ForeignKey("courts.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(BookingStatus, name="bookingstatus", values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    court = relationship("Court", back_populates="bookings")
    user = relationship("User", back_populates="bookings")
    payment = relationship(
        "Payment", back_populates="booking", uselist=False, cascade="all, delete-orphan"
    )

    # The overlap exclusion constraint is PostgreSQL-only and lives in the migration.
    __table_args__ = (
        Index("idx_court_bookings_court_date", "court_id", "booking_date"),
        Index("idx_court_bookings_user", "user_id"),
        Index("idx_court_bookings_status_date", "status", "booking_date"),
        CheckConstraint("end_time > start_time", name="ck_court_bookings_window"),
        CheckConstraint("total_amount > 0", name="ck_court_bookings_amount_positive"),
    )


class Payment(Base):
    """Payment recorded against a booking (at most one per booking)."""

    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id = Column(
        Uuid, ForeignKey("court_bookings.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(PaymentStatus, name="paymentstatus", values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payment_method = Column(
        Enum(PaymentMethod, name="paymentmethod", values_callable=_enum_values),
        nullable=False,
    )
    transaction_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    booking = relationship("Booking", back_populates="payment")

    __table_args__ = (
        UniqueConstraint("booking_id", name="uq_payments_booking"),
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
    )
