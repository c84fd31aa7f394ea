"""
Shared pytest configuration for backend tests.

By default every test gets a fresh SQLite database file (aiosqlite driver).
Set TEST_DATABASE_URL to run against PostgreSQL instead.

SAFETY: a non-SQLite TEST_DATABASE_URL must name a database containing the
substring "test"; tables are dropped after each test.
"""

import os

# Must be set before backend.api.routes is imported (rate limiter) and before
# the app lifespan runs (background worker).
os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENABLE_COURT_STATUS_WORKER", "false")

import asyncio  # noqa: E402
import uuid  # noqa: E402
from datetime import date, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from backend.database.db import Base  # noqa: E402
from backend.database.models import (  # noqa: E402
    Court,
    CourtStatus,
    User,
    UserRole,
    Venue,
    VenueStatus,
)


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if a server database name does not contain "test".
    """
    url = os.getenv("TEST_DATABASE_URL", "")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'courtbook_test.db'}"

    if not url.startswith("sqlite"):
        db_name = url.rsplit("/", 1)[-1].split("?")[0]
        if "test" not in db_name.lower():
            raise RuntimeError(
                f"\n{'=' * 70}\n"
                f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
                f"  The database name must contain 'test' to prevent accidental\n"
                f"  data loss in development or production databases.\n"
                f"{'=' * 70}"
            )
    return url


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine and point db.AsyncSessionLocal at it."""
    # NullPool: no connection reuse across event loops
    engine = create_async_engine(
        _resolve_test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        from backend.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions (the court status worker) must use the
    # test engine too
    from backend.database import db

    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local

    await asyncio.sleep(0.05)  # let connections finish
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose(close=True)


@pytest_asyncio.fixture
async def db_session(test_engine):
    """A session on the test database, rolled back and closed after the test."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------

# Reference "today" for booking tests: a Wednesday, so next_weekday() is stable
TODAY = date(2030, 1, 2)


def next_weekday(weekday: int, after: date = TODAY) -> date:
    """First date strictly after ``after`` falling on ``weekday`` (0 = Monday)."""
    days = (weekday - after.weekday()) % 7 or 7
    return after + timedelta(days=days)


def weekly_open_range(open_time="08:00", close_time="22:00", closed_days=()):
    """Venue open_range JSON with the same hours every day except ``closed_days``."""
    days = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
    return [
        {
            "day": day,
            "is_open": day not in closed_days,
            "open_time": open_time if day not in closed_days else None,
            "close_time": close_time if day not in closed_days else None,
        }
        for day in days
    ]


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def monday():
    """First Monday after TODAY (venue open 08:00-22:00)."""
    return next_weekday(0)


@pytest.fixture
def sunday():
    """First Sunday after TODAY (venue closed)."""
    return next_weekday(6)


async def make_user(session, role=UserRole.USER, first_name="Test"):
    user = User(
        first_name=first_name,
        last_name="User",
        email=f"{first_name.lower()}-{uuid.uuid4().hex[:8]}@example.com",
        role=role,
    )
    session.add(user)
    await session.commit()
    return user


@pytest.fixture
def user_factory(db_session):
    """Create extra users: ``await user_factory(role=UserRole.ADMIN)``."""

    async def _make(role=UserRole.USER, first_name="Test"):
        return await make_user(db_session, role=role, first_name=first_name)

    return _make


@pytest_asyncio.fixture
async def player(db_session):
    """Regular user who makes bookings."""
    return await make_user(db_session, first_name="Player")


@pytest_asyncio.fixture
async def other_player(db_session):
    return await make_user(db_session, first_name="Other")


@pytest_asyncio.fixture
async def admin(db_session):
    return await make_user(db_session, role=UserRole.ADMIN, first_name="Admin")


@pytest_asyncio.fixture
async def venue_owner(db_session):
    return await make_user(db_session, role=UserRole.VENUE, first_name="Owner")


@pytest_asyncio.fixture
async def venue(db_session, venue_owner):
    """Active venue open 08:00-22:00 every day except Sunday."""
    venue = Venue(
        owner_id=venue_owner.id,
        name="Riverside Sports Club",
        location="Bangkok",
        status=VenueStatus.ACTIVE,
        open_range=weekly_open_range(closed_days=("sunday",)),
    )
    db_session.add(venue)
    await db_session.commit()
    return venue


@pytest_asyncio.fixture
async def court(db_session, venue):
    """Court priced at 300.00 per hour."""
    court = Court(
        venue_id=venue.id,
        name="Court 1",
        price_per_hour=Decimal("300.00"),
        status=CourtStatus.AVAILABLE,
    )
    db_session.add(court)
    await db_session.commit()
    return court
