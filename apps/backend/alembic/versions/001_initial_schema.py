"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates all tables from the current models:
- users, venues, courts
- court_bookings, payments
- All enum types and indexes

On PostgreSQL it also installs btree_gist and an exclusion constraint so two
non-cancelled bookings of the same court can never overlap on the same date,
even under concurrent inserts.
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables from scratch."""
    # Import models to register them with Base.metadata
    from backend.database.db import Base
    from backend.database import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind, checkfirst=True)

    if bind.dialect.name == "postgresql":
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE court_bookings
            ADD CONSTRAINT excl_court_bookings_no_overlap
            EXCLUDE USING gist (
                court_id WITH =,
                tsrange(booking_date + start_time, booking_date + end_time, '[)') WITH &&
            )
            WHERE (status <> 'cancelled')
            """
        )


def downgrade() -> None:
    """Drop all tables."""
    from backend.database.db import Base
    from backend.database import models  # noqa: F401

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(
            "ALTER TABLE court_bookings DROP CONSTRAINT IF EXISTS excl_court_bookings_no_overlap"
        )
    Base.metadata.drop_all(bind=bind, checkfirst=True)
