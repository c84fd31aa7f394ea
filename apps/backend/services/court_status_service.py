"""
Court status reconciler: keeps ``courts.status`` in line with confirmed bookings.

A court is occupied while a confirmed booking is in progress
(start < now < end, evaluated in the venue timezone) and available otherwise.
Courts under maintenance are left alone. A background worker runs one pass
every ``COURT_STATUS_INTERVAL_SECONDS``; admins can force a pass over HTTP.
"""

import asyncio
import logging
import os
from datetime import datetime
from typing import Dict, Optional

import pytz
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import db
from backend.database.models import CourtStatus
from backend.services import data_service
from backend.utils.constants import DEFAULT_COURT_STATUS_INTERVAL_SECONDS
from backend.utils.datetime_utils import combine_local, get_timezone, utcnow, venue_timezone

logger = logging.getLogger(__name__)


async def reconcile_court_statuses(
    session: AsyncSession,
    now: Optional[datetime] = None,
    tz=None,
) -> Dict[str, int]:
    """
    Run one reconciliation pass and commit it.

    Args:
        session: Database session
        now: Reference instant (naive values are taken as UTC; default: now)
        tz: pytz timezone of booking wall-clock times (default: VENUE_TIMEZONE)

    Returns:
        {"occupied": n, "available": n, "skipped_maintenance": n, "changed": n}

    Raises:
        Any repository error; the transaction is rolled back first.
    """
    tz = tz or venue_timezone()
    now = now or utcnow()
    if now.tzinfo is None:
        now = pytz.UTC.localize(now)
    today = now.astimezone(tz).date()

    summary = {"occupied": 0, "available": 0, "skipped_maintenance": 0, "changed": 0}
    try:
        bookings = await data_service.list_confirmed_bookings_on_date(session, today)
        in_progress = set()
        for booking in bookings:
            start = combine_local(booking.booking_date, booking.start_time, tz)
            end = combine_local(booking.booking_date, booking.end_time, tz)
            if start < now < end:
                in_progress.add(booking.court_id)

        courts = await data_service.list_courts(session)
        for court in courts:
            if court.status == CourtStatus.MAINTENANCE:
                summary["skipped_maintenance"] += 1
                continue
            target = CourtStatus.OCCUPIED if court.id in in_progress else CourtStatus.AVAILABLE
            summary[target.value] += 1
            if court.status != target:
                await data_service.set_court_status(session, court.id, target)
                summary["changed"] += 1

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    if summary["changed"]:
        logger.info(f"Court status reconciled for {today}: {summary}")
    else:
        logger.debug(f"Court status unchanged for {today}: {summary}")
    return summary


class CourtStatusReconciler:
    """Background worker that reconciles court statuses on a fixed interval."""

    def __init__(
        self,
        interval_seconds: Optional[float] = None,
        timezone_name: Optional[str] = None,
    ):
        if interval_seconds is None:
            interval_seconds = float(
                os.getenv("COURT_STATUS_INTERVAL_SECONDS", DEFAULT_COURT_STATUS_INTERVAL_SECONDS)
            )
        self.interval_seconds = interval_seconds
        self.timezone_name = timezone_name
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def timezone(self):
        if self.timezone_name:
            return get_timezone(self.timezone_name)
        return venue_timezone()

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start(self) -> None:
        """Start the background reconcile worker."""
        if not self.running:
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info(f"Court status worker started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background reconcile worker and wait for it to finish."""
        self._stop_event.set()
        task, self._worker_task = self._worker_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Court status worker stopped")

    async def run_once(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """One pass in a fresh session."""
        async with db.AsyncSessionLocal() as session:
            return await reconcile_court_statuses(session, now=now, tz=self.timezone)

    async def _poll_loop(self) -> None:
        """Reconcile, then wait for the interval or a stop signal."""
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                # Next tick retries
                logger.error(f"Error in court status worker: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass


# Global singleton
_reconciler: Optional[CourtStatusReconciler] = None


def get_court_status_reconciler() -> CourtStatusReconciler:
    """Get the global court status reconciler."""
    global _reconciler
    if _reconciler is None:
        _reconciler = CourtStatusReconciler()
    return _reconciler
