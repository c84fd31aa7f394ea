"""Admin and health route handlers."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth_dependencies import require_system_admin
from backend.api.routes import internal_error_response
from backend.database.db import get_db_session
from backend.models.schemas import HealthResponse, ReconcileResponse
from backend.services.court_status_service import (
    get_court_status_reconciler,
    reconcile_court_statuses,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/admin/court-status/reconcile", response_model=ReconcileResponse)
async def reconcile_court_status(
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Force one court status pass now (system admin)."""
    try:
        reconciler = get_court_status_reconciler()
        summary = await reconcile_court_statuses(session, tz=reconciler.timezone)
        logger.info(f"Court status pass forced by admin {user['id']}: {summary}")
        return summary
    except Exception as e:
        logger.error(f"Error reconciling court status: {e}", exc_info=True)
        raise internal_error_response("Error reconciling court status")


@router.get("/api/health", response_model=HealthResponse)
async def health(session: AsyncSession = Depends(get_db_session)):
    """Liveness plus a database round trip."""
    try:
        await session.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        database = "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "court_status_worker": get_court_status_reconciler().running,
    }
