"""
Court Booking API Server

FastAPI server for court availability, bookings and payments, plus the
background worker that keeps court occupancy in sync with bookings.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from dotenv import load_dotenv
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

load_dotenv()

from backend.api.routes import router, limiter as routes_limiter  # noqa: E402
from backend.database import db  # noqa: E402
from backend.services.court_status_service import get_court_status_reconciler  # noqa: E402

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

ENABLE_COURT_STATUS_WORKER = os.getenv("ENABLE_COURT_STATUS_WORKER", "true").lower() in (
    "1",
    "true",
    "yes",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Court Booking API...")

    # Create tables that migrations have not created yet (development fallback)
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    if ENABLE_COURT_STATUS_WORKER:
        try:
            get_court_status_reconciler().start()
            logger.info("✓ Court status worker started")
        except Exception as e:
            logger.error(f"Failed to start court status worker: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Court Booking API...")

    try:
        await get_court_status_reconciler().stop()
        logger.info("✓ Court status worker stopped")
    except Exception as e:
        logger.error(f"Error stopping court status worker: {e}", exc_info=True)

    try:
        await db.dispose_engine()
        logger.info("✓ Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database connections: {e}", exc_info=True)


app = FastAPI(
    title="Court Booking API",
    description="API for court availability, bookings and payments",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware; origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
