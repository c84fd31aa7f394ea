"""
Authentication dependencies for FastAPI routes.

Bearer token -> ``user_id`` claim -> user dict from user_service. Booking
routes depend on ``require_user``; the court status admin endpoint on
``require_system_admin``.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from backend.services import auth_service, user_service
from backend.database.db import get_db_session

security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Resolve the caller from the Authorization header.

    Raises:
        HTTPException 401: token invalid or expired, no user_id claim, or the
            user no longer exists
    """
    claims = auth_service.verify_token(credentials.credentials)
    if claims is None:
        raise _unauthorized("Invalid authentication token")

    user_id = claims.get("user_id")
    if user_id is None:
        raise _unauthorized("Invalid token payload")

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user


async def require_system_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require platform-wide admin (role = admin)."""
    if user.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
