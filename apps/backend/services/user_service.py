"""
User lookups for request authentication.
"""

import uuid
from typing import Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from backend.database.models import User, UserRole
from backend.services import data_service


def _user_to_dict(user: User) -> Dict:
    """
    Convert a User ORM instance to a dictionary.

    Args:
        user: User ORM instance

    Returns:
        User dictionary
    """
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "role": user.role.value,
        "is_admin": user.role == UserRole.ADMIN,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_user_by_id(session: AsyncSession, user_id: Union[str, uuid.UUID]) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID (UUID or its string form, as carried in tokens)

    Returns:
        User dictionary or None if not found or the ID is malformed
    """
    if not isinstance(user_id, uuid.UUID):
        try:
            user_id = uuid.UUID(str(user_id))
        except ValueError:
            return None
    user = await data_service.get_user_by_id(session, user_id)
    return _user_to_dict(user) if user else None
