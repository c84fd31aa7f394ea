"""
Access-token helpers (HS256 JWT carrying a ``user_id`` claim).
"""

import os
import logging
from datetime import timedelta
from typing import Dict, Optional

from dotenv import load_dotenv
from jose import JWTError, jwt

from backend.utils.datetime_utils import utcnow

load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an access token.

    Args:
        data: Claims to embed (must include ``user_id`` to authenticate requests)
        expires_delta: Lifetime (default ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT
    """
    to_encode = {k: str(v) if k == "user_id" else v for k, v in data.items()}
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """Decode and verify a token. Returns the claims, or None if invalid or expired."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None
