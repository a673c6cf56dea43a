"""
Bearer token authentication.

Tokens are HS256 JWTs issued elsewhere; the payload carries "user_id". The
user row supplies role and team.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Header

from config import settings
from ..database.connection import get_database
from ..database.models import UserDB
from ..database.repositories import get_team_repository

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Missing, invalid or expired credentials."""
    pass


def create_access_token(user_id: str, expires_in: timedelta = timedelta(hours=12)) -> str:
    """Issue a token for a user (operator tooling and tests)."""
    payload = {
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> str:
    """
    Validate a token and return its user id.

    Raises:
        AuthenticationError: bad signature, expired or no user_id
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return str(user_id)


async def authenticate_token(token: Optional[str]) -> UserDB:
    """Resolve a raw token to its user."""
    if not token:
        raise AuthenticationError("Authentication required")

    user_id = decode_token(token)
    async with get_database().session() as session:
        user = await get_team_repository().get_user(session, user_id)

    if user is None:
        logger.warning(f"Token for unknown user {user_id}")
        raise AuthenticationError("User not found")
    return user


async def get_current_user(authorization: Optional[str] = Header(default=None)) -> UserDB:
    """FastAPI dependency: the user behind the Authorization header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Authentication required")
    return await authenticate_token(authorization.split(" ", 1)[1].strip())
