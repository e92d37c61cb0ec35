"""
API dependencies for FastAPI endpoints.
Provides the database session and caller identification.
"""

from typing import AsyncGenerator, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from rewards.core.database import get_async_session
from rewards.core.exceptions import AuthenticationError


logger = structlog.get_logger(__name__)


# Bearer token carries the caller's user id
user_auth_scheme = HTTPBearer(auto_error=False)


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_async_session() as session:
        yield session


async def get_optional_user_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(user_auth_scheme)
) -> Optional[str]:
    """Get optional caller id from Bearer token."""
    if not credentials:
        return None

    # Token verification belongs to the identity service; the token is the user id here
    token = credentials.credentials.strip()
    if token:
        return token

    logger.warning("Empty bearer token provided")
    return None


async def get_required_user_auth(
    user_id: Optional[str] = Depends(get_optional_user_auth)
) -> str:
    """Get required caller id."""
    if not user_id:
        logger.warning("Missing user authentication")
        raise AuthenticationError("User authentication required")
    return user_id
