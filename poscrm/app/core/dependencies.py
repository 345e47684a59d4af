"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from poscrm.app.core.jwt import decode_access_token
from poscrm.app.core.exceptions import AuthenticationError, TokenRevokedError
from poscrm.app.core.token_revocation import is_token_revoked, are_user_tokens_revoked
from poscrm.app.db.session import get_db
from poscrm.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks:
    1. Token signature and expiry
    2. Token not revoked (logout)
    3. User tokens not revoked (user deleted / deactivated)
    4. User still exists and is active

    Returns:
        Decoded token payload (sub, user_id, role) plus the raw token

    Raises:
        AuthenticationError / TokenRevokedError: 401
        HTTPException: 403 for inactive users
    """
    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    if await is_token_revoked(token):
        raise TokenRevokedError()

    if await are_user_tokens_revoked(user_id):
        raise TokenRevokedError("User access has been revoked")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    # Role is re-read so a changed role takes effect without a new token
    payload["role"] = user.role.value
    payload["token"] = token
    return payload
