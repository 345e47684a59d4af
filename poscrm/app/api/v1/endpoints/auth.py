"""
Authentication API endpoints.

Login, current user info and logout.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from poscrm.app.db.session import get_db
from poscrm.app.models.user import User
from poscrm.app.schemas.auth import UserLogin, TokenResponse, UserResponse, LogoutResponse
from poscrm.app.core.security import verify_password
from poscrm.app.core.jwt import create_access_token
from poscrm.app.core.dependencies import get_current_user
from poscrm.app.core.token_revocation import revoke_token
from poscrm.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login with email and password and return a JWT token.

    Logs successful and failed login attempts.
    """
    result = await db.execute(
        select(User).where(func.lower(User.email) == credentials.email.strip().lower())
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(credentials.password, user.hashed_password):
        await log_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            actor_id=user.id if user else None,
            actor_username=credentials.email,
            metadata={"reason": "User not found" if not user else "Invalid password"},
            ip_address=_client_ip(request)
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        await log_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            actor_id=user.id,
            actor_username=user.email,
            metadata={"reason": "Account is inactive"},
            ip_address=_client_ip(request)
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account"
        )

    access_token = create_access_token(data={
        "sub": user.email,
        "user_id": user.id,
        "role": user.role.value,
    })

    await log_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        actor_id=user.id,
        actor_username=user.email,
        ip_address=_client_ip(request)
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role
    )


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current authenticated user."""
    result = await db.execute(select(User).where(User.id == current_user.get("user_id")))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return UserResponse.model_validate(user)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the presented token."""
    revoked = await revoke_token(current_user["token"], current_user["user_id"])

    await log_event(
        db=db,
        action=AuditAction.LOGOUT,
        actor_id=current_user.get("user_id"),
        actor_username=current_user.get("sub"),
        metadata={"revoked": revoked},
        ip_address=_client_ip(request)
    )

    return LogoutResponse(
        success=revoked,
        message="Logged out" if revoked else "Token could not be revoked"
    )
