"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from poscrm.app.models.enums import UserRole


class UserLogin(BaseModel):
    """
    Schema for user login.

    Used by POST /auth/login endpoint.
    """
    email: str = Field(..., description="Login email")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by a successful login.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: Optional[str] = Field(default=None, description="Email address")
    role: UserRole = Field(..., description="User role")


class UserResponse(BaseModel):
    """
    Schema for user information response.

    Used by GET /auth/me endpoint.
    """
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class LogoutResponse(BaseModel):
    success: bool
    message: str
