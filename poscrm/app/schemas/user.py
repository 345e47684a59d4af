"""
User and client management schemas.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict
from poscrm.app.models.enums import UserRole
from poscrm.app.models.ledger_enums import Currency
from poscrm.app.schemas.order import OrderSummary


class ClientCreate(BaseModel):
    """Schema for creating a client (admin)."""
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = Field(None, description="Optional, unique when set")
    phone: Optional[str] = Field(None, max_length=50)


class UserUpdate(BaseModel):
    """
    Partial update of a user.

    `is_active` may only be changed by admins.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None

    @field_validator("name", "is_active")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class UserListItem(BaseModel):
    """Schema for user in list response."""
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    """Schema for list users response."""
    users: List[UserListItem]
    total: int
    page: int
    page_size: int


class FinancialSummary(BaseModel):
    """
    Money figures for one client.

    `debt` is signed per currency: positive = owed, negative = credit.
    """
    revenue: Dict[Currency, float]
    debt: Dict[Currency, float]
    order_counts: Dict[str, int]
    total_orders: int


class UserProfileResponse(BaseModel):
    """User with recent orders and financial summary."""
    user: UserListItem
    recent_orders: List[OrderSummary]
    financials: FinancialSummary


class DeleteUserResponse(BaseModel):
    success: bool
    message: str
    user_id: int
