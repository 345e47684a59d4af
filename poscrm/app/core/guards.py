"""
Security guards for role-based and ownership-based access control.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from poscrm.app.models.enums import UserRole
from poscrm.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/orders/revenue")
        async def revenue(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


# Dependency for admin-only endpoints
require_admin = require_role([UserRole.ADMIN])


def is_admin(current_user: dict) -> bool:
    return current_user.get("role") == UserRole.ADMIN.value


def verify_ownership(resource_owner_id: int, current_user: dict) -> bool:
    """
    Admins can access everything; clients only resources they own.
    """
    if is_admin(current_user):
        return True
    return current_user.get("user_id") == resource_owner_id


def enforce_ownership(resource_owner_id: int, current_user: dict, resource_name: str = "resource"):
    """
    Raise 403 unless `current_user` may access the resource.
    """
    if not verify_ownership(resource_owner_id, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied. You do not have permission to access this {resource_name}."
        )
