"""
Audit logging service for tracking admin actions and authentication events.

Audit rows are written after the business transaction has committed, so a
failed mutation never leaves an audit record behind.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from poscrm.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    # Clients
    CLIENT_CREATED = "CLIENT_CREATED"
    CLIENT_UPDATED = "CLIENT_UPDATED"
    CLIENT_DELETED = "CLIENT_DELETED"

    # Products
    PRODUCT_CREATED = "PRODUCT_CREATED"
    PRODUCT_UPDATED = "PRODUCT_UPDATED"
    PRODUCT_DELETED = "PRODUCT_DELETED"

    # Orders
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_UPDATED = "ORDER_UPDATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    ORDER_DELETED = "ORDER_DELETED"

    # Debt ledger
    DEBT_ADJUSTED = "DEBT_ADJUSTED"
    DEBT_LOGS_PURGED = "DEBT_LOGS_PURGED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log an admin or authentication event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Display name of actor
        target_type: Kind of object acted upon ("order", "client", ...)
        target_id: ID of the object acted upon
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_admin_action(
    db: AsyncSession,
    current_user: dict,
    action: str,
    target_type: str,
    target_id: Optional[int],
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an action taken by the authenticated admin in `current_user`."""
    return await log_event(
        db=db,
        action=action,
        actor_id=current_user.get("user_id"),
        actor_username=current_user.get("sub"),
        target_type=target_type,
        target_id=target_id,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    if target_id:
        query = query.where(AuditLog.target_id == target_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
