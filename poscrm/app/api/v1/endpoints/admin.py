"""
Admin API Endpoints.

Audit trail access.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from poscrm.app.db.session import get_db
from poscrm.app.schemas.admin import AuditTrailResponse, AuditLogResponse
from poscrm.app.core.guards import require_admin
from poscrm.app.services.audit import get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    target_type: Optional[str] = Query(None, description="order, client, product, debt_ledger, ..."),
    target_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get audit trail with optional filtering (admin-only).

    Most recent first.
    """
    logs = await get_audit_trail(
        db=db,
        target_type=target_type,
        target_id=target_id,
        action=action,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
