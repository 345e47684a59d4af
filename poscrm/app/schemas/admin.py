"""
Admin API Schema Definitions.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_username: Optional[str]
    action: str
    target_type: Optional[str]
    target_id: Optional[int]
    meta_data: Optional[dict]
    ip_address: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for audit trail list."""
    logs: List[AuditLogResponse]
    total: int
