"""
Debt ledger schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict
from poscrm.app.models.ledger_enums import Currency, LedgerEntryKind


class DebtAdjustmentRequest(BaseModel):
    """
    Manual debt adjustment.

    Positive amounts reduce debt (payments), negative amounts increase it.
    """
    amount: Decimal = Field(..., max_digits=12, description="Signed, non-zero")
    currency: Currency
    notes: Optional[str] = Field(None, max_length=1000)


class LedgerEntryResponse(BaseModel):
    id: int
    client_id: int
    currency: Currency
    amount: float
    kind: LedgerEntryKind
    notes: Optional[str]
    order_id: Optional[int]
    created_by: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class DebtAdjustmentResponse(BaseModel):
    """Entry written plus the client's debt around it."""
    entry: LedgerEntryResponse
    debt_before: float
    debt_after: float
    balances: Dict[Currency, float]


class DebtLogItem(BaseModel):
    """Ledger entry as shown in the debt log."""
    id: int
    client_id: int
    client_name: Optional[str]
    client_email: Optional[str]
    currency: Currency
    amount: float
    kind: LedgerEntryKind
    notes: Optional[str]
    order_id: Optional[int]
    created_by_name: str
    created_at: datetime
    debt_before: float
    debt_after: float


class DebtLogResponse(BaseModel):
    logs: List[DebtLogItem]
    total: int
    page: int
    page_size: int
    total_pages: int


class DebtLogCleanupResponse(BaseModel):
    success: bool
    deleted_count: int
    cutoff: datetime
