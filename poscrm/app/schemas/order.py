"""
Order Schemas.

Money in requests is Decimal; responses render it as float.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict
from poscrm.app.models.order_enums import OrderStatus
from poscrm.app.models.ledger_enums import Currency
from poscrm.app.models.product_enums import ProductCategory


class OrderItemCreate(BaseModel):
    """One requested line. The price is taken from the product."""
    product_id: int
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    """
    Schema for creating an order.

    Clients order for themselves. Admins pass either `client_id` or the
    guest contact fields.
    """
    client_id: Optional[int] = None
    guest_name: Optional[str] = Field(None, min_length=1, max_length=255)
    guest_email: Optional[str] = Field(None, max_length=255)
    guest_phone: Optional[str] = Field(None, max_length=50)
    items: List[OrderItemCreate] = Field(..., min_length=1)
    status: OrderStatus = OrderStatus.PENDING
    discount: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    discount_currency: Currency = Currency.EUR


class OrderItemUpdate(BaseModel):
    """
    One line of a replacement item set.

    Without a price, the stored snapshot is kept for products already on
    the order and the current product price is used for new ones.
    """
    product_id: int
    quantity: int = Field(..., ge=1)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class OrderUpdate(BaseModel):
    """Admin edit: replace items and/or change status."""
    items: Optional[List[OrderItemUpdate]] = Field(None, min_length=1)
    status: Optional[OrderStatus] = None
    preserve_discount: bool = False


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    category: ProductCategory
    quantity: int
    price: float
    line_total: float


class OrderResponse(BaseModel):
    """Order with items and per-currency totals."""
    id: int
    client_id: Optional[int]
    client_name: Optional[str]
    guest_name: Optional[str]
    guest_email: Optional[str]
    guest_phone: Optional[str]
    status: OrderStatus
    original_status: OrderStatus
    total_amount: float
    original_total: float
    discount_amount: float
    discount_currency: Currency
    currency_totals: Dict[Currency, float]
    items: List[OrderItemResponse]
    created_at: datetime


class OrderSummary(BaseModel):
    """Compact order row (profile pages)."""
    id: int
    status: OrderStatus
    total_amount: float
    discount_amount: float
    created_at: datetime

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    page: int
    page_size: int


class OrderUpdateResponse(BaseModel):
    """Edited order plus what the reconciliation did."""
    order: OrderResponse
    items_updated: bool
    status_changed: bool
    net_change: Dict[Currency, float]
    ledger_entry_ids: List[int]


class DeleteOrderResponse(BaseModel):
    success: bool
    message: str
    order_id: int
    items_restored: int


class RevenueResponse(BaseModel):
    """Completed-order revenue per currency."""
    revenue: Dict[Currency, float]
    client_id: Optional[int] = None
