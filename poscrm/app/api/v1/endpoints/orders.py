"""
Order API Endpoints.

Every mutation runs in a single transaction: stock, order items and debt
ledger entries are committed together or not at all. Audit rows are
written after the commit.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from poscrm.app.db.session import get_db
from poscrm.app.models.order import Order
from poscrm.app.models.order_enums import OrderStatus
from poscrm.app.schemas.order import (
    OrderCreate, OrderUpdate, OrderStatusUpdate,
    OrderItemResponse, OrderResponse, OrderListResponse,
    OrderUpdateResponse, DeleteOrderResponse, RevenueResponse,
)
from poscrm.app.core.dependencies import get_current_user
from poscrm.app.core.guards import require_admin
from poscrm.app.domain.orders.order_service import OrderService, get_order_service
from poscrm.app.domain.ledger.balance import BalanceDeriver, get_balance_deriver
from poscrm.app.services.audit import log_admin_action, log_event, AuditAction
from poscrm.app.services.invoice_pdf import render_invoice

router = APIRouter(prefix="/orders", tags=["Orders"])


def build_order_response(order: Order, service: OrderService) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        client_id=order.client_id,
        client_name=order.client.name if order.client is not None else None,
        guest_name=order.guest_name,
        guest_email=order.guest_email,
        guest_phone=order.guest_phone,
        status=order.status,
        original_status=order.original_status,
        total_amount=order.total_amount,
        original_total=order.original_total,
        discount_amount=order.discount_amount,
        discount_currency=order.discount_currency,
        currency_totals=service.currency_totals(order.items),
        items=[
            OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                product_name=item.product.name,
                category=item.product.category,
                quantity=item.quantity,
                price=item.price,
                line_total=item.line_total,
            )
            for item in order.items
        ],
        created_at=order.created_at,
    )


@router.get("", response_model=OrderListResponse)
async def list_orders(
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Order id, client name/email or guest name"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db)
):
    """Admins see all orders; clients only their own."""
    orders, total = await service.list_orders(
        db, current_user, status=status_filter, search=search, page=page, page_size=page_size
    )
    return OrderListResponse(
        orders=[build_order_response(order, service) for order in orders],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/revenue", response_model=RevenueResponse)
async def get_revenue(
    client_id: Optional[int] = Query(None),
    admin: dict = Depends(require_admin),
    deriver: BalanceDeriver = Depends(get_balance_deriver),
    db: AsyncSession = Depends(get_db)
):
    """Revenue of completed orders per currency (admin-only)."""
    revenue = await deriver.revenue(db, client_id=client_id)
    return RevenueResponse(revenue=revenue, client_id=client_id)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    current_user: dict = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db)
):
    order = await service.get_visible_order(db, order_id, current_user)
    return build_order_response(order, service)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: OrderCreate,
    current_user: dict = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Create an order.

    Stock is decremented for every line; pending client orders increase
    the client's debt in each currency they contain.
    """
    order = await service.create_order(db, order_data, current_user)
    await db.commit()

    order = await service.get_order(db, order.id)

    await log_event(
        db=db,
        action=AuditAction.ORDER_CREATED,
        actor_id=current_user.get("user_id"),
        actor_username=current_user.get("sub"),
        target_type="order",
        target_id=order.id,
        metadata={
            "client_id": order.client_id,
            "status": order.status.value,
            "total_amount": str(order.total_amount),
        }
    )

    return build_order_response(order, service)


@router.put("/{order_id}", response_model=OrderUpdateResponse)
async def update_order(
    order_id: int,
    order_data: OrderUpdate,
    admin: dict = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit an order's items and/or status (admin-only).

    Item changes write one ledger entry per currency whose total changed.
    Resubmitting the same products and quantities changes nothing.
    """
    result = await service.update_order(db, order_id, order_data, admin)
    await db.commit()

    entry_ids = [entry.id for entry in result.ledger_entries]
    order = await service.get_order(db, order_id)

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.ORDER_UPDATED,
        target_type="order",
        target_id=order_id,
        metadata={
            "items_updated": result.items_updated,
            "status": order.status.value,
            "ledger_entry_ids": entry_ids,
        }
    )

    return OrderUpdateResponse(
        order=build_order_response(order, service),
        items_updated=result.items_updated,
        status_changed=result.status_changed,
        net_change=result.net_change,
        ledger_entry_ids=entry_ids
    )


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    status_data: OrderStatusUpdate,
    admin: dict = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db)
):
    """Change only the status (admin-only). Stock and debt are untouched."""
    await service.update_status(db, order_id, status_data.status)
    await db.commit()

    order = await service.get_order(db, order_id)

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.ORDER_STATUS_CHANGED,
        target_type="order",
        target_id=order_id,
        metadata={"status": order.status.value}
    )

    return build_order_response(order, service)


@router.delete("/{order_id}", response_model=DeleteOrderResponse)
async def delete_order(
    order_id: int,
    admin: dict = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete an order and put its quantities back into stock (admin-only).

    Debt entries the order produced are kept.
    """
    restored = await service.delete_order(db, order_id)
    await db.commit()

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.ORDER_DELETED,
        target_type="order",
        target_id=order_id,
        metadata={"items_restored": restored}
    )

    return DeleteOrderResponse(
        success=True,
        message=f"Order #{order_id} deleted",
        order_id=order_id,
        items_restored=restored
    )


@router.get("/{order_id}/invoice")
async def get_invoice(
    order_id: int,
    current_user: dict = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
    deriver: BalanceDeriver = Depends(get_balance_deriver),
    db: AsyncSession = Depends(get_db)
):
    """PDF invoice. Client orders include the client's current debt."""
    order = await service.get_visible_order(db, order_id, current_user)

    debt = None
    if order.client_id is not None:
        debt = await deriver.balances(db, order.client_id)

    pdf = render_invoice(order, debt=debt, currency_policy=service.currency_policy)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=invoice-{order_id}.pdf"}
    )
