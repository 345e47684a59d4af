"""
Order Service (Domain Logic).

Order lifecycle with its stock and debt-ledger side effects:
creation, item/status edits (net-change reconciliation) and deletion.

Every method only flushes. The caller commits once on success; any raised
error leaves the whole mutation to be rolled back (stock, items, ledger).
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import select, func, or_, String, cast
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from poscrm.app.core.guards import is_admin
from poscrm.app.core.exceptions import (
    BusinessRuleError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
)
from poscrm.app.domain.ledger.balance import ZERO, per_currency, to_money
from poscrm.app.domain.ledger.currency_policy import (
    CurrencyPolicy,
    default_currency_policy,
    get_currency_policy,
)
from poscrm.app.domain.ledger.ledger_store import LedgerStore
from poscrm.app.domain.orders.item_diff import ItemLine, diff_items, items_equal, merge_lines
from poscrm.app.domain.orders.stock import StockReconciler
from poscrm.app.models.enums import UserRole
from poscrm.app.models.ledger_entry import DebtLedgerEntry
from poscrm.app.models.ledger_enums import Currency, LedgerEntryKind
from poscrm.app.models.order import Order, OrderItem
from poscrm.app.models.order_enums import OrderStatus, MUTABLE_ORDER_STATUSES
from poscrm.app.models.user import User
from poscrm.app.schemas.order import OrderCreate, OrderUpdate

logger = logging.getLogger("poscrm.orders")


@dataclass
class OrderUpdateResult:
    """Outcome of an admin edit."""
    order: Order
    items_updated: bool
    status_changed: bool
    ledger_entries: List[DebtLedgerEntry] = field(default_factory=list)
    net_change: Dict[Currency, Decimal] = field(default_factory=per_currency)


def check_status(status: OrderStatus) -> None:
    """Only PENDING and COMPLETED can be set through the API."""
    if status not in MUTABLE_ORDER_STATUSES:
        raise BusinessRuleError(
            f"Status {status.value} cannot be set. Allowed: "
            + ", ".join(s.value for s in MUTABLE_ORDER_STATUSES),
            error_code="ERR_ORDER_002",
            details={"status": status.value}
        )


class OrderService:
    """
    Args:
        currency_policy: Maps product categories to settlement currencies
    """

    def __init__(self, currency_policy: CurrencyPolicy = default_currency_policy):
        self.currency_policy = currency_policy

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get_order(db: AsyncSession, order_id: int, for_update: bool = False) -> Order:
        """
        Load an order with items and products.

        `for_update` locks the order row so edits of one order serialize.
        """
        query = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await db.execute(query)
        order = result.scalar_one_or_none()
        if not order:
            raise ResourceNotFoundError("Order", order_id)
        return order

    async def get_visible_order(self, db: AsyncSession, order_id: int, actor: dict) -> Order:
        """Admins see every order; clients only their own (404 otherwise)."""
        order = await self.get_order(db, order_id)
        if not is_admin(actor) and order.client_id != actor.get("user_id"):
            raise ResourceNotFoundError("Order", order_id)
        return order

    async def list_orders(
        self,
        db: AsyncSession,
        actor: dict,
        status: Optional[OrderStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Tuple[List[Order], int]:
        """Paginated orders, newest first. Clients only see their own."""
        conditions = []
        if not is_admin(actor):
            conditions.append(Order.client_id == actor.get("user_id"))
        if status:
            conditions.append(Order.status == status)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            conditions.append(or_(
                cast(Order.id, String).ilike(pattern),
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                Order.guest_name.ilike(pattern),
            ))

        count_query = (
            select(func.count(Order.id))
            .select_from(Order)
            .outerjoin(User, Order.client_id == User.id)
            .where(*conditions)
        )
        total = (await db.execute(count_query)).scalar() or 0

        query = (
            select(Order)
            .outerjoin(User, Order.client_id == User.id)
            .where(*conditions)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await db.execute(query)
        return list(result.scalars().all()), total

    def currency_totals(self, items: List[OrderItem]) -> Dict[Currency, Decimal]:
        """Line totals of `items` per settlement currency."""
        totals = per_currency()
        for item in items:
            currency = self.currency_policy(item.product.category)
            totals[currency] = totals[currency] + to_money(item.price * item.quantity)
        return totals

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _resolve_owner(self, db: AsyncSession, data: OrderCreate, actor: dict) -> Optional[int]:
        """Return the owning client id, or None for a guest order."""
        admin = is_admin(actor)

        if data.guest_name:
            if not admin:
                raise InsufficientPermissionsError("Only admins can create guest orders")
            if data.client_id:
                raise BusinessRuleError(
                    "An order belongs either to a client or to a guest, not both",
                    error_code="ERR_ORDER_001"
                )
            return None

        if data.client_id:
            if not admin and data.client_id != actor.get("user_id"):
                raise InsufficientPermissionsError("Only admins can assign orders to other clients")
            client = await db.get(User, data.client_id)
            if not client or client.role != UserRole.CLIENT:
                raise ResourceNotFoundError("Client", data.client_id)
            return client.id

        if admin:
            raise BusinessRuleError(
                "Either client_id or guest_name is required",
                error_code="ERR_ORDER_001"
            )
        return actor.get("user_id")

    async def create_order(self, db: AsyncSession, data: OrderCreate, actor: dict) -> Order:
        """
        Create an order.

        Flow:
        1. Resolve owner (client or guest)
        2. Validate and decrement stock (all-or-nothing)
        3. Snapshot prices into order items
        4. Apply discount to its currency bucket
        5. Pending client orders: one ORDER_DEBIT ledger entry per currency
        """
        check_status(data.status)
        client_id = await self._resolve_owner(db, data, actor)

        requested = merge_lines(
            ItemLine(product_id=item.product_id, quantity=item.quantity, price=ZERO)
            for item in data.items
        )
        products = await StockReconciler.reserve(
            db, [(line.product_id, line.quantity) for line in requested], require_enabled=True
        )

        order = Order(
            client_id=client_id,
            guest_name=data.guest_name if client_id is None else None,
            guest_email=data.guest_email if client_id is None else None,
            guest_phone=data.guest_phone if client_id is None else None,
            status=data.status,
            original_status=data.status,
            discount_currency=data.discount_currency,
        )

        gross = per_currency()
        for line in requested:
            product = products[line.product_id]
            item = OrderItem(product_id=product.id, quantity=line.quantity, price=product.price)
            item.product = product
            order.items.append(item)
            currency = self.currency_policy(product.category)
            gross[currency] = gross[currency] + to_money(product.price * line.quantity)

        discount = min(to_money(data.discount), gross[data.discount_currency])
        charged = dict(gross)
        charged[data.discount_currency] = gross[data.discount_currency] - discount

        order.discount_amount = discount
        order.original_total = sum(gross.values(), ZERO)
        order.total_amount = sum(charged.values(), ZERO)

        db.add(order)
        await db.flush()

        if client_id is not None and data.status == OrderStatus.PENDING:
            notes = f"Debt increase from pending order #{order.id}"
            if discount > 0:
                notes += f" (Discount: {discount} {data.discount_currency.value})"
            for currency, amount in charged.items():
                if amount > 0:
                    await LedgerStore.append(
                        db,
                        client_id=client_id,
                        currency=currency,
                        amount=-amount,
                        kind=LedgerEntryKind.ORDER_DEBIT,
                        notes=notes,
                        created_by=actor.get("user_id"),
                        order_id=order.id,
                    )

        logger.info(
            "Order %s created (client=%s, status=%s, total=%s)",
            order.id, client_id, order.status.value, order.total_amount
        )
        return order

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_order(
        self,
        db: AsyncSession,
        order_id: int,
        data: OrderUpdate,
        actor: dict
    ) -> OrderUpdateResult:
        """
        Admin edit of status and/or items.

        Item replacement:
        1. No-op if products and quantities are unchanged (any order)
        2. Restore stock of stored items, then drop them
        3. Validate and decrement stock for the new items
        4. Append one ledger entry per currency with a non-zero net change
        5. Recompute totals (optionally keeping the stored discount)
        """
        if data.status is not None:
            check_status(data.status)
        order = await self.get_order(db, order_id, for_update=True)

        status_changed = data.status is not None and data.status != order.status
        if data.status is not None:
            order.status = data.status

        result = OrderUpdateResult(order=order, items_updated=False, status_changed=status_changed)

        if data.items is None:
            await db.flush()
            return result

        old_lines = [
            ItemLine(
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
                name=item.product.name,
                category=item.product.category,
            )
            for item in order.items
        ]
        old_prices = {line.product_id: line.price for line in old_lines}
        requested = merge_lines(
            ItemLine(product_id=item.product_id, quantity=item.quantity, price=item.price)
            for item in data.items
        )

        if items_equal(old_lines, requested):
            logger.info("Order %s items unchanged, skipping stock and ledger updates", order_id)
            await db.flush()
            return result

        await StockReconciler.restore(db, [(line.product_id, line.quantity) for line in old_lines])
        order.items.clear()
        await db.flush()

        products = await StockReconciler.reserve(
            db, [(line.product_id, line.quantity) for line in requested], require_enabled=False
        )

        new_lines = []
        for line in requested:
            product = products[line.product_id]
            if line.price is not None:
                price = to_money(line.price)
            else:
                price = old_prices.get(product.id, product.price)
            new_lines.append(ItemLine(
                product_id=product.id,
                quantity=line.quantity,
                price=price,
                name=product.name,
                category=product.category,
            ))
            item = OrderItem(product_id=product.id, quantity=line.quantity, price=price)
            item.product = product
            order.items.append(item)

        diff = diff_items(old_lines, new_lines)
        net_change = diff.net_change(self.currency_policy)
        result.net_change = net_change
        result.items_updated = True

        if order.client_id is not None:
            notes = diff.note(order.id)
            for currency, change in net_change.items():
                if change == 0:
                    continue
                entry = await LedgerStore.append(
                    db,
                    client_id=order.client_id,
                    currency=currency,
                    amount=-change,
                    kind=LedgerEntryKind.ORDER_DEBIT if change > 0 else LedgerEntryKind.ORDER_CREDIT,
                    notes=notes,
                    created_by=actor.get("user_id"),
                    order_id=order.id,
                )
                result.ledger_entries.append(entry)

        gross = sum((line.line_total for line in new_lines), ZERO)
        order.original_total = to_money(gross)
        if data.preserve_discount and order.discount_amount and order.discount_amount > 0:
            order.total_amount = max(ZERO, order.original_total - to_money(order.discount_amount))
        else:
            order.discount_amount = ZERO
            order.total_amount = order.original_total

        await db.flush()
        logger.info(
            "Order %s items reconciled: net change %s, %s ledger entries",
            order_id,
            {currency.value: str(amount) for currency, amount in net_change.items()},
            len(result.ledger_entries)
        )
        return result

    async def update_status(self, db: AsyncSession, order_id: int, status: OrderStatus) -> Order:
        """Change only the status. No stock or ledger effect."""
        check_status(status)
        order = await self.get_order(db, order_id, for_update=True)
        order.status = status
        await db.flush()
        return order

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_order(self, db: AsyncSession, order_id: int) -> int:
        """
        Restore stock for every item, then delete the order and its items.

        Ledger entries written for the order stay in place.

        Returns:
            Number of order items whose stock was restored
        """
        order = await self.get_order(db, order_id, for_update=True)
        lines = [(item.product_id, item.quantity) for item in order.items]

        await StockReconciler.restore(db, lines)
        await db.delete(order)
        await db.flush()

        logger.info("Order %s deleted, stock restored for %s items", order_id, len(lines))
        return len(lines)


def get_order_service(currency_policy: CurrencyPolicy = Depends(get_currency_policy)) -> OrderService:
    """FastAPI dependency."""
    return OrderService(currency_policy)
