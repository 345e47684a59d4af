"""
Balance Deriver (Domain Logic).

Read-only derivations over the debt ledger and completed orders.
Nothing here is cached: every call re-sums the ledger, so results depend
only on which entries exist.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from fastapi import Depends
from sqlalchemy import select, func, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from poscrm.app.domain.ledger.currency_policy import (
    CurrencyPolicy,
    default_currency_policy,
    get_currency_policy,
)
from poscrm.app.models.ledger_entry import DebtLedgerEntry
from poscrm.app.models.ledger_enums import Currency
from poscrm.app.models.order import Order, OrderItem
from poscrm.app.models.order_enums import OrderStatus
from poscrm.app.models.product import Product

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Normalize a DB aggregate (Decimal, float, None) to a 2-place Decimal."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def debt_from_sum(ledger_sum) -> Decimal:
    """Debt is the negated ledger sum (positive = owed, negative = credit)."""
    return ZERO - to_money(ledger_sum)


def per_currency(values: Optional[Dict[Currency, Decimal]] = None) -> Dict[Currency, Decimal]:
    """A {currency: amount} map with every currency present."""
    result = {currency: ZERO for currency in Currency}
    if values:
        result.update(values)
    return result


@dataclass
class DebtHistory:
    """Debt of a client in one currency right before and after an entry."""
    debt_before: Decimal
    debt_after: Decimal


class BalanceDeriver:
    """
    Derives debt and revenue figures.

    Args:
        currency_policy: Maps product categories to currencies for revenue
    """

    def __init__(self, currency_policy: CurrencyPolicy = default_currency_policy):
        self.currency_policy = currency_policy

    async def current_balance(self, db: AsyncSession, client_id: int, currency: Currency) -> Decimal:
        """Debt of one client in one currency: -SUM(amount)."""
        result = await db.execute(
            select(func.coalesce(func.sum(DebtLedgerEntry.amount), 0)).where(
                DebtLedgerEntry.client_id == client_id,
                DebtLedgerEntry.currency == currency
            )
        )
        return debt_from_sum(result.scalar())

    async def balances(self, db: AsyncSession, client_id: int) -> Dict[Currency, Decimal]:
        """Debt of one client in every currency."""
        return await self.aggregate_debt(db, client_ids=[client_id])

    async def aggregate_debt(
        self,
        db: AsyncSession,
        client_ids: Optional[Iterable[int]] = None
    ) -> Dict[Currency, Decimal]:
        """
        Total debt per currency over a set of clients (all clients if None).
        """
        query = select(
            DebtLedgerEntry.currency,
            func.coalesce(func.sum(DebtLedgerEntry.amount), 0)
        ).group_by(DebtLedgerEntry.currency)

        if client_ids is not None:
            query = query.where(DebtLedgerEntry.client_id.in_(list(client_ids)))

        result = await db.execute(query)
        return per_currency({currency: debt_from_sum(total) for currency, total in result.all()})

    async def revenue(self, db: AsyncSession, client_id: Optional[int] = None) -> Dict[Currency, Decimal]:
        """
        Revenue per currency: line totals of COMPLETED orders.

        Computed from order items, independently of the ledger. Lines are
        grouped by product category in SQL and routed through the currency
        policy here.
        """
        line_total = OrderItem.quantity * OrderItem.price
        query = (
            select(Product.category, func.coalesce(func.sum(line_total), 0))
            .select_from(OrderItem)
            .join(Order, OrderItem.order_id == Order.id)
            .join(Product, OrderItem.product_id == Product.id)
            .where(Order.status == OrderStatus.COMPLETED)
            .group_by(Product.category)
        )
        if client_id is not None:
            query = query.where(Order.client_id == client_id)

        result = await db.execute(query)

        totals = per_currency()
        for category, total in result.all():
            currency = self.currency_policy(category)
            totals[currency] = totals[currency] + to_money(total)
        return totals

    async def history(self, db: AsyncSession, entry: DebtLedgerEntry) -> DebtHistory:
        """
        Debt right before and right after `entry`.

        "Before" sums the same client+currency entries that precede it
        (timestamp, then id). "After" applies the entry's own signed amount.
        """
        result = await db.execute(
            select(func.coalesce(func.sum(DebtLedgerEntry.amount), 0)).where(
                DebtLedgerEntry.client_id == entry.client_id,
                DebtLedgerEntry.currency == entry.currency,
                or_(
                    DebtLedgerEntry.created_at < entry.created_at,
                    and_(
                        DebtLedgerEntry.created_at == entry.created_at,
                        DebtLedgerEntry.id < entry.id
                    )
                )
            )
        )
        before = debt_from_sum(result.scalar())
        after = before - to_money(entry.amount)
        return DebtHistory(debt_before=before, debt_after=after)

    async def histories(self, db: AsyncSession, entries: List[DebtLedgerEntry]) -> Dict[int, DebtHistory]:
        """History for each entry, keyed by entry id."""
        return {entry.id: await self.history(db, entry) for entry in entries}


def get_balance_deriver(currency_policy: CurrencyPolicy = Depends(get_currency_policy)) -> BalanceDeriver:
    """FastAPI dependency."""
    return BalanceDeriver(currency_policy)
