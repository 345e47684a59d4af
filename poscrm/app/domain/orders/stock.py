"""
Stock Reconciler (Domain Logic).

Keeps product stock in step with order items. Product rows are locked
(SELECT ... FOR UPDATE) for the rest of the caller's transaction.
"""

import logging
from typing import Dict, Iterable, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from poscrm.app.core.exceptions import InsufficientStockError, ProductUnavailableError
from poscrm.app.models.product import Product
from poscrm.app.models.product_enums import StockStatus

logger = logging.getLogger("poscrm.stock")

# (product_id, quantity)
StockLine = Tuple[int, int]


def _totals(lines: Iterable[StockLine]) -> Dict[int, int]:
    totals: Dict[int, int] = {}
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


class StockReconciler:

    @staticmethod
    async def load_products(db: AsyncSession, product_ids: Iterable[int]) -> Dict[int, Product]:
        """Fetch and lock products by id, ordered by id to keep lock order stable."""
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        result = await db.execute(
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {product.id: product for product in result.scalars().all()}

    @staticmethod
    async def reserve(
        db: AsyncSession,
        lines: Iterable[StockLine],
        require_enabled: bool = True
    ) -> Dict[int, Product]:
        """
        Validate and decrement stock for every line.

        All lines are validated before any stock is touched, so a rejected
        request leaves stock as it was.

        Args:
            db: Database session (transaction managed by caller)
            lines: (product_id, quantity) pairs; repeated products are summed
            require_enabled: Reject disabled products (order creation)

        Returns:
            The locked products keyed by id

        Raises:
            ProductUnavailableError: Unknown or disabled product
            InsufficientStockError: Requested quantity exceeds stock
        """
        totals = _totals(lines)
        products = await StockReconciler.load_products(db, totals.keys())

        for product_id, quantity in totals.items():
            product = products.get(product_id)
            if product is None:
                raise ProductUnavailableError(product_id, f"Product {product_id} not found")
            if require_enabled and product.stock_status == StockStatus.DISABLED:
                raise ProductUnavailableError(product_id, f"Product {product.name} is not available")
            if product.stock_quantity < quantity:
                logger.warning(
                    "Stock check failed for product %s: available=%s requested=%s",
                    product_id, product.stock_quantity, quantity
                )
                raise InsufficientStockError(product_id, product.name, product.stock_quantity, quantity)

        for product_id, quantity in totals.items():
            products[product_id].stock_quantity -= quantity

        await db.flush()
        return products

    @staticmethod
    async def restore(db: AsyncSession, lines: Iterable[StockLine]) -> int:
        """
        Put the quantities of `lines` back into stock.

        Returns:
            Number of distinct products restored
        """
        totals = _totals(lines)
        products = await StockReconciler.load_products(db, totals.keys())

        for product_id, quantity in totals.items():
            product = products.get(product_id)
            if product is None:
                # Product rows are never deleted while referenced by order items
                continue
            product.stock_quantity += quantity

        await db.flush()
        logger.info("Restored stock for %s products", len(totals))
        return len(totals)
