"""
Order and OrderItem database models.

An order belongs either to a registered client or to a guest identified by
free-text contact fields. Item prices are snapshotted at order time.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from poscrm.app.db.session import Base
from poscrm.app.models.order_enums import OrderStatus
from poscrm.app.models.ledger_enums import Currency


class Order(Base):
    """
    Order model.

    `total_amount` is the charged (post-discount) total,
    `original_total` the sum of line totals before discount.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership: client XOR guest
    client_id = Column(Integer, ForeignKey('users.id', ondelete="SET NULL"), nullable=True, index=True)
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(50), nullable=True)

    # Lifecycle
    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    original_status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)

    # Financials
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    original_total = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_currency = Column(Enum(Currency), default=Currency.EUR, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="OrderItem.id",
    )
    client = relationship("User", lazy="selectin")

    @property
    def is_guest(self) -> bool:
        return self.client_id is None

    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.status.value}', total={self.total_amount})>"


class OrderItem(Base):
    """
    Order line.

    Removed together with its order (FK cascade).
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('products.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="selectin")

    @property
    def line_total(self):
        return self.price * self.quantity

    def __repr__(self):
        return f"<OrderItem(order_id={self.order_id}, product_id={self.product_id}, qty={self.quantity})>"
