"""
Product database model.

Inventory item with price and stock counter.
"""

from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, Enum
from sqlalchemy.sql import func
from poscrm.app.db.session import Base
from poscrm.app.models.product_enums import ProductCategory, StockStatus


class Product(Base):
    """
    Product model.

    `stock_quantity` is only changed by the stock reconciler (order create,
    edit, delete) and by explicit admin edits.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    imei = Column(String(255), nullable=True)
    barcode = Column(String(255), unique=True, nullable=True, index=True)

    # Classification
    category = Column(Enum(ProductCategory), default=ProductCategory.ACCESSORIES, nullable=False, index=True)
    subcategory = Column(String(50), nullable=True, index=True)
    model = Column(String(100), nullable=True)
    color = Column(String(50), nullable=True)
    storage_gb = Column(String(50), nullable=True)

    # Pricing & inventory
    price = Column(Numeric(10, 2), nullable=False, default=0)
    stock_quantity = Column(Integer, nullable=False, default=0)
    stock_status = Column(Enum(StockStatus), default=StockStatus.ENABLED, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock_quantity})>"
