"""
Product Schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from poscrm.app.models.product_enums import ProductCategory, StockStatus


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    imei: Optional[str] = Field(None, max_length=255)
    barcode: Optional[str] = Field(None, max_length=255)
    category: ProductCategory = ProductCategory.ACCESSORIES
    subcategory: Optional[str] = Field(None, max_length=50)
    model: Optional[str] = Field(None, max_length=100)
    color: Optional[str] = Field(None, max_length=50)
    storage_gb: Optional[str] = Field(None, max_length=50)
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    stock_quantity: int = Field(0, ge=0)
    stock_status: StockStatus = StockStatus.ENABLED


class ProductUpdate(BaseModel):
    """Schema for updating a product (all fields optional)."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    imei: Optional[str] = Field(None, max_length=255)
    barcode: Optional[str] = Field(None, max_length=255)
    category: Optional[ProductCategory] = None
    subcategory: Optional[str] = Field(None, max_length=50)
    model: Optional[str] = Field(None, max_length=100)
    color: Optional[str] = Field(None, max_length=50)
    storage_gb: Optional[str] = Field(None, max_length=50)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    stock_quantity: Optional[int] = Field(None, ge=0)
    stock_status: Optional[StockStatus] = None

    @field_validator("name", "category", "price", "stock_quantity", "stock_status")
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged; these columns are NOT NULL
        if value is None:
            raise ValueError("may not be null")
        return value


class ProductResponse(BaseModel):
    """Schema for product response."""
    id: int
    name: str
    description: Optional[str]
    imei: Optional[str]
    barcode: Optional[str]
    category: ProductCategory
    subcategory: Optional[str]
    model: Optional[str]
    color: Optional[str]
    storage_gb: Optional[str]
    price: float
    stock_quantity: int
    stock_status: StockStatus
    created_at: datetime

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    """Schema for paginated product list."""
    products: List[ProductResponse]
    total: int
    page: int
    page_size: int
