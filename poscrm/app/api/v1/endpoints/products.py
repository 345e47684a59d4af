"""
Product API Endpoints.

Catalogue reads for every authenticated user, writes for admins.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from poscrm.app.db.session import get_db
from poscrm.app.models.product import Product
from poscrm.app.models.product_enums import ProductCategory, StockStatus
from poscrm.app.models.order import OrderItem
from poscrm.app.schemas.product import (
    ProductCreate, ProductUpdate, ProductResponse, ProductListResponse
)
from poscrm.app.core.dependencies import get_current_user
from poscrm.app.core.guards import require_admin
from poscrm.app.core.exceptions import ResourceNotFoundError, BusinessRuleError
from poscrm.app.services.audit import log_admin_action, AuditAction

router = APIRouter(prefix="/products", tags=["Products"])


async def _get_product(db: AsyncSession, product_id: int) -> Product:
    product = await db.get(Product, product_id)
    if not product:
        raise ResourceNotFoundError("Product", product_id)
    return product


async def _ensure_barcode_free(db: AsyncSession, barcode: Optional[str], exclude_id: Optional[int] = None):
    if not barcode:
        return
    query = select(Product.id).where(Product.barcode == barcode)
    if exclude_id is not None:
        query = query.where(Product.id != exclude_id)
    if (await db.execute(query)).first():
        raise BusinessRuleError(
            f"A product with barcode '{barcode}' already exists",
            error_code="ERR_PRODUCT_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"barcode": barcode}
        )


@router.get("", response_model=ProductListResponse)
async def list_products(
    search: Optional[str] = Query(None, description="Name, model, barcode or IMEI"),
    category: Optional[ProductCategory] = Query(None),
    stock_status: Optional[StockStatus] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """List products, name order."""
    conditions = []
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(or_(
            Product.name.ilike(pattern),
            Product.model.ilike(pattern),
            Product.barcode.ilike(pattern),
            Product.imei.ilike(pattern),
        ))
    if category:
        conditions.append(Product.category == category)
    if stock_status:
        conditions.append(Product.stock_status == stock_status)

    total = (await db.execute(select(func.count(Product.id)).where(*conditions))).scalar()

    offset = (page - 1) * page_size
    result = await db.execute(
        select(Product).where(*conditions).order_by(Product.name, Product.id).offset(offset).limit(page_size)
    )

    return ProductListResponse(
        products=[ProductResponse.model_validate(p) for p in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return ProductResponse.model_validate(await _get_product(db, product_id))


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a product (admin-only)."""
    await _ensure_barcode_free(db, product_data.barcode)

    product = Product(**product_data.model_dump())
    db.add(product)
    await db.commit()
    await db.refresh(product)

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.PRODUCT_CREATED,
        target_type="product",
        target_id=product.id,
        metadata={"name": product.name, "stock_quantity": product.stock_quantity}
    )

    return ProductResponse.model_validate(product)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    product_data: ProductUpdate,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a product (admin-only).

    Price changes do not touch existing order items, which keep their
    snapshotted price.
    """
    product = await _get_product(db, product_id)
    changes = product_data.model_dump(exclude_unset=True)

    if "barcode" in changes:
        await _ensure_barcode_free(db, changes["barcode"], exclude_id=product_id)

    for field, value in changes.items():
        setattr(product, field, value)

    await db.commit()
    await db.refresh(product)

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.PRODUCT_UPDATED,
        target_type="product",
        target_id=product.id,
        metadata={"fields": sorted(changes.keys())}
    )

    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a product (admin-only). Refused while any order references it."""
    product = await _get_product(db, product_id)

    references = (await db.execute(
        select(func.count(OrderItem.id)).where(OrderItem.product_id == product_id)
    )).scalar()
    if references:
        raise BusinessRuleError(
            f"Product '{product.name}' is used in {references} order items and cannot be deleted",
            error_code="ERR_PRODUCT_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"product_id": product_id, "order_items": references}
        )

    name = product.name
    await db.delete(product)
    await db.commit()

    await log_admin_action(
        db=db,
        current_user=admin,
        action=AuditAction.PRODUCT_DELETED,
        target_type="product",
        target_id=product_id,
        metadata={"name": name}
    )
