"""
Database seeding script.

Creates an ADMIN login, a few clients and a starter product catalogue for
development. Run after the database is set up:

    python -m poscrm.seed_users
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from poscrm.app.db.session import AsyncSessionLocal, engine, Base
from poscrm.app.models.user import User
from poscrm.app.models.audit_log import AuditLog
from poscrm.app.models.product import Product
from poscrm.app.models.order import Order, OrderItem
from poscrm.app.models.ledger_entry import DebtLedgerEntry
from poscrm.app.models.enums import UserRole
from poscrm.app.models.product_enums import ProductCategory
from poscrm.app.core.security import get_password_hash

ADMIN_EMAIL = "admin@poscrm.com"
ADMIN_PASSWORD = "admin123"

CLIENTS = [
    ("Marko Petrovski", "marko@example.com", "+389 70 111 222"),
    ("Ana Stojanovska", "ana@example.com", "+389 71 333 444"),
    ("Bojan Trajkov", None, "+389 72 555 666"),
]

PRODUCTS = [
    dict(name="iPhone 15 128GB", category=ProductCategory.SMARTPHONES, subcategory="iPhone",
         model="15", color="Black", storage_gb="128GB", price=Decimal("899.00"), stock_quantity=5),
    dict(name="Galaxy S24 256GB", category=ProductCategory.SMARTPHONES, subcategory="Samsung",
         model="S24", color="Gray", storage_gb="256GB", price=Decimal("849.00"), stock_quantity=4),
    dict(name="USB-C Charger 20W", category=ProductCategory.ACCESSORIES, subcategory="Chargers",
         price=Decimal("900.00"), stock_quantity=30),
    dict(name="Tempered Glass", category=ProductCategory.ACCESSORIES, subcategory="Protection",
         price=Decimal("350.00"), stock_quantity=100),
    dict(name="Silicone Case", category=ProductCategory.ACCESSORIES, subcategory="Cases",
         price=Decimal("600.00"), stock_quantity=50),
]


async def seed():
    """Idempotent: does nothing if the admin already exists."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("Starting seeding...")

        result = await db.execute(select(User).where(User.email == ADMIN_EMAIL))
        if result.scalar_one_or_none():
            print("ADMIN user already exists, skipping seeding")
            return

        db.add(User(
            name="Administrator",
            email=ADMIN_EMAIL,
            hashed_password=get_password_hash(ADMIN_PASSWORD),
            role=UserRole.ADMIN,
            is_active=True
        ))
        print(f"Created ADMIN user ({ADMIN_EMAIL} / {ADMIN_PASSWORD})")

        for name, email, phone in CLIENTS:
            db.add(User(name=name, email=email, phone=phone, role=UserRole.CLIENT))
        print(f"Created {len(CLIENTS)} clients")

        for product in PRODUCTS:
            db.add(Product(**product))
        print(f"Created {len(PRODUCTS)} products")

        await db.commit()
        print("Seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed())
