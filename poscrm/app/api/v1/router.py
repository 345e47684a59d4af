"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from poscrm.app.api.v1.endpoints import auth, users, products, orders, admin

router = APIRouter()

router.include_router(auth.router)
router.include_router(users.router)
router.include_router(products.router)
router.include_router(orders.router)
router.include_router(admin.router)
