"""
Order enumerations.
"""

import enum


class OrderStatus(str, enum.Enum):
    """
    Order status enumeration.

    Only PENDING and COMPLETED are reachable through the API.
    APPROVED, SHIPPED and CANCELLED are kept for schema compatibility.
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Statuses accepted by create / update endpoints
MUTABLE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.COMPLETED)
