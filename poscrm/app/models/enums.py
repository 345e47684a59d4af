"""
User roles enumeration.

Defines the role types for the POS CRM system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Shop staff managing clients, products, orders and debt
        CLIENT: Registered customer; owns orders and a debt balance
    """
    ADMIN = "ADMIN"
    CLIENT = "CLIENT"
