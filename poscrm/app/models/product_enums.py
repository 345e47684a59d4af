"""
Product enumerations.
"""

import enum


class ProductCategory(str, enum.Enum):
    """Product category. Drives the settlement currency of a line."""
    SMARTPHONES = "SMARTPHONES"
    ACCESSORIES = "ACCESSORIES"


class StockStatus(str, enum.Enum):
    """Whether a product may be put on new orders."""
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"
