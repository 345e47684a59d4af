"""
Currency policy.

Single place that decides which currency a product line settles in.
Every net-change, revenue and invoice computation goes through a policy
callable so the rule can be swapped (e.g. in tests) without touching SQL.
"""

from typing import Callable

from poscrm.app.models.ledger_enums import Currency
from poscrm.app.models.product_enums import ProductCategory

CurrencyPolicy = Callable[[ProductCategory], Currency]


def default_currency_policy(category: ProductCategory) -> Currency:
    """Smartphones are priced and settled in EUR, everything else in MKD."""
    if category == ProductCategory.SMARTPHONES:
        return Currency.EUR
    return Currency.MKD


def get_currency_policy() -> CurrencyPolicy:
    """FastAPI dependency returning the active policy."""
    return default_currency_policy
