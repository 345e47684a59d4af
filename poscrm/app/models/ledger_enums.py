"""
Debt ledger enumerations.
"""

import enum


class Currency(str, enum.Enum):
    """Settlement currencies."""
    EUR = "EUR"
    MKD = "MKD"


class LedgerEntryKind(str, enum.Enum):
    """
    Ledger entry kind.

    The signed amount alone determines the effect on debt; the kind records
    what produced the entry.
    """
    ORDER_DEBIT = "ORDER_DEBIT"  # Order created or edited upwards
    ORDER_CREDIT = "ORDER_CREDIT"  # Order edited downwards
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"  # Admin action (payment, correction)
