"""
Debt Ledger Entry database model.

Append-only record of signed debt adjustments per client and currency.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum, Text, Index
from poscrm.app.db.session import Base
from poscrm.app.models.ledger_enums import Currency, LedgerEntryKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DebtLedgerEntry(Base):
    """
    Debt Ledger Entry model.

    amount < 0 increases the client's debt, amount > 0 reduces it.
    Debt for (client, currency) is -SUM(amount); there is no stored balance.
    NO updates allowed; deletes only through the retention purge.
    """
    __tablename__ = "debt_ledger_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner
    client_id = Column(Integer, ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)

    # Financials
    currency = Column(Enum(Currency), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    kind = Column(Enum(LedgerEntryKind), nullable=False)
    notes = Column(Text, nullable=True)

    # Provenance (created_by NULL = system)
    created_by = Column(Integer, ForeignKey('users.id', ondelete="SET NULL"), nullable=True)
    order_id = Column(Integer, ForeignKey('orders.id', ondelete="SET NULL"), nullable=True, index=True)

    # Immutable - no updated_at. Set client-side for sub-second ordering.
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('ix_debt_ledger_client_currency', 'client_id', 'currency'),
    )

    def __repr__(self):
        return f"<DebtLedgerEntry(id={self.id}, client_id={self.client_id}, {self.currency.value} {self.amount})>"
