"""
Debt Ledger Store (Domain Logic).

Append-only persistence of signed debt adjustments.
Writes only flush; the caller owns the transaction so ledger rows commit or
roll back together with the order and stock changes that produced them.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional, Tuple, Union

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from poscrm.app.core.exceptions import LedgerValidationError
from poscrm.app.models.ledger_entry import DebtLedgerEntry
from poscrm.app.models.ledger_enums import Currency, LedgerEntryKind
from poscrm.app.models.user import User

logger = logging.getLogger("poscrm.ledger")

CENT = Decimal("0.01")
# Numeric(12,2) holds at most 10 integer digits
MAX_AMOUNT = Decimal("1e10")


@dataclass
class LedgerRecord:
    """Ledger entry joined with the names shown in debt logs."""
    entry: DebtLedgerEntry
    client_name: Optional[str]
    client_email: Optional[str]
    created_by_name: str


def parse_currency(value: Union[Currency, str]) -> Currency:
    """Validate a currency code."""
    try:
        return Currency(value)
    except ValueError:
        raise LedgerValidationError(
            f"Invalid currency '{value}'. Must be one of: {', '.join(c.value for c in Currency)}",
            details={"currency": str(value)}
        )


def parse_amount(value: Union[Decimal, int, float, str]) -> Decimal:
    """Validate a signed ledger amount and round it to cents."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise LedgerValidationError(f"Amount '{value}' is not a number", details={"amount": str(value)})

    if not amount.is_finite():
        raise LedgerValidationError("Amount must be a finite number", details={"amount": str(value)})
    if abs(amount) >= MAX_AMOUNT:
        raise LedgerValidationError("Amount is out of range", details={"amount": str(value)})

    try:
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise LedgerValidationError("Amount is out of range", details={"amount": str(value)})
    if amount == 0:
        raise LedgerValidationError("Amount must be non-zero", details={"amount": str(value)})
    return amount


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """UTC [start, end) of a calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class LedgerStore:

    @staticmethod
    async def append(
        db: AsyncSession,
        client_id: int,
        currency: Union[Currency, str],
        amount: Union[Decimal, int, float, str],
        kind: LedgerEntryKind,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
        order_id: Optional[int] = None,
    ) -> DebtLedgerEntry:
        """
        Append one ledger entry.

        Negative amounts increase debt, positive amounts reduce it. The
        resulting balance is never checked: clients may end up in credit.

        Args:
            db: Database session (transaction managed by caller)
            client_id: Owning client
            currency: EUR or MKD
            amount: Signed amount
            kind: What produced the entry
            notes: Human readable description
            created_by: Acting user, None for the system
            order_id: Order that produced the entry, if any

        Returns:
            The flushed entry (id and created_at assigned)
        """
        entry = DebtLedgerEntry(
            client_id=client_id,
            currency=parse_currency(currency),
            amount=parse_amount(amount),
            kind=LedgerEntryKind(kind),
            notes=notes,
            created_by=created_by,
            order_id=order_id,
        )
        db.add(entry)
        await db.flush()

        logger.info(
            "Ledger entry appended",
            extra={
                "ledger_entry_id": entry.id,
                "client_id": client_id,
                "currency": entry.currency.value,
                "amount": str(entry.amount),
                "kind": entry.kind.value,
            },
        )
        return entry

    @staticmethod
    async def query(
        db: AsyncSession,
        client_id: Optional[int] = None,
        client_name: Optional[str] = None,
        on_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[LedgerRecord], int]:
        """
        List ledger entries newest-first.

        Args:
            client_id: Only entries of this client
            client_name: Case-insensitive substring of the client's name
            on_date: Only entries created on this (UTC) day
            page: 1-based page number
            page_size: Entries per page

        Returns:
            (records on the page, total matching entries)
        """
        creator = aliased(User)

        conditions = []
        if client_id is not None:
            conditions.append(DebtLedgerEntry.client_id == client_id)
        if client_name:
            conditions.append(User.name.ilike(f"%{client_name.strip()}%"))
        if on_date is not None:
            start, end = day_bounds(on_date)
            conditions.append(DebtLedgerEntry.created_at >= start)
            conditions.append(DebtLedgerEntry.created_at < end)

        count_query = (
            select(func.count(DebtLedgerEntry.id))
            .select_from(DebtLedgerEntry)
            .outerjoin(User, DebtLedgerEntry.client_id == User.id)
            .where(*conditions)
        )
        total = (await db.execute(count_query)).scalar() or 0

        offset = (page - 1) * page_size
        query = (
            select(DebtLedgerEntry, User.name, User.email, creator.name)
            .outerjoin(User, DebtLedgerEntry.client_id == User.id)
            .outerjoin(creator, DebtLedgerEntry.created_by == creator.id)
            .where(*conditions)
            .order_by(DebtLedgerEntry.created_at.desc(), DebtLedgerEntry.id.desc())
            .offset(offset)
            .limit(page_size)
        )
        result = await db.execute(query)

        records = [
            LedgerRecord(
                entry=entry,
                client_name=name,
                client_email=email,
                created_by_name=creator_name or "System",
            )
            for entry, name, email, creator_name in result.all()
        ]
        return records, total

    @staticmethod
    async def purge_older_than(db: AsyncSession, cutoff: datetime) -> int:
        """
        Retention purge: delete every entry created before `cutoff`.

        This is the only delete path of the ledger. Balances derived
        afterwards no longer include the purged entries.
        """
        result = await db.execute(
            delete(DebtLedgerEntry)
            .where(DebtLedgerEntry.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        logger.info("Purged %s ledger entries older than %s", deleted, cutoff.isoformat())
        return deleted
