"""
Debt ledger store and balance derivation.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from poscrm.app.core.exceptions import LedgerValidationError
from poscrm.app.domain.ledger.balance import BalanceDeriver
from poscrm.app.domain.ledger.ledger_store import LedgerStore, parse_amount, parse_currency
from poscrm.app.models.ledger_enums import Currency, LedgerEntryKind

MANUAL = LedgerEntryKind.MANUAL_ADJUSTMENT


@pytest.mark.asyncio
async def test_balance_is_negated_sum_of_entries(db_session, client_user):
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-100", LedgerEntryKind.ORDER_DEBIT)
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "40", MANUAL)
    await LedgerStore.append(db_session, client_user.id, Currency.MKD, "-500", LedgerEntryKind.ORDER_DEBIT)
    await db_session.commit()

    deriver = BalanceDeriver()

    assert await deriver.current_balance(db_session, client_user.id, Currency.EUR) == Decimal("60")
    assert await deriver.current_balance(db_session, client_user.id, Currency.MKD) == Decimal("500")
    assert await deriver.balances(db_session, client_user.id) == {
        Currency.EUR: Decimal("60"),
        Currency.MKD: Decimal("500"),
    }


@pytest.mark.asyncio
async def test_balance_can_go_negative(db_session, client_user):
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-20", LedgerEntryKind.ORDER_DEBIT)
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "50", MANUAL)
    await db_session.commit()

    assert await BalanceDeriver().current_balance(db_session, client_user.id, Currency.EUR) == Decimal("-30")


@pytest.mark.asyncio
async def test_client_without_entries_owes_nothing(db_session, client_user):
    balances = await BalanceDeriver().balances(db_session, client_user.id)
    assert balances == {Currency.EUR: Decimal("0"), Currency.MKD: Decimal("0")}


@pytest.mark.asyncio
async def test_aggregate_debt_over_clients(db_session, client_user, other_client):
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-100", LedgerEntryKind.ORDER_DEBIT)
    await LedgerStore.append(db_session, other_client.id, Currency.EUR, "-50", LedgerEntryKind.ORDER_DEBIT)
    await LedgerStore.append(db_session, other_client.id, Currency.MKD, "-300", LedgerEntryKind.ORDER_DEBIT)
    await db_session.commit()

    deriver = BalanceDeriver()
    total = await deriver.aggregate_debt(db_session)
    only_first = await deriver.aggregate_debt(db_session, client_ids=[client_user.id])

    assert total == {Currency.EUR: Decimal("150"), Currency.MKD: Decimal("300")}
    assert only_first == {Currency.EUR: Decimal("100"), Currency.MKD: Decimal("0")}


@pytest.mark.asyncio
async def test_history_before_and_after(db_session, client_user):
    first = await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-100", LedgerEntryKind.ORDER_DEBIT)
    second = await LedgerStore.append(db_session, client_user.id, Currency.EUR, "40", MANUAL)
    await LedgerStore.append(db_session, client_user.id, Currency.MKD, "-999", LedgerEntryKind.ORDER_DEBIT)
    third = await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-10", MANUAL)
    await db_session.commit()

    histories = await BalanceDeriver().histories(db_session, [first, second, third])

    assert (histories[first.id].debt_before, histories[first.id].debt_after) == (Decimal("0"), Decimal("100"))
    assert (histories[second.id].debt_before, histories[second.id].debt_after) == (Decimal("100"), Decimal("60"))
    assert (histories[third.id].debt_before, histories[third.id].debt_after) == (Decimal("60"), Decimal("70"))


@pytest.mark.asyncio
async def test_append_rounds_to_cents(db_session, client_user):
    entry = await LedgerStore.append(db_session, client_user.id, "EUR", "10.005", MANUAL)
    assert entry.amount == Decimal("10.01")
    assert entry.currency == Currency.EUR


@pytest.mark.parametrize("value", ["0", "0.001", "abc", "NaN", "Infinity", "1e30", "10000000000", "-10000000000"])
def test_parse_amount_rejects_invalid(value):
    with pytest.raises(LedgerValidationError):
        parse_amount(value)


def test_parse_currency_rejects_unknown():
    with pytest.raises(LedgerValidationError) as exc_info:
        parse_currency("USD")
    assert exc_info.value.error_code == "ERR_LEDGER_001"


@pytest.mark.asyncio
async def test_query_filters_by_client_name_and_date(db_session, client_user, other_client, admin_user):
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-10", MANUAL, created_by=admin_user.id)
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-20", MANUAL)
    await LedgerStore.append(db_session, other_client.id, Currency.MKD, "-30", MANUAL)
    await db_session.commit()

    records, total = await LedgerStore.query(db_session, client_name="marko")
    assert total == 2
    assert {r.client_name for r in records} == {"Marko Petrovski"}
    # Newest first
    assert [r.entry.amount for r in records] == [Decimal("-20"), Decimal("-10")]
    assert [r.created_by_name for r in records] == ["System", "Shop Admin"]

    today = datetime.now(timezone.utc).date()
    _, total_today = await LedgerStore.query(db_session, on_date=today)
    _, total_yesterday = await LedgerStore.query(db_session, on_date=today - timedelta(days=1))
    assert total_today == 3
    assert total_yesterday == 0


@pytest.mark.asyncio
async def test_query_pagination(db_session, client_user):
    for i in range(5):
        await LedgerStore.append(db_session, client_user.id, Currency.MKD, f"-{i + 1}", MANUAL)
    await db_session.commit()

    page_one, total = await LedgerStore.query(db_session, page=1, page_size=2)
    page_three, _ = await LedgerStore.query(db_session, page=3, page_size=2)

    assert total == 5
    assert len(page_one) == 2
    assert [r.entry.amount for r in page_three] == [Decimal("-1")]


@pytest.mark.asyncio
async def test_purge_removes_old_entries_and_balance_follows(db_session, client_user):
    old = await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-100", MANUAL)
    await LedgerStore.append(db_session, client_user.id, Currency.EUR, "-5", MANUAL)
    old.created_at = datetime.now(timezone.utc) - timedelta(days=120)
    await db_session.commit()

    deleted = await LedgerStore.purge_older_than(db_session, datetime.now(timezone.utc) - timedelta(days=90))
    await db_session.commit()

    assert deleted == 1
    assert await BalanceDeriver().current_balance(db_session, client_user.id, Currency.EUR) == Decimal("5")


def test_day_filter_uses_utc_day_bounds():
    from poscrm.app.domain.ledger.ledger_store import day_bounds

    start, end = day_bounds(date(2024, 3, 1))

    assert start == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert end - start == timedelta(days=1)
