"""
Order lifecycle: stock and debt ledger side effects.

Exercises OrderService directly inside one session; each mutation is
committed (or rolled back) by the test the way the endpoints do.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select, func

from poscrm.app.core.exceptions import (
    BusinessRuleError,
    InsufficientPermissionsError,
    InsufficientStockError,
    ProductUnavailableError,
)
from poscrm.app.domain.ledger.balance import BalanceDeriver
from poscrm.app.domain.ledger.ledger_store import LedgerStore
from poscrm.app.domain.orders.order_service import OrderService
from poscrm.app.models.ledger_entry import DebtLedgerEntry
from poscrm.app.models.ledger_enums import Currency, LedgerEntryKind
from poscrm.app.models.order_enums import OrderStatus
from poscrm.app.models.product_enums import StockStatus
from poscrm.app.schemas.order import OrderCreate, OrderUpdate


def items(*pairs):
    return [{"product_id": product.id, "quantity": quantity} for product, quantity in pairs]


async def ledger_count(db_session) -> int:
    return await db_session.scalar(select(func.count(DebtLedgerEntry.id)))


async def balance(db_session, client, currency) -> Decimal:
    return await BalanceDeriver().current_balance(db_session, client.id, currency)


async def create(db_session, actor, **fields) -> int:
    order = await OrderService().create_order(db_session, OrderCreate(**fields), actor)
    await db_session.commit()
    return order.id


async def edit(db_session, actor, order_id, **fields):
    result = await OrderService().update_order(db_session, order_id, OrderUpdate(**fields), actor)
    await db_session.commit()
    return result


# ----------------------------------------------------------------------
# Creation
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_pending_order_increases_debt_then_payment_reduces_it(
    db_session, admin_actor, client_user, phone
):
    await create(db_session, admin_actor, client_id=client_user.id, items=items((phone, 1)))

    assert await balance(db_session, client_user, Currency.EUR) == Decimal("100")
    entry = await db_session.scalar(select(DebtLedgerEntry))
    assert entry.amount == Decimal("-100")
    assert entry.kind == LedgerEntryKind.ORDER_DEBIT
    assert phone.stock_quantity == 9

    await LedgerStore.append(
        db_session, client_user.id, Currency.EUR, "40", LedgerEntryKind.MANUAL_ADJUSTMENT
    )
    await db_session.commit()

    assert await balance(db_session, client_user, Currency.EUR) == Decimal("60")


@pytest.mark.asyncio
async def test_mixed_order_writes_one_entry_per_currency_with_discount(
    db_session, admin_actor, client_user, phone, accessory_a
):
    order_id = await create(
        db_session, admin_actor,
        client_id=client_user.id,
        items=items((phone, 1), (accessory_a, 2)),
        discount="10",
        discount_currency="EUR",
    )

    order = await OrderService.get_order(db_session, order_id)
    assert order.original_total == Decimal("120")
    assert order.total_amount == Decimal("110")
    assert order.discount_amount == Decimal("10")
    assert await balance(db_session, client_user, Currency.EUR) == Decimal("90")
    assert await balance(db_session, client_user, Currency.MKD) == Decimal("20")
    assert await ledger_count(db_session) == 2


@pytest.mark.asyncio
async def test_completed_order_at_creation_writes_no_entry(db_session, admin_actor, client_user, phone):
    order_id = await create(
        db_session, admin_actor, client_id=client_user.id, items=items((phone, 2)), status="COMPLETED"
    )

    order = await OrderService.get_order(db_session, order_id)
    assert order.original_status == OrderStatus.COMPLETED
    assert await ledger_count(db_session) == 0
    assert phone.stock_quantity == 8


@pytest.mark.asyncio
async def test_guest_order_writes_no_entry(db_session, admin_actor, phone):
    order_id = await create(db_session, admin_actor, guest_name="Walk-in", items=items((phone, 1)))

    order = await OrderService.get_order(db_session, order_id)
    assert order.is_guest
    assert await ledger_count(db_session) == 0
    assert phone.stock_quantity == 9


@pytest.mark.asyncio
async def test_insufficient_stock_rejects_whole_order(db_session, admin_actor, client_user, phone, accessory_a):
    with pytest.raises(InsufficientStockError) as exc_info:
        await OrderService().create_order(
            db_session,
            OrderCreate(client_id=client_user.id, items=items((phone, 1), (accessory_a, 11))),
            admin_actor,
        )
    await db_session.rollback()

    await db_session.refresh(phone)
    await db_session.refresh(accessory_a)
    assert exc_info.value.details["product_id"] == accessory_a.id
    assert phone.stock_quantity == 10
    assert accessory_a.stock_quantity == 10
    assert await ledger_count(db_session) == 0


@pytest.mark.asyncio
async def test_repeated_lines_are_checked_against_stock_together(db_session, admin_actor, client_user, accessory_a):
    with pytest.raises(InsufficientStockError):
        await OrderService().create_order(
            db_session,
            OrderCreate(client_id=client_user.id, items=items((accessory_a, 6), (accessory_a, 5))),
            admin_actor,
        )


@pytest.mark.asyncio
async def test_disabled_product_cannot_be_ordered(db_session, admin_actor, client_user, product_factory):
    hidden = await product_factory("Old Case", stock_status=StockStatus.DISABLED)

    with pytest.raises(ProductUnavailableError):
        await OrderService().create_order(
            db_session, OrderCreate(client_id=client_user.id, items=items((hidden, 1))), admin_actor
        )


@pytest.mark.asyncio
async def test_client_orders_for_self_only(db_session, client_actor, client_user, other_client, phone):
    order_id = await create(db_session, client_actor, items=items((phone, 1)))
    order = await OrderService.get_order(db_session, order_id)
    assert order.client_id == client_user.id

    with pytest.raises(InsufficientPermissionsError):
        await OrderService().create_order(
            db_session, OrderCreate(client_id=other_client.id, items=items((phone, 1))), client_actor
        )
    with pytest.raises(InsufficientPermissionsError):
        await OrderService().create_order(
            db_session, OrderCreate(guest_name="Someone", items=items((phone, 1))), client_actor
        )


@pytest.mark.asyncio
async def test_admin_must_name_client_or_guest(db_session, admin_actor, client_user, phone):
    with pytest.raises(BusinessRuleError):
        await OrderService().create_order(db_session, OrderCreate(items=items((phone, 1))), admin_actor)
    with pytest.raises(BusinessRuleError):
        await OrderService().create_order(
            db_session,
            OrderCreate(client_id=client_user.id, guest_name="Both", items=items((phone, 1))),
            admin_actor,
        )


@pytest.mark.asyncio
async def test_unreachable_status_is_rejected(db_session, admin_actor, client_user, phone):
    with pytest.raises(BusinessRuleError) as exc_info:
        await OrderService().create_order(
            db_session,
            OrderCreate(client_id=client_user.id, items=items((phone, 1)), status="SHIPPED"),
            admin_actor,
        )
    assert exc_info.value.error_code == "ERR_ORDER_002"


# ----------------------------------------------------------------------
# Edits
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_net_change_edit_writes_single_entry(
    db_session, admin_actor, client_user, accessory_a, accessory_b, accessory_c
):
    order_id = await create(
        db_session, admin_actor, client_id=client_user.id, items=items((accessory_a, 2), (accessory_b, 1))
    )
    assert await balance(db_session, client_user, Currency.MKD) == Decimal("35")

    result = await edit(
        db_session, admin_actor, order_id, items=items((accessory_a, 3), (accessory_c, 1))
    )

    assert result.items_updated
    assert len(result.ledger_entries) == 1
    entry = result.ledger_entries[0]
    assert entry.amount == Decimal("-25")
    assert entry.currency == Currency.MKD
    assert entry.kind == LedgerEntryKind.ORDER_DEBIT
    assert entry.order_id == order_id
    assert entry.notes.startswith(f"Items added and removed and quantity updated in order #{order_id}")
    assert result.net_change[Currency.EUR] == Decimal("0")
    assert await balance(db_session, client_user, Currency.MKD) == Decimal("60")

    assert (accessory_a.stock_quantity, accessory_b.stock_quantity, accessory_c.stock_quantity) == (7, 10, 9)

    order = await OrderService.get_order(db_session, order_id)
    assert sorted((i.product_id, i.quantity) for i in order.items) == sorted(
        [(accessory_a.id, 3), (accessory_c.id, 1)]
    )
    assert order.total_amount == Decimal("60")


@pytest.mark.asyncio
async def test_resubmitting_same_items_is_a_noop(db_session, admin_actor, client_user, accessory_a, accessory_b):
    order_id = await create(
        db_session, admin_actor, client_id=client_user.id, items=items((accessory_a, 2), (accessory_b, 1))
    )
    entries_before = await ledger_count(db_session)

    for _ in range(2):
        result = await edit(
            db_session, admin_actor, order_id,
            items=items((accessory_b, 1), (accessory_a, 1), (accessory_a, 1)),
        )
        assert not result.items_updated
        assert result.ledger_entries == []

    assert await ledger_count(db_session) == entries_before
    assert accessory_a.stock_quantity == 8
    assert accessory_b.stock_quantity == 9
    assert await balance(db_session, client_user, Currency.MKD) == Decimal("35")


@pytest.mark.asyncio
async def test_decrease_writes_credit_entry(db_session, admin_actor, client_user, accessory_a):
    order_id = await create(db_session, admin_actor, client_id=client_user.id, items=items((accessory_a, 3)))

    result = await edit(db_session, admin_actor, order_id, items=items((accessory_a, 1)))

    assert [(e.amount, e.kind) for e in result.ledger_entries] == [
        (Decimal("20"), LedgerEntryKind.ORDER_CREDIT)
    ]
    assert await balance(db_session, client_user, Currency.MKD) == Decimal("10")
    assert accessory_a.stock_quantity == 9


@pytest.mark.asyncio
async def test_edit_keeps_snapshot_price_unless_overridden(
    db_session, admin_actor, client_user, accessory_a
):
    order_id = await create(db_session, admin_actor, client_id=client_user.id, items=items((accessory_a, 1)))
    accessory_a.price = Decimal("50.00")
    await db_session.commit()

    await edit(db_session, admin_actor, order_id, items=items((accessory_a, 2)))
    order = await OrderService.get_order(db_session, order_id)
    assert order.items[0].price == Decimal("10")

    await edit(
        db_session, admin_actor, order_id,
        items=[{"product_id": accessory_a.id, "quantity": 3, "price": "12.50"}],
    )
    order = await OrderService.get_order(db_session, order_id)
    assert order.items[0].price == Decimal("12.50")
    assert order.total_amount == Decimal("37.50")


@pytest.mark.asyncio
async def test_failed_edit_rolls_back_stock_items_and_ledger(
    db_session, admin_actor, client_user, accessory_a, accessory_b
):
    order_id = await create(db_session, admin_actor, client_id=client_user.id, items=items((accessory_a, 2)))
    entries_before = await ledger_count(db_session)

    with pytest.raises(InsufficientStockError):
        await OrderService().update_order(
            db_session, order_id,
            OrderUpdate(items=items((accessory_a, 2), (accessory_b, 1000))),
            admin_actor,
        )
    await db_session.rollback()

    await db_session.refresh(accessory_a)
    await db_session.refresh(accessory_b)
    assert accessory_a.stock_quantity == 8
    assert accessory_b.stock_quantity == 10
    assert await ledger_count(db_session) == entries_before

    order = await OrderService.get_order(db_session, order_id)
    assert [(i.product_id, i.quantity) for i in order.items] == [(accessory_a.id, 2)]


@pytest.mark.asyncio
async def test_edit_of_guest_order_writes_no_entry(db_session, admin_actor, accessory_a):
    order_id = await create(db_session, admin_actor, guest_name="Walk-in", items=items((accessory_a, 1)))

    result = await edit(db_session, admin_actor, order_id, items=items((accessory_a, 4)))

    assert result.items_updated
    assert result.ledger_entries == []
    assert result.net_change[Currency.MKD] == Decimal("30")
    assert await ledger_count(db_session) == 0


@pytest.mark.asyncio
async def test_preserve_discount_on_edit(db_session, admin_actor, client_user, accessory_a, accessory_b):
    order_id = await create(
        db_session, admin_actor,
        client_id=client_user.id,
        items=items((accessory_a, 2), (accessory_b, 1)),
        discount="10",
        discount_currency="MKD",
    )

    await edit(
        db_session, admin_actor, order_id,
        items=items((accessory_a, 3), (accessory_b, 1)), preserve_discount=True,
    )
    order = await OrderService.get_order(db_session, order_id)
    assert (order.original_total, order.total_amount) == (Decimal("45"), Decimal("35"))

    await edit(db_session, admin_actor, order_id, items=items((accessory_a, 4), (accessory_b, 1)))
    order = await OrderService.get_order(db_session, order_id)
    assert (order.original_total, order.total_amount, order.discount_amount) == (
        Decimal("55"), Decimal("55"), Decimal("0")
    )


@pytest.mark.asyncio
async def test_status_only_edit_touches_nothing_else(db_session, admin_actor, client_user, phone):
    order_id = await create(db_session, admin_actor, client_id=client_user.id, items=items((phone, 1)))

    result = await edit(db_session, admin_actor, order_id, status="COMPLETED")

    assert result.status_changed
    assert not result.items_updated
    assert result.order.status == OrderStatus.COMPLETED
    assert await ledger_count(db_session) == 1
    assert phone.stock_quantity == 9


# ----------------------------------------------------------------------
# Deletion and conservation
# ----------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_restores_stock_and_keeps_ledger(db_session, admin_actor, client_user, phone, accessory_a):
    order_id = await create(
        db_session, admin_actor, client_id=client_user.id, items=items((phone, 2), (accessory_a, 3))
    )
    assert (phone.stock_quantity, accessory_a.stock_quantity) == (8, 7)
    entries = await ledger_count(db_session)

    restored = await OrderService().delete_order(db_session, order_id)
    await db_session.commit()

    assert restored == 2
    assert (phone.stock_quantity, accessory_a.stock_quantity) == (10, 10)
    assert await ledger_count(db_session) == entries


@pytest.mark.asyncio
async def test_stock_is_conserved_across_create_edit_delete(
    db_session, admin_actor, client_user, accessory_a, accessory_b, accessory_c
):
    products = (accessory_a, accessory_b, accessory_c)
    initial = {p.id: p.stock_quantity for p in products}

    order_id = await create(
        db_session, admin_actor, client_id=client_user.id, items=items((accessory_a, 2), (accessory_b, 1))
    )
    await edit(db_session, admin_actor, order_id, items=items((accessory_a, 3), (accessory_c, 1)))

    order = await OrderService.get_order(db_session, order_id)
    in_order = {i.product_id: i.quantity for i in order.items}
    for p in products:
        assert p.stock_quantity + in_order.get(p.id, 0) == initial[p.id]

    await OrderService().delete_order(db_session, order_id)
    await db_session.commit()

    assert {p.id: p.stock_quantity for p in products} == initial
