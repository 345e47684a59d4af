"""
Order item diffing.

Pure functions comparing an order's stored item set with a replacement set:
no-op detection, per-currency net change and the ledger note text.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List

from poscrm.app.domain.ledger.currency_policy import CurrencyPolicy, default_currency_policy
from poscrm.app.models.ledger_enums import Currency
from poscrm.app.models.product_enums import ProductCategory

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ItemLine:
    """One order line as seen by the reconciler."""
    product_id: int
    quantity: int
    price: Decimal
    name: str = ""
    category: ProductCategory = ProductCategory.ACCESSORIES

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.price) * self.quantity


@dataclass(frozen=True)
class ItemChange:
    """
    A change to one product between two item sets.

    quantity_delta is signed: positive for additions and increases,
    negative for removals and decreases.
    """
    product_id: int
    name: str
    category: ProductCategory
    quantity_delta: int
    price: Decimal

    @property
    def amount(self) -> Decimal:
        return Decimal(self.price) * self.quantity_delta


@dataclass
class ItemDiff:
    """Classification of every product that differs between two item sets."""
    added: List[ItemChange] = field(default_factory=list)
    removed: List[ItemChange] = field(default_factory=list)
    increased: List[ItemChange] = field(default_factory=list)
    decreased: List[ItemChange] = field(default_factory=list)

    @property
    def changes(self) -> List[ItemChange]:
        return self.added + self.removed + self.increased + self.decreased

    @property
    def is_noop(self) -> bool:
        return not self.changes

    def net_change(self, currency_policy: CurrencyPolicy = default_currency_policy) -> Dict[Currency, Decimal]:
        """
        Net debt change per currency (positive = debt increase).

        Every currency is present in the result, zero when untouched.
        """
        totals = {currency: ZERO for currency in Currency}
        for change in self.changes:
            currency = currency_policy(change.category)
            totals[currency] = totals[currency] + change.amount
        return totals

    def note(self, order_id: int) -> str:
        """Human readable summary used as the ledger entry note."""
        if self.is_noop:
            return f"Order #{order_id} items unchanged"

        quantity_changes = self.increased + self.decreased
        parts = []
        if self.added:
            parts.append("Added: " + ", ".join(f"{c.name} (x{c.quantity_delta})" for c in self.added))
        if self.removed:
            parts.append("Removed: " + ", ".join(f"{c.name} (x{-c.quantity_delta})" for c in self.removed))
        if quantity_changes:
            parts.append("Quantity changes: " + ", ".join(
                f"{c.name} ({'+' if c.quantity_delta > 0 else ''}{c.quantity_delta})" for c in quantity_changes
            ))

        kinds = []
        if self.added:
            kinds.append("added")
        if self.removed:
            kinds.append("removed")
        if quantity_changes:
            kinds.append("quantity updated")
        headline = f"Items {' and '.join(kinds)} in order #{order_id}"

        return ". ".join([headline] + parts)


def merge_lines(lines: Iterable[ItemLine]) -> List[ItemLine]:
    """
    Collapse repeated product lines into one, summing quantities.

    The first occurrence keeps its position, price, name and category.
    """
    merged: Dict[int, ItemLine] = {}
    for line in lines:
        existing = merged.get(line.product_id)
        if existing is None:
            merged[line.product_id] = line
        else:
            merged[line.product_id] = ItemLine(
                product_id=existing.product_id,
                quantity=existing.quantity + line.quantity,
                price=existing.price,
                name=existing.name,
                category=existing.category,
            )
    return list(merged.values())


def quantity_map(lines: Iterable[ItemLine]) -> Dict[int, int]:
    """product_id -> total quantity."""
    quantities: Dict[int, int] = {}
    for line in lines:
        quantities[line.product_id] = quantities.get(line.product_id, 0) + line.quantity
    return quantities


def items_equal(old: Iterable[ItemLine], new: Iterable[ItemLine]) -> bool:
    """Same products with the same quantities, in any order."""
    return quantity_map(old) == quantity_map(new)


def diff_items(old: Iterable[ItemLine], new: Iterable[ItemLine]) -> ItemDiff:
    """
    Classify products into added / removed / increased / decreased.

    Additions and increases are valued at the new line's price, removals
    and decreases at the old (snapshotted) price.
    """
    old_lines = {line.product_id: line for line in merge_lines(old)}
    new_lines = {line.product_id: line for line in merge_lines(new)}
    diff = ItemDiff()

    for product_id, line in new_lines.items():
        previous = old_lines.get(product_id)
        if previous is None:
            diff.added.append(ItemChange(
                product_id, line.name, line.category, line.quantity, line.price
            ))
        elif line.quantity > previous.quantity:
            diff.increased.append(ItemChange(
                product_id, line.name, line.category, line.quantity - previous.quantity, line.price
            ))

    for product_id, line in old_lines.items():
        current = new_lines.get(product_id)
        if current is None:
            diff.removed.append(ItemChange(
                product_id, line.name, line.category, -line.quantity, line.price
            ))
        elif current.quantity < line.quantity:
            diff.decreased.append(ItemChange(
                product_id, line.name, line.category, current.quantity - line.quantity, line.price
            ))

    return diff
