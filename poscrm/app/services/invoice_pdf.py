"""
Invoice PDF rendering.

Draws a one-order invoice with reportlab: company header, bill-to block,
items grouped by settlement currency, per-currency totals and, for client
orders, the client's current debt.
"""

import io
import logging
from decimal import Decimal
from typing import Dict, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from poscrm.app.core.config import settings
from poscrm.app.domain.ledger.currency_policy import CurrencyPolicy, default_currency_policy
from poscrm.app.models.ledger_enums import Currency
from poscrm.app.models.order import Order, OrderItem

logger = logging.getLogger("poscrm.invoice")

SECTION_TITLES = {
    Currency.EUR: "EUR Products (Smartphones)",
    Currency.MKD: "MKD Products (Accessories)",
}
SECTION_COLORS = {
    Currency.EUR: colors.HexColor("#059669"),
    Currency.MKD: colors.HexColor("#1d4ed8"),
}

# Column x positions
COL_PRODUCT = 22 * mm
COL_DETAILS = 75 * mm
COL_QTY = 112 * mm
COL_PRICE = 130 * mm

# Separator, discount, two totals and the client balance lines
TOTALS_BLOCK_HEIGHT = 50 * mm
FOOTER_MARGIN = 22 * mm


def format_money(amount: Decimal, currency: Currency) -> str:
    return f"{Decimal(amount):,.2f} {currency.value}"


def describe_debt(amount: Decimal, currency: Currency) -> str:
    """Positive = owed; negative balances are shown as credit."""
    if amount < 0:
        return f"{format_money(-amount, currency)} (credit)"
    return format_money(amount, currency)


def item_label(item: OrderItem) -> str:
    product = item.product
    if product.subcategory and product.model:
        return f"{product.subcategory} / {product.model}"
    return product.name


def item_details(item: OrderItem) -> str:
    parts = [p for p in (item.product.storage_gb, item.product.color) if p]
    return " / ".join(parts) if parts else "-"


def render_invoice(
    order: Order,
    debt: Optional[Dict[Currency, Decimal]] = None,
    currency_policy: CurrencyPolicy = default_currency_policy,
) -> bytes:
    """
    Render the invoice of `order` to PDF bytes.

    Args:
        order: Order with items and products loaded
        debt: Signed client debt per currency; omitted for guest orders
        currency_policy: Category -> currency routing for item sections
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    W, H = A4
    c.setTitle(f"Invoice #{order.id}")

    # Header
    c.setFont("Helvetica-Bold", 24)
    c.drawCentredString(W / 2, H - 25 * mm, "INVOICE")

    c.setFont("Helvetica-Bold", 14)
    c.drawString(20 * mm, H - 40 * mm, settings.company_name)
    c.setFont("Helvetica", 10)
    y = H - 46 * mm
    for line in (
        settings.company_address,
        settings.company_city_state,
        f"Phone: {settings.company_phone}" if settings.company_phone else None,
        f"Email: {settings.company_email}" if settings.company_email else None,
    ):
        if line:
            c.drawString(20 * mm, y, line)
            y -= 5 * mm

    c.setFont("Helvetica-Bold", 11)
    c.drawString(120 * mm, H - 40 * mm, "INVOICE DETAILS")
    c.setFont("Helvetica", 10)
    c.drawString(120 * mm, H - 46 * mm, f"Invoice #: {order.id}")
    c.drawString(120 * mm, H - 51 * mm, f"Date: {order.created_at:%B %d, %Y}")
    c.drawString(120 * mm, H - 56 * mm, f"Status: {order.status.value}")

    c.line(20 * mm, H - 72 * mm, W - 20 * mm, H - 72 * mm)

    # Bill to
    c.setFont("Helvetica-Bold", 11)
    c.drawString(20 * mm, H - 80 * mm, "BILL TO:")
    c.setFont("Helvetica", 10)
    if order.client is not None:
        contact = [order.client.name, order.client.email, order.client.phone]
    else:
        contact = [order.guest_name, order.guest_email, order.guest_phone]
    y = H - 86 * mm
    for line in contact:
        if line:
            c.drawString(20 * mm, y, line)
            y -= 5 * mm

    # Items
    y = H - 108 * mm
    c.rect(20 * mm, y - 2 * mm, W - 40 * mm, 8 * mm)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(COL_PRODUCT, y, "Product")
    c.drawString(COL_DETAILS, y, "Details")
    c.drawString(COL_QTY, y, "Qty")
    c.drawString(COL_PRICE, y, "Price")
    c.drawRightString(W - 22 * mm, y, "Total")
    y -= 10 * mm

    totals = {currency: Decimal("0") for currency in Currency}
    for currency in Currency:
        items = [i for i in order.items if currency_policy(i.product.category) == currency]
        if not items:
            continue

        c.setFont("Helvetica-Bold", 10)
        c.setFillColor(SECTION_COLORS[currency])
        c.drawString(COL_PRODUCT, y, SECTION_TITLES[currency])
        c.setFillColor(colors.black)
        y -= 7 * mm

        c.setFont("Helvetica", 10)
        for item in items:
            line_total = Decimal(item.price) * item.quantity
            totals[currency] += line_total
            c.drawString(COL_PRODUCT, y, item_label(item)[:30])
            c.drawString(COL_DETAILS, y, item_details(item))
            c.drawString(COL_QTY, y, str(item.quantity))
            c.drawString(COL_PRICE, y, format_money(item.price, currency))
            c.drawRightString(W - 22 * mm, y, format_money(line_total, currency))
            y -= 7 * mm
            if y < 60 * mm:
                c.showPage()
                c.setFont("Helvetica", 10)
                y = H - 25 * mm
        y -= 3 * mm

    # Keep the totals and balance block together, above the footer
    if y - TOTALS_BLOCK_HEIGHT < FOOTER_MARGIN:
        c.showPage()
        y = H - 25 * mm

    c.line(20 * mm, y, W - 20 * mm, y)
    y -= 8 * mm

    # Totals
    c.setFont("Helvetica", 10)
    if order.discount_amount and Decimal(order.discount_amount) > 0:
        c.drawString(120 * mm, y, "Discount:")
        c.drawRightString(
            W - 22 * mm, y, f"-{format_money(order.discount_amount, order.discount_currency)}"
        )
        totals[order.discount_currency] = max(
            Decimal("0"), totals[order.discount_currency] - Decimal(order.discount_amount)
        )
        y -= 6 * mm

    c.setFont("Helvetica-Bold", 11)
    for currency, total in totals.items():
        if total > 0:
            c.drawString(120 * mm, y, f"Total {currency.value}:")
            c.drawRightString(W - 22 * mm, y, format_money(total, currency))
            y -= 6 * mm

    # Client debt
    if debt is not None:
        y -= 4 * mm
        c.setFont("Helvetica-Bold", 11)
        c.drawString(20 * mm, y, "CLIENT BALANCE")
        c.setFont("Helvetica", 10)
        for currency in Currency:
            y -= 6 * mm
            c.drawString(20 * mm, y, f"Outstanding {currency.value}:")
            c.drawString(60 * mm, y, describe_debt(debt.get(currency, Decimal("0")), currency))

    c.setFont("Helvetica", 8)
    c.drawCentredString(W / 2, 15 * mm, "Thank you for your business!")
    c.showPage()
    c.save()

    pdf = buf.getvalue()
    logger.info("Rendered invoice for order %s (%s bytes)", order.id, len(pdf))
    return pdf
