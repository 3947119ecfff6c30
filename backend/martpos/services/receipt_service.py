# Overview: Plain-text receipt rendering for committed sales.

"""
Receipt Renderer

Pure formatting of a committed Sale; reads nothing beyond the sale, its
lines and tender rows, and the store header config. Amounts are printed
with the currency prefix and two fraction digits.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..models import Sale
from ..money import format_money
from .payment_service import METHOD_CASH, METHOD_SPLIT

WIDTH = 40

_METHOD_LABELS = {
    "cash": "Cash",
    "card": "Card",
    "momo": "Mobile Money",
    "credit": "Credit",
    "split": "Split",
}


def method_label(method: str) -> str:
    return _METHOD_LABELS.get(method, (method or "").title())


def tax_rate_label(rate) -> str:
    """tax_rate_label(0.125) -> "12.5%"; whole rates print without decimals."""
    percent = (Decimal(str(rate or 0)) * 100).normalize()
    return f"{percent:f}%"


def render_receipt(sale: Sale, *, width: int = WIDTH) -> str:
    cfg = current_app.config
    prefix = cfg.get("CURRENCY_PREFIX", "GHS")

    def money(amount) -> str:
        return format_money(amount, prefix)

    def row(label: str, value: str) -> str:
        return f"{label}{value.rjust(max(width - len(label), len(value) + 1))}"

    rule = "-" * width
    out = [
        cfg.get("STORE_NAME", "").center(width).rstrip(),
        cfg.get("STORE_TAGLINE", "").center(width).rstrip(),
        cfg.get("STORE_ADDRESS", "").center(width).rstrip(),
        f"Tel: {cfg.get('STORE_PHONE', '')}".center(width).rstrip(),
        rule,
        f"Receipt: {sale.sale_number}",
    ]
    if sale.created_at is not None:
        out.append(f"Date: {sale.created_at:%Y-%m-%d %H:%M}")
    out.append(f"Cashier: {sale.cashier_id}")
    if sale.customer is not None:
        out.append(f"Customer: {sale.customer.name}")
    out.append(rule)

    # Item table
    out.append(row("Item", "Total"))
    for line in sale.lines:
        out.append(line.product_name[:width])
        out.append(row(f"  {line.quantity} x {money(line.unit_price)}", money(line.line_total)))
    out.append(rule)

    out.append(row("Subtotal:", money(sale.total_amount)))
    if sale.discount_cents:
        out.append(row("Discount:", f"-{money(sale.discount_amount)}"))
    out.append(row(f"Tax ({tax_rate_label(cfg.get('TAX_RATE'))}):", money(sale.tax_amount)))
    out.append(row("TOTAL:", money(sale.final_amount)))
    out.append(rule)

    out.append(row("Payment:", method_label(sale.payment_method)))
    if sale.payment_method == METHOD_SPLIT:
        for tender in sale.payments:
            out.append(row(f"  {method_label(tender.method)}", money(tender.amount)))
    elif sale.payment_method == METHOD_CASH and sale.amount_tendered is not None:
        out.append(row("Tendered:", money(sale.amount_tendered)))
        out.append(row("Change:", money(sale.change_amount)))

    if sale.is_credit:
        out.append(row("Paid now:", money(sale.amount_paid)))
        out.append(row("Balance due:", money(sale.balance_due)))

    out.append(rule)
    out.append("Thank you for your business!".center(width).rstrip())
    out.append("Please come again".center(width).rstrip())
    return "\n".join(out) + "\n"
