# Overview: Fixed-point money helpers; storage is integer cents, services work in Decimal.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """
    Normalize user/store input to a 2dp Decimal (half-up).

    Floats are routed through str() so 0.1 stays 0.10 rather than
    0.1000000000000000055...
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValueError("amount must be numeric")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
        if not amount.is_finite():
            raise ValueError(f"invalid amount: {value!r}")
        # too many digits for the context raises InvalidOperation here
        return amount.quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid amount: {value!r}")


def to_cents(amount) -> int:
    return int(to_money(amount) * 100)


def from_cents(cents: int | None) -> Decimal:
    if cents is None:
        return ZERO
    return (Decimal(int(cents)) / 100).quantize(TWOPLACES)


def format_money(amount, prefix: str = "GHS") -> str:
    """format_money(Decimal("12.5")) -> "GHS 12.50" """
    return f"{prefix} {to_money(amount):.2f}"
