# Overview: Pure order pricing; computes line subtotals, priority uplift, tax and total.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from .errors import ValidationError

PRIORITY_MULTIPLIERS = {
    "NORMAL": Decimal("1.00"),
    "EXPRESS": Decimal("1.25"),
    "URGENT": Decimal("1.50"),
}


@dataclass(frozen=True)
class OrderTotals:
    line_subtotals_cents: tuple[int, ...]
    items_subtotal_cents: int
    subtotal_cents: int  # after priority multiplier
    tax_cents: int
    discount_cents: int
    total_amount_cents: int


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _line_values(line) -> tuple[int, int]:
    if isinstance(line, dict):
        return line["quantity"], line["unit_price_cents"]
    return line.quantity, line.unit_price_cents


def compute_order_totals(
    lines: Iterable,
    priority: str,
    discount_cents: int,
    tax_rate_bps: int,
) -> OrderTotals:
    """
    Compute order totals from the current lines, priority and discount.

    - line subtotal = quantity * unit price
    - subtotal = sum(line subtotals) * priority multiplier
    - tax = round(subtotal * tax rate)
    - total = max(0, round(subtotal + tax - discount))

    Rounding is half-up to the cent. The multiplied subtotal is kept exact
    for the tax and total computation and only rounded for storage.
    Lines may be OrderLine rows or dicts with quantity/unit_price_cents.
    """
    multiplier = PRIORITY_MULTIPLIERS.get(priority)
    if multiplier is None:
        raise ValidationError(f"Unknown priority {priority!r}", details={"priority": priority})
    if discount_cents < 0:
        raise ValidationError("discount_cents cannot be negative")

    line_subtotals = []
    for quantity, unit_price_cents in map(_line_values, lines):
        if quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        if unit_price_cents < 0:
            raise ValidationError("unit_price_cents cannot be negative")
        line_subtotals.append(quantity * unit_price_cents)

    items_subtotal = sum(line_subtotals)
    subtotal = Decimal(items_subtotal) * multiplier
    tax_cents = _round_cents(subtotal * Decimal(tax_rate_bps) / Decimal(10000))
    total = _round_cents(subtotal + Decimal(tax_cents) - Decimal(discount_cents))

    return OrderTotals(
        line_subtotals_cents=tuple(line_subtotals),
        items_subtotal_cents=items_subtotal,
        subtotal_cents=_round_cents(subtotal),
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_amount_cents=max(0, total),
    )
