# Overview: Pure money arithmetic for order pricing, tax and commission.

"""
Pricing helpers.

Amounts are integer cents everywhere they are stored. Percent math is done
on Decimal and rounded half-up to whole cents only by to_cents(), i.e. at
the point a value is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PricingTotals:
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    discount_cents: int
    total_cents: int


def round_money(amount) -> Decimal:
    """Round a money amount half-up to 2 decimal places."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)


def to_cents(amount) -> int:
    """Money amount (Decimal / str / int) -> integer cents, half-up."""
    if isinstance(amount, float):
        amount = str(amount)
    return int(round_money(amount) * 100)


def bps_to_percent(bps: int) -> Decimal:
    return Decimal(int(bps)) / 100


def percent_to_bps(percent) -> int:
    if isinstance(percent, float):
        percent = str(percent)
    return int((Decimal(percent) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_bps(amount_cents: int, bps: int) -> int:
    """amount * bps / 10000, rounded half-up to whole cents."""
    exact = Decimal(int(amount_cents)) * Decimal(int(bps)) / Decimal(10000)
    return int(exact.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_subtotal(price_cents: int, quantity: int) -> int:
    return int(price_cents) * int(quantity)


def compute_totals(
    line_subtotals: Iterable[int],
    *,
    tax_cents: int = 0,
    shipping_cents: int = 0,
    discount_cents: int = 0,
) -> PricingTotals:
    """total = subtotal + tax + shipping - discount; subtotal = sum of line subtotals."""
    subtotal = sum(int(s) for s in line_subtotals)
    total = subtotal + int(tax_cents) + int(shipping_cents) - int(discount_cents)
    return PricingTotals(
        subtotal_cents=subtotal,
        tax_cents=int(tax_cents),
        shipping_cents=int(shipping_cents),
        discount_cents=int(discount_cents),
        total_cents=total,
    )


def coupon_discount_cents(subtotal_cents: int, discount: int, discount_type: str) -> int:
    """
    Discount granted by a coupon.

    percentage: `discount` is basis points of the subtotal.
    fixed: `discount` is cents, capped at the subtotal.
    """
    if discount_type == "percentage":
        return apply_bps(subtotal_cents, discount)
    return min(int(discount), int(subtotal_cents))
