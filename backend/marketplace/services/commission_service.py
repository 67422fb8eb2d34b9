# Overview: Service-layer operations for commission; pure calculation plus vendor aggregates.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from ..errors import ValidationError
from ..extensions import db
from ..models import Order
from .pricing import to_cents


def _as_decimal(value, *, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)


def compute_commission(order_total, commission_rate_percent) -> Decimal:
    """
    Exact commission: order_total * commission_rate_percent / 100.

    No rounding is applied here; callers round half-up to cents when they
    persist the amount (see commission_cents).
    """
    total = _as_decimal(order_total, field="order_total")
    rate = _as_decimal(commission_rate_percent, field="commission_rate")
    if total < 0:
        raise ValidationError("order_total must be >= 0", field="order_total", expected=">= 0")
    if rate < 0 or rate > 100:
        raise ValidationError(
            "commission_rate must be between 0 and 100",
            field="commission_rate",
            expected="0-100",
        )
    return total * rate / Decimal(100)


def commission_cents(total_cents: int, commission_rate_bps: int) -> int:
    """Commission to persist for a total in cents and a rate in basis points."""
    exact = compute_commission(Decimal(int(total_cents)) / 100, Decimal(int(commission_rate_bps)) / 100)
    return to_cents(exact)


def compute_vendor_commission(vendor_id: int, *, orders: list[Order] | None = None) -> int:
    """
    Sum locked commission (cents) over the vendor's delivered orders.

    `orders` may be supplied by the caller; otherwise delivered orders are
    read from the database.
    """
    if orders is None:
        total = (
            db.session.query(db.func.coalesce(db.func.sum(Order.commission_cents), 0))
            .filter(Order.vendor_id == vendor_id, Order.status == "delivered")
            .scalar()
        )
        return int(total or 0)
    return sum(
        o.commission_cents
        for o in orders
        if o.vendor_id == vendor_id and o.status == "delivered"
    )


def compute_vendor_revenue(vendor_id: int) -> dict:
    """Gross delivered revenue, commission and vendor payout (all cents)."""
    gross = (
        db.session.query(db.func.coalesce(db.func.sum(Order.total_cents), 0))
        .filter(Order.vendor_id == vendor_id, Order.status == "delivered")
        .scalar()
    )
    commission = compute_vendor_commission(vendor_id)
    gross = int(gross or 0)
    return {
        "vendor_id": vendor_id,
        "gross_revenue_cents": gross,
        "commission_cents": commission,
        "net_payout_cents": gross - commission,
    }
