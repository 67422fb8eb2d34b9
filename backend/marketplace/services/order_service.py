# Overview: Service-layer operations for the order lifecycle; encapsulates business logic and database work.

"""
Order Lifecycle Service

================================================================================
STATE MACHINE
================================================================================

    pending -> confirmed -> processing -> shipped -> delivered
    pending | confirmed -> cancelled
    delivered -> returned            (return_service.approve_return only)

RULES:
1. Every status change appends exactly one timeline entry.
2. Creation is not timelined; the first entry comes with the first transition.
3. Commission is locked at creation and whenever the total changes.
4. A rejected transition leaves status and timeline untouched.
5. Concurrent writers are detected through Order.version_id; the loser
   gets ConflictError and decides itself whether to retry.
================================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, OrderTimelineEntry
from ..models.orders import COUPON_DISCOUNT_TYPES, ORDER_STATUSES, PAYMENT_METHODS
from ..ports import (
    IdentityStore,
    VendorRecord,
    VendorRepository,
    get_clock,
    get_identity_store,
    get_vendor_repository,
)
from ..time_utils import Clock, to_utc_naive
from ..validation import (
    require_non_negative_cents,
    validate_address,
    validate_order_item,
)
from .commission_service import commission_cents
from .concurrency import check_version, lock_for_update, run_in_transaction
from .pricing import compute_totals, coupon_discount_cents, line_subtotal
from .sequence_service import next_order_number


ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"processing", "cancelled"}),
    "processing": frozenset({"shipped"}),
    "shipped": frozenset({"delivered"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
    "returned": frozenset(),
}

CANCELLABLE_STATUSES = frozenset({"pending", "confirmed"})
DEFAULT_CANCEL_REASON = "Cancelled by customer"


def default_status_message(status: str) -> str:
    return f"Order status updated to {status}"


def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in ORDER_TRANSITIONS.get(from_status, frozenset())


def validate_transition(from_status: str, to_status: str) -> None:
    if to_status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{to_status}'. Must be one of: {', '.join(ORDER_STATUSES)}",
            entity="order",
            field="status",
            expected=list(ORDER_STATUSES),
        )
    if not can_transition(from_status, to_status):
        raise InvalidStateTransition(
            f"Cannot change order status from {from_status} to {to_status}",
            from_status=from_status,
            to_status=to_status,
            entity="order",
        )


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", entity="order", id=order_id)
    return order


def get_order_by_number(order_number: str) -> Order:
    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if order is None:
        raise NotFoundError(f"Order {order_number} not found", entity="order", order_number=order_number)
    return order


def load_order_for_update(order_id: int) -> Order:
    order = (
        lock_for_update(db.session.query(Order).filter_by(id=order_id))
        .populate_existing()
        .first()
    )
    if order is None:
        raise NotFoundError(f"Order {order_id} not found", entity="order", id=order_id)
    return order


def append_timeline_entry(
    order: Order,
    *,
    status: str,
    message: str | None,
    updated_by: int | None,
    now: datetime,
) -> OrderTimelineEntry:
    entry = OrderTimelineEntry(
        position=len(order.timeline),
        status=status,
        message=message or default_status_message(status),
        timestamp=now,
        updated_by=updated_by,
    )
    order.timeline.append(entry)
    return entry


def apply_status_change(
    order: Order,
    new_status: str,
    *,
    message: str | None,
    updated_by: int | None,
    now: datetime,
) -> None:
    """Set status, its tracking/cancellation stamps and one timeline entry."""
    order.status = new_status
    if new_status == "shipped":
        order.shipped_at = now
    elif new_status == "delivered":
        order.delivered_at = now
    elif new_status == "cancelled":
        order.cancelled_at = now
        order.cancelled_by = updated_by
    order.updated_at = now
    append_timeline_entry(order, status=new_status, message=message, updated_by=updated_by, now=now)


def calculate_totals(order: Order) -> Order:
    """
    Recompute item subtotals and pricing from price x quantity.

    A coupon discount is re-derived from the new subtotal. Commission is
    left as locked; use recalculate_order to re-lock it.
    """
    for item in order.items:
        item.subtotal_cents = line_subtotal(item.price_cents, item.quantity)
    if order.coupon_discount_type:
        order.discount_cents = coupon_discount_cents(
            sum(item.subtotal_cents for item in order.items),
            order.coupon_discount,
            order.coupon_discount_type,
        )
    totals = compute_totals(
        (item.subtotal_cents for item in order.items),
        tax_cents=order.tax_cents or 0,
        shipping_cents=order.shipping_cents or 0,
        discount_cents=order.discount_cents or 0,
    )
    order.subtotal_cents = totals.subtotal_cents
    order.total_cents = totals.total_cents
    return order


def _lock_commission(order: Order, vendor: VendorRecord) -> None:
    order.commission_rate_bps = vendor.commission_rate_bps
    order.commission_cents = commission_cents(order.total_cents, vendor.commission_rate_bps)


def _require_vendor(vendor_id: int, vendors: VendorRepository, *, for_new_order: bool) -> VendorRecord:
    vendor = vendors.get(vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor {vendor_id} not found", entity="vendor", id=vendor_id)
    if for_new_order and (vendor.status != "approved" or not vendor.is_active):
        raise ValidationError(
            f"Vendor {vendor_id} is not accepting orders (status {vendor.status})",
            entity="vendor",
            id=vendor_id,
            field="status",
            expected="approved",
        )
    return vendor


def _clean_coupon(coupon: dict | None) -> dict | None:
    if not coupon:
        return None
    code = str(coupon.get("code") or "").strip().upper()
    if not code:
        raise ValidationError("coupon.code is required", field="coupon.code")
    discount_type = coupon.get("discount_type")
    if discount_type not in COUPON_DISCOUNT_TYPES:
        raise ValidationError(
            f"coupon.discount_type must be one of: {', '.join(COUPON_DISCOUNT_TYPES)}",
            field="coupon.discount_type",
            expected=list(COUPON_DISCOUNT_TYPES),
        )
    discount = require_non_negative_cents(coupon.get("discount"), field="coupon.discount")
    if discount_type == "percentage" and discount > 10000:
        raise ValidationError("coupon.discount must be <= 10000 bps", field="coupon.discount", expected="0-10000")
    return {"code": code, "discount": discount, "discount_type": discount_type}


def build_order(
    *,
    customer_id: int,
    vendor_id: int,
    items: list[dict],
    shipping_address: dict,
    payment_method: str,
    billing_address: dict | None = None,
    tax_cents: int = 0,
    shipping_cents: int = 0,
    discount_cents: int = 0,
    coupon: dict | None = None,
    notes: dict | None = None,
    currency: str = "USD",
    vendors: VendorRepository | None = None,
    identity: IdentityStore | None = None,
    clock: Clock | None = None,
) -> Order:
    """
    Validate a cart snapshot and add a pending Order to the session.

    Does not commit; create_order and checkout_service own the transaction.
    """
    vendors = vendors or get_vendor_repository()
    identity = identity or get_identity_store()
    clock = clock or get_clock()

    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item", entity="order", field="items")
    cleaned_items = [validate_order_item(item, index=i) for i, item in enumerate(items)]

    tax_cents = require_non_negative_cents(tax_cents, field="tax_cents")
    shipping_cents = require_non_negative_cents(shipping_cents, field="shipping_cents")
    discount_cents = require_non_negative_cents(discount_cents, field="discount_cents")

    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            field="payment_method",
            expected=list(PAYMENT_METHODS),
        )
    shipping = validate_address(shipping_address, field="shipping_address")
    billing = validate_address(billing_address, field="billing_address") if billing_address else dict(shipping)

    coupon = _clean_coupon(coupon)
    subtotal = sum(line_subtotal(i["price_cents"], i["quantity"]) for i in cleaned_items)
    if coupon is not None:
        if discount_cents:
            raise ValidationError("Provide either discount_cents or a coupon, not both", field="discount_cents")
        discount_cents = coupon_discount_cents(subtotal, coupon["discount"], coupon["discount_type"])
    if discount_cents > subtotal + tax_cents + shipping_cents:
        raise ValidationError(
            "discount_cents cannot exceed subtotal + tax + shipping",
            field="discount_cents",
            expected=f"<= {subtotal + tax_cents + shipping_cents}",
        )

    vendor = _require_vendor(vendor_id, vendors, for_new_order=True)
    customer = identity.get_user(customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found", entity="customer", id=customer_id)

    now = clock.now()
    notes = notes or {}
    order = Order(
        order_number=next_order_number(clock),
        customer_id=customer.id,
        vendor_id=vendor.id,
        customer_name=customer.full_name,
        customer_email=customer.email,
        vendor_name=vendor.business_name,
        tax_cents=tax_cents,
        shipping_cents=shipping_cents,
        discount_cents=discount_cents,
        shipping_address_json=shipping,
        billing_address_json=billing,
        payment_method=payment_method,
        payment_status="pending",
        payment_currency=(currency or "USD").upper(),
        status="pending",
        customer_note=notes.get("customer"),
        vendor_note=notes.get("vendor"),
        admin_note=notes.get("admin"),
        coupon_code=coupon["code"] if coupon else None,
        coupon_discount=coupon["discount"] if coupon else None,
        coupon_discount_type=coupon["discount_type"] if coupon else None,
        created_at=now,
        updated_at=now,
    )
    order.items = [OrderItem(position=i, subtotal_cents=0, **item) for i, item in enumerate(cleaned_items)]
    calculate_totals(order)
    _lock_commission(order, vendor)
    order.payment_amount_cents = order.total_cents

    db.session.add(order)
    db.session.flush()
    return order


def create_order(**kwargs) -> Order:
    """Create and commit a pending order; see build_order for arguments."""
    def _op() -> Order:
        order = build_order(**kwargs)
        current_app.logger.info(
            "Created order %s for vendor %s (total %s cents, commission %s cents)",
            order.order_number,
            order.vendor_id,
            order.total_cents,
            order.commission_cents,
        )
        return order

    return run_in_transaction(_op, entity_name="order")


def update_status(
    order_id: int,
    new_status: str,
    message: str | None = None,
    updated_by: int | None = None,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    """
    Move an order along the transition table and record a timeline entry.

    Raises InvalidStateTransition for transitions outside the table and
    ConflictError when `expected_version` (or the row version at commit)
    no longer matches.
    """
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        validate_transition(order.status, new_status)
        previous = order.status
        apply_status_change(order, new_status, message=message, updated_by=updated_by, now=clock.now())
        current_app.logger.info("Order %s status %s -> %s", order.order_number, previous, new_status)
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def update_tracking(
    order_id: int,
    *,
    carrier: str | None = None,
    tracking_number: str | None = None,
    estimated_delivery: datetime | None = None,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        if order.status in ("cancelled", "returned"):
            raise InvalidStateTransition(
                f"Cannot update tracking for a {order.status} order",
                from_status=order.status,
                entity="order",
                id=order.id,
            )
        if carrier is not None:
            order.carrier = carrier.strip() or None
        if tracking_number is not None:
            order.tracking_number = tracking_number.strip() or None
        if estimated_delivery is not None:
            order.estimated_delivery = estimated_delivery
        order.updated_at = clock.now()
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def update_order_items(
    order_id: int,
    items: list[dict],
    *,
    expected_version: int | None = None,
    vendors: VendorRepository | None = None,
    clock: Clock | None = None,
) -> Order:
    """Replace the items of a pending order; totals and commission are re-locked."""
    vendors = vendors or get_vendor_repository()
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        if order.status != "pending":
            raise InvalidStateTransition(
                f"Items can only change while the order is pending (status {order.status})",
                from_status=order.status,
                entity="order",
                id=order.id,
            )
        if not isinstance(items, list) or not items:
            raise ValidationError("Order must contain at least one item", entity="order", field="items")
        cleaned = [validate_order_item(item, index=i) for i, item in enumerate(items)]
        order.items = [OrderItem(position=i, subtotal_cents=0, **item) for i, item in enumerate(cleaned)]
        _recalculate(order, vendors=vendors, lock_commission=True)
        if order.total_cents < 0:
            raise ValidationError("discount_cents cannot exceed subtotal + tax + shipping", field="discount_cents")
        order.updated_at = clock.now()
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def _recalculate(order: Order, *, vendors: VendorRepository, lock_commission: bool) -> bool:
    previous_total = order.total_cents
    calculate_totals(order)
    changed = order.total_cents != previous_total
    if changed and lock_commission:
        _lock_commission(order, _require_vendor(order.vendor_id, vendors, for_new_order=False))
        if order.payment_status == "pending":
            order.payment_amount_cents = order.total_cents
    return changed


def recalculate_order(
    order_id: int,
    *,
    lock_commission: bool = True,
    vendors: VendorRepository | None = None,
    clock: Clock | None = None,
) -> Order:
    """Persist calculate_totals; when the total changed, commission is re-locked at the vendor's rate."""
    vendors = vendors or get_vendor_repository()
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        if _recalculate(order, vendors=vendors, lock_commission=lock_commission):
            order.updated_at = clock.now()
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def can_be_cancelled(order: Order) -> bool:
    return order.status in CANCELLABLE_STATUSES


def return_window_days(order: Order, *, vendors: VendorRepository | None = None) -> int | None:
    """
    Return window for an order in days, or None when the vendor accepts no returns.

    The vendor's return policy period overrides the configured default.
    """
    vendors = vendors or get_vendor_repository()
    vendor = vendors.get(order.vendor_id)
    if vendor is None:
        return int(current_app.config.get("RETURN_WINDOW_DAYS", 30))
    if not vendor.return_policy_enabled:
        return None
    if vendor.return_policy_period_days is None:
        return int(current_app.config.get("RETURN_WINDOW_DAYS", 30))
    return int(vendor.return_policy_period_days)


def can_be_returned(
    order: Order,
    *,
    now: datetime | None = None,
    window_days: int | None = None,
    vendors: VendorRepository | None = None,
    clock: Clock | None = None,
) -> bool:
    """Delivered and still inside the return window (measured from delivered_at, else updated_at)."""
    if order.status != "delivered":
        return False
    if window_days is None:
        window_days = return_window_days(order, vendors=vendors)
        if window_days is None:
            return False
    reference = order.delivered_at or order.updated_at
    if reference is None:
        return False
    now = to_utc_naive(now or (clock or get_clock()).now())
    return now - reference <= timedelta(days=window_days)


def cancel_order(
    order_id: int,
    reason: str | None = None,
    cancelled_by: int | None = None,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        if not can_be_cancelled(order):
            raise InvalidStateTransition(
                f"Order cannot be cancelled in status {order.status}",
                from_status=order.status,
                to_status="cancelled",
                entity="order",
                id=order.id,
            )
        order.cancellation_reason = (reason or "").strip() or DEFAULT_CANCEL_REASON
        apply_status_change(order, "cancelled", message="Order cancelled", updated_by=cancelled_by, now=clock.now())
        current_app.logger.info("Order %s cancelled: %s", order.order_number, order.cancellation_reason)
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def get_order_stats(
    vendor_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    """
    Aggregate orders for a vendor, optionally within [start, end] on created_at.

    Revenue and average cover every matched order; completed counts delivered.
    """
    query = db.session.query(Order).filter(Order.vendor_id == vendor_id)
    if start is not None:
        query = query.filter(Order.created_at >= start)
    if end is not None:
        query = query.filter(Order.created_at <= end)

    def _count_status(status: str):
        return db.func.coalesce(db.func.sum(db.case((Order.status == status, 1), else_=0)), 0)

    total_orders, total_revenue, pending, completed, cancelled = query.with_entities(
        db.func.count(Order.id),
        db.func.coalesce(db.func.sum(Order.total_cents), 0),
        _count_status("pending"),
        _count_status("delivered"),
        _count_status("cancelled"),
    ).one()

    total_orders = int(total_orders or 0)
    total_revenue = int(total_revenue or 0)
    average = 0
    if total_orders:
        average = int((Decimal(total_revenue) / Decimal(total_orders)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return {
        "total_orders": total_orders,
        "total_revenue_cents": total_revenue,
        "average_order_value_cents": average,
        "pending_orders": int(pending or 0),
        "completed_orders": int(completed or 0),
        "cancelled_orders": int(cancelled or 0),
    }
