# Overview: Service-layer operations for order payments; records gateway outcomes and refunds.

"""
Payment bookkeeping on orders.

Gateway calls happen outside this service; callers report the outcome
(transaction id, failure, refund) and this module keeps the order's
payment fields consistent:

    pending | processing | failed -> completed        record_payment
    pending | processing          -> failed           record_payment_failure
    completed | partially_refunded -> partially_refunded | refunded   refund_payment

All amounts are integer cents.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateTransition, ValidationError
from ..models import Order
from ..ports import get_clock
from ..time_utils import Clock
from ..validation import require_non_negative_cents
from .concurrency import check_version, run_in_transaction
from .order_service import load_order_for_update

PAYABLE_STATUSES = frozenset({"pending", "processing", "failed"})
REFUNDABLE_STATUSES = frozenset({"completed", "partially_refunded"})


def _require_payment_status(order: Order, allowed: frozenset[str], target: str) -> None:
    if order.payment_status not in allowed:
        raise InvalidStateTransition(
            f"Cannot change payment from {order.payment_status} to {target}",
            from_status=order.payment_status,
            to_status=target,
            entity="payment",
            id=order.id,
        )


def mark_payment_processing(order_id: int, *, expected_version: int | None = None) -> Order:
    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        _require_payment_status(order, frozenset({"pending"}), "processing")
        order.payment_status = "processing"
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def record_payment(
    order_id: int,
    transaction_id: str,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    """Record a captured payment for the full order total."""
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        if not transaction_id or not str(transaction_id).strip():
            raise ValidationError("transaction_id is required", entity="payment", field="transaction_id")
        if order.status in ("cancelled", "returned"):
            raise InvalidStateTransition(
                f"Cannot take payment for a {order.status} order",
                from_status=order.status,
                entity="order",
                id=order.id,
            )
        _require_payment_status(order, PAYABLE_STATUSES, "completed")
        now = clock.now()
        order.payment_status = "completed"
        order.payment_transaction_id = str(transaction_id).strip()
        order.payment_amount_cents = order.total_cents
        order.paid_at = now
        order.updated_at = now
        current_app.logger.info("Payment %s recorded for order %s", order.payment_transaction_id, order.order_number)
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def record_payment_failure(
    order_id: int,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        _require_payment_status(order, frozenset({"pending", "processing"}), "failed")
        order.payment_status = "failed"
        order.updated_at = clock.now()
        current_app.logger.warning("Payment failed for order %s", order.order_number)
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def refund_payment(
    order_id: int,
    amount_cents: int | None = None,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    """
    Refund all (default) or part of the captured amount.

    Refunds accumulate in refund_amount_cents; reaching the captured amount
    makes the payment `refunded`, anything less `partially_refunded`.
    """
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        _require_payment_status(order, REFUNDABLE_STATUSES, "refunded")

        already = order.refund_amount_cents or 0
        remaining = order.payment_amount_cents - already
        amount = remaining if amount_cents is None else require_non_negative_cents(amount_cents, field="amount_cents")
        if amount <= 0 or amount > remaining:
            raise ValidationError(
                f"Refund amount must be between 1 and {remaining} cents",
                entity="payment",
                id=order.id,
                field="amount_cents",
                expected=f"1-{remaining}",
            )

        now = clock.now()
        order.refund_amount_cents = already + amount
        order.payment_status = "refunded" if order.refund_amount_cents == order.payment_amount_cents else "partially_refunded"
        order.refunded_at = now
        order.updated_at = now
        if order.status == "cancelled" and order.payment_status == "refunded":
            order.refund_processed = True
        current_app.logger.info(
            "Refunded %s cents on order %s (%s)", amount, order.order_number, order.payment_status
        )
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)
