# Overview: Service-layer operations for order returns; request/approve/reject workflow.

"""
Return workflow for delivered orders.

    request_return:  delivered + inside window  -> return_status = requested
    approve_return:  requested                  -> return_status = approved,
                                                   order status delivered -> returned
    reject_return:   requested                  -> return_status = rejected
    complete_return: approved                   -> return_status = completed

Only approve_return changes the order status, so it is the only step that
appends a timeline entry.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateTransition, ValidationError
from ..models import Order
from ..ports import VendorRepository, get_clock, get_vendor_repository
from ..time_utils import Clock
from .concurrency import check_version, run_in_transaction
from .order_service import load_order_for_update, apply_status_change, can_be_returned


def _require_return_status(order: Order, expected: str, action: str) -> None:
    if order.return_status != expected:
        raise InvalidStateTransition(
            f"Cannot {action} return for order {order.order_number} (return status {order.return_status})",
            from_status=order.return_status,
            entity="order",
            id=order.id,
        )


def request_return(
    order_id: int,
    reason: str,
    *,
    expected_version: int | None = None,
    vendors: VendorRepository | None = None,
    clock: Clock | None = None,
) -> Order:
    clock = clock or get_clock()
    vendors = vendors or get_vendor_repository()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError("Return reason is required", entity="order", id=order.id, field="reason")
        if order.return_requested:
            raise InvalidStateTransition(
                f"Return already requested for order {order.order_number}",
                from_status=order.return_status,
                entity="order",
                id=order.id,
            )
        now = clock.now()
        if not can_be_returned(order, now=now, vendors=vendors):
            raise InvalidStateTransition(
                f"Order {order.order_number} is not eligible for return",
                from_status=order.status,
                to_status="returned",
                entity="order",
                id=order.id,
            )
        order.return_requested = True
        order.return_reason = cleaned
        order.return_requested_at = now
        order.return_status = "requested"
        order.updated_at = now
        current_app.logger.info("Return requested for order %s", order.order_number)
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def approve_return(
    order_id: int,
    approved_by: int | None = None,
    message: str | None = None,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        _require_return_status(order, "requested", "approve")
        if order.status != "delivered":
            raise InvalidStateTransition(
                f"Cannot return order in status {order.status}",
                from_status=order.status,
                to_status="returned",
                entity="order",
                id=order.id,
            )
        now = clock.now()
        order.return_status = "approved"
        order.return_approved_at = now
        apply_status_change(
            order,
            "returned",
            message=message or "Return approved",
            updated_by=approved_by,
            now=now,
        )
        current_app.logger.info("Return approved for order %s", order.order_number)
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def reject_return(
    order_id: int,
    reason: str | None = None,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        _require_return_status(order, "requested", "reject")
        order.return_status = "rejected"
        if reason:
            order.admin_note = reason.strip()
        order.updated_at = clock.now()
        current_app.logger.info("Return rejected for order %s", order.order_number)
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)


def complete_return(
    order_id: int,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Order:
    """Mark an approved return as received back."""
    clock = clock or get_clock()

    def _op() -> Order:
        order = load_order_for_update(order_id)
        check_version(order, expected_version, entity_name="order")
        _require_return_status(order, "approved", "complete")
        order.return_status = "completed"
        order.updated_at = clock.now()
        return order

    return run_in_transaction(_op, entity_name="order", entity_id=order_id)
