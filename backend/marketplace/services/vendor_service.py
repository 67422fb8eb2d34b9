# Overview: Service-layer operations for vendors; encapsulates business logic and database work.

"""
Vendor Service

Vendor accounts are 1:1 with users and move through an admin-driven
approval flow:

    pending -> approved | rejected
    approved -> suspended -> approved (reinstate)

Only approved, active vendors can receive new orders (see order_service).
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import User, Vendor
from ..ports import get_clock
from ..time_utils import Clock
from ..validation import (
    VENDOR_APPLICATION_POLICY,
    VENDOR_PROFILE_POLICY,
    enforce_rules_vendor,
    require_commission_rate,
    validate_payload,
)
from .concurrency import check_version, run_in_transaction
from .pricing import percent_to_bps

VENDOR_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset({"suspended"}),
    "suspended": frozenset({"approved"}),
    "rejected": frozenset(),
}


def get_vendor(vendor_id: int) -> Vendor:
    vendor = db.session.get(Vendor, vendor_id)
    if vendor is None:
        raise NotFoundError(f"Vendor {vendor_id} not found", entity="vendor", id=vendor_id)
    return vendor


def get_vendor_for_user(user_id: int) -> Vendor | None:
    return db.session.query(Vendor).filter_by(user_id=user_id).first()


def list_vendors(*, status: str | None = None) -> list[Vendor]:
    query = db.session.query(Vendor)
    if status is not None:
        query = query.filter(Vendor.status == status)
    return query.order_by(Vendor.id).all()


def _transition(vendor: Vendor, to_status: str) -> None:
    if to_status not in VENDOR_TRANSITIONS.get(vendor.status, frozenset()):
        raise InvalidStateTransition(
            f"Cannot change vendor status from {vendor.status} to {to_status}",
            from_status=vendor.status,
            to_status=to_status,
            entity="vendor",
            id=vendor.id,
        )
    vendor.status = to_status


def apply_vendor(user_id: int, payload: dict, *, clock: Clock | None = None) -> Vendor:
    """Create a pending vendor application; one per user."""
    clock = clock or get_clock()

    def _op() -> Vendor:
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", entity="user", id=user_id)
        if get_vendor_for_user(user_id) is not None:
            raise ValidationError(
                "Vendor application already exists for this user",
                entity="vendor",
                field="user_id",
                id=user_id,
            )
        patch = validate_payload(model=Vendor, payload=payload, policy=VENDOR_APPLICATION_POLICY, partial=False)
        enforce_rules_vendor(patch)

        now = clock.now()
        fields = {
            "return_policy_period_days": int(current_app.config.get("RETURN_WINDOW_DAYS", 30)),
            **patch,
        }
        vendor = Vendor(
            user_id=user.id,
            status="pending",
            commission_rate_bps=percent_to_bps(current_app.config.get("DEFAULT_COMMISSION_RATE", 10)),
            created_at=now,
            updated_at=now,
            **fields,
        )
        db.session.add(vendor)
        db.session.flush()
        current_app.logger.info("Vendor application %s received from user %s", vendor.id, user_id)
        return vendor

    return run_in_transaction(_op, entity_name="vendor")


def update_vendor_profile(
    vendor_id: int,
    payload: dict,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Vendor:
    clock = clock or get_clock()

    def _op() -> Vendor:
        vendor = get_vendor(vendor_id)
        check_version(vendor, expected_version, entity_name="vendor")
        patch = validate_payload(model=Vendor, payload=payload, policy=VENDOR_PROFILE_POLICY, partial=True)
        enforce_rules_vendor(patch)
        for key, value in patch.items():
            setattr(vendor, key, value)
        vendor.updated_at = clock.now()
        return vendor

    return run_in_transaction(_op, entity_name="vendor", entity_id=vendor_id)


def approve_vendor(vendor_id: int, approved_by: int | None = None, *, clock: Clock | None = None) -> Vendor:
    clock = clock or get_clock()

    def _op() -> Vendor:
        vendor = get_vendor(vendor_id)
        _transition(vendor, "approved")
        now = clock.now()
        vendor.approved_at = now
        vendor.approved_by = approved_by
        vendor.rejection_reason = None
        vendor.updated_at = now
        current_app.logger.info("Vendor %s approved by %s", vendor.id, approved_by)
        return vendor

    return run_in_transaction(_op, entity_name="vendor", entity_id=vendor_id)


def reject_vendor(vendor_id: int, reason: str, *, clock: Clock | None = None) -> Vendor:
    clock = clock or get_clock()

    def _op() -> Vendor:
        vendor = get_vendor(vendor_id)
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError("Rejection reason is required", entity="vendor", id=vendor_id, field="reason")
        _transition(vendor, "rejected")
        vendor.rejection_reason = cleaned
        vendor.updated_at = clock.now()
        current_app.logger.info("Vendor %s rejected", vendor.id)
        return vendor

    return run_in_transaction(_op, entity_name="vendor", entity_id=vendor_id)


def suspend_vendor(
    vendor_id: int,
    reason: str | None = None,
    suspended_by: int | None = None,
    *,
    clock: Clock | None = None,
) -> Vendor:
    clock = clock or get_clock()

    def _op() -> Vendor:
        vendor = get_vendor(vendor_id)
        _transition(vendor, "suspended")
        now = clock.now()
        vendor.suspended_at = now
        vendor.suspended_by = suspended_by
        vendor.suspension_reason = (reason or "").strip() or None
        vendor.updated_at = now
        current_app.logger.warning("Vendor %s suspended: %s", vendor.id, vendor.suspension_reason)
        return vendor

    return run_in_transaction(_op, entity_name="vendor", entity_id=vendor_id)


def reinstate_vendor(vendor_id: int, *, clock: Clock | None = None) -> Vendor:
    clock = clock or get_clock()

    def _op() -> Vendor:
        vendor = get_vendor(vendor_id)
        if vendor.status != "suspended":
            raise InvalidStateTransition(
                f"Only suspended vendors can be reinstated (status {vendor.status})",
                from_status=vendor.status,
                to_status="approved",
                entity="vendor",
                id=vendor.id,
            )
        _transition(vendor, "approved")
        vendor.suspended_at = None
        vendor.suspended_by = None
        vendor.suspension_reason = None
        vendor.updated_at = clock.now()
        current_app.logger.info("Vendor %s reinstated", vendor.id)
        return vendor

    return run_in_transaction(_op, entity_name="vendor", entity_id=vendor_id)


def set_commission_rate(
    vendor_id: int,
    rate_percent,
    *,
    expected_version: int | None = None,
    clock: Clock | None = None,
) -> Vendor:
    """
    Change the vendor's commission rate (percent, 0-100).

    Existing orders keep the commission locked when they were created.
    """
    clock = clock or get_clock()

    def _op() -> Vendor:
        vendor = get_vendor(vendor_id)
        check_version(vendor, expected_version, entity_name="vendor")
        vendor.commission_rate_bps = require_commission_rate(rate_percent)
        vendor.updated_at = clock.now()
        current_app.logger.info("Vendor %s commission rate set to %s%%", vendor.id, vendor.commission_rate)
        return vendor

    return run_in_transaction(_op, entity_name="vendor", entity_id=vendor_id)
