from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "returned")
PAYMENT_METHODS = ("stripe", "paypal", "cod")
PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "refunded", "partially_refunded")
RETURN_STATUSES = ("requested", "approved", "rejected", "completed")
COUPON_DISCOUNT_TYPES = ("percentage", "fixed")


class Order(db.Model):
    """
    Per-vendor order built from a cart snapshot.

    WHY: Money is stored in integer cents. Commission is locked at creation
    (and whenever the total is recalculated), so later vendor rate changes
    never rewrite history.

    Mutated only through order_service / return_service / payment_service;
    every status change appends exactly one OrderTimelineEntry.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_vendor_status_created", "vendor_id", "status", "created_at"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)

    # Display snapshot copied at creation
    customer_name = db.Column(db.String(130), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    vendor_name = db.Column(db.String(100), nullable=True)

    # Pricing (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    shipping_address_json = db.Column(db.JSON, nullable=False)
    billing_address_json = db.Column(db.JSON, nullable=True)

    # Payment
    payment_method = db.Column(db.String(16), nullable=False)
    payment_status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    payment_transaction_id = db.Column(db.String(128), nullable=True)
    payment_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_currency = db.Column(db.String(3), nullable=False, default="USD")
    paid_at = db.Column(db.DateTime, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)
    refund_amount_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Tracking
    carrier = db.Column(db.String(64), nullable=True)
    tracking_number = db.Column(db.String(128), nullable=True)
    shipped_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    estimated_delivery = db.Column(db.DateTime, nullable=True)

    # Notes
    customer_note = db.Column(db.String(1000), nullable=True)
    vendor_note = db.Column(db.String(1000), nullable=True)
    admin_note = db.Column(db.String(1000), nullable=True)

    # Commission (rate in basis points, amount in cents)
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)

    # Coupon
    coupon_code = db.Column(db.String(64), nullable=True)
    coupon_discount = db.Column(db.Integer, nullable=True)  # bps for percentage, cents for fixed
    coupon_discount_type = db.Column(db.String(16), nullable=True)

    # Cancellation
    cancellation_reason = db.Column(db.String(500), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)
    refund_processed = db.Column(db.Boolean, nullable=False, default=False)

    # Return
    return_requested = db.Column(db.Boolean, nullable=False, default=False)
    return_reason = db.Column(db.String(500), nullable=True)
    return_requested_at = db.Column(db.DateTime, nullable=True)
    return_approved_at = db.Column(db.DateTime, nullable=True)
    return_status = db.Column(db.String(16), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        back_populates="order",
    )
    timeline = db.relationship(
        "OrderTimelineEntry",
        order_by="OrderTimelineEntry.position",
        cascade="all, delete-orphan",
        back_populates="order",
    )
    vendor = db.relationship("Vendor", backref=db.backref("orders", lazy="dynamic"))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "vendor_id": self.vendor_id,
            "customer": {"name": self.customer_name, "email": self.customer_email},
            "vendor_name": self.vendor_name,
            "items": [item.to_dict() for item in self.items],
            "pricing": {
                "subtotal_cents": self.subtotal_cents,
                "tax_cents": self.tax_cents,
                "shipping_cents": self.shipping_cents,
                "discount_cents": self.discount_cents,
                "total_cents": self.total_cents,
            },
            "shipping_address": self.shipping_address_json,
            "billing_address": self.billing_address_json,
            "payment": {
                "method": self.payment_method,
                "status": self.payment_status,
                "transaction_id": self.payment_transaction_id,
                "amount_cents": self.payment_amount_cents,
                "currency": self.payment_currency,
                "paid_at": to_utc_z(self.paid_at),
                "refunded_at": to_utc_z(self.refunded_at),
                "refund_amount_cents": self.refund_amount_cents,
            },
            "status": self.status,
            "tracking": {
                "carrier": self.carrier,
                "tracking_number": self.tracking_number,
                "shipped_at": to_utc_z(self.shipped_at),
                "delivered_at": to_utc_z(self.delivered_at),
                "estimated_delivery": to_utc_z(self.estimated_delivery),
            },
            "notes": {
                "customer": self.customer_note,
                "vendor": self.vendor_note,
                "admin": self.admin_note,
            },
            "timeline": [entry.to_dict() for entry in self.timeline],
            "commission": {
                "rate_bps": self.commission_rate_bps,
                "amount_cents": self.commission_cents,
            },
            "coupon": {
                "code": self.coupon_code,
                "discount": self.coupon_discount,
                "discount_type": self.coupon_discount_type,
            } if self.coupon_code else None,
            "cancellation": {
                "reason": self.cancellation_reason,
                "cancelled_at": to_utc_z(self.cancelled_at),
                "cancelled_by": self.cancelled_by,
                "refund_processed": self.refund_processed,
            } if self.cancelled_at else None,
            "return": {
                "requested": self.return_requested,
                "reason": self.return_reason,
                "requested_at": to_utc_z(self.return_requested_at),
                "approved_at": to_utc_z(self.return_approved_at),
                "status": self.return_status,
            } if self.return_requested else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """Line item snapshot; subtotal_cents = price_cents * quantity."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("price_cents >= 0", name="ck_order_items_price_nonneg"),
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    image_url = db.Column(db.String(500), nullable=True)
    image_alt = db.Column(db.String(200), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    variant_name = db.Column(db.String(64), nullable=True)
    variant_value = db.Column(db.String(64), nullable=True)
    sku = db.Column(db.String(64), nullable=True)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "image": {"url": self.image_url, "alt": self.image_alt} if self.image_url else None,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "variant": {"name": self.variant_name, "value": self.variant_value} if self.variant_name else None,
            "sku": self.sku,
            "subtotal_cents": self.subtotal_cents,
        }


class OrderTimelineEntry(db.Model):
    """Append-only audit entry; one per status transition."""
    __tablename__ = "order_timeline_entries"
    __table_args__ = (
        db.UniqueConstraint("order_id", "position", name="uq_order_timeline_order_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False)
    message = db.Column(db.String(500), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False)
    updated_by = db.Column(db.Integer, nullable=True)

    order = db.relationship("Order", back_populates="timeline")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "message": self.message,
            "timestamp": to_utc_z(self.timestamp),
            "updated_by": self.updated_by,
        }


class OrderSequence(db.Model):
    """
    Atomic order-number sequence.

    WHY: Prevent duplicate order numbers when checkouts run concurrently.
    """
    __tablename__ = "order_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sequence_key = db.Column(db.String(32), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
