from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


VENDOR_STATUSES = ("pending", "approved", "rejected", "suspended")
BUSINESS_TYPES = ("individual", "company", "partnership")


class Vendor(db.Model):
    """
    Marketplace seller account (1:1 with a user).

    Totals and rating are cached aggregates; vendor_stats_service.refresh
    recomputes them from live data.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.CheckConstraint(
            "commission_rate_bps >= 0 AND commission_rate_bps <= 10000",
            name="ck_vendors_commission_rate_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    business_name = db.Column(db.String(100), nullable=False)
    business_description = db.Column(db.String(1000), nullable=True)
    business_type = db.Column(db.String(16), nullable=False, default="individual")

    address_json = db.Column(db.JSON, nullable=True)
    contact_json = db.Column(db.JSON, nullable=True)
    bank_details_json = db.Column(db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    approved_by = db.Column(db.Integer, nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)
    suspended_at = db.Column(db.DateTime, nullable=True)
    suspended_by = db.Column(db.Integer, nullable=True)
    suspension_reason = db.Column(db.String(500), nullable=True)

    # Percent in basis points (1000 = 10%)
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=1000)

    # Cached aggregates
    rating_average = db.Column(db.Float, nullable=False, default=0.0)  # one decimal place
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    total_sales = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    total_products = db.Column(db.Integer, nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    stats_refreshed_at = db.Column(db.DateTime, nullable=True)

    shipping_policies_json = db.Column(db.JSON, nullable=True)

    return_policy_enabled = db.Column(db.Boolean, nullable=False, default=True)
    return_policy_period_days = db.Column(db.Integer, nullable=False, default=30)
    return_policy_description = db.Column(db.String(500), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("vendor", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def commission_rate(self) -> Decimal:
        """Commission rate as a percent (Decimal, 0-100)."""
        return Decimal(self.commission_rate_bps or 0) / Decimal(100)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "business_name": self.business_name,
            "business_description": self.business_description,
            "business_type": self.business_type,
            "address": self.address_json,
            "contact": self.contact_json,
            "status": self.status,
            "approved_at": to_utc_z(self.approved_at),
            "approved_by": self.approved_by,
            "rejection_reason": self.rejection_reason,
            "suspended_at": to_utc_z(self.suspended_at),
            "suspension_reason": self.suspension_reason,
            "commission_rate": str(self.commission_rate),
            "rating": {"average": self.rating_average, "count": self.rating_count},
            "total_sales": self.total_sales,
            "total_revenue_cents": self.total_revenue_cents,
            "total_products": self.total_products,
            "total_orders": self.total_orders,
            "stats_refreshed_at": to_utc_z(self.stats_refreshed_at),
            "shipping_policies": self.shipping_policies_json,
            "return_policy": {
                "enabled": self.return_policy_enabled,
                "period_days": self.return_policy_period_days,
                "description": self.return_policy_description,
            },
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
