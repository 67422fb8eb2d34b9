# Overview: Service-layer operations for reporting; vendor-facing summaries over orders and products.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Order
from ..ports import ProductCatalog, get_catalog, get_clock
from ..time_utils import Clock, to_utc_z
from .commission_service import compute_vendor_revenue
from .order_service import get_order_stats
from .vendor_service import get_vendor

RECENT_ORDERS_LIMIT = 5
DASHBOARD_WINDOW_DAYS = 30


def _month_start(moment):
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def vendor_dashboard(
    vendor_id: int,
    *,
    catalog: ProductCatalog | None = None,
    clock: Clock | None = None,
) -> dict:
    """
    Summary for a vendor's dashboard.

    - stats over orders created in the last 30 days
    - the 5 most recent orders
    - product counts by status
    - delivered revenue for the current calendar month
    - cached totals and rating as of the last stats refresh
    """
    catalog = catalog or get_catalog()
    clock = clock or get_clock()
    vendor = get_vendor(vendor_id)
    now = clock.now()

    recent_orders = (
        db.session.query(Order)
        .filter(Order.vendor_id == vendor.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(RECENT_ORDERS_LIMIT)
        .all()
    )

    products = catalog.list_by_vendor(vendor.id)
    product_counts = {
        "total": len(products),
        "active": sum(1 for p in products if p.is_sellable),
        "draft": sum(1 for p in products if p.status == "draft"),
    }

    month_revenue = (
        db.session.query(db.func.coalesce(db.func.sum(Order.total_cents), 0))
        .filter(
            Order.vendor_id == vendor.id,
            Order.status == "delivered",
            Order.created_at >= _month_start(now),
        )
        .scalar()
    )

    return {
        "vendor_id": vendor.id,
        "business_name": vendor.business_name,
        "status": vendor.status,
        "last_30_days": get_order_stats(vendor.id, start=now - timedelta(days=DASHBOARD_WINDOW_DAYS), end=now),
        "all_time": get_order_stats(vendor.id),
        "revenue": compute_vendor_revenue(vendor.id),
        "current_month_revenue_cents": int(month_revenue or 0),
        "recent_orders": [
            {
                "id": o.id,
                "order_number": o.order_number,
                "status": o.status,
                "total_cents": o.total_cents,
                "customer_name": o.customer_name,
                "created_at": to_utc_z(o.created_at),
            }
            for o in recent_orders
        ],
        "products": product_counts,
        "cached": {
            "total_products": vendor.total_products,
            "total_orders": vendor.total_orders,
            "total_revenue_cents": vendor.total_revenue_cents,
            "total_sales": vendor.total_sales,
            "rating": {"average": vendor.rating_average, "count": vendor.rating_count},
            "refreshed_at": to_utc_z(vendor.stats_refreshed_at),
        },
    }
