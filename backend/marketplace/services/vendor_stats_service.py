# Overview: Service-layer operations for vendor statistics; on-demand recomputation of cached aggregates.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..models import Order, OrderItem, Vendor
from ..ports import ProductCatalog, ReviewStore, get_catalog, get_clock, get_review_store
from ..time_utils import Clock
from .concurrency import run_in_transaction
from .vendor_service import get_vendor


def average_rating(ratings: list[int]) -> float:
    """Mean rating rounded half-up to one decimal; 0.0 when there are none."""
    if not ratings:
        return 0.0
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def delivered_order_totals(vendor_id: int) -> tuple[int, int, int]:
    """(delivered order count, delivered revenue cents, units sold) for a vendor."""
    count, revenue = (
        db.session.query(
            db.func.count(Order.id),
            db.func.coalesce(db.func.sum(Order.total_cents), 0),
        )
        .filter(Order.vendor_id == vendor_id, Order.status == "delivered")
        .one()
    )
    units = (
        db.session.query(db.func.coalesce(db.func.sum(OrderItem.quantity), 0))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.vendor_id == vendor_id, Order.status == "delivered")
        .scalar()
    )
    return int(count or 0), int(revenue or 0), int(units or 0)


def refresh(
    vendor_id: int,
    *,
    catalog: ProductCatalog | None = None,
    reviews: ReviewStore | None = None,
    clock: Clock | None = None,
) -> Vendor:
    """
    Recompute the vendor's cached totals and rating from live data.

    Running it twice without intervening changes yields the same values.
    """
    catalog = catalog or get_catalog()
    reviews = reviews or get_review_store()
    clock = clock or get_clock()

    def _op() -> Vendor:
        vendor = get_vendor(vendor_id)

        products = catalog.list_by_vendor(vendor.id)
        total_orders, revenue, units = delivered_order_totals(vendor.id)
        ratings = [r.rating for r in reviews.reviews_for_vendor(vendor.id)]

        vendor.total_products = sum(1 for p in products if p.is_sellable)
        vendor.total_orders = total_orders
        vendor.total_revenue_cents = revenue
        vendor.total_sales = units
        vendor.rating_count = len(ratings)
        vendor.rating_average = average_rating(ratings)
        vendor.stats_refreshed_at = clock.now()

        current_app.logger.info(
            "Refreshed stats for vendor %s: %s products, %s delivered orders, %s cents",
            vendor.id,
            vendor.total_products,
            vendor.total_orders,
            vendor.total_revenue_cents,
        )
        return vendor

    return run_in_transaction(_op, entity_name="vendor", entity_id=vendor_id)


def refresh_all(
    *,
    catalog: ProductCatalog | None = None,
    reviews: ReviewStore | None = None,
    clock: Clock | None = None,
) -> list[Vendor]:
    vendor_ids = [vid for (vid,) in db.session.query(Vendor.id).order_by(Vendor.id).all()]
    return [refresh(vid, catalog=catalog, reviews=reviews, clock=clock) for vid in vendor_ids]
