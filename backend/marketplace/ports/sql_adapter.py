"""SQL-backed adapters for the read-side ports."""

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import Product, Review, User, Vendor
from .port import (
    IdentityStore,
    ProductCatalog,
    ProductRecord,
    ReviewRecord,
    ReviewStore,
    UserRecord,
    VendorRecord,
    VendorRepository,
)


def _product_record(product: Product) -> ProductRecord:
    return ProductRecord(
        id=product.id,
        vendor_id=product.vendor_id,
        category_id=product.category_id,
        name=product.name,
        price_cents=product.price_cents,
        status=product.status,
        is_active=bool(product.is_active),
        sku=product.sku,
        image_url=product.image_url,
    )


class SqlProductCatalog(ProductCatalog):
    def count_active_products(self, category_ids: Iterable[int]) -> int:
        ids = list(category_ids)
        if not ids:
            return 0
        return (
            db.session.query(db.func.count(Product.id))
            .filter(
                Product.category_id.in_(ids),
                Product.status == "active",
                Product.is_active.is_(True),
            )
            .scalar()
            or 0
        )

    def count_products_in_categories(self, category_ids: Iterable[int]) -> int:
        ids = list(category_ids)
        if not ids:
            return 0
        return (
            db.session.query(db.func.count(Product.id))
            .filter(Product.category_id.in_(ids))
            .scalar()
            or 0
        )

    def list_by_vendor(self, vendor_id: int) -> list[ProductRecord]:
        rows = db.session.query(Product).filter_by(vendor_id=vendor_id).order_by(Product.id).all()
        return [_product_record(p) for p in rows]

    def get_products(self, product_ids: Iterable[int]) -> dict[int, ProductRecord]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = db.session.query(Product).filter(Product.id.in_(ids)).all()
        return {p.id: _product_record(p) for p in rows}


class SqlReviewStore(ReviewStore):
    def reviews_for_vendor(self, vendor_id: int) -> list[ReviewRecord]:
        rows = (
            db.session.query(Review)
            .filter(Review.vendor_id == vendor_id, Review.is_approved.is_(True))
            .order_by(Review.id)
            .all()
        )
        return [
            ReviewRecord(id=r.id, vendor_id=r.vendor_id, rating=r.rating, is_approved=r.is_approved)
            for r in rows
        ]


class SqlIdentityStore(IdentityStore):
    def get_user(self, user_id: int) -> UserRecord | None:
        user = db.session.get(User, user_id)
        if user is None:
            return None
        return UserRecord(id=user.id, first_name=user.first_name, last_name=user.last_name, email=user.email)


class SqlVendorRepository(VendorRepository):
    def get(self, vendor_id: int) -> VendorRecord | None:
        vendor = db.session.get(Vendor, vendor_id)
        if vendor is None:
            return None
        return VendorRecord(
            id=vendor.id,
            business_name=vendor.business_name,
            status=vendor.status,
            is_active=bool(vendor.is_active),
            commission_rate_bps=vendor.commission_rate_bps,
            return_policy_enabled=bool(vendor.return_policy_enabled),
            return_policy_period_days=vendor.return_policy_period_days,
        )
