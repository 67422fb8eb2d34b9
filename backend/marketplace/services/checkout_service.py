# Overview: Service-layer operations for checkout; splits a cart into per-vendor orders.

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..models import Order
from ..ports import (
    IdentityStore,
    ProductCatalog,
    VendorRepository,
    get_catalog,
    get_clock,
    get_identity_store,
    get_vendor_repository,
)
from ..time_utils import Clock
from .concurrency import run_in_transaction
from .order_service import build_order
from .pricing import apply_bps, line_subtotal


def shipping_for_subtotal(subtotal_cents: int) -> int:
    """Flat shipping below the free-shipping threshold, free at or above it."""
    threshold = int(current_app.config.get("FREE_SHIPPING_THRESHOLD_CENTS", 5000))
    if subtotal_cents >= threshold:
        return 0
    return int(current_app.config.get("FLAT_SHIPPING_CENTS", 599))


def tax_for_subtotal(subtotal_cents: int) -> int:
    return apply_bps(subtotal_cents, int(current_app.config.get("CHECKOUT_TAX_RATE_BPS", 800)))


def _group_lines_by_vendor(cart_lines: list[dict], catalog: ProductCatalog) -> dict[int, list[dict]]:
    if not isinstance(cart_lines, list) or not cart_lines:
        raise ValidationError("Cart is empty", entity="cart", field="items")

    product_ids = []
    for index, line in enumerate(cart_lines):
        if not isinstance(line, dict) or not isinstance(line.get("product_id"), int):
            raise ValidationError(f"items[{index}].product_id is required", field=f"items[{index}].product_id")
        product_ids.append(line["product_id"])
    products = catalog.get_products(product_ids)

    grouped: dict[int, list[dict]] = {}
    for index, line in enumerate(cart_lines):
        product = products.get(line["product_id"])
        if product is None:
            raise NotFoundError(f"Product {line['product_id']} not found", entity="product", id=line["product_id"])
        if not product.is_sellable:
            raise ValidationError(
                f"Product {product.name} is not available",
                entity="product",
                id=product.id,
                field=f"items[{index}]",
            )
        item = {
            "product_id": product.id,
            "name": product.name,
            "price_cents": product.price_cents,
            "quantity": line.get("quantity", 1),
            "sku": product.sku,
        }
        if product.image_url:
            item["image"] = {"url": product.image_url, "alt": product.name}
        if line.get("variant"):
            item["variant"] = line["variant"]
        grouped.setdefault(product.vendor_id, []).append(item)
    return grouped


def place_orders(
    *,
    customer_id: int,
    cart_lines: list[dict],
    shipping_address: dict,
    payment_method: str,
    billing_address: dict | None = None,
    customer_note: str | None = None,
    catalog: ProductCatalog | None = None,
    vendors: VendorRepository | None = None,
    identity: IdentityStore | None = None,
    clock: Clock | None = None,
) -> list[Order]:
    """
    Create one pending order per vendor in the cart.

    Prices come from the catalog, not the caller. Either every vendor
    order commits or none does.
    """
    catalog = catalog or get_catalog()
    vendors = vendors or get_vendor_repository()
    identity = identity or get_identity_store()
    clock = clock or get_clock()

    def _op() -> list[Order]:
        grouped = _group_lines_by_vendor(cart_lines, catalog)
        orders = []
        for vendor_id, items in grouped.items():
            subtotal = sum(
                line_subtotal(i["price_cents"], i["quantity"])
                for i in items
                if isinstance(i["quantity"], int)
            )
            orders.append(
                build_order(
                    customer_id=customer_id,
                    vendor_id=vendor_id,
                    items=items,
                    shipping_address=shipping_address,
                    billing_address=billing_address,
                    payment_method=payment_method,
                    tax_cents=tax_for_subtotal(subtotal),
                    shipping_cents=shipping_for_subtotal(subtotal),
                    notes={"customer": customer_note} if customer_note else None,
                    vendors=vendors,
                    identity=identity,
                    clock=clock,
                )
            )
        current_app.logger.info(
            "Checkout for customer %s created %s order(s): %s",
            customer_id,
            len(orders),
            ", ".join(o.order_number for o in orders),
        )
        return orders

    return run_in_transaction(_op, entity_name="checkout")
