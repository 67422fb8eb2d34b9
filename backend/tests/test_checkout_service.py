# Overview: Pytest coverage for checkout splitting a cart into per-vendor orders.

import pytest

from marketplace.errors import NotFoundError, ValidationError
from marketplace.models import Order, Product
from marketplace.services import category_service, checkout_service, vendor_service


@pytest.fixture
def chisel(db_session, second_vendor):
    product = Product(
        vendor_id=second_vendor.id,
        name="Chisel",
        sku="CH-1",
        price_cents=2000,
        image_url="https://img.example.com/chisel.png",
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def checkout(clock, customer, shipping_address):
    def _checkout(cart_lines, **overrides):
        kwargs = {
            "customer_id": customer.id,
            "cart_lines": cart_lines,
            "shipping_address": shipping_address,
            "payment_method": "paypal",
        }
        kwargs.update(overrides)
        return checkout_service.place_orders(**kwargs)

    return _checkout


class TestShippingAndTax:
    @pytest.mark.parametrize("subtotal,expected", [(0, 599), (4999, 599), (5000, 0), (12000, 0)])
    def test_shipping(self, app, subtotal, expected):
        with app.app_context():
            assert checkout_service.shipping_for_subtotal(subtotal) == expected

    @pytest.mark.parametrize("subtotal,expected", [(10000, 800), (4000, 320), (1234, 99), (0, 0)])
    def test_tax(self, app, subtotal, expected):
        with app.app_context():
            assert checkout_service.tax_for_subtotal(subtotal) == expected


class TestPlaceOrders:
    def test_one_order_per_vendor(self, db_session, checkout, laptop, chisel, vendor, second_vendor):
        orders = checkout([
            {"product_id": laptop.id, "quantity": 1},
            {"product_id": chisel.id, "quantity": 2, "price_cents": 1},
        ], customer_note="Leave at the door")

        assert [o.vendor_id for o in orders] == [vendor.id, second_vendor.id]
        first, second = orders

        assert (first.subtotal_cents, first.tax_cents, first.shipping_cents, first.total_cents) == (10000, 800, 0, 10800)
        assert first.commission_cents == 1080

        assert second.items[0].price_cents == 2000
        assert (second.subtotal_cents, second.tax_cents, second.shipping_cents, second.total_cents) == (4000, 320, 599, 4919)
        assert second.commission_rate_bps == 1500
        assert second.commission_cents == 738  # 49.19 * 15% = 7.3785
        assert second.items[0].image_url == "https://img.example.com/chisel.png"

        assert all(o.status == "pending" and o.payment_method == "paypal" for o in orders)
        assert all(o.customer_note == "Leave at the door" for o in orders)
        assert first.order_number != second.order_number
        assert db_session.query(Order).count() == 2

    def test_all_or_nothing(self, db_session, checkout, laptop, chisel, second_vendor):
        vendor_service.suspend_vendor(second_vendor.id)
        with pytest.raises(ValidationError):
            checkout([
                {"product_id": laptop.id, "quantity": 1},
                {"product_id": chisel.id, "quantity": 1},
            ])
        assert db_session.query(Order).count() == 0

    def test_unknown_product(self, db_session, checkout, laptop):
        with pytest.raises(NotFoundError):
            checkout([{"product_id": laptop.id, "quantity": 1}, {"product_id": 9999, "quantity": 1}])
        assert db_session.query(Order).count() == 0

    def test_unavailable_product(self, db_session, checkout, laptop):
        laptop.status = "draft"
        db_session.commit()
        with pytest.raises(ValidationError) as exc:
            checkout([{"product_id": laptop.id, "quantity": 1}])
        assert exc.value.details["field"] == "items[0]"

    @pytest.mark.parametrize("cart,field", [
        ([], "items"),
        ([{"quantity": 1}], "items[0].product_id"),
    ])
    def test_malformed_cart(self, checkout, laptop, cart, field):
        with pytest.raises(ValidationError) as exc:
            checkout(cart)
        assert exc.value.details["field"] == field

    def test_invalid_quantity(self, db_session, checkout, laptop):
        with pytest.raises(ValidationError) as exc:
            checkout([{"product_id": laptop.id, "quantity": 0}])
        assert exc.value.details["field"] == "items[0].quantity"
        assert db_session.query(Order).count() == 0

    def test_malformed_variant_rolls_back_every_vendor_order(self, db_session, checkout, laptop, chisel):
        with pytest.raises(ValidationError) as exc:
            checkout([
                {"product_id": laptop.id, "quantity": 1},
                {"product_id": chisel.id, "quantity": 1, "variant": "Red"},
            ])
        assert exc.value.details["field"] == "items[0].variant"

        # A later unit of work must not commit the first vendor's flushed order
        category_service.create_category("Tools")
        assert db_session.query(Order).count() == 0

    def test_unexpected_error_rolls_back_checkout(self, db_session, checkout, laptop, chisel, monkeypatch):
        calls = []
        real_build = checkout_service.build_order

        def _build_then_fail(**kwargs):
            calls.append(kwargs["vendor_id"])
            if len(calls) == 2:
                raise RuntimeError("gateway timeout")
            return real_build(**kwargs)

        monkeypatch.setattr(checkout_service, "build_order", _build_then_fail)
        with pytest.raises(RuntimeError):
            checkout([
                {"product_id": laptop.id, "quantity": 1},
                {"product_id": chisel.id, "quantity": 1},
            ])

        category_service.create_category("Tools")
        assert db_session.query(Order).count() == 0
