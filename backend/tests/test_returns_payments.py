# Overview: Pytest coverage for the return workflow and payment bookkeeping on orders.

from datetime import timedelta

import pytest

from marketplace.errors import InvalidStateTransition, ValidationError
from marketplace.services import order_service, payment_service, return_service

DELIVERED_PATH = ("confirmed", "processing", "shipped", "delivered")


@pytest.fixture
def delivered_order(make_order, advance):
    order = make_order()
    return advance(order.id, *DELIVERED_PATH)


class TestReturns:
    def test_request_inside_window(self, delivered_order, clock):
        clock.advance(timedelta(days=10))
        order = return_service.request_return(delivered_order.id, "  Screen flickers  ")
        assert order.return_requested is True
        assert order.return_status == "requested"
        assert order.return_reason == "Screen flickers"
        assert order.return_requested_at == clock.now()
        assert order.status == "delivered"
        assert len(order.timeline) == 4

    def test_request_after_window_rejected(self, delivered_order, clock):
        clock.advance(timedelta(days=31))
        with pytest.raises(InvalidStateTransition):
            return_service.request_return(delivered_order.id, "Too late")
        assert order_service.get_order(delivered_order.id).return_requested is False

    def test_reason_required(self, delivered_order):
        with pytest.raises(ValidationError) as exc:
            return_service.request_return(delivered_order.id, "   ")
        assert exc.value.details["field"] == "reason"

    def test_not_delivered_rejected(self, make_order):
        order = make_order()
        with pytest.raises(InvalidStateTransition):
            return_service.request_return(order.id, "Changed my mind")

    def test_duplicate_request_rejected(self, delivered_order):
        return_service.request_return(delivered_order.id, "Broken")
        with pytest.raises(InvalidStateTransition):
            return_service.request_return(delivered_order.id, "Broken again")

    def test_approve_moves_order_to_returned(self, delivered_order, clock):
        return_service.request_return(delivered_order.id, "Broken")
        clock.advance(timedelta(days=1))
        order = return_service.approve_return(delivered_order.id, approved_by=5)

        assert order.status == "returned"
        assert order.return_status == "approved"
        assert order.return_approved_at == clock.now()
        last = order.timeline[-1]
        assert (last.status, last.message, last.updated_by) == ("returned", "Return approved", 5)
        assert len(order.timeline) == 5

    def test_returned_is_terminal(self, delivered_order):
        return_service.request_return(delivered_order.id, "Broken")
        return_service.approve_return(delivered_order.id)
        for status in ("delivered", "cancelled", "pending"):
            with pytest.raises(InvalidStateTransition):
                order_service.update_status(delivered_order.id, status)

    def test_approve_requires_request(self, delivered_order):
        with pytest.raises(InvalidStateTransition):
            return_service.approve_return(delivered_order.id)
        assert order_service.get_order(delivered_order.id).status == "delivered"

    def test_reject_keeps_order_delivered(self, delivered_order):
        return_service.request_return(delivered_order.id, "Broken")
        order = return_service.reject_return(delivered_order.id, "Item shows water damage")
        assert order.status == "delivered"
        assert order.return_status == "rejected"
        assert order.admin_note == "Item shows water damage"
        assert len(order.timeline) == 4

    def test_complete_after_approval(self, delivered_order):
        return_service.request_return(delivered_order.id, "Broken")
        with pytest.raises(InvalidStateTransition):
            return_service.complete_return(delivered_order.id)
        return_service.approve_return(delivered_order.id)
        order = return_service.complete_return(delivered_order.id)
        assert order.return_status == "completed"
        assert order.status == "returned"


class TestPayments:
    def test_record_payment(self, make_order, clock):
        order = make_order()
        payment_service.mark_payment_processing(order.id)
        order = payment_service.record_payment(order.id, " pi_123 ")
        assert order.payment_status == "completed"
        assert order.payment_transaction_id == "pi_123"
        assert order.payment_amount_cents == 21500
        assert order.paid_at == clock.now()

    def test_transaction_id_required(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError):
            payment_service.record_payment(order.id, "")

    def test_failure_then_retry(self, make_order):
        order = make_order()
        order = payment_service.record_payment_failure(order.id)
        assert order.payment_status == "failed"
        order = payment_service.record_payment(order.id, "pi_retry")
        assert order.payment_status == "completed"

    def test_cannot_pay_cancelled_order(self, make_order):
        order = make_order()
        order_service.cancel_order(order.id)
        with pytest.raises(InvalidStateTransition):
            payment_service.record_payment(order.id, "pi_late")

    def test_refund_requires_capture(self, make_order):
        order = make_order()
        with pytest.raises(InvalidStateTransition):
            payment_service.refund_payment(order.id)

    def test_partial_refunds_accumulate(self, make_order):
        order = make_order()
        payment_service.record_payment(order.id, "pi_1")

        order = payment_service.refund_payment(order.id, 5000)
        assert order.payment_status == "partially_refunded"
        assert order.refund_amount_cents == 5000

        order = payment_service.refund_payment(order.id)
        assert order.payment_status == "refunded"
        assert order.refund_amount_cents == 21500

    @pytest.mark.parametrize("amount", [0, 21501, -1])
    def test_refund_amount_bounds(self, make_order, amount):
        order = make_order()
        payment_service.record_payment(order.id, "pi_1")
        with pytest.raises(ValidationError):
            payment_service.refund_payment(order.id, amount)
        reloaded = order_service.get_order(order.id)
        assert reloaded.payment_status == "completed"
        assert reloaded.refund_amount_cents is None

    def test_full_refund_of_cancelled_order_is_processed(self, make_order):
        order = make_order()
        payment_service.record_payment(order.id, "pi_1")
        order_service.cancel_order(order.id, "Out of stock")
        order = payment_service.refund_payment(order.id)
        assert order.refund_processed is True
        assert order.to_dict()["cancellation"]["refund_processed"] is True

    def test_refund_does_not_touch_commission(self, make_order):
        order = make_order()
        payment_service.record_payment(order.id, "pi_1")
        order = payment_service.refund_payment(order.id, 100)
        assert order.commission_cents == 2150
        assert order.total_cents == 21500
