"""Tests for the Order and SubOrder aggregates."""

from datetime import UTC, datetime, timedelta

import pytest

from marketplace.errors import AppError, ConflictError, ForbiddenError
from marketplace.order.events import OrderPlaced, SubOrderStatusChanged
from marketplace.order.order import Order, SubOrder, is_return_window_valid
from marketplace.order.state_machine import RETURN_WINDOW


def _make_order(**overrides):
    defaults = {
        "user_id": "user-001",
        "subtotal": 300000.0,
        "shipping_total": 40000.0,
        "discount_total": 10000.0,
        "payment_method": "vnpay",
        "sub_order_count": 2,
    }
    defaults.update(overrides)
    return Order.place(**defaults)


def _make_sub_order(status=None, **overrides):
    defaults = {
        "order_id": "ord-001",
        "user_id": "user-001",
        "shop_id": "shop-a",
        "items_data": [
            {"product_id": "p1", "variant_id": "v1", "sku": "A-1", "product_name": "Mug", "quantity": 2, "unit_price": 50000.0},
            {"product_id": "p2", "variant_id": "v2", "sku": "A-2", "product_name": "Cup", "quantity": 1, "unit_price": 30000.0},
        ],
        "shipping_fee": 20000.0,
        "discount": 5000.0,
    }
    defaults.update(overrides)
    sub_order = SubOrder.open(**defaults)
    if status:
        sub_order.status = status
    return sub_order


class TestOrderPlacement:
    def test_new_order_is_pending_payment(self):
        order = _make_order()
        assert order.status == "pending_payment"
        assert order.payment_status == "pending"

    @pytest.mark.parametrize("method", ["cod", "vnpay", "momo", "wallet"])
    def test_new_order_is_pending_payment_for_every_method(self, method):
        assert _make_order(payment_method=method).status == "pending_payment"

    def test_grand_total(self):
        assert _make_order().grand_total == 330000.0

    def test_order_number_format(self):
        assert _make_order().order_number.startswith("ORD-")

    def test_raises_order_placed(self):
        order = _make_order()
        placed = [e for e in order._events if isinstance(e, OrderPlaced)]
        assert len(placed) == 1
        assert placed[0].sub_order_count == 2


class TestOrderPayment:
    def test_mark_paid_confirms(self):
        order = _make_order()
        order.mark_paid()
        assert order.status == "confirmed"
        assert order.payment_status == "paid"
        assert order.paid_at is not None

    def test_mark_payment_failed(self):
        order = _make_order()
        order.mark_payment_failed("vnpay_24")
        assert order.status == "payment_failed"
        assert order.payment_status == "failed"

    def test_second_outcome_rejected(self):
        order = _make_order()
        order.mark_paid()
        with pytest.raises(ConflictError):
            order.mark_payment_failed()
        assert order.payment_status == "paid"

    def test_cod_confirmation_keeps_payment_pending(self):
        order = _make_order(payment_method="cod")
        order.confirm_cash_on_delivery()
        assert order.status == "confirmed"
        assert order.payment_status == "pending"
        assert order.awaiting_payment is False


class TestOrderCancellation:
    def test_cancel_pending_order(self):
        order = _make_order()
        order.cancel("changed my mind")
        assert order.status == "cancelled"
        assert order.cancel_reason == "changed my mind"

    def test_cannot_cancel_failed_order(self):
        order = _make_order()
        order.mark_payment_failed()
        with pytest.raises(AppError) as exc_info:
            order.cancel("too late")
        assert exc_info.value.code == "ORDER_CANNOT_CANCEL"


class TestSubOrderOpening:
    def test_totals_from_items(self):
        sub_order = _make_sub_order()
        assert sub_order.subtotal == 130000.0
        assert sub_order.total == 145000.0

    def test_line_totals_captured(self):
        sub_order = _make_sub_order()
        assert sorted(item.line_total for item in sub_order.items) == [30000.0, 100000.0]

    def test_starts_pending(self):
        assert _make_sub_order().status == "pending"

    def test_item_lines(self):
        assert sorted(_make_sub_order().item_lines()) == [("v1", 2), ("v2", 1)]


class TestSubOrderFulfillment:
    def test_seller_confirms(self):
        sub_order = _make_sub_order()
        sub_order.confirm("shop-a")
        assert sub_order.status == "processing"

    def test_other_seller_forbidden(self):
        sub_order = _make_sub_order()
        with pytest.raises(ForbiddenError):
            sub_order.confirm("shop-b")
        assert sub_order.status == "pending"

    def test_pack_requires_processing(self):
        sub_order = _make_sub_order()
        with pytest.raises(ConflictError):
            sub_order.pack("shop-a")
        assert sub_order.status == "pending"

    def test_pickup_records_shipper(self):
        sub_order = _make_sub_order(status="ready_to_ship")
        sub_order.pickup("shipper-1")
        assert sub_order.status == "shipping"
        assert str(sub_order.shipper_id) == "shipper-1"

    def test_pickup_out_of_order_leaves_shipper_unset(self):
        sub_order = _make_sub_order(status="processing")
        with pytest.raises(ConflictError):
            sub_order.pickup("shipper-1")
        assert sub_order.shipper_id is None

    def test_deliver_sets_return_deadline(self):
        sub_order = _make_sub_order(status="ready_to_ship")
        sub_order.pickup("shipper-1")
        now = datetime.now(UTC)
        sub_order.deliver("shipper-1", proof_of_delivery="photo.jpg", now=now)
        assert sub_order.status == "delivered"
        assert sub_order.delivered_at == now
        assert sub_order.return_deadline - sub_order.delivered_at == timedelta(days=7)

    def test_deliver_by_other_shipper_forbidden(self):
        sub_order = _make_sub_order(status="ready_to_ship")
        sub_order.pickup("shipper-1")
        with pytest.raises(ForbiddenError):
            sub_order.deliver("shipper-2")
        assert sub_order.return_deadline is None

    def test_failed_delivery_keeps_status(self):
        sub_order = _make_sub_order(status="ready_to_ship")
        sub_order.pickup("shipper-1")
        sub_order.fail_delivery("shipper-1", "nobody home")
        assert sub_order.status == "shipping"

    def test_transitions_raise_status_changed(self):
        sub_order = _make_sub_order()
        sub_order.confirm("shop-a")
        sub_order.pack("shop-a")
        changes = [e for e in sub_order._events if isinstance(e, SubOrderStatusChanged)]
        assert [c.new_status for c in changes] == ["processing", "ready_to_ship"]


class TestSubOrderCancellation:
    @pytest.mark.parametrize("status", ["pending", "processing", "ready_to_ship"])
    def test_customer_cancel_before_shipping(self, status):
        sub_order = _make_sub_order(status=status)
        sub_order.cancel("no longer needed", cancelled_by="customer")
        assert sub_order.status == "cancelled"

    @pytest.mark.parametrize("status", ["shipping", "delivered", "completed"])
    def test_customer_cancel_after_shipping_rejected(self, status):
        sub_order = _make_sub_order(status=status)
        with pytest.raises(ConflictError):
            sub_order.cancel("too late", cancelled_by="customer")
        assert sub_order.status == status
        assert sub_order.cancel_reason is None

    def test_partner_cannot_cancel_packed(self):
        sub_order = _make_sub_order(status="ready_to_ship")
        with pytest.raises(ConflictError):
            sub_order.cancel_by_partner("shop-a", "out of stock")


class TestReturnWindow:
    def test_no_deadline(self):
        assert is_return_window_valid(_make_sub_order()) is False

    def test_inside_window(self):
        sub_order = _make_sub_order()
        delivered_at = datetime(2026, 3, 1, tzinfo=UTC)
        sub_order.return_deadline = delivered_at + RETURN_WINDOW
        assert is_return_window_valid(sub_order, now=delivered_at + timedelta(days=3)) is True

    def test_on_the_deadline(self):
        sub_order = _make_sub_order()
        deadline = datetime(2026, 3, 8, tzinfo=UTC)
        sub_order.return_deadline = deadline
        assert is_return_window_valid(sub_order, now=deadline) is True

    def test_after_deadline(self):
        sub_order = _make_sub_order()
        deadline = datetime(2026, 3, 8, tzinfo=UTC)
        sub_order.return_deadline = deadline
        assert is_return_window_valid(sub_order, now=deadline + timedelta(seconds=1)) is False


class TestOverdueDelivery:
    def test_overdue_after_window(self):
        sub_order = _make_sub_order(status="delivered")
        sub_order.delivered_at = datetime.now(UTC) - timedelta(days=8)
        assert sub_order.is_delivery_overdue() is True

    def test_not_overdue_inside_window(self):
        sub_order = _make_sub_order(status="delivered")
        sub_order.delivered_at = datetime.now(UTC) - timedelta(days=2)
        assert sub_order.is_delivery_overdue() is False

    def test_only_delivered_can_be_overdue(self):
        sub_order = _make_sub_order(status="completed")
        sub_order.delivered_at = datetime.now(UTC) - timedelta(days=30)
        assert sub_order.is_delivery_overdue() is False
