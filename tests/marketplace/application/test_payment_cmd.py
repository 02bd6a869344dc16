"""Application tests for payment initiation and gateway callbacks."""

import pytest
from protean import current_domain

from marketplace.errors import InvalidSignatureError
from marketplace.inventory.variant import ProductVariant
from marketplace.order.cancellation import cancel_order
from marketplace.order.order import Order, SubOrder
from marketplace.payment.callback import handle_callback
from marketplace.payment.gateway.momo_adapter import IPN_SIGNATURE_FIELDS, raw_signature
from marketplace.payment.gateway.momo_adapter import sign as momo_sign
from marketplace.payment.gateway.vnpay_adapter import sign as vnpay_sign
from marketplace.payment.gateway.wallet_adapter import sign as wallet_sign
from marketplace.payment.initiation import initiate_payment
from marketplace.payment.payment import Payment
from marketplace.voucher.voucher import Voucher


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _variant(variant_id):
    return current_domain.repository_for(ProductVariant).get(variant_id)


def _vnpay_payload(transaction_ref, amount, response_code="00", secret="vnpay-test-secret"):
    params = {
        "vnp_Amount": str(int(amount * 100)),
        "vnp_TmnCode": "TESTTMN1",
        "vnp_TxnRef": transaction_ref,
        "vnp_TransactionNo": "14099887",
        "vnp_ResponseCode": response_code,
        "vnp_TransactionStatus": response_code,
        "vnp_BankCode": "NCB",
    }
    params["vnp_SecureHash"] = vnpay_sign(params, secret)
    return params


def _momo_payload(transaction_ref, amount, result_code=0):
    payload = {
        "partnerCode": "MOMOTEST",
        "orderId": transaction_ref,
        "requestId": transaction_ref,
        "amount": int(amount),
        "orderInfo": "Payment",
        "orderType": "momo_wallet",
        "transId": 4088000001,
        "resultCode": result_code,
        "message": "ok",
        "payType": "qr",
        "responseTime": 1767225700000,
        "extraData": "",
    }
    signed = raw_signature({**payload, "accessKey": "momo-test-access"}, IPN_SIGNATURE_FIELDS)
    payload["signature"] = momo_sign(signed, "momo-test-secret")
    return payload


def _wallet_payload(transaction_ref, status="success"):
    payload = {"transactionRef": transaction_ref, "transactionId": "w-100", "status": status}
    payload["signature"] = wallet_sign(payload, "wallet-test-secret")
    return payload


@pytest.fixture()
def vnpay_order(make_variant, make_voucher, checkout):
    variant_id = make_variant(shop_id="shop-a", price=150000.0, quantity=10)
    make_voucher("PAYDAY", discount_value=5000.0)
    result = checkout("user-1", [(variant_id, 2)], payment_method="vnpay", platform_voucher_code="PAYDAY")
    return result, variant_id


class TestInitiation:
    def test_cod_confirms_immediately(self, make_variant, checkout):
        result = checkout("user-1", [(make_variant(), 1)], payment_method="cod")
        order = _order(result["order"].id)
        assert order.status == "confirmed"
        assert order.payment_status == "pending"
        assert result["payment"]["payment_url"] is None
        statuses = {s.status for s in current_domain.repository_for(SubOrder).for_order(order.id)}
        assert statuses == {"pending"}

    @pytest.mark.parametrize("method", ["vnpay", "momo", "wallet"])
    def test_online_methods_wait_for_callback(self, make_variant, checkout, method):
        result = checkout("user-1", [(make_variant(), 1)], payment_method=method)
        assert _order(result["order"].id).status == "pending_payment"
        assert result["payment"]["transaction_ref"].startswith(str(result["order"].id))

    def test_momo_returns_a_redirect(self, make_variant, checkout):
        result = checkout("user-1", [(make_variant(), 1)], payment_method="momo")
        assert result["payment"]["payment_url"].startswith("https://momo.test/create?")

    def test_payment_record_created(self, vnpay_order):
        result, _ = vnpay_order
        payments = current_domain.repository_for(Payment).for_order(result["order"].id)
        assert len(payments) == 1
        assert payments[0].method == "vnpay"
        assert payments[0].amount == result["order"].grand_total


class TestVNPayCallback:
    def test_success_marks_paid(self, vnpay_order, publisher):
        result, _ = vnpay_order
        ref = result["payment"]["transaction_ref"]

        outcome = handle_callback("vnpay", _vnpay_payload(ref, result["order"].grand_total))

        assert outcome == {"applied": True, "order_status": "confirmed", "payment_status": "paid"}
        order = _order(result["order"].id)
        assert order.status == "confirmed"
        assert order.payment_status == "paid"
        assert order.paid_at is not None
        assert "payment.succeeded" in publisher.topics()
        assert "order.confirmed" in publisher.topics()

    def test_success_updates_payment_record(self, vnpay_order):
        result, _ = vnpay_order
        handle_callback("vnpay", _vnpay_payload(result["payment"]["transaction_ref"], result["order"].grand_total))
        payment = current_domain.repository_for(Payment).for_order(result["order"].id)[0]
        assert payment.status == "paid"
        assert payment.gateway_transaction_id == "14099887"

    def test_success_keeps_reservation(self, vnpay_order):
        result, variant_id = vnpay_order
        handle_callback("vnpay", _vnpay_payload(result["payment"]["transaction_ref"], result["order"].grand_total))
        assert _variant(variant_id).reserved_quantity == 2

    def test_failure_releases_stock_and_vouchers(self, vnpay_order, publisher):
        result, variant_id = vnpay_order
        ref = result["payment"]["transaction_ref"]
        assert current_domain.repository_for(Voucher).get_by_code("PAYDAY").used_count == 1

        outcome = handle_callback("vnpay", _vnpay_payload(ref, result["order"].grand_total, response_code="24"))

        assert outcome["applied"] is True
        order = _order(result["order"].id)
        assert order.status == "payment_failed"
        assert order.payment_status == "failed"
        assert _variant(variant_id).reserved_quantity == 0
        assert current_domain.repository_for(Voucher).get_by_code("PAYDAY").used_count == 0
        assert "payment.failed" in publisher.topics()

    def test_duplicate_success_is_not_applied_twice(self, vnpay_order, publisher):
        result, _ = vnpay_order
        payload = _vnpay_payload(result["payment"]["transaction_ref"], result["order"].grand_total)
        handle_callback("vnpay", payload)

        second = handle_callback("vnpay", payload)

        assert second == {"applied": False, "order_status": "confirmed", "payment_status": "paid"}
        assert publisher.topics().count("payment.succeeded") == 1

    def test_late_failure_after_success_is_ignored(self, vnpay_order):
        result, variant_id = vnpay_order
        ref = result["payment"]["transaction_ref"]
        handle_callback("vnpay", _vnpay_payload(ref, result["order"].grand_total))

        outcome = handle_callback("vnpay", _vnpay_payload(ref, result["order"].grand_total, response_code="24"))

        assert outcome["applied"] is False
        assert _order(result["order"].id).payment_status == "paid"
        assert _variant(variant_id).reserved_quantity == 2

    def test_invalid_signature_changes_nothing(self, vnpay_order):
        result, variant_id = vnpay_order
        payload = _vnpay_payload(result["payment"]["transaction_ref"], result["order"].grand_total, secret="forged")

        with pytest.raises(InvalidSignatureError):
            handle_callback("vnpay", payload)

        order = _order(result["order"].id)
        assert order.status == "pending_payment"
        assert order.payment_status == "pending"
        assert _variant(variant_id).reserved_quantity == 2

    def test_callback_after_cancellation_is_ignored(self, vnpay_order):
        result, variant_id = vnpay_order
        cancel_order(result["order"].id, "user-1", reason="Changed my mind")

        outcome = handle_callback("vnpay", _vnpay_payload(result["payment"]["transaction_ref"], result["order"].grand_total))

        assert outcome == {"applied": False, "order_status": "cancelled", "payment_status": "pending"}
        assert _variant(variant_id).reserved_quantity == 0


class TestMoMoCallback:
    def test_success(self, make_variant, checkout):
        result = checkout("user-1", [(make_variant(), 1)], payment_method="momo")
        payload = _momo_payload(result["payment"]["transaction_ref"], result["order"].grand_total)

        outcome = handle_callback("momo", payload)

        assert outcome["applied"] is True
        assert _order(result["order"].id).payment_status == "paid"

    def test_failure(self, make_variant, checkout):
        variant_id = make_variant(quantity=5)
        result = checkout("user-1", [(variant_id, 3)], payment_method="momo")
        payload = _momo_payload(result["payment"]["transaction_ref"], result["order"].grand_total, result_code=1006)

        handle_callback("momo", payload)

        assert _order(result["order"].id).status == "payment_failed"
        assert _variant(variant_id).available == 5


class TestWalletCallback:
    def test_success(self, make_variant, checkout):
        result = checkout("user-1", [(make_variant(), 1)], payment_method="wallet")
        handle_callback("wallet", _wallet_payload(result["payment"]["transaction_ref"]))
        assert _order(result["order"].id).status == "confirmed"

    def test_declined(self, make_variant, checkout):
        result = checkout("user-1", [(make_variant(), 1)], payment_method="wallet")
        handle_callback("wallet", _wallet_payload(result["payment"]["transaction_ref"], status="insufficient_balance"))
        assert _order(result["order"].id).payment_status == "failed"


class TestRestartPayment:
    def test_switching_to_cod_voids_the_online_attempt(self, vnpay_order):
        result, _ = vnpay_order
        order_id = result["order"].id

        initiate_payment(order_id, "cod")

        payments = current_domain.repository_for(Payment).for_order(order_id)
        assert [(p.method, p.status) for p in payments] == [("vnpay", "voided"), ("cod", "pending")]
        assert _order(order_id).status == "confirmed"

    def test_late_success_for_the_replaced_attempt_is_ignored(self, vnpay_order, publisher):
        result, _ = vnpay_order
        order_id = result["order"].id
        initiate_payment(order_id, "cod")

        outcome = handle_callback("vnpay", _vnpay_payload(result["payment"]["transaction_ref"], result["order"].grand_total))

        assert outcome == {"applied": False, "order_status": "confirmed", "payment_status": "pending"}
        assert current_domain.repository_for(Payment).for_order(order_id)[0].status == "voided"
        assert "payment.succeeded" not in publisher.topics()

    def test_only_the_newest_online_attempt_settles_the_order(self, vnpay_order):
        result, _ = vnpay_order
        order_id = result["order"].id
        momo = initiate_payment(order_id, "momo")

        stale = handle_callback("vnpay", _vnpay_payload(result["payment"]["transaction_ref"], result["order"].grand_total))
        assert stale["applied"] is False
        assert _order(order_id).status == "pending_payment"

        fresh = handle_callback("momo", _momo_payload(momo["transaction_ref"], result["order"].grand_total))
        assert fresh == {"applied": True, "order_status": "confirmed", "payment_status": "paid"}
        statuses = [p.status for p in current_domain.repository_for(Payment).for_order(order_id)]
        assert statuses == ["voided", "paid"]
