"""Tests for the gateway adapters' request signing and callback verification."""

from datetime import datetime
from urllib.parse import parse_qs, urlsplit

import pytest

from marketplace.errors import AppError, InvalidSignatureError, ValidationError
from marketplace.payment.gateway import get_gateway, reset_gateways, set_gateway
from marketplace.payment.gateway.cod_adapter import CashOnDeliveryGateway
from marketplace.payment.gateway.momo_adapter import IPN_SIGNATURE_FIELDS, MoMoGateway, raw_signature
from marketplace.payment.gateway.momo_adapter import sign as momo_sign
from marketplace.payment.gateway.port import PaymentIntent, split_transaction_ref
from marketplace.payment.gateway.vnpay_adapter import VNPAY_TIMEZONE, VNPayGateway, canonical_query
from marketplace.payment.gateway.vnpay_adapter import sign as vnpay_sign
from marketplace.payment.gateway.wallet_adapter import WalletGateway
from marketplace.payment.gateway.wallet_adapter import sign as wallet_sign
from marketplace.payment.settings import MoMoSettings, VNPaySettings, WalletSettings

VNPAY = VNPaySettings(tmn_code="TMN01", hash_secret="s3cret", url="https://vnpay.test/pay", return_url="https://r.test")
MOMO = MoMoSettings(
    partner_code="MOMO01",
    access_key="ak",
    secret_key="sk",
    endpoint="https://momo.test/create",
    redirect_url="https://r.test",
    ipn_url="https://ipn.test",
)
WALLET = WalletSettings(secret="wallet-secret")

INTENT = PaymentIntent(
    order_id="0f8e4a1c-order",
    order_number="ORD-20260101000000-ABC123",
    amount=250000.0,
    description="Payment for order ORD-20260101000000-ABC123",
    client_ip="10.0.0.7",
)


def _vnpay_callback(response_code="00", transaction_status="00", secret="s3cret"):
    params = {
        "vnp_Amount": "25000000",
        "vnp_TmnCode": "TMN01",
        "vnp_TxnRef": "0f8e4a1c-order_1767225600000",
        "vnp_TransactionNo": "14012345",
        "vnp_ResponseCode": response_code,
        "vnp_TransactionStatus": transaction_status,
        "vnp_OrderInfo": "Payment for order",
        "vnp_BankCode": "NCB",
    }
    params["vnp_SecureHash"] = vnpay_sign(params, secret)
    return params


def _momo_ipn(result_code=0, secret="sk"):
    payload = {
        "partnerCode": "MOMO01",
        "orderId": "0f8e4a1c-order_1767225600000",
        "requestId": "0f8e4a1c-order_1767225600000",
        "amount": 250000,
        "orderInfo": "Payment for order",
        "orderType": "momo_wallet",
        "transId": 4088878653,
        "resultCode": result_code,
        "message": "Successful.",
        "payType": "qr",
        "responseTime": 1767225700000,
        "extraData": "",
    }
    payload["signature"] = momo_sign(raw_signature({**payload, "accessKey": "ak"}, IPN_SIGNATURE_FIELDS), secret)
    return payload


class TestTransactionRef:
    def test_split_returns_order_id(self):
        assert split_transaction_ref("abc-123_1767225600000") == "abc-123"


class TestVNPay:
    def test_canonical_query_sorts_and_drops_empty(self):
        assert canonical_query({"b": "2", "a": "x y", "c": ""}) == "a=x+y&b=2"

    def test_build_params(self):
        now = datetime(2026, 1, 1, 10, 0, tzinfo=VNPAY_TIMEZONE)
        params = VNPayGateway(VNPAY).build_params(INTENT, now=now)
        assert params["vnp_Amount"] == 25000000
        assert params["vnp_TmnCode"] == "TMN01"
        assert params["vnp_CreateDate"] == "20260101100000"
        assert params["vnp_ExpireDate"] == "20260101101500"
        assert params["vnp_TxnRef"].startswith("0f8e4a1c-order_")

    def test_payment_url_is_signed(self):
        result = VNPayGateway(VNPAY).initiate(INTENT)
        assert result.status == "pending"
        query = {k: v[0] for k, v in parse_qs(urlsplit(result.payment_url).query).items()}
        received = query.pop("vnp_SecureHash")
        assert received == vnpay_sign(query, "s3cret")
        assert query["vnp_TxnRef"] == result.transaction_ref

    def test_success_callback(self):
        result = VNPayGateway(VNPAY).verify_callback(_vnpay_callback())
        assert result.succeeded is True
        assert result.order_id == "0f8e4a1c-order"
        assert result.gateway_transaction_id == "14012345"

    def test_failure_code(self):
        result = VNPayGateway(VNPAY).verify_callback(_vnpay_callback(response_code="24"))
        assert result.succeeded is False
        assert result.response_code == "24"

    def test_success_code_needs_successful_transaction_status(self):
        result = VNPayGateway(VNPAY).verify_callback(_vnpay_callback(transaction_status="02"))
        assert result.succeeded is False

    def test_upper_case_hash_accepted(self):
        payload = _vnpay_callback()
        payload["vnp_SecureHash"] = payload["vnp_SecureHash"].upper()
        assert VNPayGateway(VNPAY).verify_callback(payload).succeeded is True

    def test_tampered_amount_rejected(self):
        payload = _vnpay_callback()
        payload["vnp_Amount"] = "100"
        with pytest.raises(InvalidSignatureError):
            VNPayGateway(VNPAY).verify_callback(payload)

    def test_wrong_secret_rejected(self):
        with pytest.raises(InvalidSignatureError):
            VNPayGateway(VNPAY).verify_callback(_vnpay_callback(secret="other"))

    def test_missing_hash_rejected(self):
        payload = _vnpay_callback()
        del payload["vnp_SecureHash"]
        with pytest.raises(InvalidSignatureError):
            VNPayGateway(VNPAY).verify_callback(payload)


class TestMoMo:
    def test_create_request_signature(self):
        body = MoMoGateway(MOMO).build_request(INTENT)
        assert body["amount"] == 250000
        assert body["orderId"] == body["requestId"]
        raw = (
            f"accessKey=ak&amount=250000&extraData=&ipnUrl=https://ipn.test&orderId={body['orderId']}"
            f"&orderInfo={INTENT.description}&partnerCode=MOMO01&redirectUrl=https://r.test"
            f"&requestId={body['requestId']}&requestType=payWithMethod"
        )
        assert body["signature"] == momo_sign(raw, "sk")

    def test_payment_url_hides_access_key(self):
        result = MoMoGateway(MOMO).initiate(INTENT)
        assert result.payment_url.startswith("https://momo.test/create?")
        assert "accessKey" not in result.payment_url

    def test_success_ipn(self):
        result = MoMoGateway(MOMO).verify_callback(_momo_ipn())
        assert result.succeeded is True
        assert result.order_id == "0f8e4a1c-order"
        assert result.gateway_transaction_id == "4088878653"

    def test_failure_ipn(self):
        result = MoMoGateway(MOMO).verify_callback(_momo_ipn(result_code=1006))
        assert result.succeeded is False
        assert result.response_code == "1006"

    def test_string_values_verify_like_numbers(self):
        payload = {k: str(v) for k, v in _momo_ipn().items()}
        assert MoMoGateway(MOMO).verify_callback(payload).succeeded is True

    def test_tampered_ipn_rejected(self):
        payload = _momo_ipn(result_code=1006)
        payload["resultCode"] = 0
        with pytest.raises(InvalidSignatureError):
            MoMoGateway(MOMO).verify_callback(payload)


class TestWallet:
    def _payload(self, status="success", secret="wallet-secret"):
        payload = {"transactionRef": "0f8e4a1c-order_1767225600000", "transactionId": "w-991", "status": status}
        payload["signature"] = wallet_sign(payload, secret)
        return payload

    def test_initiation_is_processing(self):
        result = WalletGateway(WALLET).initiate(INTENT)
        assert result.status == "processing"
        assert result.payment_url is None
        assert split_transaction_ref(result.transaction_ref) == INTENT.order_id

    def test_success(self):
        assert WalletGateway(WALLET).verify_callback(self._payload()).succeeded is True

    def test_failure(self):
        assert WalletGateway(WALLET).verify_callback(self._payload(status="insufficient_balance")).succeeded is False

    def test_bad_signature(self):
        with pytest.raises(InvalidSignatureError):
            WalletGateway(WALLET).verify_callback(self._payload(secret="forged"))


class TestCashOnDelivery:
    def test_initiation_has_no_redirect(self):
        result = CashOnDeliveryGateway().initiate(INTENT)
        assert result.status == "pending"
        assert result.payment_url is None

    def test_no_callbacks(self):
        with pytest.raises(ValidationError):
            CashOnDeliveryGateway().verify_callback({})


class TestGatewayRegistry:
    def test_override_and_reset(self):
        custom = VNPayGateway(VNPAY)
        set_gateway("vnpay", custom)
        assert get_gateway("VNPAY") is custom
        reset_gateways()
        assert get_gateway("vnpay") is not custom

    def test_unknown_method(self):
        with pytest.raises(AppError) as exc_info:
            get_gateway("bitcoin")
        assert exc_info.value.code == "INVALID_PAYMENT_METHOD"
