"""VNPay adapter: signed redirect URL out, signed return/IPN query in.

Both directions sign the same way: drop empty values, sort the parameters by
name, form-encode them and take the HMAC-SHA512 of that string keyed with the
merchant's hash secret.
"""

import hashlib
import hmac
import time
from datetime import datetime, timedelta, timezone
from urllib.parse import quote_plus, urlencode

from marketplace.errors import InvalidSignatureError
from marketplace.payment.gateway.port import (
    CallbackResult,
    InitiationResult,
    PaymentGateway,
    PaymentIntent,
    split_transaction_ref,
)
from marketplace.payment.settings import VNPaySettings

VNPAY_VERSION = "2.1.0"
VNPAY_TIMEZONE = timezone(timedelta(hours=7))
PAYMENT_TTL = timedelta(minutes=15)
SUCCESS_CODE = "00"
_DATE_FORMAT = "%Y%m%d%H%M%S"


def canonical_query(params: dict) -> str:
    items = sorted((k, str(v)) for k, v in params.items() if v is not None and str(v) != "")
    return urlencode(items, quote_via=quote_plus)


def sign(params: dict, secret: str) -> str:
    return hmac.new(secret.encode(), canonical_query(params).encode(), hashlib.sha512).hexdigest()


class VNPayGateway(PaymentGateway):
    method = "vnpay"

    def __init__(self, settings: VNPaySettings | None = None) -> None:
        self.settings = settings or VNPaySettings.from_env()

    def build_params(self, intent: PaymentIntent, now: datetime | None = None) -> dict:
        now = (now or datetime.now(VNPAY_TIMEZONE)).astimezone(VNPAY_TIMEZONE)
        return {
            "vnp_Version": VNPAY_VERSION,
            "vnp_Command": "pay",
            "vnp_TmnCode": self.settings.tmn_code,
            "vnp_Locale": "vn",
            "vnp_CurrCode": "VND",
            "vnp_TxnRef": f"{intent.order_id}_{int(time.time() * 1000)}",
            "vnp_OrderInfo": intent.description,
            "vnp_OrderType": "other",
            "vnp_Amount": int(round(intent.amount * 100)),
            "vnp_ReturnUrl": self.settings.return_url,
            "vnp_IpAddr": intent.client_ip,
            "vnp_CreateDate": now.strftime(_DATE_FORMAT),
            "vnp_ExpireDate": (now + PAYMENT_TTL).strftime(_DATE_FORMAT),
        }

    def initiate(self, intent: PaymentIntent) -> InitiationResult:
        params = self.build_params(intent)
        secure_hash = sign(params, self.settings.hash_secret)
        url = f"{self.settings.url}?{canonical_query(params)}&vnp_SecureHash={secure_hash}"
        return InitiationResult(
            status="pending",
            payment_url=url,
            transaction_ref=params["vnp_TxnRef"],
            message="Redirect the customer to VNPay",
        )

    def verify_callback(self, payload: dict) -> CallbackResult:
        params = dict(payload)
        received = str(params.pop("vnp_SecureHash", "") or "")
        params.pop("vnp_SecureHashType", None)
        expected = sign(params, self.settings.hash_secret)
        if not received or not hmac.compare_digest(received.lower(), expected):
            raise InvalidSignatureError("VNPay signature mismatch")

        response_code = str(params.get("vnp_ResponseCode", ""))
        transaction_status = str(params.get("vnp_TransactionStatus", ""))
        transaction_ref = str(params.get("vnp_TxnRef", ""))
        return CallbackResult(
            order_id=split_transaction_ref(transaction_ref),
            succeeded=response_code == SUCCESS_CODE and transaction_status == SUCCESS_CODE,
            transaction_ref=transaction_ref,
            gateway_transaction_id=params.get("vnp_TransactionNo"),
            response_code=response_code,
        )
