"""MoMo adapter: HMAC-SHA256 signed create request and IPN verification.

MoMo signs a fixed, alphabetically ordered ``key=value&...`` string rather
than the whole body, so the field lists below are part of the protocol.
"""

import hashlib
import hmac
import time
from urllib.parse import urlencode

from marketplace.errors import InvalidSignatureError
from marketplace.payment.gateway.port import (
    CallbackResult,
    InitiationResult,
    PaymentGateway,
    PaymentIntent,
    split_transaction_ref,
)
from marketplace.payment.settings import MoMoSettings

REQUEST_TYPE = "payWithMethod"

CREATE_SIGNATURE_FIELDS = (
    "accessKey",
    "amount",
    "extraData",
    "ipnUrl",
    "orderId",
    "orderInfo",
    "partnerCode",
    "redirectUrl",
    "requestId",
    "requestType",
)

IPN_SIGNATURE_FIELDS = (
    "accessKey",
    "amount",
    "extraData",
    "message",
    "orderId",
    "orderInfo",
    "orderType",
    "partnerCode",
    "payType",
    "requestId",
    "responseTime",
    "resultCode",
    "transId",
)


def raw_signature(values: dict, fields) -> str:
    parts = []
    for field in fields:
        value = values.get(field)
        parts.append(f"{field}={'' if value is None else value}")
    return "&".join(parts)


def sign(raw: str, secret: str) -> str:
    return hmac.new(secret.encode(), raw.encode(), hashlib.sha256).hexdigest()


class MoMoGateway(PaymentGateway):
    method = "momo"

    def __init__(self, settings: MoMoSettings | None = None) -> None:
        self.settings = settings or MoMoSettings.from_env()

    def build_request(self, intent: PaymentIntent) -> dict:
        reference = f"{intent.order_id}_{int(time.time() * 1000)}"
        body = {
            "partnerCode": self.settings.partner_code,
            "accessKey": self.settings.access_key,
            "requestId": reference,
            "orderId": reference,
            "amount": int(round(intent.amount)),
            "orderInfo": intent.description,
            "redirectUrl": self.settings.redirect_url,
            "ipnUrl": self.settings.ipn_url,
            "extraData": "",
            "requestType": REQUEST_TYPE,
            "lang": "vi",
        }
        body["signature"] = sign(raw_signature(body, CREATE_SIGNATURE_FIELDS), self.settings.secret_key)
        return body

    def initiate(self, intent: PaymentIntent) -> InitiationResult:
        body = self.build_request(intent)
        query = urlencode({k: v for k, v in body.items() if k != "accessKey"})
        return InitiationResult(
            status="pending",
            payment_url=f"{self.settings.endpoint}?{query}",
            transaction_ref=body["orderId"],
            message="Redirect the customer to MoMo",
        )

    def verify_callback(self, payload: dict) -> CallbackResult:
        values = dict(payload)
        values.setdefault("accessKey", self.settings.access_key)
        received = str(values.get("signature") or "")
        expected = sign(raw_signature(values, IPN_SIGNATURE_FIELDS), self.settings.secret_key)
        if not received or not hmac.compare_digest(received, expected):
            raise InvalidSignatureError("MoMo signature mismatch")

        try:
            result_code = int(values.get("resultCode"))
        except (TypeError, ValueError):
            result_code = -1
        transaction_ref = str(values.get("orderId", ""))
        trans_id = values.get("transId")
        return CallbackResult(
            order_id=split_transaction_ref(transaction_ref),
            succeeded=result_code == 0,
            transaction_ref=transaction_ref,
            gateway_transaction_id=str(trans_id) if trans_id is not None else None,
            response_code=str(values.get("resultCode")),
            message=values.get("message"),
        )
