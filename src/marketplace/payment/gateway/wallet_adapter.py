"""In-house wallet. Debits are settled asynchronously and reported back
through a signed callback, so initiation only reports ``processing``.
"""

import hashlib
import hmac
import time

from marketplace.errors import InvalidSignatureError
from marketplace.payment.gateway.port import (
    CallbackResult,
    InitiationResult,
    PaymentGateway,
    PaymentIntent,
    split_transaction_ref,
)
from marketplace.payment.settings import WalletSettings

SIGNATURE_FIELDS = ("status", "transactionId", "transactionRef")


def sign(payload: dict, secret: str) -> str:
    raw = "&".join(f"{field}={payload.get(field) or ''}" for field in SIGNATURE_FIELDS)
    return hmac.new(secret.encode(), raw.encode(), hashlib.sha256).hexdigest()


class WalletGateway(PaymentGateway):
    method = "wallet"

    def __init__(self, settings: WalletSettings | None = None) -> None:
        self.settings = settings or WalletSettings.from_env()

    def initiate(self, intent: PaymentIntent) -> InitiationResult:
        return InitiationResult(
            status="processing",
            transaction_ref=f"{intent.order_id}_{int(time.time() * 1000)}",
            message="Processing wallet payment",
        )

    def verify_callback(self, payload: dict) -> CallbackResult:
        received = str(payload.get("signature") or "")
        if not received or not hmac.compare_digest(received, sign(payload, self.settings.secret)):
            raise InvalidSignatureError("Wallet signature mismatch")

        transaction_ref = str(payload.get("transactionRef", ""))
        status = str(payload.get("status", ""))
        return CallbackResult(
            order_id=split_transaction_ref(transaction_ref),
            succeeded=status == "success",
            transaction_ref=transaction_ref,
            gateway_transaction_id=payload.get("transactionId"),
            response_code=status,
        )
