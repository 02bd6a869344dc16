"""Cash on delivery: nothing to collect up front, nothing to call back."""

from marketplace.errors import ValidationError
from marketplace.payment.gateway.port import CallbackResult, InitiationResult, PaymentGateway, PaymentIntent


class CashOnDeliveryGateway(PaymentGateway):
    method = "cod"

    def initiate(self, intent: PaymentIntent) -> InitiationResult:
        return InitiationResult(
            status="pending",
            message="Order confirmed. Payment will be collected on delivery.",
        )

    def verify_callback(self, payload: dict) -> CallbackResult:
        raise ValidationError("Cash on delivery payments have no gateway callback")
