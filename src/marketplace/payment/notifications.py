"""Publish payment outcomes after they commit."""

from protean.utils.mixins import handle

from marketplace.domain import marketplace
from marketplace.messaging import publish_safely
from marketplace.payment.events import PaymentFailed, PaymentSucceeded
from marketplace.payment.payment import Payment


@marketplace.event_handler(part_of=Payment)
class PaymentNotificationHandler:
    @handle(PaymentSucceeded)
    def on_payment_succeeded(self, event: PaymentSucceeded) -> None:
        publish_safely(
            "payment.succeeded",
            {"order_id": str(event.order_id), "method": event.method, "amount": event.amount},
        )

    @handle(PaymentFailed)
    def on_payment_failed(self, event: PaymentFailed) -> None:
        publish_safely(
            "payment.failed",
            {"order_id": str(event.order_id), "method": event.method, "response_code": event.response_code},
        )
