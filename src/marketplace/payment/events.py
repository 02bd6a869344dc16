"""Domain events for the Payment aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="Payment")
class PaymentInitiated:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    method = String(required=True)
    amount = Float(required=True)
    status = String(required=True)
    transaction_ref = String()
    initiated_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentSucceeded:
    """The gateway confirmed the money was captured."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    method = String(required=True)
    amount = Float(required=True)
    gateway_transaction_id = String()
    paid_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentFailed:
    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    method = String(required=True)
    response_code = String()
    reason = String()
    failed_at = DateTime(required=True)


@marketplace.event(part_of="Payment")
class PaymentVoided:
    """A newer initiation replaced this attempt before the gateway answered."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    method = String(required=True)
    reason = String()
    voided_at = DateTime(required=True)
