"""Payment initiation: command and handler.

Runs under the order's lock. COD confirms the Order on the spot; online
methods leave it in ``pending_payment`` until the gateway calls back.
Restarting payment voids whatever attempt was still open.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import ConflictError
from marketplace.order.order import Order
from marketplace.order.state_machine import OrderStatus
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.port import PaymentIntent
from marketplace.payment.methods import PaymentMethod, parse_method
from marketplace.payment.payment import Payment
from marketplace.utils.locking import order_key, process_locked
from marketplace.utils.lookup import fetch

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class InitiatePayment:
    order_id = Identifier(required=True)
    method = String(required=True, max_length=20)
    client_ip = String(max_length=64, default="127.0.0.1")


@marketplace.command_handler(part_of=Payment)
class InitiatePaymentHandler:
    @handle(InitiatePayment)
    def initiate_payment(self, command):
        method = parse_method(command.method)
        order = fetch(Order, command.order_id, code="ORDER_NOT_FOUND")
        if order.status != OrderStatus.PENDING_PAYMENT.value:
            raise ConflictError(f"Order {order.id} is {order.status}; payment can only start while pending_payment")

        gateway = get_gateway(method)
        result = gateway.initiate(
            PaymentIntent(
                order_id=str(order.id),
                order_number=order.order_number,
                amount=order.grand_total,
                description=f"Payment for order {order.order_number}",
                client_ip=command.client_ip or "127.0.0.1",
            )
        )

        payments = current_domain.repository_for(Payment)
        for earlier in payments.for_order(order.id):
            if earlier.is_open:
                earlier.void(reason=f"restarted_with_{method.value}")
                payments.add(earlier)
                logger.info("payment_voided", order_id=str(order.id), payment_id=str(earlier.id), method=earlier.method)

        order.payment_method = method.value
        if method == PaymentMethod.COD:
            order.confirm_cash_on_delivery()
        current_domain.repository_for(Order).add(order)

        payment = Payment.start(order.id, method.value, order.grand_total, result)
        payments.add(payment)

        return {
            "payment_id": str(payment.id),
            "method": method.value,
            "status": result.status,
            "payment_url": result.payment_url,
            "transaction_ref": result.transaction_ref,
            "message": result.message,
        }


def initiate_payment(order_id, method, client_ip: str = "127.0.0.1") -> dict:
    result = process_locked(
        InitiatePayment(order_id=order_id, method=parse_method(method).value, client_ip=client_ip),
        [order_key(order_id)],
    )
    logger.info("payment_initiated", order_id=str(order_id), method=result["method"], status=result["status"])
    return result
