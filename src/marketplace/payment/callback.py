"""Gateway callbacks: verification, then one guarded state change.

The adapter checks the signature before anything is locked or loaded. The
outcome is applied under the order's full lock set, the same set a customer
cancellation takes, so a callback and a cancellation racing on one order are
serialized and the loser sees an Order that is no longer awaiting payment.
Duplicate and late callbacks, and callbacks for an attempt the customer
replaced by restarting payment, are logged and ignored.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Dict, Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.inventory.ledger import release_lines
from marketplace.order.cancellation import voucher_codes_of
from marketplace.order.locks import keys_for_order
from marketplace.order.order import Order, SubOrder
from marketplace.order.state_machine import SubOrderStatus
from marketplace.payment.gateway import get_gateway
from marketplace.payment.gateway.port import CallbackResult
from marketplace.payment.methods import parse_method
from marketplace.payment.payment import Payment
from marketplace.utils.locking import process_locked
from marketplace.utils.lookup import fetch
from marketplace.voucher.restoration import restore_vouchers

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Payment")
class RecordPaymentOutcome:
    """A callback that already passed signature verification."""

    order_id = Identifier(required=True)
    method = String(required=True, max_length=20)
    succeeded = Boolean(required=True)
    transaction_ref = String(max_length=100)
    gateway_transaction_id = String(max_length=255)
    response_code = String(max_length=50)
    message = String(max_length=500)
    payload = Dict()


def _find_payment(order_id, method, transaction_ref) -> Payment | None:
    repo = current_domain.repository_for(Payment)
    if transaction_ref:
        for payment in repo.for_order(order_id):
            if payment.method == method and payment.transaction_ref == transaction_ref:
                return payment
    return repo.open_for_order(order_id)


@marketplace.command_handler(part_of=Payment)
class PaymentCallbackHandler:
    @handle(RecordPaymentOutcome)
    def record_outcome(self, command):
        order = fetch(Order, command.order_id, code="ORDER_NOT_FOUND")
        if not order.awaiting_payment:
            logger.info(
                "payment_callback_ignored",
                order_id=str(order.id),
                order_status=order.status,
                payment_status=order.payment_status,
                succeeded=command.succeeded,
            )
            return {"applied": False, "order_status": order.status, "payment_status": order.payment_status}

        outcome = CallbackResult(
            order_id=str(order.id),
            succeeded=command.succeeded,
            transaction_ref=command.transaction_ref,
            gateway_transaction_id=command.gateway_transaction_id,
            response_code=command.response_code,
            message=command.message,
        )
        payment = _find_payment(order.id, command.method, command.transaction_ref)
        if payment is not None and payment.is_voided:
            logger.warning(
                "payment_callback_for_voided_attempt",
                order_id=str(order.id),
                payment_id=str(payment.id),
                method=command.method,
                succeeded=command.succeeded,
            )
            return {"applied": False, "order_status": order.status, "payment_status": order.payment_status}

        if payment is not None and payment.is_open:
            if command.succeeded:
                payment.record_success(outcome, command.payload)
            else:
                payment.record_failure(outcome, command.payload)
            current_domain.repository_for(Payment).add(payment)

        if command.succeeded:
            order.mark_paid()
        else:
            reason = f"{command.method}_{command.response_code}" if command.response_code else "payment_failed"
            order.mark_payment_failed(reason)
            sub_orders = current_domain.repository_for(SubOrder).for_order(order.id)
            lines = []
            for sub_order in sub_orders:
                if sub_order.status != SubOrderStatus.CANCELLED.value:
                    lines.extend(sub_order.item_lines())
            if lines:
                release_lines(lines, reason="payment_failed")
            restore_vouchers(voucher_codes_of(order, sub_orders), order.id)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "payment_callback_applied",
            order_id=str(order.id),
            method=command.method,
            succeeded=command.succeeded,
            response_code=command.response_code,
        )
        return {"applied": True, "order_status": order.status, "payment_status": order.payment_status}


def handle_callback(method, payload: dict) -> dict:
    """Verify a gateway callback and apply it to its Order.

    Raises InvalidSignatureError before touching any state when the
    payload's signature does not check out.
    """
    method = parse_method(method)
    logger.debug("payment_callback_received", method=method.value, payload=payload)
    result = get_gateway(method).verify_callback(payload)
    return process_locked(
        RecordPaymentOutcome(
            order_id=result.order_id,
            method=method.value,
            succeeded=result.succeeded,
            transaction_ref=result.transaction_ref,
            gateway_transaction_id=result.gateway_transaction_id,
            response_code=result.response_code,
            message=result.message,
            payload={k: str(v) for k, v in payload.items()},
        ),
        keys_for_order(result.order_id),
    )
