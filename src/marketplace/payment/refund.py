"""Refund status per payment method.

No gateway refund API is called. Online refunds are queued for an operator.
"""

from marketplace.order.order import Order
from marketplace.payment.methods import PaymentMethod, parse_method
from marketplace.utils.lookup import fetch


def refund_status(order) -> dict:
    method = parse_method(order.payment_method)
    if method == PaymentMethod.COD:
        return {"method": method.value, "status": "not_applicable", "message": "COD orders do not require refund"}
    return {
        "method": method.value,
        "status": "pending_manual",
        "message": f"{method.value} refund of {order.grand_total:.0f} queued for manual processing",
    }


def refund_status_for(order_id) -> dict:
    return refund_status(fetch(Order, order_id, code="ORDER_NOT_FOUND"))
