"""Order and SubOrder state machines.

Every SubOrder transition is a row in ``SUB_ORDER_TRANSITIONS`` keyed by
(current status, action). An action whose current status is not the exact
predecessor listed here is rejected; there is no "already there" shortcut.
The Order's own status is coarser and mostly derived from its SubOrders.

SubOrder:
    pending → processing → ready_to_ship → shipping → delivered → completed
    {pending, processing, ready_to_ship} → cancelled
    delivered → return_requested → {return_approved, completed}
    return_approved → returned → refunded

Order:
    pending_payment → {confirmed, payment_failed, cancelled}
    confirmed → {completed, cancelled, refunded}
"""

import os
from datetime import timedelta
from enum import Enum

from marketplace.errors import ConflictError


class OrderStatus(Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    PAYMENT_FAILED = "payment_failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class SubOrderStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURN_REQUESTED = "return_requested"
    RETURN_APPROVED = "return_approved"
    RETURNED = "returned"
    REFUNDED = "refunded"


class SubOrderAction(Enum):
    CONFIRM = "confirm"
    PACK = "pack"
    PICKUP = "pickup"
    DELIVER = "deliver"
    CONFIRM_RECEIPT = "confirm_receipt"
    AUTO_COMPLETE = "auto_complete"
    CANCEL = "cancel"
    PARTNER_CANCEL = "partner_cancel"
    REQUEST_RETURN = "request_return"
    APPROVE_RETURN = "approve_return"
    REJECT_RETURN = "reject_return"
    RECEIVE_RETURN = "receive_return"
    REFUND = "refund"


_S = SubOrderStatus
_A = SubOrderAction

SUB_ORDER_TRANSITIONS: dict[tuple[SubOrderStatus, SubOrderAction], SubOrderStatus] = {
    (_S.PENDING, _A.CONFIRM): _S.PROCESSING,
    (_S.PROCESSING, _A.PACK): _S.READY_TO_SHIP,
    (_S.READY_TO_SHIP, _A.PICKUP): _S.SHIPPING,
    (_S.SHIPPING, _A.DELIVER): _S.DELIVERED,
    (_S.DELIVERED, _A.CONFIRM_RECEIPT): _S.COMPLETED,
    (_S.DELIVERED, _A.AUTO_COMPLETE): _S.COMPLETED,
    (_S.PENDING, _A.CANCEL): _S.CANCELLED,
    (_S.PROCESSING, _A.CANCEL): _S.CANCELLED,
    (_S.READY_TO_SHIP, _A.CANCEL): _S.CANCELLED,
    (_S.PENDING, _A.PARTNER_CANCEL): _S.CANCELLED,
    (_S.PROCESSING, _A.PARTNER_CANCEL): _S.CANCELLED,
    (_S.DELIVERED, _A.REQUEST_RETURN): _S.RETURN_REQUESTED,
    (_S.RETURN_REQUESTED, _A.APPROVE_RETURN): _S.RETURN_APPROVED,
    (_S.RETURN_REQUESTED, _A.REJECT_RETURN): _S.COMPLETED,
    (_S.RETURN_APPROVED, _A.RECEIVE_RETURN): _S.RETURNED,
    (_S.RETURNED, _A.REFUND): _S.REFUNDED,
}

# Statuses a customer cancellation may still stop.
CANCELLABLE_SUB_ORDER_STATUSES = frozenset({_S.PENDING, _S.PROCESSING, _S.READY_TO_SHIP})

# Once any SubOrder is here, the Order can no longer be cancelled.
SHIPPED_OR_BEYOND = frozenset(
    {
        _S.SHIPPING,
        _S.DELIVERED,
        _S.COMPLETED,
        _S.RETURN_REQUESTED,
        _S.RETURN_APPROVED,
        _S.RETURNED,
        _S.REFUNDED,
    }
)

TERMINAL_SUB_ORDER_STATUSES = frozenset({_S.COMPLETED, _S.CANCELLED, _S.REFUNDED})

ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: {OrderStatus.CONFIRMED, OrderStatus.PAYMENT_FAILED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PAYMENT_FAILED: set(),
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.REFUNDED: set(),
}

CUSTOMER_CANCELLABLE_ORDER_STATUSES = frozenset({OrderStatus.PENDING_PAYMENT, OrderStatus.CONFIRMED})

RETURN_WINDOW = timedelta(days=int(os.environ.get("RETURN_WINDOW_DAYS", "7")))
AUTO_CONFIRM_AFTER = timedelta(days=int(os.environ.get("AUTO_CONFIRM_DAYS", "7")))


def next_sub_order_status(current: str, action: SubOrderAction) -> SubOrderStatus:
    """Look up the target of ``action`` from ``current`` or raise ConflictError."""
    target = SUB_ORDER_TRANSITIONS.get((SubOrderStatus(current), action))
    if target is None:
        raise ConflictError(f"Cannot {action.value.replace('_', ' ')} a sub-order in {current} status")
    return target


def allowed_actions(current: str) -> list[SubOrderAction]:
    status = SubOrderStatus(current)
    return [action for (source, action) in SUB_ORDER_TRANSITIONS if source == status]


def assert_order_transition(current: str, target: OrderStatus) -> None:
    if target not in ORDER_TRANSITIONS[OrderStatus(current)]:
        raise ConflictError(f"Cannot move order from {current} to {target.value}")


def derive_order_status(sub_order_statuses) -> OrderStatus | None:
    """Order status implied by its SubOrders, or None while any is still open.

    All terminal: completed if any completed, else refunded if any refunded,
    else cancelled.
    """
    statuses = {SubOrderStatus(s) for s in sub_order_statuses}
    if not statuses or not statuses <= TERMINAL_SUB_ORDER_STATUSES:
        return None
    if _S.COMPLETED in statuses:
        return OrderStatus.COMPLETED
    if _S.REFUNDED in statuses:
        return OrderStatus.REFUNDED
    return OrderStatus.CANCELLED
