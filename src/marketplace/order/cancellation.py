"""Customer cancellation: command and handler.

An Order can be cancelled while nothing has left a shop: the Order must be
``pending_payment`` or ``confirmed`` and no SubOrder may have reached
``shipping``. The status writes, the stock releases and the voucher
restores commit together.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import AppError, NotFoundError
from marketplace.inventory.ledger import release_lines
from marketplace.order.locks import keys_for_order
from marketplace.order.order import Order, SubOrder
from marketplace.order.state_machine import CANCELLABLE_SUB_ORDER_STATUSES, SHIPPED_OR_BEYOND, SubOrderStatus
from marketplace.utils.locking import process_locked
from marketplace.utils.lookup import fetch
from marketplace.voucher.restoration import restore_vouchers

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


def voucher_codes_of(order, sub_orders) -> list[str]:
    codes = [order.platform_voucher_code] + [s.voucher_code for s in sub_orders]
    return [c for c in codes if c]


@marketplace.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = fetch(Order, command.order_id, code="ORDER_NOT_FOUND")
        if str(order.user_id) != str(command.user_id):
            raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")

        sub_repo = current_domain.repository_for(SubOrder)
        sub_orders = sub_repo.for_order(order.id)

        shipped = [s for s in sub_orders if SubOrderStatus(s.status) in SHIPPED_OR_BEYOND]
        if shipped:
            raise AppError(
                "Order cannot be cancelled because part of it has already shipped",
                code="ORDER_CANNOT_CANCEL",
            )

        order.cancel(command.reason)

        cancelled = [s for s in sub_orders if SubOrderStatus(s.status) in CANCELLABLE_SUB_ORDER_STATUSES]
        lines = []
        for sub_order in cancelled:
            sub_order.cancel(command.reason, cancelled_by="customer")
            lines.extend(sub_order.item_lines())
            sub_repo.add(sub_order)

        if lines:
            release_lines(lines, reason="order_cancelled")
        restore_vouchers(voucher_codes_of(order, sub_orders), order.id)
        current_domain.repository_for(Order).add(order)

        logger.info(
            "order_cancelled",
            order_id=str(order.id),
            sub_orders_cancelled=len(cancelled),
            reason=command.reason,
        )


def cancel_order(order_id, user_id, reason: str) -> None:
    process_locked(CancelOrder(order_id=order_id, user_id=user_id, reason=reason), keys_for_order(order_id))
