"""Receipt confirmation and the auto-confirm sweep.

A customer confirming receipt completes every SubOrder that is currently
``delivered`` and leaves the rest alone: with several shops, partial
delivery is normal. The sweep does the same for SubOrders delivered more
than the auto-confirm window ago. Both are idempotent.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import AppError, NotFoundError
from marketplace.order.order import Order, SubOrder
from marketplace.order.settlement import settle_order
from marketplace.order.state_machine import SubOrderStatus
from marketplace.utils.locking import order_key, process_locked
from marketplace.utils.lookup import fetch

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class ConfirmReceipt:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)


@marketplace.command(part_of="SubOrder")
class AutoCompleteSubOrder:
    sub_order_id = Identifier(required=True)
    as_of = DateTime()


@marketplace.command_handler(part_of=Order)
class ConfirmReceiptHandler:
    @handle(ConfirmReceipt)
    def confirm_receipt(self, command):
        order = fetch(Order, command.order_id, code="ORDER_NOT_FOUND")
        if str(order.user_id) != str(command.user_id):
            raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")

        sub_repo = current_domain.repository_for(SubOrder)
        completed = []
        for sub_order in sub_repo.for_order(order.id):
            if sub_order.status != SubOrderStatus.DELIVERED.value:
                continue
            sub_order.confirm_receipt(command.user_id)
            sub_repo.add(sub_order)
            completed.append(sub_order)

        if completed:
            settle_order(order.id, changed=completed)
        return len(completed)


@marketplace.command_handler(part_of=SubOrder)
class AutoCompleteHandler:
    @handle(AutoCompleteSubOrder)
    def auto_complete(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        # Re-checked under the lock: a customer may have confirmed meanwhile.
        if not sub_order.is_delivery_overdue(command.as_of):
            return False
        sub_order.auto_complete()
        current_domain.repository_for(SubOrder).add(sub_order)
        settle_order(sub_order.order_id, changed=[sub_order])
        return True


def confirm_receipt(order_id, user_id) -> int:
    return process_locked(ConfirmReceipt(order_id=order_id, user_id=user_id), [order_key(order_id)])


def auto_confirm_deliveries(now: datetime | None = None) -> list[str]:
    """Complete every SubOrder delivered longer ago than the window."""
    now = now or datetime.now(UTC)
    delivered = current_domain.repository_for(SubOrder).with_status(SubOrderStatus.DELIVERED)

    completed = []
    for sub_order in delivered:
        if not sub_order.is_delivery_overdue(now):
            continue
        try:
            done = process_locked(
                AutoCompleteSubOrder(sub_order_id=sub_order.id, as_of=now),
                [order_key(sub_order.order_id)],
            )
        except AppError as exc:
            logger.error("auto_confirm_failed", sub_order_id=str(sub_order.id), code=exc.code, error=exc.message)
            continue
        if done:
            completed.append(str(sub_order.id))

    logger.info("auto_confirm_sweep_finished", checked=len(delivered), completed=len(completed))
    return completed
