"""Roll SubOrder changes up into the owning Order's status."""

from protean.utils.globals import current_domain

from marketplace.order.order import Order, SubOrder
from marketplace.order.state_machine import OrderStatus
from marketplace.utils.lookup import fetch
from marketplace.voucher.restoration import restore_vouchers


def siblings_of(order_id, changed=()) -> list[SubOrder]:
    """All SubOrders of ``order_id``, with in-flight copies substituted."""
    changed_by_id = {str(s.id): s for s in changed}
    stored = current_domain.repository_for(SubOrder).for_order(order_id)
    return [changed_by_id.get(str(s.id), s) for s in stored]


def settle_order(order_id, changed=()) -> Order:
    """Recompute the Order's status from its SubOrders.

    When the roll-up lands on ``cancelled`` the platform voucher is given
    back. Shop vouchers are restored by whoever cancels their SubOrder, and
    the caller must hold the platform voucher's lock.
    """
    order = fetch(Order, order_id, code="ORDER_NOT_FOUND")
    before = order.status
    order.sync_with(siblings_of(order_id, changed))
    if order.status == before:
        return order

    if order.status == OrderStatus.CANCELLED.value and order.platform_voucher_code:
        restore_vouchers([order.platform_voucher_code], order.id)
    current_domain.repository_for(Order).add(order)
    return order
