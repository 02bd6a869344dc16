"""Lock keys covering everything an Order or SubOrder operation may touch.

Line items and voucher codes never change after checkout, so they can be read
before the locks are taken.
"""

from protean.utils.globals import current_domain

from marketplace.order.order import Order, SubOrder
from marketplace.utils.locking import order_key, variant_key, voucher_key
from marketplace.utils.lookup import fetch


def keys_for_order(order_id) -> list[str]:
    order = fetch(Order, order_id, code="ORDER_NOT_FOUND")
    keys = [order_key(order.id)]
    if order.platform_voucher_code:
        keys.append(voucher_key(order.platform_voucher_code))
    for sub_order in current_domain.repository_for(SubOrder).for_order(order.id):
        keys.extend(variant_key(variant_id) for variant_id, _ in sub_order.item_lines())
        if sub_order.voucher_code:
            keys.append(voucher_key(sub_order.voucher_code))
    return keys


def keys_for_sub_order(sub_order_id) -> list[str]:
    sub_order = fetch(SubOrder, sub_order_id, code="SUB_ORDER_NOT_FOUND")
    order = fetch(Order, sub_order.order_id, code="ORDER_NOT_FOUND")
    keys = [order_key(order.id)]
    if order.platform_voucher_code:
        keys.append(voucher_key(order.platform_voucher_code))
    keys.extend(variant_key(variant_id) for variant_id, _ in sub_order.item_lines())
    if sub_order.voucher_code:
        keys.append(voucher_key(sub_order.voucher_code))
    return keys
