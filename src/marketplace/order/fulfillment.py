"""SubOrder fulfillment: seller and shipper commands and handler.

seller confirms → seller packs → shipper picks up → shipper delivers.
Pickup is the irreversible point: the reserved units are deducted from the
shelf there. A seller may also cancel a SubOrder that has not been packed.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import ConflictError
from marketplace.inventory.ledger import deduct_lines, release_lines
from marketplace.order.locks import keys_for_sub_order
from marketplace.order.order import Order, SubOrder
from marketplace.order.settlement import settle_order
from marketplace.order.state_machine import OrderStatus
from marketplace.utils.locking import process_locked
from marketplace.utils.lookup import fetch
from marketplace.voucher.restoration import restore_vouchers

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="SubOrder")
class ConfirmSubOrder:
    sub_order_id = Identifier(required=True)
    partner_id = Identifier(required=True)


@marketplace.command(part_of="SubOrder")
class PackSubOrder:
    sub_order_id = Identifier(required=True)
    partner_id = Identifier(required=True)


@marketplace.command(part_of="SubOrder")
class PickupSubOrder:
    sub_order_id = Identifier(required=True)
    shipper_id = Identifier(required=True)


@marketplace.command(part_of="SubOrder")
class DeliverSubOrder:
    sub_order_id = Identifier(required=True)
    shipper_id = Identifier(required=True)
    proof_of_delivery = String(max_length=500)


@marketplace.command(part_of="SubOrder")
class FailDelivery:
    sub_order_id = Identifier(required=True)
    shipper_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="SubOrder")
class CancelSubOrderByPartner:
    sub_order_id = Identifier(required=True)
    partner_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command_handler(part_of=SubOrder)
class SubOrderFulfillmentHandler:
    @handle(ConfirmSubOrder)
    def confirm(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        order = fetch(Order, sub_order.order_id, code="ORDER_NOT_FOUND")
        if order.status != OrderStatus.CONFIRMED.value:
            raise ConflictError(f"Order {order.id} is {order.status}; it must be confirmed before fulfillment")
        sub_order.confirm(command.partner_id)
        current_domain.repository_for(SubOrder).add(sub_order)

    @handle(PackSubOrder)
    def pack(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.pack(command.partner_id)
        current_domain.repository_for(SubOrder).add(sub_order)

    @handle(PickupSubOrder)
    def pickup(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.pickup(command.shipper_id)
        deduct_lines(sub_order.item_lines())
        current_domain.repository_for(SubOrder).add(sub_order)

    @handle(DeliverSubOrder)
    def deliver(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.deliver(command.shipper_id, proof_of_delivery=command.proof_of_delivery)
        current_domain.repository_for(SubOrder).add(sub_order)

    @handle(FailDelivery)
    def fail_delivery(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.fail_delivery(command.shipper_id, command.reason)
        current_domain.repository_for(SubOrder).add(sub_order)

    @handle(CancelSubOrderByPartner)
    def cancel_by_partner(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        order = fetch(Order, sub_order.order_id, code="ORDER_NOT_FOUND")
        if order.status == OrderStatus.PAYMENT_FAILED.value:
            raise ConflictError(f"Order {order.id} failed payment; its reservations are already released")
        sub_order.cancel_by_partner(command.partner_id, command.reason)
        release_lines(sub_order.item_lines(), reason="cancelled_by_seller")
        if sub_order.voucher_code:
            restore_vouchers([sub_order.voucher_code], sub_order.order_id)
        current_domain.repository_for(SubOrder).add(sub_order)
        settle_order(sub_order.order_id, changed=[sub_order])


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def confirm_order(sub_order_id, partner_id) -> None:
    process_locked(ConfirmSubOrder(sub_order_id=sub_order_id, partner_id=partner_id), keys_for_sub_order(sub_order_id))
    logger.info("sub_order_confirmed", sub_order_id=str(sub_order_id), partner_id=str(partner_id))


def pack_order(sub_order_id, partner_id) -> None:
    process_locked(PackSubOrder(sub_order_id=sub_order_id, partner_id=partner_id), keys_for_sub_order(sub_order_id))
    logger.info("sub_order_packed", sub_order_id=str(sub_order_id))


def pickup_order(sub_order_id, shipper_id) -> None:
    process_locked(PickupSubOrder(sub_order_id=sub_order_id, shipper_id=shipper_id), keys_for_sub_order(sub_order_id))
    logger.info("sub_order_picked_up", sub_order_id=str(sub_order_id), shipper_id=str(shipper_id))


def deliver_order(sub_order_id, shipper_id, proof_of_delivery: str | None = None) -> None:
    process_locked(
        DeliverSubOrder(sub_order_id=sub_order_id, shipper_id=shipper_id, proof_of_delivery=proof_of_delivery),
        keys_for_sub_order(sub_order_id),
    )
    logger.info("sub_order_delivered", sub_order_id=str(sub_order_id), shipper_id=str(shipper_id))


def fail_delivery(sub_order_id, shipper_id, reason: str) -> None:
    process_locked(
        FailDelivery(sub_order_id=sub_order_id, shipper_id=shipper_id, reason=reason),
        keys_for_sub_order(sub_order_id),
    )
    logger.warning("delivery_failed", sub_order_id=str(sub_order_id), reason=reason)


def cancel_by_partner(sub_order_id, partner_id, reason: str) -> None:
    process_locked(
        CancelSubOrderByPartner(sub_order_id=sub_order_id, partner_id=partner_id, reason=reason),
        keys_for_sub_order(sub_order_id),
    )
    logger.info("sub_order_cancelled_by_partner", sub_order_id=str(sub_order_id), partner_id=str(partner_id))
