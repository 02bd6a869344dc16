"""Outbound notifications and tracking for Order and SubOrder events.

Runs after the unit of work commits. Publishing is fire-and-forget and the
tracking log is append-only; neither can undo the change that raised the
event.
"""

import structlog
from protean.utils.mixins import handle

from marketplace.domain import marketplace
from marketplace.messaging import publish_safely
from marketplace.order.events import DeliveryAttemptFailed, OrderPlaced, OrderStatusChanged, SubOrderStatusChanged
from marketplace.order.order import Order, SubOrder
from marketplace.tracking import add_tracking_event

logger = structlog.get_logger(__name__)


@marketplace.event_handler(part_of=Order)
class OrderNotificationHandler:
    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        publish_safely(
            "order.created",
            {
                "order_id": str(event.order_id),
                "order_number": event.order_number,
                "user_id": str(event.user_id),
                "grand_total": event.grand_total,
                "payment_method": event.payment_method,
                "sub_order_count": event.sub_order_count,
            },
        )

    @handle(OrderStatusChanged)
    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        publish_safely(
            f"order.{event.new_status}",
            {
                "order_id": str(event.order_id),
                "user_id": str(event.user_id),
                "previous_status": event.previous_status,
                "new_status": event.new_status,
                "payment_status": event.payment_status,
                "reason": event.reason,
            },
        )


@marketplace.event_handler(part_of=SubOrder)
class SubOrderTrackingHandler:
    @handle(SubOrderStatusChanged)
    def on_sub_order_status_changed(self, event: SubOrderStatusChanged) -> None:
        add_tracking_event(
            event.sub_order_id,
            event.new_status,
            created_by=event.actor_id,
            note=event.note,
        )
        publish_safely(
            "order.status_changed",
            {
                "sub_order_id": str(event.sub_order_id),
                "order_id": str(event.order_id),
                "shop_id": str(event.shop_id),
                "previous_status": event.previous_status,
                "new_status": event.new_status,
            },
        )

    @handle(DeliveryAttemptFailed)
    def on_delivery_attempt_failed(self, event: DeliveryAttemptFailed) -> None:
        logger.warning("delivery_attempt_failed", sub_order_id=str(event.sub_order_id), reason=event.reason)
        add_tracking_event(
            event.sub_order_id,
            "delivery_failed",
            created_by=str(event.shipper_id),
            note=event.reason,
        )
