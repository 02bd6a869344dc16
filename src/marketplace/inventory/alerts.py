"""Stock alerts: forwards stock events to the outbound message bus.

Fire-and-forget: a bus outage is logged and never fails the stock change
that raised the event.
"""

import structlog
from protean.utils.mixins import handle

from marketplace.domain import marketplace
from marketplace.inventory.events import LowStockDetected, OutOfStock
from marketplace.inventory.variant import ProductVariant
from marketplace.messaging import publish_safely

logger = structlog.get_logger(__name__)


@marketplace.event_handler(part_of=ProductVariant)
class StockAlertHandler:
    @handle(OutOfStock)
    def on_out_of_stock(self, event: OutOfStock) -> None:
        logger.warning("variant_out_of_stock", variant_id=str(event.variant_id), sku=event.sku)
        publish_safely(
            "inventory.out_of_stock",
            {
                "variant_id": str(event.variant_id),
                "product_id": str(event.product_id),
                "shop_id": str(event.shop_id),
                "sku": event.sku,
            },
        )

    @handle(LowStockDetected)
    def on_low_stock(self, event: LowStockDetected) -> None:
        logger.info("variant_low_stock", variant_id=str(event.variant_id), quantity=event.quantity)
        publish_safely(
            "inventory.low_stock",
            {
                "variant_id": str(event.variant_id),
                "shop_id": str(event.shop_id),
                "sku": event.sku,
                "quantity": event.quantity,
                "threshold": event.threshold,
            },
        )
