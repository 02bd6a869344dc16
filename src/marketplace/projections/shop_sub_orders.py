"""Shop sub-orders: a seller's fulfillment queue."""

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import ValidationError
from marketplace.order.events import SubOrderOpened, SubOrderStatusChanged
from marketplace.order.order import SubOrder
from marketplace.order.state_machine import SubOrderAction, SubOrderStatus
from marketplace.projections.paging import check_page, page_of


@marketplace.projection
class ShopSubOrder:
    sub_order_id = Identifier(identifier=True, required=True)
    order_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    user_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    item_count = Integer(default=0)
    total = Float()
    shipper_id = Identifier()
    created_at = DateTime()
    updated_at = DateTime()


@marketplace.projector(projector_for=ShopSubOrder, aggregates=[SubOrder])
class ShopSubOrderProjector:
    @on(SubOrderOpened)
    def on_sub_order_opened(self, event):
        current_domain.repository_for(ShopSubOrder).add(
            ShopSubOrder(
                sub_order_id=event.sub_order_id,
                order_id=event.order_id,
                shop_id=event.shop_id,
                user_id=event.user_id,
                status=event.status,
                item_count=event.item_count,
                total=event.total,
                created_at=event.opened_at,
                updated_at=event.opened_at,
            )
        )

    @on(SubOrderStatusChanged)
    def on_sub_order_status_changed(self, event):
        repo = current_domain.repository_for(ShopSubOrder)
        record = repo.get(event.sub_order_id)
        record.status = event.new_status
        if event.action == SubOrderAction.PICKUP.value:
            record.shipper_id = event.actor_id
        record.updated_at = event.changed_at
        repo.add(record)


def sub_orders_for_shop(shop_id, status: str | None = None, page: int = 1, limit: int = 10) -> dict:
    """One page of a shop's SubOrders, newest first."""
    check_page(page, limit)
    filters = {"shop_id": str(shop_id)}
    if status:
        if status not in {s.value for s in SubOrderStatus}:
            raise ValidationError(f"Unknown sub-order status: {status}")
        filters["status"] = status
    query = current_domain.repository_for(ShopSubOrder)._dao.query.filter(**filters)
    return page_of(query, page, limit)
