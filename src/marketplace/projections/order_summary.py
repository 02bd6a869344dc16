"""Order summary: the customer's order history listing."""

from datetime import datetime

from protean.core.projector import on
from protean.fields import DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import ValidationError
from marketplace.order.events import OrderPlaced, OrderStatusChanged
from marketplace.order.order import Order
from marketplace.order.state_machine import OrderStatus, PaymentStatus
from marketplace.payment.events import PaymentInitiated
from marketplace.payment.payment import Payment
from marketplace.projections.paging import check_page, created_between, page_of


@marketplace.projection
class OrderSummary:
    order_id = Identifier(identifier=True, required=True)
    order_number = String(required=True, max_length=50)
    user_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    payment_status = String(max_length=20)
    payment_method = String(max_length=20)
    item_count = Integer(default=0)
    sub_order_count = Integer(default=0)
    grand_total = Float()
    created_at = DateTime()
    updated_at = DateTime()


@marketplace.projector(projector_for=OrderSummary, aggregates=[Order, Payment])
class OrderSummaryProjector:
    @on(OrderPlaced)
    def on_order_placed(self, event):
        current_domain.repository_for(OrderSummary).add(
            OrderSummary(
                order_id=event.order_id,
                order_number=event.order_number,
                user_id=event.user_id,
                status=OrderStatus.PENDING_PAYMENT.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=event.payment_method,
                item_count=event.item_count or 0,
                sub_order_count=event.sub_order_count,
                grand_total=event.grand_total,
                created_at=event.placed_at,
                updated_at=event.placed_at,
            )
        )

    @on(OrderStatusChanged)
    def on_order_status_changed(self, event):
        repo = current_domain.repository_for(OrderSummary)
        summary = repo.get(event.order_id)
        summary.status = event.new_status
        summary.payment_status = event.payment_status
        summary.updated_at = event.changed_at
        repo.add(summary)

    @on(PaymentInitiated)
    def on_payment_initiated(self, event):
        repo = current_domain.repository_for(OrderSummary)
        summary = repo.get(event.order_id)
        summary.payment_method = event.method
        summary.updated_at = event.initiated_at
        repo.add(summary)


def orders_for_user(
    user_id,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """One page of a customer's orders, newest first.

    Returns ``{"items": [OrderSummary, ...], "pagination": {...}}``.
    """
    check_page(page, limit)
    filters = {"user_id": str(user_id), **created_between(start_date, end_date)}
    if status:
        if status not in {s.value for s in OrderStatus}:
            raise ValidationError(f"Unknown order status: {status}")
        filters["status"] = status
    query = current_domain.repository_for(OrderSummary)._dao.query.filter(**filters)
    return page_of(query, page, limit)
