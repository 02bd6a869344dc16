"""Order and SubOrder aggregates (CQRS).

An Order is the customer's view of one checkout: money totals, payment state
and a coarse status. Each SubOrder is the fulfillment unit for one shop and
carries its own line items with the prices captured at checkout. SubOrders
are separate aggregates so sellers and shippers can work on them without
contending for the whole Order.
"""

import secrets
from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError as ProteanValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, Text

from marketplace.domain import marketplace
from marketplace.errors import AppError, ConflictError, ForbiddenError
from marketplace.order.events import (
    DeliveryAttemptFailed,
    OrderPlaced,
    OrderStatusChanged,
    SubOrderOpened,
    SubOrderStatusChanged,
)
from marketplace.order.state_machine import (
    AUTO_CONFIRM_AFTER,
    CUSTOMER_CANCELLABLE_ORDER_STATUSES,
    RETURN_WINDOW,
    OrderStatus,
    PaymentStatus,
    SubOrderAction,
    SubOrderStatus,
    assert_order_transition,
    derive_order_status,
    next_sub_order_status,
)
from marketplace.voucher.voucher import as_utc

MONEY_TOLERANCE = 0.01
ALL_SUB_ORDERS_CANCELLED = "all sub-orders cancelled"


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"ORD-{now.strftime('%Y%m%d%H%M%S')}-{secrets.token_hex(3).upper()}"


def is_return_window_valid(sub_order, now: datetime | None = None) -> bool:
    """True iff a return deadline is set and has not passed."""
    if sub_order.return_deadline is None:
        return False
    now = now or datetime.now(UTC)
    return now <= as_utc(sub_order.return_deadline)


# ---------------------------------------------------------------------------
# Order
# ---------------------------------------------------------------------------
@marketplace.aggregate
class Order:
    user_id = Identifier(required=True)
    order_number = String(required=True, max_length=50)
    subtotal = Float(default=0.0)
    shipping_total = Float(default=0.0)
    discount_total = Float(default=0.0)
    grand_total = Float(default=0.0)
    payment_method = String(required=True, max_length=20)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING_PAYMENT.value)
    shipping_address_id = Identifier()
    customer_note = Text()
    platform_voucher_code = String(max_length=50)
    cancel_reason = String(max_length=500)
    cancelled_at = DateTime()
    paid_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def totals_add_up(self):
        expected = (self.subtotal or 0.0) + (self.shipping_total or 0.0) - (self.discount_total or 0.0)
        if abs((self.grand_total or 0.0) - expected) > MONEY_TOLERANCE:
            raise ProteanValidationError({"grand_total": ["Grand total must equal subtotal + shipping - discount"]})

    @invariant.post
    def totals_not_negative(self):
        for field in ("subtotal", "shipping_total", "discount_total", "grand_total"):
            if (getattr(self, field) or 0.0) < 0:
                raise ProteanValidationError({field: ["Amounts cannot be negative"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        user_id,
        subtotal: float,
        shipping_total: float,
        discount_total: float,
        payment_method: str,
        sub_order_count: int,
        item_count: int = 0,
        shipping_address_id=None,
        customer_note: str | None = None,
        platform_voucher_code: str | None = None,
    ):
        now = datetime.now(UTC)
        order = cls(
            user_id=user_id,
            order_number=generate_order_number(now),
            subtotal=subtotal,
            shipping_total=shipping_total,
            discount_total=discount_total,
            grand_total=subtotal + shipping_total - discount_total,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING_PAYMENT.value,
            shipping_address_id=shipping_address_id,
            customer_note=customer_note,
            platform_voucher_code=platform_voucher_code,
            created_at=now,
            updated_at=now,
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=str(user_id),
                payment_method=payment_method,
                subtotal=order.subtotal,
                shipping_total=order.shipping_total,
                discount_total=order.discount_total,
                grand_total=order.grand_total,
                sub_order_count=sub_order_count,
                item_count=item_count,
                placed_at=now,
            )
        )
        return order

    @property
    def awaiting_payment(self) -> bool:
        return (
            self.status == OrderStatus.PENDING_PAYMENT.value
            and self.payment_status == PaymentStatus.PENDING.value
        )

    def _change_status(self, target: OrderStatus, reason: str | None = None) -> None:
        assert_order_transition(self.status, target)
        previous = self.status
        now = datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                user_id=str(self.user_id),
                previous_status=previous,
                new_status=target.value,
                payment_status=self.payment_status,
                reason=reason,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Payment
    # -------------------------------------------------------------------
    def confirm_cash_on_delivery(self) -> None:
        """COD: fulfillment starts now, money changes hands on delivery."""
        self._change_status(OrderStatus.CONFIRMED, reason="cod")

    def mark_paid(self) -> None:
        if not self.awaiting_payment:
            raise ConflictError(f"Order {self.id} is not awaiting payment")
        self.payment_status = PaymentStatus.PAID.value
        self.paid_at = datetime.now(UTC)
        self._change_status(OrderStatus.CONFIRMED, reason="payment_received")

    def mark_payment_failed(self, reason: str | None = None) -> None:
        if not self.awaiting_payment:
            raise ConflictError(f"Order {self.id} is not awaiting payment")
        self.payment_status = PaymentStatus.FAILED.value
        self._change_status(OrderStatus.PAYMENT_FAILED, reason=reason or "payment_failed")

    # -------------------------------------------------------------------
    # Cancellation and roll-up
    # -------------------------------------------------------------------
    def cancel(self, reason: str) -> None:
        if OrderStatus(self.status) not in CUSTOMER_CANCELLABLE_ORDER_STATUSES:
            raise AppError(f"Order in {self.status} status cannot be cancelled", code="ORDER_CANNOT_CANCEL")
        self.cancel_reason = reason
        self.cancelled_at = datetime.now(UTC)
        self._change_status(OrderStatus.CANCELLED, reason=reason)

    def sync_with(self, sub_orders) -> None:
        """Recompute the coarse status once every SubOrder has settled."""
        derived = derive_order_status(s.status for s in sub_orders)
        if derived is None or derived.value == self.status:
            return
        if derived == OrderStatus.CANCELLED:
            self.cancel_reason = self.cancel_reason or ALL_SUB_ORDERS_CANCELLED
            self.cancelled_at = datetime.now(UTC)
            self._change_status(derived, reason=ALL_SUB_ORDERS_CANCELLED)
            return
        self._change_status(derived, reason="sub_orders_settled")


# ---------------------------------------------------------------------------
# SubOrder
# ---------------------------------------------------------------------------
@marketplace.entity(part_of="SubOrder")
class OrderItem:
    """Line item. ``unit_price`` is a snapshot taken at checkout."""

    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    sku = String(max_length=100)
    product_name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    line_total = Float(required=True, min_value=0.0)


@marketplace.aggregate
class SubOrder:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    status = String(choices=SubOrderStatus, default=SubOrderStatus.PENDING.value)
    items = HasMany(OrderItem)
    subtotal = Float(default=0.0)
    shipping_fee = Float(default=0.0)
    discount = Float(default=0.0)
    total = Float(default=0.0)
    voucher_code = String(max_length=50)
    shipper_id = Identifier()
    delivered_at = DateTime()
    return_deadline = DateTime()
    proof_of_delivery = String(max_length=500)
    cancel_reason = String(max_length=500)
    cancelled_by = String(max_length=100)
    cancelled_at = DateTime()
    return_reason = String(max_length=500)
    return_description = Text()
    rejection_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(
        cls,
        order_id,
        user_id,
        shop_id,
        items_data: list[dict],
        shipping_fee: float = 0.0,
        discount: float = 0.0,
        voucher_code: str | None = None,
    ):
        now = datetime.now(UTC)
        subtotal = sum(item["unit_price"] * item["quantity"] for item in items_data)
        sub_order = cls(
            order_id=order_id,
            user_id=user_id,
            shop_id=shop_id,
            status=SubOrderStatus.PENDING.value,
            subtotal=subtotal,
            shipping_fee=shipping_fee,
            discount=discount,
            total=subtotal + shipping_fee - discount,
            voucher_code=voucher_code,
            created_at=now,
            updated_at=now,
        )
        for item in items_data:
            sub_order.add_items(OrderItem(line_total=item["unit_price"] * item["quantity"], **item))
        sub_order.raise_(
            SubOrderOpened(
                sub_order_id=str(sub_order.id),
                order_id=str(order_id),
                user_id=str(user_id),
                shop_id=str(shop_id),
                status=sub_order.status,
                item_count=sum(item["quantity"] for item in items_data),
                subtotal=sub_order.subtotal,
                shipping_fee=sub_order.shipping_fee,
                discount=sub_order.discount,
                total=sub_order.total,
                opened_at=now,
            )
        )
        return sub_order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def item_lines(self) -> list[tuple[str, int]]:
        return [(str(item.variant_id), item.quantity) for item in self.items]

    def _assert_seller(self, partner_id) -> None:
        if str(self.shop_id) != str(partner_id):
            raise ForbiddenError(f"Shop {partner_id} does not own sub-order {self.id}")

    def _assert_shipper(self, shipper_id) -> None:
        if self.shipper_id is None or str(self.shipper_id) != str(shipper_id):
            raise ForbiddenError(f"Shipper {shipper_id} is not assigned to sub-order {self.id}")

    def _apply(self, action: SubOrderAction, actor_id=None, note: str | None = None, now: datetime | None = None):
        """Move along the transition table. Raises before touching any field."""
        target = next_sub_order_status(self.status, action)
        previous = self.status
        now = now or datetime.now(UTC)
        self.status = target.value
        self.updated_at = now
        self.raise_(
            SubOrderStatusChanged(
                sub_order_id=str(self.id),
                order_id=str(self.order_id),
                shop_id=str(self.shop_id),
                action=action.value,
                previous_status=previous,
                new_status=target.value,
                actor_id=str(actor_id) if actor_id is not None else None,
                note=note,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Seller and shipper steps
    # -------------------------------------------------------------------
    def confirm(self, partner_id) -> None:
        self._assert_seller(partner_id)
        self._apply(SubOrderAction.CONFIRM, actor_id=partner_id)

    def pack(self, partner_id) -> None:
        self._assert_seller(partner_id)
        self._apply(SubOrderAction.PACK, actor_id=partner_id)

    def pickup(self, shipper_id) -> None:
        next_sub_order_status(self.status, SubOrderAction.PICKUP)
        self.shipper_id = shipper_id
        self._apply(SubOrderAction.PICKUP, actor_id=shipper_id)

    def deliver(self, shipper_id, proof_of_delivery: str | None = None, now: datetime | None = None) -> None:
        """Hand-over. The only place the return deadline is set."""
        self._assert_shipper(shipper_id)
        next_sub_order_status(self.status, SubOrderAction.DELIVER)
        now = now or datetime.now(UTC)
        self.delivered_at = now
        self.return_deadline = now + RETURN_WINDOW
        self.proof_of_delivery = proof_of_delivery
        self._apply(SubOrderAction.DELIVER, actor_id=shipper_id, now=now)

    def fail_delivery(self, shipper_id, reason: str) -> None:
        """Record a failed attempt. The parcel stays in ``shipping``."""
        self._assert_shipper(shipper_id)
        if self.status != SubOrderStatus.SHIPPING.value:
            raise ConflictError(f"Cannot record a failed delivery for a sub-order in {self.status} status")
        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            DeliveryAttemptFailed(
                sub_order_id=str(self.id),
                order_id=str(self.order_id),
                shipper_id=str(shipper_id),
                reason=reason,
                occurred_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------
    def confirm_receipt(self, user_id) -> None:
        self._apply(SubOrderAction.CONFIRM_RECEIPT, actor_id=user_id)

    def is_delivery_overdue(self, now: datetime | None = None) -> bool:
        if self.status != SubOrderStatus.DELIVERED.value or self.delivered_at is None:
            return False
        now = now or datetime.now(UTC)
        return as_utc(self.delivered_at) + AUTO_CONFIRM_AFTER < now

    def auto_complete(self) -> None:
        self._apply(SubOrderAction.AUTO_COMPLETE, actor_id="system", note="Auto-confirmed after delivery window")

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str, cancelled_by: str) -> None:
        next_sub_order_status(self.status, SubOrderAction.CANCEL)
        self.cancel_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = datetime.now(UTC)
        self._apply(SubOrderAction.CANCEL, actor_id=cancelled_by, note=reason)

    def cancel_by_partner(self, partner_id, reason: str) -> None:
        self._assert_seller(partner_id)
        next_sub_order_status(self.status, SubOrderAction.PARTNER_CANCEL)
        self.cancel_reason = reason
        self.cancelled_by = "seller"
        self.cancelled_at = datetime.now(UTC)
        self._apply(SubOrderAction.PARTNER_CANCEL, actor_id=partner_id, note=reason)

    # -------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------
    def request_return(self, user_id, reason: str, description: str | None = None) -> None:
        next_sub_order_status(self.status, SubOrderAction.REQUEST_RETURN)
        self.return_reason = reason
        self.return_description = description
        self._apply(SubOrderAction.REQUEST_RETURN, actor_id=user_id, note=reason)

    def approve_return(self, partner_id) -> None:
        self._assert_seller(partner_id)
        self._apply(SubOrderAction.APPROVE_RETURN, actor_id=partner_id)

    def reject_return(self, partner_id, reason: str) -> None:
        self._assert_seller(partner_id)
        next_sub_order_status(self.status, SubOrderAction.REJECT_RETURN)
        self.rejection_reason = reason
        self._apply(SubOrderAction.REJECT_RETURN, actor_id=partner_id, note=reason)

    def receive_return(self, partner_id) -> None:
        self._assert_seller(partner_id)
        self._apply(SubOrderAction.RECEIVE_RETURN, actor_id=partner_id)

    def refund(self, partner_id) -> None:
        self._assert_seller(partner_id)
        self._apply(SubOrderAction.REFUND, actor_id=partner_id)


@marketplace.repository(part_of=SubOrder)
class SubOrderRepository:
    def for_order(self, order_id) -> list[SubOrder]:
        return self._dao.query.filter(order_id=str(order_id)).all().items

    def with_status(self, status: SubOrderStatus) -> list[SubOrder]:
        return self._dao.query.filter(status=status.value).all().items
