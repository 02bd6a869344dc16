"""Domain events for the Order and SubOrder aggregates."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from marketplace.domain import marketplace


@marketplace.event(part_of="Order")
class OrderPlaced:
    """Checkout committed: the Order, its SubOrders and reservations exist."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    payment_method = String(required=True)
    subtotal = Float(required=True)
    shipping_total = Float(required=True)
    discount_total = Float(required=True)
    grand_total = Float(required=True)
    sub_order_count = Integer(required=True)
    item_count = Integer(default=0)
    placed_at = DateTime(required=True)


@marketplace.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    payment_status = String(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@marketplace.event(part_of="SubOrder")
class SubOrderOpened:
    __version__ = 1

    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    status = String(required=True)
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    shipping_fee = Float(required=True)
    discount = Float(required=True)
    total = Float(required=True)
    opened_at = DateTime(required=True)


@marketplace.event(part_of="SubOrder")
class SubOrderStatusChanged:
    __version__ = 1

    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    action = String(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    actor_id = String()
    note = Text()
    changed_at = DateTime(required=True)


@marketplace.event(part_of="SubOrder")
class DeliveryAttemptFailed:
    """The shipper could not hand over the parcel; status is unchanged."""

    __version__ = 1

    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    shipper_id = Identifier(required=True)
    reason = String(required=True)
    occurred_at = DateTime(required=True)
