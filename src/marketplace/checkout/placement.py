"""Checkout: turn selected cart lines into an Order with one SubOrder per shop.

The facade computes every lock the checkout needs from the cart and the
voucher codes, takes them in sorted order, and runs :class:`PlaceOrder` as a
single unit of work under them. Validation, persistence, stock reservation,
voucher redemption and cart cleanup commit together or not at all. Payment
is initiated afterwards, on the committed Order.
"""

import structlog
from protean import handle
from protean.fields import Dict, Identifier, List, String, Text
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.checkout.grouping import check_availability, group_items_by_shop, resolve_lines
from marketplace.checkout.pricing import quote_checkout
from marketplace.domain import marketplace
from marketplace.errors import AppError, ConflictError, ValidationError
from marketplace.inventory.ledger import reserve_lines
from marketplace.order.order import Order, SubOrder
from marketplace.payment.initiation import initiate_payment
from marketplace.payment.methods import parse_method
from marketplace.utils.locking import cart_key, process_locked, variant_key, voucher_key
from marketplace.utils.lookup import fetch
from marketplace.voucher.restoration import redeem_vouchers

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    cart_item_ids = List(content_type=String, required=True)
    shipping_address_id = Identifier()
    payment_method = String(required=True, max_length=20)
    platform_voucher_code = String(max_length=50)
    shop_voucher_codes = Dict()
    customer_note = Text()
    # Variants whose locks the caller holds.
    locked_variant_ids = List(content_type=String)


@marketplace.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        method = parse_method(command.payment_method)
        if not command.cart_item_ids:
            raise ValidationError("cart_item_ids must not be empty")

        cart_repo = current_domain.repository_for(ShoppingCart)
        cart = cart_repo.for_user(command.user_id)
        selected = cart.select(command.cart_item_ids) if cart else []
        if not selected:
            raise AppError("No valid cart items found", code="CART_EMPTY", status_code=400)

        locked = set(command.locked_variant_ids or [])
        if any(str(item.variant_id) not in locked for item in selected):
            raise ConflictError("Cart changed during checkout; please retry")

        lines = resolve_lines(selected)
        check_availability(lines)
        groups = group_items_by_shop(lines)
        quote = quote_checkout(
            groups,
            command.user_id,
            shipping_address_id=command.shipping_address_id,
            platform_voucher_code=command.platform_voucher_code,
            shop_voucher_codes=command.shop_voucher_codes,
        )

        order = Order.place(
            user_id=command.user_id,
            subtotal=quote.subtotal,
            shipping_total=quote.shipping_total,
            discount_total=quote.discount_total,
            payment_method=method.value,
            sub_order_count=len(quote.shops),
            item_count=sum(line.quantity for line in lines),
            shipping_address_id=command.shipping_address_id,
            customer_note=command.customer_note,
            platform_voucher_code=quote.platform_voucher_code,
        )
        current_domain.repository_for(Order).add(order)

        sub_repo = current_domain.repository_for(SubOrder)
        sub_order_ids = []
        for shop_quote in quote.shops:
            sub_order = SubOrder.open(
                order_id=order.id,
                user_id=command.user_id,
                shop_id=shop_quote.shop_id,
                items_data=[line.as_item_data() for line in shop_quote.lines],
                shipping_fee=shop_quote.shipping_fee,
                discount=shop_quote.discount,
                voucher_code=shop_quote.voucher_code,
            )
            sub_repo.add(sub_order)
            sub_order_ids.append(str(sub_order.id))

        reserve_lines((line.variant_id, line.quantity) for line in lines)
        redeem_vouchers(quote.voucher_codes(), command.user_id, order.id)

        cart.consume(command.cart_item_ids)
        cart_repo.add(cart)

        logger.info(
            "order_placed",
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=str(command.user_id),
            sub_orders=len(sub_order_ids),
            grand_total=order.grand_total,
        )
        return {"order_id": str(order.id), "sub_order_ids": sub_order_ids}


def checkout_lock_keys(user_id, cart_item_ids, platform_voucher_code=None, shop_voucher_codes=None):
    """Cart, variant and voucher keys for a checkout, plus the variant ids."""
    cart = current_domain.repository_for(ShoppingCart).for_user(user_id)
    selected = cart.select(cart_item_ids) if cart else []
    variant_ids = sorted({str(item.variant_id) for item in selected})

    codes = [platform_voucher_code] + list((shop_voucher_codes or {}).values())
    keys = [cart_key(user_id)]
    keys.extend(variant_key(v) for v in variant_ids)
    keys.extend(voucher_key(code) for code in codes if code)
    return keys, variant_ids


def create_order(
    user_id,
    cart_item_ids,
    payment_method: str,
    shipping_address_id=None,
    platform_voucher_code: str | None = None,
    shop_voucher_codes: dict | None = None,
    customer_note: str | None = None,
    client_ip: str = "127.0.0.1",
) -> dict:
    """Place an order from cart lines and start its payment.

    Returns ``{"order", "sub_orders", "payment"}``.
    """
    method = parse_method(payment_method)
    cart_item_ids = [str(i) for i in cart_item_ids or []]
    if not cart_item_ids:
        raise ValidationError("cart_item_ids must not be empty")

    keys, variant_ids = checkout_lock_keys(user_id, cart_item_ids, platform_voucher_code, shop_voucher_codes)
    placed = process_locked(
        PlaceOrder(
            user_id=user_id,
            cart_item_ids=cart_item_ids,
            shipping_address_id=shipping_address_id,
            payment_method=method.value,
            platform_voucher_code=platform_voucher_code,
            shop_voucher_codes=dict(shop_voucher_codes or {}),
            customer_note=customer_note,
            locked_variant_ids=variant_ids,
        ),
        keys,
    )

    payment = initiate_payment(placed["order_id"], method, client_ip=client_ip)
    order = fetch(Order, placed["order_id"], code="ORDER_NOT_FOUND")
    sub_orders = current_domain.repository_for(SubOrder).for_order(order.id)
    return {"order": order, "sub_orders": sub_orders, "payment": payment}


def preview_checkout(
    user_id,
    cart_item_ids,
    shipping_address_id=None,
    platform_voucher_code: str | None = None,
    shop_voucher_codes: dict | None = None,
) -> dict:
    """Price a checkout without placing it. Nothing is locked or written."""
    cart = current_domain.repository_for(ShoppingCart).for_user(user_id)
    selected = cart.select(cart_item_ids) if cart else []
    if not selected:
        raise AppError("No valid cart items found", code="CART_EMPTY", status_code=400)
    lines = resolve_lines(selected)
    check_availability(lines)
    quote = quote_checkout(
        group_items_by_shop(lines),
        user_id,
        shipping_address_id=shipping_address_id,
        platform_voucher_code=platform_voucher_code,
        shop_voucher_codes=shop_voucher_codes,
    )
    return quote.to_dict()
