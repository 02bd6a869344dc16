"""Marketplace API package."""

from marketplace.api.errors import install_error_handlers
from marketplace.api.routes import (
    cart_router,
    checkout_router,
    order_router,
    payment_router,
    return_router,
    shop_router,
    sub_order_router,
    variant_router,
    voucher_router,
)

ROUTERS = [
    variant_router,
    voucher_router,
    cart_router,
    checkout_router,
    order_router,
    shop_router,
    sub_order_router,
    payment_router,
    return_router,
]

__all__ = ["ROUTERS", "install_error_handlers"]
