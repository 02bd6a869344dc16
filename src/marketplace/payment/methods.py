"""Supported payment methods."""

from enum import Enum

from marketplace.errors import AppError


class PaymentMethod(Enum):
    COD = "cod"
    VNPAY = "vnpay"
    MOMO = "momo"
    WALLET = "wallet"


ONLINE_METHODS = frozenset({PaymentMethod.VNPAY, PaymentMethod.MOMO, PaymentMethod.WALLET})


def parse_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).lower())
    except ValueError:
        raise AppError(f"Invalid payment method: {value}", code="INVALID_PAYMENT_METHOD", status_code=400) from None
