"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations per payment
method. Tests install adapters built with explicit settings.
"""

from marketplace.payment.gateway.cod_adapter import CashOnDeliveryGateway
from marketplace.payment.gateway.momo_adapter import MoMoGateway
from marketplace.payment.gateway.port import PaymentGateway
from marketplace.payment.gateway.vnpay_adapter import VNPayGateway
from marketplace.payment.gateway.wallet_adapter import WalletGateway
from marketplace.payment.methods import PaymentMethod, parse_method

_DEFAULTS = {
    PaymentMethod.COD: CashOnDeliveryGateway,
    PaymentMethod.VNPAY: VNPayGateway,
    PaymentMethod.MOMO: MoMoGateway,
    PaymentMethod.WALLET: WalletGateway,
}

_current_gateways: dict[PaymentMethod, PaymentGateway] = {}


def get_gateway(method) -> PaymentGateway:
    """Return the gateway serving ``method``, building the default lazily."""
    method = parse_method(method)
    if method not in _current_gateways:
        _current_gateways[method] = _DEFAULTS[method]()
    return _current_gateways[method]


def set_gateway(method, gateway: PaymentGateway) -> None:
    """Override the gateway for one method (useful for tests)."""
    _current_gateways[parse_method(method)] = gateway


def reset_gateways() -> None:
    """Reset every method to its default gateway."""
    _current_gateways.clear()
