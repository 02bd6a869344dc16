"""Shipping calculator factory.

Uses StandardShipping by default. Configure via the SHIPPING_ADAPTER
environment variable (``standard`` or ``flat`` with SHIPPING_FLAT_FEE).
"""

import os

from marketplace.shipping.port import ShippingCalculator

_calculator: ShippingCalculator | None = None


def get_shipping_calculator() -> ShippingCalculator:
    global _calculator
    if _calculator is None:
        adapter = os.environ.get("SHIPPING_ADAPTER", "standard")
        if adapter == "standard":
            from marketplace.shipping.adapters import StandardShipping

            _calculator = StandardShipping()
        elif adapter == "flat":
            from marketplace.shipping.adapters import FlatRateShipping

            _calculator = FlatRateShipping(fee=float(os.environ.get("SHIPPING_FLAT_FEE", "0")))
        else:
            raise ValueError(f"Unknown shipping adapter: {adapter}")
    return _calculator


def set_shipping_calculator(calculator: ShippingCalculator) -> None:
    global _calculator
    _calculator = calculator


def reset_shipping_calculator() -> None:
    global _calculator
    _calculator = None
