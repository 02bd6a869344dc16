"""Shipping fee calculators.

StandardShipping mirrors the marketplace's published rate card: a base fee,
a surcharge per kilogram above the free weight allowance, and free shipping
once a shop's subtotal reaches the threshold. Distance pricing belongs to the
external logistics service and is not modelled here.
"""

from marketplace.shipping.port import ShippingCalculator, ShippingLine

BASE_FEE = 15000.0
FREE_WEIGHT_KG = 5.0
SURCHARGE_PER_KG = 2000.0
DEFAULT_UNIT_WEIGHT_KG = 0.5
FREE_SHIPPING_THRESHOLD = 500000.0


class StandardShipping(ShippingCalculator):
    def __init__(
        self,
        base_fee: float = BASE_FEE,
        free_shipping_threshold: float = FREE_SHIPPING_THRESHOLD,
    ) -> None:
        self.base_fee = base_fee
        self.free_shipping_threshold = free_shipping_threshold

    def calculate_fee(self, shop_id, address_id, lines):
        subtotal = sum(line.unit_price * line.quantity for line in lines)
        if subtotal >= self.free_shipping_threshold:
            return 0.0

        total_weight = sum((line.weight or DEFAULT_UNIT_WEIGHT_KG) * line.quantity for line in lines)
        fee = self.base_fee
        if total_weight > FREE_WEIGHT_KG:
            fee += (total_weight - FREE_WEIGHT_KG) * SURCHARGE_PER_KG
        return float(round(fee))


class FlatRateShipping(ShippingCalculator):
    """Same fee for every shop. Handy for tests and promotions."""

    def __init__(self, fee: float = 0.0) -> None:
        self.fee = fee
        self.calls: list[dict] = []

    def calculate_fee(self, shop_id, address_id, lines):
        self.calls.append({"shop_id": shop_id, "address_id": address_id, "line_count": len(lines)})
        return float(self.fee)
