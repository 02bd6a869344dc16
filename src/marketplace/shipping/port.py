"""Shipping fee calculator port."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ShippingLine:
    """The parts of a cart line the fee calculation needs."""

    variant_id: str
    quantity: int
    unit_price: float
    weight: float | None = None


class ShippingCalculator(ABC):
    @abstractmethod
    def calculate_fee(self, shop_id: str, address_id: str | None, lines: list[ShippingLine]) -> float:
        """Return the shipping fee for one shop's share of an order."""
        ...
