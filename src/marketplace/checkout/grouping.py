"""Cart lines resolved against their stock records, and grouped per shop."""

from dataclasses import dataclass

from marketplace.errors import InsufficientStockError
from marketplace.inventory.variant import ProductVariant
from marketplace.shipping.port import ShippingLine
from marketplace.utils.lookup import fetch


@dataclass(frozen=True)
class CheckoutLine:
    cart_item_id: str
    product_id: str
    variant_id: str
    shop_id: str
    sku: str
    name: str | None
    quantity: int
    unit_price: float
    weight: float | None = None

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def as_shipping_line(self) -> ShippingLine:
        return ShippingLine(
            variant_id=self.variant_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            weight=self.weight,
        )

    def as_item_data(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "product_name": self.name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
        }


def resolve_lines(cart_items) -> list[CheckoutLine]:
    """Snapshot price and shop for every cart line.

    A line whose variant no longer exists fails with PRODUCT_NOT_FOUND.
    """
    lines = []
    for item in cart_items:
        variant = fetch(ProductVariant, item.variant_id, code="PRODUCT_NOT_FOUND")
        lines.append(
            CheckoutLine(
                cart_item_id=str(item.id),
                product_id=str(variant.product_id),
                variant_id=str(variant.id),
                shop_id=str(variant.shop_id),
                sku=variant.sku,
                name=variant.name,
                quantity=item.quantity,
                unit_price=variant.price,
                weight=variant.weight,
            )
        )
    return lines


def check_availability(lines: list[CheckoutLine]) -> None:
    """All-or-nothing: one short line fails the whole checkout."""
    requested: dict[str, int] = {}
    for line in lines:
        requested[line.variant_id] = requested.get(line.variant_id, 0) + line.quantity

    for variant_id, quantity in requested.items():
        variant = fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND")
        if quantity > variant.available:
            raise InsufficientStockError(
                f"Insufficient stock for {variant.name or variant.sku}. Available: {variant.available}",
                variant_id=variant_id,
            )


def group_items_by_shop(lines) -> dict[str, list]:
    """Partition ``lines`` by ``shop_id``.

    Groups come out in the order each shop first appears, and lines keep
    their relative order inside a group.
    """
    groups: dict[str, list] = {}
    for line in lines:
        groups.setdefault(str(line.shop_id), []).append(line)
    return groups
