"""Stock ledger: commands and handler.

Every command here touches exactly one ProductVariant. Callers serialize
access per variant through :mod:`marketplace.inventory.ledger`.
"""

from protean import handle
from protean.fields import Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.inventory.variant import DEFAULT_LOW_STOCK_THRESHOLD, ProductVariant
from marketplace.utils.lookup import fetch


@marketplace.command(part_of="ProductVariant")
class RegisterVariant:
    """Register a variant and its opening stock."""

    product_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    name = String(max_length=255)
    price = Float(required=True)
    weight = Float()
    quantity = Integer(default=0)
    low_stock_threshold = Integer(default=DEFAULT_LOW_STOCK_THRESHOLD)


@marketplace.command(part_of="ProductVariant")
class ReserveStock:
    variant_id = Identifier(required=True)
    quantity = Integer(required=True)


@marketplace.command(part_of="ProductVariant")
class ReleaseStock:
    variant_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(max_length=255)


@marketplace.command(part_of="ProductVariant")
class ConfirmStockDeduction:
    variant_id = Identifier(required=True)
    quantity = Integer(required=True)


@marketplace.command(part_of="ProductVariant")
class UpdateStock:
    """Set the on-hand count to an absolute value."""

    variant_id = Identifier(required=True)
    quantity = Integer(required=True)
    reason = String(max_length=255)


@marketplace.command(part_of="ProductVariant")
class AdjustStock:
    """Move the on-hand count by a signed delta."""

    variant_id = Identifier(required=True)
    delta = Integer(required=True)
    reason = String(max_length=255)


@marketplace.command(part_of="ProductVariant")
class SetLowStockThreshold:
    variant_id = Identifier(required=True)
    threshold = Integer(required=True)


@marketplace.command_handler(part_of=ProductVariant)
class StockHandler:
    @handle(RegisterVariant)
    def register_variant(self, command):
        variant = ProductVariant.register(
            product_id=command.product_id,
            shop_id=command.shop_id,
            sku=command.sku,
            name=command.name,
            price=command.price,
            weight=command.weight,
            quantity=command.quantity or 0,
            low_stock_threshold=command.low_stock_threshold,
        )
        current_domain.repository_for(ProductVariant).add(variant)
        return str(variant.id)

    @handle(ReserveStock)
    def reserve_stock(self, command):
        variant = fetch(ProductVariant, command.variant_id, code="PRODUCT_NOT_FOUND")
        variant.reserve(command.quantity)
        current_domain.repository_for(ProductVariant).add(variant)

    @handle(ReleaseStock)
    def release_stock(self, command):
        variant = fetch(ProductVariant, command.variant_id, code="PRODUCT_NOT_FOUND")
        variant.release(command.quantity, reason=command.reason)
        current_domain.repository_for(ProductVariant).add(variant)

    @handle(ConfirmStockDeduction)
    def confirm_stock_deduction(self, command):
        variant = fetch(ProductVariant, command.variant_id, code="PRODUCT_NOT_FOUND")
        variant.confirm_deduction(command.quantity)
        current_domain.repository_for(ProductVariant).add(variant)

    @handle(UpdateStock)
    def update_stock(self, command):
        variant = fetch(ProductVariant, command.variant_id, code="PRODUCT_NOT_FOUND")
        variant.update_stock(command.quantity, reason=command.reason)
        current_domain.repository_for(ProductVariant).add(variant)

    @handle(AdjustStock)
    def adjust_stock(self, command):
        variant = fetch(ProductVariant, command.variant_id, code="PRODUCT_NOT_FOUND")
        variant.adjust_stock(command.delta, reason=command.reason)
        current_domain.repository_for(ProductVariant).add(variant)

    @handle(SetLowStockThreshold)
    def set_low_stock_threshold(self, command):
        variant = fetch(ProductVariant, command.variant_id, code="PRODUCT_NOT_FOUND")
        variant.set_low_stock_threshold(command.threshold)
        current_domain.repository_for(ProductVariant).add(variant)
