"""Domain events for the ProductVariant stock record."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace


@marketplace.event(part_of="ProductVariant")
class VariantRegistered:
    """A sellable variant was registered with an opening stock count."""

    __version__ = 1

    variant_id = Identifier(required=True)
    product_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    sku = String(required=True)
    price = Float(required=True)
    quantity = Integer(required=True)
    registered_at = DateTime(required=True)


@marketplace.event(part_of="ProductVariant")
class StockChanged:
    """Audit record for every counter movement on a variant."""

    __version__ = 1

    variant_id = Identifier(required=True)
    change_type = String(required=True)  # reserve, release, deduct, update, adjust
    quantity_delta = Integer(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    previous_reserved = Integer(required=True)
    new_reserved = Integer(required=True)
    reason = String()
    changed_at = DateTime(required=True)


@marketplace.event(part_of="ProductVariant")
class LowStockDetected:
    __version__ = 1

    variant_id = Identifier(required=True)
    product_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    sku = String(required=True)
    quantity = Integer(required=True)
    threshold = Integer(required=True)
    detected_at = DateTime(required=True)


@marketplace.event(part_of="ProductVariant")
class OutOfStock:
    """On-hand quantity reached zero; the variant was deactivated."""

    __version__ = 1

    variant_id = Identifier(required=True)
    product_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    sku = String(required=True)
    occurred_at = DateTime(required=True)
