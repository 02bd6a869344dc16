"""ProductVariant aggregate (CQRS): the stock record behind every cart line.

The catalog owns product data; this aggregate owns the two stock counters and
is the only place they change.

Stock Model:
    quantity:          on hand
    reserved_quantity: committed to unfulfilled orders
    available:         quantity - reserved_quantity

Invariant: 0 <= reserved_quantity <= quantity, after every operation.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError as ProteanValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.errors import InsufficientStockError, NegativeStockError, ValidationError
from marketplace.inventory.events import LowStockDetected, OutOfStock, StockChanged, VariantRegistered

DEFAULT_LOW_STOCK_THRESHOLD = 10


class StockStatus(Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


def get_stock_status(variant) -> str:
    """Derive the display status from the on-hand quantity.

    Zero always wins, even when the threshold is zero as well.
    """
    quantity = variant.quantity or 0
    threshold = variant.low_stock_threshold
    if threshold is None:
        threshold = DEFAULT_LOW_STOCK_THRESHOLD
    if quantity == 0:
        return StockStatus.OUT_OF_STOCK.value
    if quantity <= threshold:
        return StockStatus.LOW_STOCK.value
    return StockStatus.IN_STOCK.value


def _require_positive_int(quantity, field: str = "quantity") -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"{field} must be a positive integer")


@marketplace.aggregate
class ProductVariant:
    product_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    sku = String(required=True, max_length=100)
    name = String(max_length=255)
    price = Float(required=True, min_value=0.0)
    weight = Float()  # kg, optional
    quantity = Integer(default=0)
    reserved_quantity = Integer(default=0)
    low_stock_threshold = Integer(default=DEFAULT_LOW_STOCK_THRESHOLD)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def reserved_within_on_hand(self):
        quantity = self.quantity or 0
        reserved = self.reserved_quantity or 0
        if quantity < 0:
            raise ProteanValidationError({"quantity": ["Quantity cannot be negative"]})
        if reserved < 0 or reserved > quantity:
            raise ProteanValidationError({"reserved_quantity": ["Reserved quantity must be between 0 and quantity"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def register(
        cls,
        product_id: str,
        shop_id: str,
        sku: str,
        price: float,
        quantity: int = 0,
        name: str | None = None,
        weight: float | None = None,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ):
        if quantity < 0:
            raise NegativeStockError("Opening stock cannot be negative")
        now = datetime.now(UTC)
        variant = cls(
            product_id=product_id,
            shop_id=shop_id,
            sku=sku,
            name=name,
            price=price,
            weight=weight,
            quantity=quantity,
            reserved_quantity=0,
            low_stock_threshold=low_stock_threshold,
            is_active=quantity > 0,
            created_at=now,
            updated_at=now,
        )
        variant.raise_(
            VariantRegistered(
                variant_id=str(variant.id),
                product_id=str(product_id),
                shop_id=str(shop_id),
                sku=sku,
                price=price,
                quantity=quantity,
                registered_at=now,
            )
        )
        return variant

    @property
    def available(self) -> int:
        return (self.quantity or 0) - (self.reserved_quantity or 0)

    @property
    def stock_status(self) -> str:
        return get_stock_status(self)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _record(self, change_type, previous_quantity, previous_reserved, reason=None):
        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            StockChanged(
                variant_id=str(self.id),
                change_type=change_type,
                quantity_delta=self.quantity - previous_quantity,
                previous_quantity=previous_quantity,
                new_quantity=self.quantity,
                previous_reserved=previous_reserved,
                new_reserved=self.reserved_quantity,
                reason=reason,
                changed_at=now,
            )
        )
        if self.quantity == previous_quantity:
            return

        if self.quantity == 0:
            self.is_active = False
            self.raise_(
                OutOfStock(
                    variant_id=str(self.id),
                    product_id=str(self.product_id),
                    shop_id=str(self.shop_id),
                    sku=self.sku,
                    occurred_at=now,
                )
            )
            return

        if previous_quantity == 0:
            self.is_active = True

        threshold = self.low_stock_threshold or 0
        if self.quantity <= threshold < previous_quantity:
            self.raise_(
                LowStockDetected(
                    variant_id=str(self.id),
                    product_id=str(self.product_id),
                    shop_id=str(self.shop_id),
                    sku=self.sku,
                    quantity=self.quantity,
                    threshold=threshold,
                    detected_at=now,
                )
            )

    # -------------------------------------------------------------------
    # Reservation ledger
    # -------------------------------------------------------------------
    def reserve(self, quantity: int) -> None:
        """Hold ``quantity`` units for an unfulfilled order."""
        _require_positive_int(quantity)
        if quantity > self.available:
            raise InsufficientStockError(
                f"Insufficient stock for variant {self.id}: requested {quantity}, available {self.available}",
                variant_id=str(self.id),
            )

        previous_quantity, previous_reserved = self.quantity, self.reserved_quantity
        self.reserved_quantity = previous_reserved + quantity
        self._record("reserve", previous_quantity, previous_reserved)

    def release(self, quantity: int, reason: str | None = None) -> None:
        """Give back a hold. Over-release floors the counter at zero."""
        _require_positive_int(quantity)
        previous_quantity, previous_reserved = self.quantity, self.reserved_quantity
        self.reserved_quantity = max(0, previous_reserved - quantity)
        self._record("release", previous_quantity, previous_reserved, reason=reason)

    def confirm_deduction(self, quantity: int) -> None:
        """Irreversibly remove reserved units from the shelf."""
        _require_positive_int(quantity)
        if quantity > self.quantity:
            raise NegativeStockError(f"Deducting {quantity} from variant {self.id} would result in negative quantity")

        previous_quantity, previous_reserved = self.quantity, self.reserved_quantity
        with atomic_change(self):
            self.reserved_quantity = max(0, previous_reserved - quantity)
            self.quantity = previous_quantity - quantity
        self._record("deduct", previous_quantity, previous_reserved)

    # -------------------------------------------------------------------
    # Administrative stock changes
    # -------------------------------------------------------------------
    def update_stock(self, new_quantity: int, reason: str | None = None) -> None:
        """Set the on-hand count to an absolute value."""
        if new_quantity < 0:
            raise NegativeStockError("Stock quantity cannot be negative")
        if new_quantity < self.reserved_quantity:
            raise InsufficientStockError(
                f"Cannot go below reserved quantity {self.reserved_quantity}",
                variant_id=str(self.id),
            )

        previous_quantity, previous_reserved = self.quantity, self.reserved_quantity
        self.quantity = new_quantity
        self._record("update", previous_quantity, previous_reserved, reason=reason)

    def adjust_stock(self, delta: int, reason: str | None = None) -> None:
        """Move the on-hand count by ``delta`` (either sign)."""
        new_quantity = self.quantity + delta
        if new_quantity < 0:
            raise NegativeStockError(f"Adjusting by {delta} would result in negative quantity")
        if new_quantity < self.reserved_quantity:
            raise InsufficientStockError(
                f"Cannot go below reserved quantity {self.reserved_quantity}",
                variant_id=str(self.id),
            )

        previous_quantity, previous_reserved = self.quantity, self.reserved_quantity
        self.quantity = new_quantity
        self._record("adjust", previous_quantity, previous_reserved, reason=reason)

    def set_low_stock_threshold(self, threshold: int) -> None:
        if threshold < 0:
            raise ValidationError("Low stock threshold cannot be negative")
        self.low_stock_threshold = threshold
        self.updated_at = datetime.now(UTC)
