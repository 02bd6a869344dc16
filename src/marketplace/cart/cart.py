"""Shopping cart aggregate (CQRS).

One cart per user. Checkout consumes a selection of its lines by id and
removes them; whatever was not selected stays in the cart.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, HasMany, Identifier, Integer

from marketplace.domain import marketplace
from marketplace.errors import NotFoundError, ValidationError


@marketplace.entity(part_of="ShoppingCart")
class CartItem:
    product_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    added_at = DateTime()


@marketplace.aggregate
class ShoppingCart:
    user_id = Identifier(required=True)
    items = HasMany(CartItem)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(user_id=user_id, created_at=now, updated_at=now)

    def _find(self, item_id):
        return next((i for i in self.items if str(i.id) == str(item_id)), None)

    def add_item(self, product_id, variant_id, quantity) -> str:
        """Add a line, or top up the existing line for the same variant."""
        if quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")

        now = datetime.now(UTC)
        existing = next((i for i in self.items if str(i.variant_id) == str(variant_id)), None)
        if existing:
            existing.quantity += quantity
            item_id = str(existing.id)
        else:
            item = CartItem(product_id=product_id, variant_id=variant_id, quantity=quantity, added_at=now)
            self.add_items(item)
            item_id = str(item.id)

        self.updated_at = now
        return item_id

    def update_item_quantity(self, item_id, new_quantity) -> None:
        if new_quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")
        item = self._find(item_id)
        if item is None:
            raise NotFoundError(f"Cart item {item_id} not found", code="CART_ITEM_NOT_FOUND")
        item.quantity = new_quantity
        self.updated_at = datetime.now(UTC)

    def remove_item(self, item_id) -> None:
        item = self._find(item_id)
        if item is None:
            raise NotFoundError(f"Cart item {item_id} not found", code="CART_ITEM_NOT_FOUND")
        self.remove_items(item)
        self.updated_at = datetime.now(UTC)

    def select(self, item_ids) -> list:
        """Return the lines whose ids are in ``item_ids``, in cart order."""
        wanted = {str(i) for i in item_ids}
        return [i for i in self.items if str(i.id) in wanted]

    def consume(self, item_ids) -> None:
        """Drop the checked-out lines."""
        for item in self.select(item_ids):
            self.remove_items(item)
        self.updated_at = datetime.now(UTC)


@marketplace.repository(part_of=ShoppingCart)
class ShoppingCartRepository:
    def for_user(self, user_id) -> ShoppingCart | None:
        carts = self._dao.query.filter(user_id=str(user_id)).all().items
        return carts[0] if carts else None
