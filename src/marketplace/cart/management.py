"""Cart management: commands and handler."""

from protean import handle
from protean.fields import Identifier, Integer
from protean.utils.globals import current_domain

from marketplace.cart.cart import ShoppingCart
from marketplace.domain import marketplace
from marketplace.errors import NotFoundError
from marketplace.inventory.variant import ProductVariant
from marketplace.utils.locking import cart_key, process_locked
from marketplace.utils.lookup import fetch


@marketplace.command(part_of="ShoppingCart")
class AddToCart:
    """Add a variant to the user's cart, creating the cart on first use."""

    user_id = Identifier(required=True)
    variant_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="ShoppingCart")
class UpdateCartItem:
    user_id = Identifier(required=True)
    item_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)


@marketplace.command(part_of="ShoppingCart")
class RemoveCartItem:
    user_id = Identifier(required=True)
    item_id = Identifier(required=True)


def _cart_for(user_id) -> ShoppingCart:
    cart = current_domain.repository_for(ShoppingCart).for_user(user_id)
    if cart is None:
        raise NotFoundError(f"No cart for user {user_id}", code="CART_NOT_FOUND")
    return cart


@marketplace.command_handler(part_of=ShoppingCart)
class ManageCartHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        variant = fetch(ProductVariant, command.variant_id, code="PRODUCT_NOT_FOUND")
        repo = current_domain.repository_for(ShoppingCart)
        cart = repo.for_user(command.user_id) or ShoppingCart.create(command.user_id)
        item_id = cart.add_item(variant.product_id, command.variant_id, command.quantity)
        repo.add(cart)
        return item_id

    @handle(UpdateCartItem)
    def update_cart_item(self, command):
        cart = _cart_for(command.user_id)
        cart.update_item_quantity(command.item_id, command.quantity)
        current_domain.repository_for(ShoppingCart).add(cart)

    @handle(RemoveCartItem)
    def remove_cart_item(self, command):
        cart = _cart_for(command.user_id)
        cart.remove_item(command.item_id)
        current_domain.repository_for(ShoppingCart).add(cart)


# ---------------------------------------------------------------------------
# Entry points (checkout takes the same cart lock)
# ---------------------------------------------------------------------------
def add_to_cart(user_id, variant_id, quantity: int) -> str:
    return process_locked(AddToCart(user_id=user_id, variant_id=variant_id, quantity=quantity), [cart_key(user_id)])


def update_cart_item(user_id, item_id, quantity: int) -> None:
    process_locked(UpdateCartItem(user_id=user_id, item_id=item_id, quantity=quantity), [cart_key(user_id)])


def remove_cart_item(user_id, item_id) -> None:
    process_locked(RemoveCartItem(user_id=user_id, item_id=item_id), [cart_key(user_id)])
