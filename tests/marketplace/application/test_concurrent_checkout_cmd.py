"""Concurrent checkouts racing for the last unit of stock or the last voucher use."""

import threading

from protean import current_domain

from marketplace.cart.management import add_to_cart
from marketplace.checkout.placement import create_order
from marketplace.errors import AppError
from marketplace.inventory.variant import ProductVariant
from marketplace.order.order import Order
from marketplace.utils.locking import hold, variant_key
from marketplace.voucher.voucher import Voucher


def _race(marketplace_bed, checkouts):
    """Run every checkout on its own thread, released together.

    Returns ``{user_id: "ok" | error code}``.
    """
    barrier = threading.Barrier(len(checkouts))
    outcomes = {}
    guard = threading.Lock()

    def _worker(user_id, kwargs):
        with marketplace_bed.domain_context():
            barrier.wait()
            try:
                create_order(user_id, **kwargs)
                result = "ok"
            except AppError as exc:
                result = exc.code
        with guard:
            outcomes[user_id] = result

    threads = [threading.Thread(target=_worker, args=(user_id, kwargs)) for user_id, kwargs in checkouts.items()]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return outcomes


class TestLastUnitOfStock:
    def test_only_one_checkout_gets_it(self, make_variant, marketplace_bed):
        variant_id = make_variant(quantity=1)
        checkouts = {
            user_id: {"cart_item_ids": [add_to_cart(user_id, variant_id, 1)], "payment_method": "cod"}
            for user_id in ("buyer-1", "buyer-2")
        }

        outcomes = _race(marketplace_bed, checkouts)

        assert sorted(outcomes.values()) == ["INSUFFICIENT_STOCK", "ok"]
        variant = current_domain.repository_for(ProductVariant).get(variant_id)
        assert variant.reserved_quantity == 1
        assert variant.reserved_quantity <= variant.quantity
        assert len(current_domain.repository_for(Order)._dao.query.all().items) == 1

    def test_many_buyers_never_oversell(self, make_variant, marketplace_bed):
        variant_id = make_variant(quantity=3)
        buyers = [f"buyer-{n}" for n in range(8)]
        checkouts = {
            user_id: {"cart_item_ids": [add_to_cart(user_id, variant_id, 1)], "payment_method": "cod"}
            for user_id in buyers
        }

        outcomes = _race(marketplace_bed, checkouts)

        assert list(outcomes.values()).count("ok") == 3
        assert list(outcomes.values()).count("INSUFFICIENT_STOCK") == 5
        assert current_domain.repository_for(ProductVariant).get(variant_id).reserved_quantity == 3


class TestLastVoucherUse:
    def test_usage_limit_holds_under_contention(self, make_variant, make_voucher, marketplace_bed):
        variant_id = make_variant(quantity=50)
        make_voucher("LASTONE", discount_value=5000.0, usage_limit=1)
        checkouts = {
            user_id: {
                "cart_item_ids": [add_to_cart(user_id, variant_id, 1)],
                "payment_method": "cod",
                "platform_voucher_code": "LASTONE",
            }
            for user_id in ("buyer-1", "buyer-2")
        }

        outcomes = _race(marketplace_bed, checkouts)

        assert sorted(outcomes.values()) == ["VOUCHER_USAGE_LIMIT", "ok"]
        voucher = current_domain.repository_for(Voucher).get_by_code("LASTONE")
        assert voucher.used_count == 1
        assert len(voucher.usages) == 1
        assert current_domain.repository_for(ProductVariant).get(variant_id).reserved_quantity == 1


class TestCheckoutWaitsForStockLock:
    def test_placement_blocks_while_the_variant_is_held(self, make_variant, marketplace_bed):
        variant_id = make_variant(quantity=5)
        item_id = add_to_cart("buyer-1", variant_id, 1)
        finished = threading.Event()

        def _worker():
            with marketplace_bed.domain_context():
                create_order("buyer-1", [item_id], "cod")
            finished.set()

        with hold([variant_key(variant_id)]):
            thread = threading.Thread(target=_worker)
            thread.start()
            assert not finished.wait(timeout=0.3)
            assert current_domain.repository_for(ProductVariant).get(variant_id).reserved_quantity == 0

        thread.join(timeout=10)
        assert finished.is_set()
        assert current_domain.repository_for(ProductVariant).get(variant_id).reserved_quantity == 1
