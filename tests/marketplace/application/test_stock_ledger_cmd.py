"""Application tests for the locked stock ledger entry points."""

import threading

import pytest
from protean import current_domain

from marketplace.errors import InsufficientStockError, NegativeStockError, NotFoundError, ValidationError
from marketplace.inventory import ledger
from marketplace.inventory.variant import ProductVariant


def _variant(variant_id):
    return current_domain.repository_for(ProductVariant).get(variant_id)


class TestRegisterVariant:
    def test_register_persists(self, make_variant):
        variant_id = make_variant(shop_id="shop-a", price=99000.0, quantity=12)
        variant = _variant(variant_id)
        assert str(variant.shop_id) == "shop-a"
        assert variant.quantity == 12
        assert variant.reserved_quantity == 0


class TestReservationEntryPoints:
    def test_reserve_persists(self, make_variant):
        variant_id = make_variant(quantity=10)
        ledger.reserve_stock(variant_id, 4)
        assert _variant(variant_id).reserved_quantity == 4

    def test_reserve_over_available_fails_without_write(self, make_variant):
        variant_id = make_variant(quantity=3)
        with pytest.raises(InsufficientStockError):
            ledger.reserve_stock(variant_id, 4)
        assert _variant(variant_id).reserved_quantity == 0

    def test_reserve_unknown_variant(self):
        with pytest.raises(NotFoundError) as exc_info:
            ledger.reserve_stock("missing", 1)
        assert exc_info.value.code == "PRODUCT_NOT_FOUND"

    def test_reserve_zero_rejected(self, make_variant):
        variant_id = make_variant(quantity=3)
        with pytest.raises(ValidationError):
            ledger.reserve_stock(variant_id, 0)

    def test_release_persists(self, make_variant):
        variant_id = make_variant(quantity=10)
        ledger.reserve_stock(variant_id, 6)
        ledger.release_stock(variant_id, 2, reason="manual")
        assert _variant(variant_id).reserved_quantity == 4

    def test_confirm_deduction_persists(self, make_variant):
        variant_id = make_variant(quantity=10)
        ledger.reserve_stock(variant_id, 6)
        ledger.confirm_stock_deduction(variant_id, 6)
        variant = _variant(variant_id)
        assert variant.quantity == 4
        assert variant.reserved_quantity == 0

    def test_confirm_deduction_beyond_on_hand(self, make_variant):
        variant_id = make_variant(quantity=2)
        with pytest.raises(NegativeStockError):
            ledger.confirm_stock_deduction(variant_id, 3)


class TestAdministrativeEntryPoints:
    def test_update_stock(self, make_variant):
        variant_id = make_variant(quantity=10)
        ledger.update_stock(variant_id, 30, reason="delivery")
        assert _variant(variant_id).quantity == 30

    def test_adjust_stock(self, make_variant):
        variant_id = make_variant(quantity=10)
        ledger.adjust_stock(variant_id, -4, reason="damaged")
        assert _variant(variant_id).quantity == 6

    def test_threshold(self, make_variant):
        variant_id = make_variant(quantity=10)
        ledger.set_low_stock_threshold(variant_id, 3)
        assert _variant(variant_id).low_stock_threshold == 3

    def test_is_in_stock(self, make_variant):
        variant_id = make_variant(quantity=5)
        ledger.reserve_stock(variant_id, 3)
        assert ledger.is_in_stock(variant_id, 2) is True
        assert ledger.is_in_stock(variant_id, 3) is False

    def test_stock_status(self, make_variant):
        assert ledger.stock_status(make_variant(quantity=0)) == "out_of_stock"
        assert ledger.stock_status(make_variant(quantity=5, low_stock_threshold=10)) == "low_stock"
        assert ledger.stock_status(make_variant(quantity=50, low_stock_threshold=10)) == "in_stock"


class TestBulkUpdate:
    def test_one_bad_row_does_not_stop_the_rest(self, make_variant):
        ok_id = make_variant(quantity=10)
        reserved_id = make_variant(quantity=10)
        ledger.reserve_stock(reserved_id, 8)

        results = ledger.bulk_update_stock(
            [
                {"variant_id": ok_id, "quantity": 40},
                {"variant_id": reserved_id, "quantity": 5},
                {"variant_id": "missing", "quantity": 1},
            ]
        )

        assert [r["success"] for r in results] == [True, False, False]
        assert results[1]["code"] == "INSUFFICIENT_STOCK"
        assert results[2]["code"] == "PRODUCT_NOT_FOUND"
        assert _variant(ok_id).quantity == 40
        assert _variant(reserved_id).quantity == 10


class TestStockAlerts:
    def test_out_of_stock_published(self, make_variant, publisher):
        variant_id = make_variant(quantity=2)
        ledger.adjust_stock(variant_id, -2, reason="lost")
        assert "inventory.out_of_stock" in publisher.topics()
        assert _variant(variant_id).is_active is False

    def test_low_stock_published(self, make_variant, publisher):
        variant_id = make_variant(quantity=12, low_stock_threshold=10)
        ledger.update_stock(variant_id, 9)
        assert "inventory.low_stock" in publisher.topics()

    def test_bus_outage_does_not_fail_the_change(self, make_variant, publisher):
        variant_id = make_variant(quantity=2)
        publisher.configure(should_fail=True)
        ledger.adjust_stock(variant_id, -2)
        assert _variant(variant_id).quantity == 0


class TestConcurrentReservations:
    def test_never_oversells(self, make_variant, marketplace_bed):
        variant_id = make_variant(quantity=10)
        outcomes = []
        guard = threading.Lock()

        def _worker():
            with marketplace_bed.domain_context():
                try:
                    ledger.reserve_stock(variant_id, 1)
                    result = "ok"
                except InsufficientStockError:
                    result = "short"
            with guard:
                outcomes.append(result)

        threads = [threading.Thread(target=_worker) for _ in range(25)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 10
        assert outcomes.count("short") == 15
        variant = _variant(variant_id)
        assert variant.reserved_quantity == 10
        assert 0 <= variant.reserved_quantity <= variant.quantity
