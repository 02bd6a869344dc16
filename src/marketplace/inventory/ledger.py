"""Inventory reservation ledger: the public, lock-holding entry points.

Each function takes the variant's lock, then runs its command in a unit of
work, so the read-check-write on the counter pair is atomic per variant.
Handlers that are already inside a unit of work (checkout, cancellation,
payment failure) use :func:`reserve_lines` / :func:`release_lines` /
:func:`deduct_lines` and rely on their caller to hold the locks.
"""

from typing import Iterable

import structlog
from protean.utils.globals import current_domain

from marketplace.errors import AppError
from marketplace.inventory.stock import (
    AdjustStock,
    ConfirmStockDeduction,
    ReleaseStock,
    ReserveStock,
    SetLowStockThreshold,
    UpdateStock,
)
from marketplace.inventory.variant import ProductVariant, get_stock_status
from marketplace.utils.locking import process_locked, variant_key
from marketplace.utils.lookup import fetch

logger = structlog.get_logger(__name__)


def _locked(variant_id, command):
    return process_locked(command, [variant_key(variant_id)])


def reserve_stock(variant_id: str, quantity: int) -> None:
    _locked(variant_id, ReserveStock(variant_id=variant_id, quantity=quantity))
    logger.info("stock_reserved", variant_id=str(variant_id), quantity=quantity)


def release_stock(variant_id: str, quantity: int, reason: str | None = None) -> None:
    _locked(variant_id, ReleaseStock(variant_id=variant_id, quantity=quantity, reason=reason))
    logger.info("stock_released", variant_id=str(variant_id), quantity=quantity, reason=reason)


def confirm_stock_deduction(variant_id: str, quantity: int) -> None:
    _locked(variant_id, ConfirmStockDeduction(variant_id=variant_id, quantity=quantity))
    logger.info("stock_deducted", variant_id=str(variant_id), quantity=quantity)


def update_stock(variant_id: str, new_quantity: int, reason: str | None = None) -> None:
    _locked(variant_id, UpdateStock(variant_id=variant_id, quantity=new_quantity, reason=reason))
    logger.info("stock_updated", variant_id=str(variant_id), quantity=new_quantity, reason=reason)


def adjust_stock(variant_id: str, delta: int, reason: str | None = None) -> None:
    _locked(variant_id, AdjustStock(variant_id=variant_id, delta=delta, reason=reason))
    logger.info("stock_adjusted", variant_id=str(variant_id), delta=delta, reason=reason)


def set_low_stock_threshold(variant_id: str, threshold: int) -> None:
    _locked(variant_id, SetLowStockThreshold(variant_id=variant_id, threshold=threshold))


def bulk_update_stock(updates: Iterable[dict]) -> list[dict]:
    """Apply absolute stock counts one variant at a time.

    A failing row is reported and does not stop the others.
    """
    results = []
    for update in updates:
        variant_id = str(update["variant_id"])
        try:
            update_stock(variant_id, update["quantity"], reason=update.get("reason", "bulk_update"))
        except AppError as exc:
            results.append({"variant_id": variant_id, "success": False, "code": exc.code, "error": exc.message})
        else:
            results.append({"variant_id": variant_id, "success": True})
    return results


def is_in_stock(variant_id: str, quantity: int = 1) -> bool:
    variant = fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND")
    return variant.available >= quantity


def stock_status(variant_id: str) -> str:
    return get_stock_status(fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND"))


# ---------------------------------------------------------------------------
# In-transaction helpers (caller holds the variant locks)
# ---------------------------------------------------------------------------
def _aggregate_lines(lines) -> dict[str, int]:
    totals: dict[str, int] = {}
    for variant_id, quantity in lines:
        totals[str(variant_id)] = totals.get(str(variant_id), 0) + quantity
    return totals


def reserve_lines(lines: Iterable[tuple[str, int]]) -> None:
    repo = current_domain.repository_for(ProductVariant)
    for variant_id, quantity in _aggregate_lines(lines).items():
        variant = fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND")
        variant.reserve(quantity)
        repo.add(variant)


def release_lines(lines: Iterable[tuple[str, int]], reason: str) -> None:
    repo = current_domain.repository_for(ProductVariant)
    for variant_id, quantity in _aggregate_lines(lines).items():
        variant = fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND")
        variant.release(quantity, reason=reason)
        repo.add(variant)
        logger.info("stock_released", variant_id=variant_id, quantity=quantity, reason=reason)


def deduct_lines(lines: Iterable[tuple[str, int]]) -> None:
    repo = current_domain.repository_for(ProductVariant)
    for variant_id, quantity in _aggregate_lines(lines).items():
        variant = fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND")
        variant.confirm_deduction(quantity)
        repo.add(variant)
