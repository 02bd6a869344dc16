"""Voucher discount engine.

``check_voucher`` and ``calculate_discount`` are pure: they look at a voucher
and an order context and either return a discount or raise a coded
:class:`~marketplace.errors.VoucherError`. ``validate_voucher`` adds the
repository lookup. Callers pass the correctly scoped amount: the shop
subtotal for shop vouchers, the full subtotal for platform vouchers.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from protean.utils.globals import current_domain

from marketplace.errors import VoucherError
from marketplace.voucher.voucher import DiscountType, Voucher, VoucherScope, as_utc


@dataclass(frozen=True)
class VoucherValidation:
    is_valid: bool
    voucher: Voucher
    discount: float


def _round_half_up(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_discount(voucher, order_total: float) -> float:
    """Discount for ``order_total``, never negative and never above it."""
    if order_total <= 0:
        return 0.0

    value = voucher.discount_value or 0.0
    if voucher.discount_type == DiscountType.PERCENTAGE.value:
        discount = _round_half_up(order_total * value / 100)
        if voucher.max_discount is not None and discount > voucher.max_discount:
            discount = voucher.max_discount
    else:
        discount = value

    return float(min(max(discount, 0.0), order_total))


def check_voucher(voucher, user_id, order_total: float, shop_id=None, now: datetime | None = None) -> float:
    """Apply every validity rule to an already-loaded voucher."""
    now = now or datetime.now(UTC)

    if not voucher.is_active:
        raise VoucherError("Voucher is no longer active", code="VOUCHER_INVALID")
    if as_utc(voucher.start_date) > now:
        raise VoucherError("Voucher is not yet valid", code="VOUCHER_INVALID")
    if now > as_utc(voucher.end_date):
        raise VoucherError("Voucher has expired", code="VOUCHER_EXPIRED")

    if voucher.scope == VoucherScope.SHOP.value and (shop_id is None or str(voucher.shop_id) != str(shop_id)):
        raise VoucherError("This voucher is not valid for this shop", code="VOUCHER_INVALID")

    if not voucher.has_capacity():
        raise VoucherError("Voucher usage limit reached", code="VOUCHER_USAGE_LIMIT")
    if voucher.per_user_limit is not None and voucher.user_usage_count(user_id) >= voucher.per_user_limit:
        raise VoucherError("You have already used this voucher", code="VOUCHER_USAGE_LIMIT")

    min_order_value = voucher.min_order_value or 0.0
    if order_total < min_order_value:
        raise VoucherError(f"Minimum order value is {min_order_value:,.0f}", code="VOUCHER_MIN_ORDER")

    return calculate_discount(voucher, order_total)


def validate_voucher(code: str, user_id, order_total: float, shop_id=None, now: datetime | None = None) -> VoucherValidation:
    voucher = current_domain.repository_for(Voucher).find_by_code(code)
    if voucher is None:
        raise VoucherError("Voucher code is invalid", code="VOUCHER_INVALID")
    discount = check_voucher(voucher, user_id, order_total, shop_id=shop_id, now=now)
    return VoucherValidation(is_valid=True, voucher=voucher, discount=discount)


def available_vouchers(user_id, order_total: float, shop_id=None, now: datetime | None = None) -> list[dict]:
    """Vouchers the user could apply right now, with the discount each would give."""
    repo = current_domain.repository_for(Voucher)
    candidates = repo._dao.query.filter(is_active=True).all().items

    available = []
    for voucher in candidates:
        if voucher.scope == VoucherScope.SHOP.value and str(voucher.shop_id) != str(shop_id):
            continue
        try:
            discount = check_voucher(voucher, user_id, order_total, shop_id=shop_id, now=now)
        except VoucherError:
            continue
        available.append({"code": voucher.code, "name": voucher.name, "estimated_discount": discount})
    return available
