"""Voucher aggregate (CQRS).

A voucher is either platform-wide or scoped to one shop. ``used_count`` and
the per-user usage records only move through :meth:`Voucher.redeem` and
:meth:`Voucher.restore`; callers hold the voucher's lock around both.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError as ProteanValidationError
from protean.fields import Boolean, DateTime, Float, HasMany, Identifier, Integer, String

from marketplace.domain import marketplace
from marketplace.errors import NotFoundError, VoucherError


class VoucherScope(Enum):
    PLATFORM = "platform"
    SHOP = "shop"


class DiscountType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@marketplace.entity(part_of="Voucher")
class VoucherUsage:
    user_id = Identifier(required=True)
    order_id = Identifier(required=True)
    used_at = DateTime()


@marketplace.aggregate
class Voucher:
    code = String(required=True, max_length=50)
    name = String(max_length=255)
    scope = String(choices=VoucherScope, default=VoucherScope.PLATFORM.value)
    shop_id = Identifier()
    discount_type = String(choices=DiscountType, default=DiscountType.FIXED.value)
    discount_value = Float(required=True, min_value=0.0)
    max_discount = Float()
    min_order_value = Float(default=0.0)
    usage_limit = Integer()  # None means unlimited
    used_count = Integer(default=0)
    per_user_limit = Integer()
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    is_active = Boolean(default=True)
    usages = HasMany(VoucherUsage)
    created_at = DateTime()

    @invariant.post
    def shop_voucher_needs_shop(self):
        if self.scope == VoucherScope.SHOP.value and not self.shop_id:
            raise ProteanValidationError({"shop_id": ["Shop vouchers must name a shop"]})

    @invariant.post
    def window_is_ordered(self):
        if self.start_date and self.end_date and as_utc(self.end_date) < as_utc(self.start_date):
            raise ProteanValidationError({"end_date": ["End date must not precede start date"]})

    @invariant.post
    def usage_within_limit(self):
        if (self.used_count or 0) < 0:
            raise ProteanValidationError({"used_count": ["Usage count cannot be negative"]})

    @classmethod
    def create(cls, code: str, **fields):
        return cls(code=code.upper(), used_count=0, created_at=datetime.now(UTC), **fields)

    @property
    def is_shop_scoped(self) -> bool:
        return self.scope == VoucherScope.SHOP.value

    def user_usage_count(self, user_id) -> int:
        return sum(1 for u in self.usages if str(u.user_id) == str(user_id))

    def has_capacity(self) -> bool:
        return self.usage_limit is None or (self.used_count or 0) < self.usage_limit

    def redeem(self, user_id, order_id) -> None:
        """Count one use. Refuses once the limit is reached."""
        if not self.has_capacity():
            raise VoucherError(f"Voucher {self.code} usage limit reached", code="VOUCHER_USAGE_LIMIT")
        if self.per_user_limit is not None and self.user_usage_count(user_id) >= self.per_user_limit:
            raise VoucherError("You have already used this voucher", code="VOUCHER_USAGE_LIMIT")

        self.add_usages(VoucherUsage(user_id=user_id, order_id=order_id, used_at=datetime.now(UTC)))
        self.used_count = (self.used_count or 0) + 1

    def restore(self, order_id) -> bool:
        """Give back the use recorded for ``order_id``. Returns whether one existed."""
        usage = next((u for u in self.usages if str(u.order_id) == str(order_id)), None)
        if usage is None:
            return False
        self.remove_usages(usage)
        self.used_count = max(0, (self.used_count or 0) - 1)
        return True


@marketplace.repository(part_of=Voucher)
class VoucherRepository:
    def find_by_code(self, code: str) -> Voucher | None:
        results = self._dao.query.filter(code=code.upper()).all().items
        return results[0] if results else None

    def get_by_code(self, code: str) -> Voucher:
        voucher = self.find_by_code(code)
        if voucher is None:
            raise NotFoundError(f"Voucher {code} not found", code="VOUCHER_INVALID")
        return voucher
