"""Voucher management: commands and handler."""

from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import ConflictError
from marketplace.utils.locking import process_locked, voucher_key
from marketplace.voucher.voucher import DiscountType, Voucher, VoucherScope


@marketplace.command(part_of="Voucher")
class CreateVoucher:
    code = String(required=True, max_length=50)
    name = String(max_length=255)
    scope = String(choices=VoucherScope, default=VoucherScope.PLATFORM.value)
    shop_id = Identifier()
    discount_type = String(choices=DiscountType, default=DiscountType.FIXED.value)
    discount_value = Float(required=True)
    max_discount = Float()
    min_order_value = Float(default=0.0)
    usage_limit = Integer()
    per_user_limit = Integer()
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    is_active = Boolean(default=True)


@marketplace.command(part_of="Voucher")
class DeactivateVoucher:
    code = String(required=True, max_length=50)


@marketplace.command_handler(part_of=Voucher)
class ManageVoucherHandler:
    @handle(CreateVoucher)
    def create_voucher(self, command):
        repo = current_domain.repository_for(Voucher)
        if repo.find_by_code(command.code) is not None:
            raise ConflictError(f"Voucher {command.code} already exists", code="VOUCHER_EXISTS")

        voucher = Voucher.create(
            code=command.code,
            name=command.name,
            scope=command.scope,
            shop_id=command.shop_id,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            max_discount=command.max_discount,
            min_order_value=command.min_order_value,
            usage_limit=command.usage_limit,
            per_user_limit=command.per_user_limit,
            start_date=command.start_date,
            end_date=command.end_date,
            is_active=command.is_active,
        )
        repo.add(voucher)
        return str(voucher.id)

    @handle(DeactivateVoucher)
    def deactivate_voucher(self, command):
        repo = current_domain.repository_for(Voucher)
        voucher = repo.get_by_code(command.code)
        voucher.is_active = False
        repo.add(voucher)


def create_voucher(code: str, **fields) -> str:
    return process_locked(CreateVoucher(code=code, **fields), [voucher_key(code)])


def deactivate_voucher(code: str) -> None:
    process_locked(DeactivateVoucher(code=code), [voucher_key(code)])
