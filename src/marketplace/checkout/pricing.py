"""Checkout money: per-shop subtotals, shipping fees and voucher discounts.

Shop vouchers are checked against their shop's subtotal, the platform voucher
against the whole subtotal. Discounts never push a total below zero.
"""

from dataclasses import dataclass, field

from marketplace.errors import VoucherError
from marketplace.shipping import get_shipping_calculator
from marketplace.voucher.engine import validate_voucher


@dataclass
class ShopQuote:
    shop_id: str
    lines: list
    subtotal: float
    shipping_fee: float
    discount: float = 0.0
    voucher_code: str | None = None

    @property
    def total(self) -> float:
        return self.subtotal + self.shipping_fee - self.discount


@dataclass
class CheckoutQuote:
    shops: list[ShopQuote] = field(default_factory=list)
    platform_discount: float = 0.0
    platform_voucher_code: str | None = None

    @property
    def subtotal(self) -> float:
        return sum(s.subtotal for s in self.shops)

    @property
    def shipping_total(self) -> float:
        return sum(s.shipping_fee for s in self.shops)

    @property
    def discount_total(self) -> float:
        return sum(s.discount for s in self.shops) + self.platform_discount

    @property
    def grand_total(self) -> float:
        return self.subtotal + self.shipping_total - self.discount_total

    def voucher_codes(self) -> list[str]:
        codes = [s.voucher_code for s in self.shops if s.voucher_code]
        if self.platform_voucher_code:
            codes.append(self.platform_voucher_code)
        return codes

    def to_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "shipping_total": self.shipping_total,
            "discount_total": self.discount_total,
            "grand_total": self.grand_total,
            "platform_voucher_code": self.platform_voucher_code,
            "platform_discount": self.platform_discount,
            "shops": [
                {
                    "shop_id": s.shop_id,
                    "subtotal": s.subtotal,
                    "shipping_fee": s.shipping_fee,
                    "discount": s.discount,
                    "total": s.total,
                    "voucher_code": s.voucher_code,
                    "item_count": len(s.lines),
                }
                for s in self.shops
            ],
        }


def quote_checkout(
    groups: dict[str, list],
    user_id,
    shipping_address_id=None,
    platform_voucher_code: str | None = None,
    shop_voucher_codes: dict | None = None,
) -> CheckoutQuote:
    shop_voucher_codes = {str(k): v for k, v in (shop_voucher_codes or {}).items() if v}
    unknown_shops = set(shop_voucher_codes) - set(groups)
    if unknown_shops:
        raise VoucherError(
            f"Shop voucher given for a shop not in this checkout: {', '.join(sorted(unknown_shops))}",
            code="VOUCHER_INVALID",
        )

    calculator = get_shipping_calculator()
    quote = CheckoutQuote()
    for shop_id, lines in groups.items():
        subtotal = sum(line.line_total for line in lines)
        shop_quote = ShopQuote(
            shop_id=shop_id,
            lines=lines,
            subtotal=subtotal,
            shipping_fee=calculator.calculate_fee(
                shop_id, shipping_address_id, [line.as_shipping_line() for line in lines]
            ),
        )
        code = shop_voucher_codes.get(shop_id)
        if code:
            validation = validate_voucher(code, user_id, subtotal, shop_id=shop_id)
            shop_quote.discount = validation.discount
            shop_quote.voucher_code = validation.voucher.code
        quote.shops.append(shop_quote)

    if platform_voucher_code:
        validation = validate_voucher(platform_voucher_code, user_id, quote.subtotal)
        remaining = quote.subtotal - sum(s.discount for s in quote.shops)
        quote.platform_discount = min(validation.discount, max(remaining, 0.0))
        quote.platform_voucher_code = validation.voucher.code

    return quote
