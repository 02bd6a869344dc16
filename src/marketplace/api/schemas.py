"""Pydantic request/response schemas for the marketplace API.

These are external contracts, kept separate from the Protean commands they
are translated into.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class IdResponse(BaseModel):
    id: str


# ---------------------------------------------------------------------------
# Variants / stock
# ---------------------------------------------------------------------------
class RegisterVariantRequest(BaseModel):
    product_id: str
    shop_id: str
    sku: str
    price: float = Field(ge=0)
    quantity: int = Field(default=0, ge=0)
    name: str | None = None
    weight: float | None = Field(default=None, ge=0)
    low_stock_threshold: int = Field(default=10, ge=0)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_id": "prod-001",
                    "shop_id": "shop-001",
                    "sku": "TEE-RED-M",
                    "price": 150000,
                    "quantity": 40,
                    "name": "T-shirt red M",
                }
            ]
        }
    }


class UpdateStockRequest(BaseModel):
    quantity: int
    reason: str | None = None


class AdjustStockRequest(BaseModel):
    delta: int
    reason: str | None = None


class ThresholdRequest(BaseModel):
    threshold: int = Field(ge=0)


class BulkStockRow(BaseModel):
    variant_id: str
    quantity: int
    reason: str | None = None


class BulkUpdateStockRequest(BaseModel):
    updates: list[BulkStockRow]


class BulkStockResult(BaseModel):
    variant_id: str
    success: bool
    code: str | None = None
    error: str | None = None


class BulkUpdateStockResponse(BaseModel):
    results: list[BulkStockResult]


class VariantResponse(BaseModel):
    variant_id: str
    product_id: str
    shop_id: str
    sku: str
    name: str | None = None
    price: float
    quantity: int
    reserved_quantity: int
    available: int
    low_stock_threshold: int
    stock_status: str
    is_active: bool


# ---------------------------------------------------------------------------
# Vouchers
# ---------------------------------------------------------------------------
class CreateVoucherRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str | None = None
    scope: str = "platform"  # platform, shop
    shop_id: str | None = None
    discount_type: str  # percentage, fixed
    discount_value: float = Field(gt=0)
    max_discount: float | None = Field(default=None, ge=0)
    min_order_value: float = Field(default=0, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    per_user_limit: int | None = Field(default=None, ge=0)
    start_date: str
    end_date: str


class ValidateVoucherRequest(BaseModel):
    code: str
    user_id: str
    order_total: float = Field(ge=0)
    shop_id: str | None = None


class VoucherValidationResponse(BaseModel):
    is_valid: bool
    code: str
    discount: float


class AvailableVoucher(BaseModel):
    code: str
    name: str | None = None
    estimated_discount: float


class AvailableVouchersResponse(BaseModel):
    vouchers: list[AvailableVoucher]


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    user_id: str
    variant_id: str
    quantity: int = Field(default=1, ge=1)


class UpdateCartItemRequest(BaseModel):
    user_id: str
    quantity: int = Field(ge=1)


class CartItemResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str
    quantity: int


class CartResponse(BaseModel):
    user_id: str
    items: list[CartItemResponse] = []


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    user_id: str
    cart_item_ids: list[str] = Field(min_length=1)
    shipping_address_id: str | None = None
    payment_method: str
    platform_voucher_code: str | None = None
    shop_voucher_codes: dict[str, str] = {}
    customer_note: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "cart_item_ids": ["ci-1", "ci-2"],
                    "shipping_address_id": "addr-001",
                    "payment_method": "cod",
                    "platform_voucher_code": "WELCOME10",
                    "shop_voucher_codes": {"shop-001": "SHOP5K"},
                }
            ]
        }
    }


class PaymentResponse(BaseModel):
    payment_id: str | None = None
    method: str
    status: str
    payment_url: str | None = None
    transaction_ref: str | None = None
    message: str | None = None


class OrderItemResponse(BaseModel):
    item_id: str
    product_id: str
    variant_id: str
    sku: str | None = None
    product_name: str | None = None
    quantity: int
    unit_price: float
    line_total: float


class SubOrderResponse(BaseModel):
    sub_order_id: str
    order_id: str
    shop_id: str
    status: str
    subtotal: float
    shipping_fee: float
    discount: float
    total: float
    voucher_code: str | None = None
    shipper_id: str | None = None
    delivered_at: str | None = None
    return_deadline: str | None = None
    items: list[OrderItemResponse] = []


class OrderResponse(BaseModel):
    order_id: str
    order_number: str
    user_id: str
    status: str
    payment_method: str
    payment_status: str
    subtotal: float
    shipping_total: float
    discount_total: float
    grand_total: float
    platform_voucher_code: str | None = None
    customer_note: str | None = None
    created_at: str | None = None
    sub_orders: list[SubOrderResponse] = []


class CheckoutResponse(BaseModel):
    order: OrderResponse
    payment: PaymentResponse


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------
class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderSummaryResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    payment_status: str | None = None
    payment_method: str | None = None
    item_count: int
    sub_order_count: int
    grand_total: float
    created_at: str | None = None
    updated_at: str | None = None


class OrderListResponse(BaseModel):
    orders: list[OrderSummaryResponse]
    pagination: PaginationResponse


class ShopSubOrderResponse(BaseModel):
    sub_order_id: str
    order_id: str
    user_id: str
    status: str
    item_count: int
    total: float
    shipper_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ShopSubOrderListResponse(BaseModel):
    sub_orders: list[ShopSubOrderResponse]
    pagination: PaginationResponse


class InitiatePaymentRequest(BaseModel):
    method: str


# ---------------------------------------------------------------------------
# Orders / sub-orders
# ---------------------------------------------------------------------------
class CancelOrderRequest(BaseModel):
    user_id: str
    reason: str = Field(min_length=1, max_length=500)


class ConfirmReceiptRequest(BaseModel):
    user_id: str


class ConfirmReceiptResponse(BaseModel):
    completed: int


class PartnerActionRequest(BaseModel):
    partner_id: str


class PartnerCancelRequest(BaseModel):
    partner_id: str
    reason: str = Field(min_length=1, max_length=500)


class ShipperActionRequest(BaseModel):
    shipper_id: str


class DeliverRequest(BaseModel):
    shipper_id: str
    proof_of_delivery: str | None = None


class FailDeliveryRequest(BaseModel):
    shipper_id: str
    reason: str = Field(min_length=1, max_length=500)


class TrackingEventResponse(BaseModel):
    event_type: str
    created_by: str | None = None
    note: str | None = None
    created_at: str


class TrackingResponse(BaseModel):
    sub_order_id: str
    events: list[TrackingEventResponse]


class CallbackResponse(BaseModel):
    applied: bool
    order_status: str
    payment_status: str


class RefundStatusResponse(BaseModel):
    method: str
    status: str
    message: str


# ---------------------------------------------------------------------------
# Returns
# ---------------------------------------------------------------------------
class RequestReturnRequest(BaseModel):
    order_id: str
    user_id: str
    reason: str = Field(min_length=1, max_length=500)
    description: str | None = None
    evidence_urls: list[str] = []


class RequestReturnResponse(BaseModel):
    return_request_ids: list[str]
    returnable_items: int


class RejectReturnRequest(BaseModel):
    partner_id: str
    reason: str = Field(min_length=1, max_length=500)


class RefundResponse(BaseModel):
    sub_order_id: str
    amount: float
    method: str
    status: str
    message: str
