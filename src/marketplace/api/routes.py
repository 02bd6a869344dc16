"""FastAPI routes for the marketplace: stock, vouchers, cart, checkout,
orders and order history, shop queues, sub-order fulfillment, payment
callbacks and returns.
"""

from datetime import datetime

from fastapi import APIRouter, Request
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    AddToCartRequest,
    AdjustStockRequest,
    AvailableVoucher,
    AvailableVouchersResponse,
    BulkStockResult,
    BulkUpdateStockRequest,
    BulkUpdateStockResponse,
    CallbackResponse,
    CancelOrderRequest,
    CartItemResponse,
    CartResponse,
    CheckoutRequest,
    CheckoutResponse,
    ConfirmReceiptRequest,
    ConfirmReceiptResponse,
    CreateVoucherRequest,
    DeliverRequest,
    FailDeliveryRequest,
    IdResponse,
    InitiatePaymentRequest,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderSummaryResponse,
    PaginationResponse,
    PartnerActionRequest,
    PartnerCancelRequest,
    PaymentResponse,
    RefundResponse,
    RefundStatusResponse,
    RegisterVariantRequest,
    RejectReturnRequest,
    RequestReturnRequest,
    RequestReturnResponse,
    ShipperActionRequest,
    ShopSubOrderListResponse,
    ShopSubOrderResponse,
    StatusResponse,
    SubOrderResponse,
    ThresholdRequest,
    TrackingEventResponse,
    TrackingResponse,
    UpdateCartItemRequest,
    UpdateStockRequest,
    ValidateVoucherRequest,
    VariantResponse,
    VoucherValidationResponse,
)
from marketplace.cart.cart import ShoppingCart
from marketplace.cart.management import add_to_cart, remove_cart_item, update_cart_item
from marketplace.checkout.placement import create_order, preview_checkout
from marketplace.errors import NotFoundError
from marketplace.inventory import ledger
from marketplace.inventory.stock import RegisterVariant
from marketplace.inventory.variant import ProductVariant
from marketplace.order import fulfillment
from marketplace.order.cancellation import cancel_order
from marketplace.order.order import Order, SubOrder
from marketplace.order.receipt import confirm_receipt
from marketplace.payment.callback import handle_callback
from marketplace.payment.initiation import initiate_payment
from marketplace.payment.refund import refund_status_for
from marketplace.projections.order_summary import orders_for_user
from marketplace.projections.shop_sub_orders import sub_orders_for_shop
from marketplace.returns import workflow
from marketplace.tracking import get_tracking_log
from marketplace.utils.lookup import fetch
from marketplace.voucher.engine import available_vouchers, validate_voucher
from marketplace.voucher.management import create_voucher, deactivate_voucher


def _ts(value) -> str | None:
    return str(value) if value else None


def _variant_response(variant) -> VariantResponse:
    return VariantResponse(
        variant_id=str(variant.id),
        product_id=str(variant.product_id),
        shop_id=str(variant.shop_id),
        sku=variant.sku,
        name=variant.name,
        price=variant.price,
        quantity=variant.quantity,
        reserved_quantity=variant.reserved_quantity,
        available=variant.available,
        low_stock_threshold=variant.low_stock_threshold,
        stock_status=variant.stock_status,
        is_active=variant.is_active,
    )


def _sub_order_response(sub_order) -> SubOrderResponse:
    return SubOrderResponse(
        sub_order_id=str(sub_order.id),
        order_id=str(sub_order.order_id),
        shop_id=str(sub_order.shop_id),
        status=sub_order.status,
        subtotal=sub_order.subtotal,
        shipping_fee=sub_order.shipping_fee,
        discount=sub_order.discount,
        total=sub_order.total,
        voucher_code=sub_order.voucher_code,
        shipper_id=str(sub_order.shipper_id) if sub_order.shipper_id else None,
        delivered_at=_ts(sub_order.delivered_at),
        return_deadline=_ts(sub_order.return_deadline),
        items=[
            OrderItemResponse(
                item_id=str(item.id),
                product_id=str(item.product_id),
                variant_id=str(item.variant_id),
                sku=item.sku,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total,
            )
            for item in sub_order.items
        ],
    )


def _order_response(order, sub_orders=None) -> OrderResponse:
    if sub_orders is None:
        sub_orders = current_domain.repository_for(SubOrder).for_order(order.id)
    return OrderResponse(
        order_id=str(order.id),
        order_number=order.order_number,
        user_id=str(order.user_id),
        status=order.status,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        subtotal=order.subtotal,
        shipping_total=order.shipping_total,
        discount_total=order.discount_total,
        grand_total=order.grand_total,
        platform_voucher_code=order.platform_voucher_code,
        customer_note=order.customer_note,
        created_at=_ts(order.created_at),
        sub_orders=[_sub_order_response(s) for s in sub_orders],
    )


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "127.0.0.1"


# ---------------------------------------------------------------------------
# Variant Router
# ---------------------------------------------------------------------------
variant_router = APIRouter(prefix="/variants", tags=["variants"])


@variant_router.post("", status_code=201, response_model=IdResponse)
async def register_variant(body: RegisterVariantRequest) -> IdResponse:
    """Register a variant with its opening stock."""
    command = RegisterVariant(**body.model_dump())
    variant_id = current_domain.process(command, asynchronous=False)
    return IdResponse(id=variant_id)


@variant_router.get("/{variant_id}", response_model=VariantResponse)
async def get_variant(variant_id: str) -> VariantResponse:
    return _variant_response(fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND"))


@variant_router.put("/{variant_id}/stock", response_model=VariantResponse)
async def update_stock(variant_id: str, body: UpdateStockRequest) -> VariantResponse:
    """Set the on-hand quantity to an absolute value."""
    ledger.update_stock(variant_id, body.quantity, reason=body.reason)
    return _variant_response(fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND"))


@variant_router.post("/{variant_id}/stock/adjust", response_model=VariantResponse)
async def adjust_stock(variant_id: str, body: AdjustStockRequest) -> VariantResponse:
    ledger.adjust_stock(variant_id, body.delta, reason=body.reason)
    return _variant_response(fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND"))


@variant_router.put("/{variant_id}/low-stock-threshold", response_model=VariantResponse)
async def set_low_stock_threshold(variant_id: str, body: ThresholdRequest) -> VariantResponse:
    ledger.set_low_stock_threshold(variant_id, body.threshold)
    return _variant_response(fetch(ProductVariant, variant_id, code="PRODUCT_NOT_FOUND"))


@variant_router.post("/stock/bulk", response_model=BulkUpdateStockResponse)
async def bulk_update_stock(body: BulkUpdateStockRequest) -> BulkUpdateStockResponse:
    """Apply many absolute stock counts. One failing row does not stop the others."""
    results = ledger.bulk_update_stock(row.model_dump() for row in body.updates)
    return BulkUpdateStockResponse(results=[BulkStockResult(**r) for r in results])


# ---------------------------------------------------------------------------
# Voucher Router
# ---------------------------------------------------------------------------
voucher_router = APIRouter(prefix="/vouchers", tags=["vouchers"])


@voucher_router.post("", status_code=201, response_model=IdResponse)
async def create_voucher_route(body: CreateVoucherRequest) -> IdResponse:
    fields = body.model_dump(exclude={"code", "start_date", "end_date"})
    voucher_id = create_voucher(
        body.code,
        start_date=datetime.fromisoformat(body.start_date),
        end_date=datetime.fromisoformat(body.end_date),
        **fields,
    )
    return IdResponse(id=voucher_id)


@voucher_router.put("/{code}/deactivate", response_model=StatusResponse)
async def deactivate_voucher_route(code: str) -> StatusResponse:
    deactivate_voucher(code)
    return StatusResponse(status="deactivated")


@voucher_router.post("/validate", response_model=VoucherValidationResponse)
async def validate_voucher_route(body: ValidateVoucherRequest) -> VoucherValidationResponse:
    result = validate_voucher(body.code, body.user_id, body.order_total, shop_id=body.shop_id)
    return VoucherValidationResponse(is_valid=result.is_valid, code=result.voucher.code, discount=result.discount)


@voucher_router.get("/available", response_model=AvailableVouchersResponse)
async def list_available_vouchers(
    user_id: str, order_total: float = 0.0, shop_id: str | None = None
) -> AvailableVouchersResponse:
    vouchers = available_vouchers(user_id, order_total, shop_id=shop_id)
    return AvailableVouchersResponse(vouchers=[AvailableVoucher(**v) for v in vouchers])


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/cart", tags=["cart"])


@cart_router.get("/{user_id}", response_model=CartResponse)
async def get_cart(user_id: str) -> CartResponse:
    cart = current_domain.repository_for(ShoppingCart).for_user(user_id)
    items = cart.items if cart else []
    return CartResponse(
        user_id=user_id,
        items=[
            CartItemResponse(
                item_id=str(i.id),
                product_id=str(i.product_id),
                variant_id=str(i.variant_id),
                quantity=i.quantity,
            )
            for i in items
        ],
    )


@cart_router.post("/items", status_code=201, response_model=IdResponse)
async def add_cart_item(body: AddToCartRequest) -> IdResponse:
    item_id = add_to_cart(body.user_id, body.variant_id, body.quantity)
    return IdResponse(id=item_id)


@cart_router.put("/items/{item_id}", response_model=StatusResponse)
async def update_cart_item_route(item_id: str, body: UpdateCartItemRequest) -> StatusResponse:
    update_cart_item(body.user_id, item_id, body.quantity)
    return StatusResponse(status="updated")


@cart_router.delete("/items/{item_id}", response_model=StatusResponse)
async def remove_cart_item_route(item_id: str, user_id: str) -> StatusResponse:
    remove_cart_item(user_id, item_id)
    return StatusResponse(status="removed")


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("", status_code=201, response_model=CheckoutResponse)
async def checkout(body: CheckoutRequest, request: Request) -> CheckoutResponse:
    """Place an order from cart lines and start its payment."""
    result = create_order(
        body.user_id,
        body.cart_item_ids,
        body.payment_method,
        shipping_address_id=body.shipping_address_id,
        platform_voucher_code=body.platform_voucher_code,
        shop_voucher_codes=body.shop_voucher_codes,
        customer_note=body.customer_note,
        client_ip=_client_ip(request),
    )
    return CheckoutResponse(
        order=_order_response(result["order"], result["sub_orders"]),
        payment=PaymentResponse(**result["payment"]),
    )


@checkout_router.post("/preview")
async def checkout_preview(body: CheckoutRequest) -> dict:
    """Price a checkout without placing it."""
    return preview_checkout(
        body.user_id,
        body.cart_item_ids,
        shipping_address_id=body.shipping_address_id,
        platform_voucher_code=body.platform_voucher_code,
        shop_voucher_codes=body.shop_voucher_codes,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=OrderListResponse)
async def list_orders(
    user_id: str,
    status: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = 1,
    limit: int = 10,
) -> OrderListResponse:
    """A customer's order history, newest first."""
    listing = orders_for_user(user_id, status=status, start_date=start_date, end_date=end_date, page=page, limit=limit)
    return OrderListResponse(
        orders=[
            OrderSummaryResponse(
                order_id=str(s.order_id),
                order_number=s.order_number,
                status=s.status,
                payment_status=s.payment_status,
                payment_method=s.payment_method,
                item_count=s.item_count or 0,
                sub_order_count=s.sub_order_count or 0,
                grand_total=s.grand_total or 0.0,
                created_at=_ts(s.created_at),
                updated_at=_ts(s.updated_at),
            )
            for s in listing["items"]
        ],
        pagination=PaginationResponse(**listing["pagination"]),
    )


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, user_id: str) -> OrderResponse:
    order = fetch(Order, order_id, code="ORDER_NOT_FOUND")
    if str(order.user_id) != user_id:
        raise NotFoundError("Order not found", code="ORDER_NOT_FOUND")
    return _order_response(order)


@order_router.post("/{order_id}/payment", response_model=PaymentResponse)
async def start_payment(order_id: str, body: InitiatePaymentRequest, request: Request) -> PaymentResponse:
    """Start (or restart) payment for an order still awaiting it."""
    return PaymentResponse(**initiate_payment(order_id, body.method, client_ip=_client_ip(request)))


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order_route(order_id: str, body: CancelOrderRequest) -> OrderResponse:
    cancel_order(order_id, body.user_id, body.reason)
    return _order_response(fetch(Order, order_id, code="ORDER_NOT_FOUND"))


@order_router.put("/{order_id}/confirm-receipt", response_model=ConfirmReceiptResponse)
async def confirm_receipt_route(order_id: str, body: ConfirmReceiptRequest) -> ConfirmReceiptResponse:
    return ConfirmReceiptResponse(completed=confirm_receipt(order_id, body.user_id))


@order_router.get("/{order_id}/refund-status", response_model=RefundStatusResponse)
async def get_refund_status(order_id: str) -> RefundStatusResponse:
    return RefundStatusResponse(**refund_status_for(order_id))


# ---------------------------------------------------------------------------
# Shop Router
# ---------------------------------------------------------------------------
shop_router = APIRouter(prefix="/shops", tags=["shops"])


@shop_router.get("/{shop_id}/sub-orders", response_model=ShopSubOrderListResponse)
async def list_shop_sub_orders(
    shop_id: str, status: str | None = None, page: int = 1, limit: int = 10
) -> ShopSubOrderListResponse:
    """The shop's fulfillment queue, newest first."""
    listing = sub_orders_for_shop(shop_id, status=status, page=page, limit=limit)
    return ShopSubOrderListResponse(
        sub_orders=[
            ShopSubOrderResponse(
                sub_order_id=str(r.sub_order_id),
                order_id=str(r.order_id),
                user_id=str(r.user_id),
                status=r.status,
                item_count=r.item_count or 0,
                total=r.total or 0.0,
                shipper_id=str(r.shipper_id) if r.shipper_id else None,
                created_at=_ts(r.created_at),
                updated_at=_ts(r.updated_at),
            )
            for r in listing["items"]
        ],
        pagination=PaginationResponse(**listing["pagination"]),
    )


# ---------------------------------------------------------------------------
# Sub-order Router (sellers and shippers)
# ---------------------------------------------------------------------------
sub_order_router = APIRouter(prefix="/sub-orders", tags=["sub-orders"])


def _sub_order(sub_order_id: str) -> SubOrderResponse:
    return _sub_order_response(fetch(SubOrder, sub_order_id, code="SUB_ORDER_NOT_FOUND"))


@sub_order_router.get("/{sub_order_id}", response_model=SubOrderResponse)
async def get_sub_order(sub_order_id: str) -> SubOrderResponse:
    return _sub_order(sub_order_id)


@sub_order_router.put("/{sub_order_id}/confirm", response_model=SubOrderResponse)
async def confirm_sub_order(sub_order_id: str, body: PartnerActionRequest) -> SubOrderResponse:
    fulfillment.confirm_order(sub_order_id, body.partner_id)
    return _sub_order(sub_order_id)


@sub_order_router.put("/{sub_order_id}/pack", response_model=SubOrderResponse)
async def pack_sub_order(sub_order_id: str, body: PartnerActionRequest) -> SubOrderResponse:
    fulfillment.pack_order(sub_order_id, body.partner_id)
    return _sub_order(sub_order_id)


@sub_order_router.put("/{sub_order_id}/cancel", response_model=SubOrderResponse)
async def cancel_sub_order(sub_order_id: str, body: PartnerCancelRequest) -> SubOrderResponse:
    fulfillment.cancel_by_partner(sub_order_id, body.partner_id, body.reason)
    return _sub_order(sub_order_id)


@sub_order_router.put("/{sub_order_id}/pickup", response_model=SubOrderResponse)
async def pickup_sub_order(sub_order_id: str, body: ShipperActionRequest) -> SubOrderResponse:
    fulfillment.pickup_order(sub_order_id, body.shipper_id)
    return _sub_order(sub_order_id)


@sub_order_router.put("/{sub_order_id}/deliver", response_model=SubOrderResponse)
async def deliver_sub_order(sub_order_id: str, body: DeliverRequest) -> SubOrderResponse:
    fulfillment.deliver_order(sub_order_id, body.shipper_id, proof_of_delivery=body.proof_of_delivery)
    return _sub_order(sub_order_id)


@sub_order_router.put("/{sub_order_id}/delivery-failed", response_model=SubOrderResponse)
async def delivery_failed(sub_order_id: str, body: FailDeliveryRequest) -> SubOrderResponse:
    fulfillment.fail_delivery(sub_order_id, body.shipper_id, body.reason)
    return _sub_order(sub_order_id)


@sub_order_router.get("/{sub_order_id}/tracking", response_model=TrackingResponse)
async def get_tracking(sub_order_id: str) -> TrackingResponse:
    fetch(SubOrder, sub_order_id, code="SUB_ORDER_NOT_FOUND")
    events = get_tracking_log().events_for(sub_order_id)
    return TrackingResponse(
        sub_order_id=sub_order_id,
        events=[
            TrackingEventResponse(
                event_type=e.event_type,
                created_by=e.created_by,
                note=e.note,
                created_at=str(e.created_at),
            )
            for e in events
        ],
    )


# ---------------------------------------------------------------------------
# Payment callbacks
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/{method}/callback", response_model=CallbackResponse)
async def payment_callback(method: str, request: Request) -> CallbackResponse:
    """Gateway IPN. VNPay sends query parameters, MoMo and the wallet send JSON."""
    payload = dict(request.query_params)
    if request.headers.get("content-type", "").startswith("application/json"):
        payload.update(await request.json())
    return CallbackResponse(**handle_callback(method, payload))


# ---------------------------------------------------------------------------
# Returns Router
# ---------------------------------------------------------------------------
return_router = APIRouter(prefix="/returns", tags=["returns"])


@return_router.post("", status_code=201, response_model=RequestReturnResponse)
async def request_return(body: RequestReturnRequest) -> RequestReturnResponse:
    result = workflow.request_return(
        body.order_id,
        body.user_id,
        body.reason,
        description=body.description,
        evidence_urls=body.evidence_urls,
    )
    return RequestReturnResponse(**result)


@return_router.put("/{sub_order_id}/approve", response_model=SubOrderResponse)
async def approve_return(sub_order_id: str, body: PartnerActionRequest) -> SubOrderResponse:
    workflow.approve_return(sub_order_id, body.partner_id)
    return _sub_order(sub_order_id)


@return_router.put("/{sub_order_id}/reject", response_model=SubOrderResponse)
async def reject_return(sub_order_id: str, body: RejectReturnRequest) -> SubOrderResponse:
    workflow.reject_return(sub_order_id, body.partner_id, body.reason)
    return _sub_order(sub_order_id)


@return_router.put("/{sub_order_id}/receive", response_model=SubOrderResponse)
async def receive_return(sub_order_id: str, body: PartnerActionRequest) -> SubOrderResponse:
    workflow.receive_return(sub_order_id, body.partner_id)
    return _sub_order(sub_order_id)


@return_router.put("/{sub_order_id}/refund", response_model=RefundResponse)
async def refund_return(sub_order_id: str, body: PartnerActionRequest) -> RefundResponse:
    return RefundResponse(**workflow.process_refund(sub_order_id, body.partner_id))
