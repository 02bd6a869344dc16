"""Return and refund workflow: commands, handler and entry points.

A customer asks to return every delivered SubOrder of an Order that is still
inside its return window. The seller then approves or rejects, receives the
parcel back and refunds. Refunds never put stock back on the shelf.
"""

import structlog
from protean import handle
from protean.fields import Identifier, List, String, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.errors import AppError, ForbiddenError, NotFoundError
from marketplace.order.locks import keys_for_sub_order
from marketplace.order.order import Order, SubOrder, is_return_window_valid
from marketplace.order.settlement import settle_order
from marketplace.order.state_machine import SubOrderStatus
from marketplace.payment.refund import refund_status
from marketplace.returns.return_request import ReturnRequest
from marketplace.utils.locking import order_key, process_locked
from marketplace.utils.lookup import fetch

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="ReturnRequest")
class RequestReturn:
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    description = Text()
    evidence_urls = List(content_type=String)


@marketplace.command(part_of="ReturnRequest")
class ApproveReturn:
    sub_order_id = Identifier(required=True)
    partner_id = Identifier(required=True)


@marketplace.command(part_of="ReturnRequest")
class RejectReturn:
    sub_order_id = Identifier(required=True)
    partner_id = Identifier(required=True)
    reason = String(required=True, max_length=500)


@marketplace.command(part_of="ReturnRequest")
class ReceiveReturn:
    sub_order_id = Identifier(required=True)
    partner_id = Identifier(required=True)


@marketplace.command(part_of="ReturnRequest")
class ProcessRefund:
    sub_order_id = Identifier(required=True)
    partner_id = Identifier(required=True)


def _open_request(sub_order) -> ReturnRequest:
    request = current_domain.repository_for(ReturnRequest).latest_for_sub_order(sub_order.id)
    if request is None:
        raise NotFoundError(f"No return request for sub-order {sub_order.id}", code="RETURN_NOT_FOUND")
    return request


@marketplace.command_handler(part_of=ReturnRequest)
class ReturnWorkflowHandler:
    @handle(RequestReturn)
    def request_return(self, command):
        order = fetch(Order, command.order_id, code="ORDER_NOT_FOUND")
        if str(order.user_id) != str(command.user_id):
            raise ForbiddenError(f"User {command.user_id} does not own order {order.id}")

        sub_repo = current_domain.repository_for(SubOrder)
        eligible = [
            s
            for s in sub_repo.for_order(order.id)
            if s.status == SubOrderStatus.DELIVERED.value and is_return_window_valid(s)
        ]
        if not eligible:
            raise AppError(
                "No items eligible for return. Return window may have expired.",
                code="ORDER_CANNOT_RETURN",
            )

        request_repo = current_domain.repository_for(ReturnRequest)
        request_ids = []
        for sub_order in eligible:
            sub_order.request_return(command.user_id, command.reason, command.description)
            sub_repo.add(sub_order)
            request = ReturnRequest.open(sub_order, command.reason, command.description, command.evidence_urls)
            request_repo.add(request)
            request_ids.append(str(request.id))

        logger.info("return_requested", order_id=str(order.id), sub_orders=len(eligible), reason=command.reason)
        return {"return_request_ids": request_ids, "returnable_items": len(eligible)}

    @handle(ApproveReturn)
    def approve_return(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.approve_return(command.partner_id)
        request = _open_request(sub_order)
        request.approve()
        current_domain.repository_for(SubOrder).add(sub_order)
        current_domain.repository_for(ReturnRequest).add(request)

    @handle(RejectReturn)
    def reject_return(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.reject_return(command.partner_id, command.reason)
        request = _open_request(sub_order)
        request.reject(command.reason)
        current_domain.repository_for(SubOrder).add(sub_order)
        current_domain.repository_for(ReturnRequest).add(request)
        settle_order(sub_order.order_id, changed=[sub_order])

    @handle(ReceiveReturn)
    def receive_return(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.receive_return(command.partner_id)
        request = _open_request(sub_order)
        request.mark_returned()
        current_domain.repository_for(SubOrder).add(sub_order)
        current_domain.repository_for(ReturnRequest).add(request)

    @handle(ProcessRefund)
    def process_refund(self, command):
        sub_order = fetch(SubOrder, command.sub_order_id, code="SUB_ORDER_NOT_FOUND")
        sub_order.refund(command.partner_id)
        request = _open_request(sub_order)
        request.mark_refunded()
        current_domain.repository_for(SubOrder).add(sub_order)
        current_domain.repository_for(ReturnRequest).add(request)
        order = settle_order(sub_order.order_id, changed=[sub_order])
        refund = refund_status(order)
        logger.info(
            "refund_processed",
            sub_order_id=str(sub_order.id),
            amount=sub_order.total,
            refund_status=refund["status"],
        )
        return {**refund, "sub_order_id": str(sub_order.id), "amount": sub_order.total}


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def request_return(order_id, user_id, reason: str, description: str | None = None, evidence_urls=None) -> dict:
    return process_locked(
        RequestReturn(
            order_id=order_id,
            user_id=user_id,
            reason=reason,
            description=description,
            evidence_urls=list(evidence_urls or []),
        ),
        [order_key(order_id)],
    )


def approve_return(sub_order_id, partner_id) -> None:
    process_locked(ApproveReturn(sub_order_id=sub_order_id, partner_id=partner_id), keys_for_sub_order(sub_order_id))
    logger.info("return_approved", sub_order_id=str(sub_order_id), partner_id=str(partner_id))


def reject_return(sub_order_id, partner_id, reason: str) -> None:
    process_locked(
        RejectReturn(sub_order_id=sub_order_id, partner_id=partner_id, reason=reason),
        keys_for_sub_order(sub_order_id),
    )
    logger.info("return_rejected", sub_order_id=str(sub_order_id), reason=reason)


def receive_return(sub_order_id, partner_id) -> None:
    process_locked(ReceiveReturn(sub_order_id=sub_order_id, partner_id=partner_id), keys_for_sub_order(sub_order_id))
    logger.info("return_received", sub_order_id=str(sub_order_id))


def process_refund(sub_order_id, partner_id) -> dict:
    return process_locked(
        ProcessRefund(sub_order_id=sub_order_id, partner_id=partner_id),
        keys_for_sub_order(sub_order_id),
    )
