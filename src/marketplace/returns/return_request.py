"""ReturnRequest aggregate: the customer's claim against one delivered SubOrder.

The SubOrder carries the fulfillment status; the ReturnRequest keeps the
claim itself (reason, evidence, seller's answer) and moves in lockstep:

    requested → approved → returned → refunded
    requested → rejected
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, List, String, Text

from marketplace.domain import marketplace
from marketplace.errors import ConflictError


class ReturnStatus(Enum):
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"
    REFUNDED = "refunded"


RETURN_TRANSITIONS = {
    ReturnStatus.REQUESTED: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.RETURNED},
    ReturnStatus.RETURNED: {ReturnStatus.REFUNDED},
    ReturnStatus.REJECTED: set(),
    ReturnStatus.REFUNDED: set(),
}


@marketplace.aggregate
class ReturnRequest:
    sub_order_id = Identifier(required=True)
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    shop_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    description = Text()
    evidence_urls = List(content_type=String)
    status = String(choices=ReturnStatus, default=ReturnStatus.REQUESTED.value)
    return_deadline = DateTime()
    rejection_reason = String(max_length=500)
    resolved_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, sub_order, reason: str, description: str | None = None, evidence_urls=None):
        now = datetime.now(UTC)
        return cls(
            sub_order_id=sub_order.id,
            order_id=sub_order.order_id,
            user_id=sub_order.user_id,
            shop_id=sub_order.shop_id,
            reason=reason,
            description=description,
            evidence_urls=list(evidence_urls or []),
            status=ReturnStatus.REQUESTED.value,
            return_deadline=sub_order.return_deadline,
            created_at=now,
            updated_at=now,
        )

    def _move(self, target: ReturnStatus) -> None:
        if target not in RETURN_TRANSITIONS[ReturnStatus(self.status)]:
            raise ConflictError(f"Return request {self.id} is {self.status}; cannot mark it {target.value}")
        self.status = target.value
        self.updated_at = datetime.now(UTC)

    def approve(self) -> None:
        self._move(ReturnStatus.APPROVED)

    def reject(self, reason: str) -> None:
        self._move(ReturnStatus.REJECTED)
        self.rejection_reason = reason
        self.resolved_at = self.updated_at

    def mark_returned(self) -> None:
        self._move(ReturnStatus.RETURNED)

    def mark_refunded(self) -> None:
        self._move(ReturnStatus.REFUNDED)
        self.resolved_at = self.updated_at


@marketplace.repository(part_of=ReturnRequest)
class ReturnRequestRepository:
    def for_sub_order(self, sub_order_id) -> list[ReturnRequest]:
        return self._dao.query.filter(sub_order_id=str(sub_order_id)).order_by("created_at").all().items

    def latest_for_sub_order(self, sub_order_id) -> ReturnRequest | None:
        requests = self.for_sub_order(sub_order_id)
        return requests[-1] if requests else None

    def for_user(self, user_id) -> list[ReturnRequest]:
        return self._dao.query.filter(user_id=str(user_id)).order_by("-created_at").all().items
