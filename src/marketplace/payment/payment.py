"""Payment aggregate (CQRS): one record per payment initiation.

The Order carries the authoritative ``payment_status``; a Payment keeps what
the gateway said: the reference sent out, the redirect URL, and the raw
callback that settled it.

State Machine:
    PENDING → PAID | FAILED | VOIDED
    PROCESSING → PAID | FAILED | VOIDED     (wallet)

A Payment is voided when the customer restarts payment on the same Order,
possibly with another method. Only the newest attempt can settle the Order.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Dict, Float, Identifier, String

from marketplace.domain import marketplace
from marketplace.errors import ConflictError
from marketplace.payment.events import PaymentFailed, PaymentInitiated, PaymentSucceeded, PaymentVoided


class PaymentRecordStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    VOIDED = "voided"


_OPEN_STATUSES = frozenset({PaymentRecordStatus.PENDING.value, PaymentRecordStatus.PROCESSING.value})


@marketplace.aggregate
class Payment:
    order_id = Identifier(required=True)
    method = String(required=True, max_length=20)
    amount = Float(required=True, min_value=0.0)
    status = String(choices=PaymentRecordStatus, default=PaymentRecordStatus.PENDING.value)
    transaction_ref = String(max_length=100)
    payment_url = String(max_length=4000)
    gateway_transaction_id = String(max_length=255)
    response_code = String(max_length=50)
    raw_callback = Dict()
    paid_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def start(cls, order_id, method: str, amount: float, initiation):
        """Record an initiation result returned by a gateway adapter."""
        now = datetime.now(UTC)
        payment = cls(
            order_id=order_id,
            method=method,
            amount=amount,
            status=initiation.status,
            transaction_ref=initiation.transaction_ref,
            payment_url=initiation.payment_url,
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                order_id=str(order_id),
                method=method,
                amount=amount,
                status=payment.status,
                transaction_ref=initiation.transaction_ref,
                initiated_at=now,
            )
        )
        return payment

    @property
    def is_voided(self) -> bool:
        return self.status == PaymentRecordStatus.VOIDED.value

    @property
    def is_open(self) -> bool:
        return self.status in _OPEN_STATUSES

    def _settle(self, outcome, payload: dict | None) -> datetime:
        if not self.is_open:
            raise ConflictError(f"Payment {self.id} is already {self.status}")
        now = datetime.now(UTC)
        self.gateway_transaction_id = outcome.gateway_transaction_id
        self.response_code = outcome.response_code
        self.raw_callback = dict(payload or {})
        self.updated_at = now
        return now

    def record_success(self, outcome, payload: dict | None = None) -> None:
        now = self._settle(outcome, payload)
        self.status = PaymentRecordStatus.PAID.value
        self.paid_at = now
        self.raise_(
            PaymentSucceeded(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                method=self.method,
                amount=self.amount,
                gateway_transaction_id=outcome.gateway_transaction_id,
                paid_at=now,
            )
        )

    def record_failure(self, outcome, payload: dict | None = None) -> None:
        now = self._settle(outcome, payload)
        self.status = PaymentRecordStatus.FAILED.value
        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                method=self.method,
                response_code=outcome.response_code,
                reason=outcome.message,
                failed_at=now,
            )
        )

    def void(self, reason: str) -> None:
        """Close an attempt that a newer initiation replaced."""
        if not self.is_open:
            raise ConflictError(f"Payment {self.id} is already {self.status}")
        now = datetime.now(UTC)
        self.status = PaymentRecordStatus.VOIDED.value
        self.updated_at = now
        self.raise_(
            PaymentVoided(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                method=self.method,
                reason=reason,
                voided_at=now,
            )
        )


@marketplace.repository(part_of=Payment)
class PaymentRepository:
    def for_order(self, order_id) -> list[Payment]:
        return self._dao.query.filter(order_id=str(order_id)).order_by("created_at").all().items

    def open_for_order(self, order_id) -> Payment | None:
        """Most recent payment still waiting on its gateway."""
        open_payments = [p for p in self.for_order(order_id) if p.is_open]
        return open_payments[-1] if open_payments else None
