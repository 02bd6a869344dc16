"""Payment gateway port (abstract interface).

Every payment method is served by one adapter. An adapter turns an order
into whatever the customer needs to pay (nothing for COD, a signed redirect
URL for the online gateways) and turns a gateway callback into a verified,
method-independent :class:`CallbackResult`. Adapters never touch aggregates.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PaymentIntent:
    """What an adapter needs to know about the order being paid for."""

    order_id: str
    order_number: str
    amount: float
    description: str
    client_ip: str = "127.0.0.1"


@dataclass(frozen=True)
class InitiationResult:
    status: str  # pending, processing
    payment_url: str | None = None
    transaction_ref: str | None = None
    message: str | None = None


@dataclass(frozen=True)
class CallbackResult:
    """A verified callback. ``succeeded`` is the only thing the order flow reads."""

    order_id: str
    succeeded: bool
    transaction_ref: str | None = None
    gateway_transaction_id: str | None = None
    response_code: str | None = None
    message: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    method: str

    @abstractmethod
    def initiate(self, intent: PaymentIntent) -> InitiationResult:
        """Prepare payment for an order."""
        ...

    @abstractmethod
    def verify_callback(self, payload: dict) -> CallbackResult:
        """Check the callback's signature and decode its outcome.

        Raises InvalidSignatureError when the payload was not signed by the
        gateway.
        """
        ...


def split_transaction_ref(transaction_ref: str) -> str:
    """``<order_id>_<millis>`` → ``<order_id>``."""
    return str(transaction_ref).split("_")[0]
