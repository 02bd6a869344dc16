"""Outbound message publisher port.

Notifications (``order.created``, ``order.<status>``, ``inventory.out_of_stock``)
leave the core through this interface after the local transaction commits.
Delivery is best-effort: callers never wait on it for correctness.
"""

from abc import ABC, abstractmethod


class MessagePublisher(ABC):
    """Abstract outbound message bus."""

    @abstractmethod
    def publish(self, topic: str, payload: dict) -> None:
        """Publish one message. May raise; callers go through ``publish_safely``."""
        ...
