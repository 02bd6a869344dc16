"""Message publisher factory.

Provides get_publisher() / set_publisher() to swap implementations and
publish_safely() for fire-and-forget notifications.
"""

import os

import structlog

from marketplace.messaging.port import MessagePublisher

logger = structlog.get_logger(__name__)

_current_publisher: MessagePublisher | None = None


def get_publisher() -> MessagePublisher:
    """Return the current publisher. Defaults to FakePublisher."""
    global _current_publisher
    if _current_publisher is None:
        adapter = os.environ.get("PUBLISHER_ADAPTER", "fake")
        if adapter == "fake":
            from marketplace.messaging.fake_adapter import FakePublisher

            _current_publisher = FakePublisher()
        else:
            raise ValueError(f"Unknown publisher adapter: {adapter}")
    return _current_publisher


def set_publisher(publisher: MessagePublisher) -> None:
    """Override the active publisher (useful for tests)."""
    global _current_publisher
    _current_publisher = publisher


def reset_publisher() -> None:
    """Reset to default publisher."""
    global _current_publisher
    _current_publisher = None


def publish_safely(topic: str, payload: dict) -> bool:
    """Publish and swallow transport failures. Returns whether it went out."""
    try:
        get_publisher().publish(topic, payload)
    except Exception as exc:
        logger.warning("publish_failed", topic=topic, error=str(exc))
        return False
    logger.debug("published", topic=topic)
    return True
