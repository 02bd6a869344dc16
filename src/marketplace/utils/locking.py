"""Process-wide keyed locks.

Stock counters, voucher usage counters, carts and order payment state are guarded by
one re-entrant lock per key. Callers that need several keys must take them
through :func:`hold`, which always acquires in sorted key order.
"""

import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

import structlog
from protean.utils.globals import current_domain

logger = structlog.get_logger(__name__)


class KeyedLockRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys: Iterable[str]) -> Iterator[list[str]]:
        """Acquire every lock in ``keys`` (deduplicated, sorted) for the block."""
        ordered = sorted(set(keys))
        acquired: list[threading.RLock] = []
        try:
            for key in ordered:
                lock = self.lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


_registry = KeyedLockRegistry()


def variant_key(variant_id) -> str:
    return f"variant:{variant_id}"


def voucher_key(code: str) -> str:
    return f"voucher:{code.upper()}"


def order_key(order_id) -> str:
    return f"order:{order_id}"


def cart_key(user_id) -> str:
    return f"cart:{user_id}"


def hold(keys: Iterable[str]):
    """Acquire the given keys on the shared registry."""
    return _registry.hold(keys)


def get_registry() -> KeyedLockRegistry:
    return _registry


def process_locked(command, keys: Iterable[str]):
    """Run ``command`` synchronously while holding ``keys``.

    The lock outlives the unit of work, so the commit is inside it.
    """
    with hold(keys) as held:
        logger.debug("locks_held", keys=held, command=command.__class__.__name__)
        return current_domain.process(command, asynchronous=False)
