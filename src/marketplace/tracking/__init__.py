"""Tracking log: append-only audit trail of SubOrder events.

The core writes here on every SubOrder transition and never reads back for
decisions. The in-memory log is the default; an external tracking service
plugs in through set_tracking_log().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TrackingEntry:
    sub_order_id: str
    event_type: str
    created_by: str | None = None
    note: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class TrackingLog(ABC):
    @abstractmethod
    def add_event(
        self,
        sub_order_id: str,
        event_type: str,
        created_by: str | None = None,
        note: str | None = None,
    ) -> TrackingEntry: ...


class InMemoryTrackingLog(TrackingLog):
    def __init__(self) -> None:
        self.entries: list[TrackingEntry] = []

    def add_event(self, sub_order_id, event_type, created_by=None, note=None):
        entry = TrackingEntry(
            sub_order_id=str(sub_order_id),
            event_type=event_type,
            created_by=created_by,
            note=note,
        )
        self.entries.append(entry)
        return entry

    def events_for(self, sub_order_id) -> list[TrackingEntry]:
        return [e for e in self.entries if e.sub_order_id == str(sub_order_id)]


_current_log: TrackingLog | None = None


def get_tracking_log() -> TrackingLog:
    global _current_log
    if _current_log is None:
        _current_log = InMemoryTrackingLog()
    return _current_log


def set_tracking_log(log: TrackingLog) -> None:
    global _current_log
    _current_log = log


def reset_tracking_log() -> None:
    global _current_log
    _current_log = None


def add_tracking_event(sub_order_id, event_type: str, created_by: str | None = None, note: str | None = None) -> None:
    """Append to the tracking log; a failing tracking service never blocks a transition."""
    try:
        get_tracking_log().add_event(sub_order_id, event_type, created_by=created_by, note=note)
    except Exception as exc:
        logger.warning("tracking_event_failed", sub_order_id=str(sub_order_id), event_type=event_type, error=str(exc))
