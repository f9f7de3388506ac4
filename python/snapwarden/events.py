"""
Lifecycle events emitted by the resolver, creator and retention evaluator.

Events are the engine's output surface: every resolution, attempt, fallback,
skip and eviction decision produces one. Observers render or collect them;
every event is also logged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from snapwarden.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = get_logger(__name__)


class EventType(str, Enum):
    """Types of lifecycle events."""

    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    ENTRY_REJECTED = "entry_rejected"
    TARGET_RESOLVED = "target_resolved"
    RESOLUTION_FAILED = "resolution_failed"
    SKU_DETECTED = "sku_detected"
    SNAPSHOT_PREVIEWED = "snapshot_previewed"
    ATTEMPT_FAILED = "attempt_failed"
    FALLBACK_TO_FULL = "fallback_to_full"
    SNAPSHOT_CREATED = "snapshot_created"
    DISK_FAILED = "disk_failed"
    EVICTION_EVALUATED = "eviction_evaluated"
    SNAPSHOT_DELETED = "snapshot_deleted"
    DELETE_FAILED = "delete_failed"


# Events that represent a failure or skip are logged at warning level
_WARNING_EVENTS = frozenset(
    {
        EventType.ENTRY_REJECTED,
        EventType.RESOLUTION_FAILED,
        EventType.ATTEMPT_FAILED,
        EventType.FALLBACK_TO_FULL,
        EventType.DISK_FAILED,
        EventType.DELETE_FAILED,
    }
)


@dataclass
class LifecycleEvent:
    """Event emitted during creation or cleanup."""

    event_type: EventType
    target: str | None = None
    volume_id: str | None = None
    snapshot_name: str | None = None
    snapshot_id: str | None = None
    message: str = ""
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "event_type": self.event_type.value,
            "target": self.target,
            "volume_id": self.volume_id,
            "snapshot_name": self.snapshot_name,
            "snapshot_id": self.snapshot_id,
            "message": self.message,
            "error": self.error,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class LifecycleObserver(Protocol):
    """Protocol for lifecycle event observers."""

    def on_lifecycle_event(self, event: LifecycleEvent) -> None:
        """Handle a lifecycle event."""
        ...


class EventEmitter:
    """Logs events and fans them out to observers."""

    def __init__(self, observers: Sequence[LifecycleObserver] | None = None) -> None:
        self._observers: list[LifecycleObserver] = list(observers) if observers else []

    def add_observer(self, observer: LifecycleObserver) -> None:
        """Add an event observer."""
        self._observers.append(observer)

    def remove_observer(self, observer: LifecycleObserver) -> None:
        """Remove an event observer."""
        if observer in self._observers:
            self._observers.remove(observer)

    def emit(self, event: LifecycleEvent) -> LifecycleEvent:
        """Log an event and notify all observers."""
        payload = event.to_dict()
        event_name = payload.pop("event_type")
        payload.pop("timestamp")
        if event.event_type in _WARNING_EVENTS:
            logger.warning(event_name, **payload)
        else:
            logger.info(event_name, **payload)

        for observer in self._observers:
            try:
                observer.on_lifecycle_event(event)
            except Exception as e:
                logger.warning(
                    "observer_notification_failed",
                    observer=type(observer).__name__,
                    error=str(e),
                )
        return event


class EventCollector:
    """Observer that keeps every event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[LifecycleEvent] = []

    def on_lifecycle_event(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[LifecycleEvent]:
        """Return the collected events of one type."""
        return [e for e in self.events if e.event_type == event_type]
