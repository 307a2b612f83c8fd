"""Event system for cross-service communication.

Simple in-process pub/sub for announcing finished sync runs to whoever is
interested (the CLI progress output, API hooks, tests).
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# Event Types
# =============================================================================


@dataclass
class Event:
    """Base event class.

    All events have a type, timestamp, and payload.
    """

    event_type: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "payload": self.payload,
        }


@dataclass
class SyncRunCompletedEvent(Event):
    """Event emitted when a sync run reaches a terminal state."""

    event_type: str = "sync_run_completed"

    @classmethod
    def create(
        cls,
        log_id: int,
        mapping_id: int | None,
        status: str,
        records_processed: int,
        failed_records: int,
        message: str,
        duration_seconds: float,
    ) -> "SyncRunCompletedEvent":
        """Create a sync run completed event.

        Args:
            log_id: ID of the sync log.
            mapping_id: ID of the mapping that ran.
            status: Terminal status (success, partial_failure, failure).
            records_processed: Rows attempted.
            failed_records: Rows that failed.
            message: Summary message stored on the log.
            duration_seconds: Wall-clock duration of the run.

        Returns:
            SyncRunCompletedEvent instance.
        """
        return cls(
            payload={
                "log_id": log_id,
                "mapping_id": mapping_id,
                "status": status,
                "records_processed": records_processed,
                "failed_records": failed_records,
                "message": message,
                "duration_seconds": duration_seconds,
            }
        )


# =============================================================================
# Event Bus
# =============================================================================

# Type alias for event handlers
EventHandler = Callable[[Event], None]


class EventBus:
    """Simple in-process event bus for pub/sub.

    Handlers are called synchronously in the order they were registered.

    Usage:
        bus = EventBus()
        bus.subscribe("sync_run_completed", my_handler)
        bus.emit(SyncRunCompletedEvent.create(...))
    """

    def __init__(self) -> None:
        """Initialize the event bus."""
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type.

        Args:
            event_type: Event type to subscribe to.
            handler: Callable that takes an Event.
        """
        self._handlers[event_type].append(handler)
        logger.debug(f"Handler subscribed to event type: {event_type}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Unsubscribe a handler from an event type.

        Returns:
            True if handler was found and removed.
        """
        handlers = self._handlers[event_type]
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def emit(self, event: Event) -> None:
        """Emit an event to all subscribed handlers.

        Exceptions in handlers are logged but do not prevent other handlers
        from being called.

        Args:
            event: Event to emit.
        """
        logger.debug(f"Emitting event: {event.event_type}")

        for handler in list(self._handlers[event.event_type]):
            try:
                handler(event)
            except Exception as e:
                logger.exception(f"Error in event handler for {event.event_type}: {e}")

    def clear(self) -> None:
        """Remove all handlers."""
        self._handlers.clear()


# =============================================================================
# Global Event Bus Instance
# =============================================================================

_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the global event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus (for testing)."""
    global _event_bus
    if _event_bus is not None:
        _event_bus.clear()
    _event_bus = None
