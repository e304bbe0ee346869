"""
Event bus for broadcasting connectivity, session and sync events
"""

import time
from typing import Dict, Any, List, Callable, Optional
from collections import defaultdict, deque
from datetime import datetime
import uuid

from core.logging_config import get_logger


class SystemEvent:
    """Represents a system event"""

    def __init__(self, event_type: str, data: Dict[str, Any], source: Optional[str] = None):
        self.id = str(uuid.uuid4())
        self.type = event_type
        self.data = data
        self.source = source or "system"
        self.timestamp = time.time()
        self.datetime = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "source": self.source,
            "timestamp": self.timestamp,
            "datetime": self.datetime
        }


class EventBus:
    """Status sink that records events and notifies listeners.

    Events are delivered synchronously on the emitting context, so a
    listener observes events in the order the coordinator produced them.
    A failing listener is logged and skipped.
    """

    def __init__(self, max_history: int = 1000):
        self.logger = get_logger(__name__)
        self.listeners: Dict[str, List[Callable[[SystemEvent], None]]] = defaultdict(list)
        self.max_history = max_history
        self.event_history: deque = deque(maxlen=max_history)

        self.event_counts: Dict[str, int] = defaultdict(int)
        self.listener_errors = 0

    def emit(self, event_type: str, data: Dict[str, Any], source: Optional[str] = None) -> SystemEvent:
        """Emit an event to the bus"""
        event = SystemEvent(event_type, data, source)

        self.event_counts[event.type] += 1
        self.event_history.append(event)

        for listener in list(self.listeners.get(event.type, [])):
            self._deliver(listener, event)

        for listener in list(self.listeners.get("*", [])):
            self._deliver(listener, event)

        return event

    def _deliver(self, listener: Callable[[SystemEvent], None], event: SystemEvent) -> None:
        try:
            listener(event)
        except Exception as e:
            self.listener_errors += 1
            self.logger.error(f"Error in event listener for {event.type}: {e}", exc_info=True)

    def on(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Register a listener for specific event type"""
        self.listeners[event_type].append(callback)

    def on_all(self, callback: Callable[[SystemEvent], None]):
        """Register a listener for all events"""
        self.listeners["*"].append(callback)

    def off(self, event_type: str, callback: Callable[[SystemEvent], None]):
        """Remove a listener"""
        if callback in self.listeners[event_type]:
            self.listeners[event_type].remove(callback)

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics"""
        return {
            "total_events": sum(self.event_counts.values()),
            "event_counts": dict(self.event_counts),
            "history_size": len(self.event_history),
            "listener_errors": self.listener_errors,
            "listener_counts": {
                event_type: len(listeners)
                for event_type, listeners in self.listeners.items()
            }
        }

    def get_recent_events(self, count: int = 50, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get recent events from history, oldest first"""
        events = list(self.event_history)

        if event_type:
            events = [e for e in events if e.type == event_type]

        return [e.to_dict() for e in events[-count:]]


class EventTypes:
    # Connectivity events
    CONNECTIVITY_CHANGED = "connectivity.changed"
    CONNECTIVITY_PROBE_FAILED = "connectivity.probe_failed"

    # Session events
    SESSION_REFRESHED = "session.refreshed"
    SESSION_LOGIN = "session.login"
    SESSION_LOGOUT = "session.logout"
    SESSION_REGISTERED = "session.registered"
    SESSION_PASSWORD_RESET = "session.password_reset"
    SESSION_ERROR = "session.error"
    SESSION_STALE_COMPLETION = "session.stale_completion"

    # Sync events
    SYNC_START = "sync.start"
    SYNC_COMPLETE = "sync.complete"
    SYNC_ERROR = "sync.error"
    SYNC_SKIPPED = "sync.skipped"

    # System events
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"
