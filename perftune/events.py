"""
Telemetry Event Notification System

This module provides the event types, severities and observer-style
subscription manager shared by the memory monitor, the test orchestrator
and the adaptive configuration.
"""

import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class EventSeverity(Enum):
    """Severity levels for telemetry events."""
    INFO = 0
    WARNING = 1
    CRITICAL = 2


class EventType(Enum):
    """Types of telemetry events that can occur."""
    # Memory state changes
    LOW_MEMORY_ENTERED = "low_memory_entered"
    LOW_MEMORY_EXITED = "low_memory_exited"
    PRESSURE_SIGNALED = "pressure_signaled"
    CLEANUP_PERFORMED = "cleanup_performed"
    COLLECTION_ERROR = "collection_error"

    # Monitor lifecycle
    MONITOR_STARTED = "monitor_started"
    MONITOR_STOPPED = "monitor_stopped"

    # Probe suite
    TEST_RUN_STARTED = "test_run_started"
    PROBE_COMPLETED = "probe_completed"
    TEST_RUN_FINISHED = "test_run_finished"
    TEST_RUN_CANCELLED = "test_run_cancelled"
    TEST_RUN_FAILED = "test_run_failed"

    # Adaptive configuration
    CONFIG_CHANGED = "config_changed"
    DEVICE_ADJUSTED = "device_adjusted"


@dataclass
class TelemetryEvent:
    """A telemetry event with the context needed to log or display it."""

    timestamp: float
    event_type: EventType
    severity: EventSeverity
    source_component: str
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            'timestamp': self.timestamp,
            'datetime': datetime.fromtimestamp(self.timestamp).isoformat(),
            'event_type': self.event_type.value,
            'severity': self.severity.name,
            'source_component': self.source_component,
            'message': self.message,
            'details': self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TelemetryEvent':
        """Create event from dictionary."""
        return cls(
            timestamp=data['timestamp'],
            event_type=EventType(data['event_type']),
            severity=EventSeverity[data['severity']],
            source_component=data['source_component'],
            message=data.get('message', ''),
            details=data.get('details', {}),
        )


@dataclass
class EventFilter:
    """Filter configuration for event subscriptions."""
    event_types: Optional[Set[EventType]] = None
    severities: Optional[Set[EventSeverity]] = None
    source_components: Optional[Set[str]] = None

    def matches(self, event: TelemetryEvent) -> bool:
        """Check if an event matches this filter."""
        if self.event_types and event.event_type not in self.event_types:
            return False

        if self.severities and event.severity not in self.severities:
            return False

        if self.source_components and event.source_component not in self.source_components:
            return False

        return True


class EventSubscription:
    """Represents a subscription to telemetry events."""

    def __init__(self,
                 callback: Callable[[TelemetryEvent], None],
                 event_filter: Optional[EventFilter] = None,
                 subscription_id: Optional[str] = None):
        self.callback = callback
        self.filter = event_filter or EventFilter()
        self.subscription_id = subscription_id or f"sub_{id(self)}"
        self.created_at = time.time()
        self.event_count = 0
        self.last_event_time = 0.0
        self.active = True

    def notify(self, event: TelemetryEvent) -> bool:
        """Notify subscriber if event matches filter."""
        if not self.active or not self.filter.matches(event):
            return False

        try:
            self.callback(event)
        except Exception:
            # A failing subscriber must not starve the others
            logger.exception(f"Error in event callback {self.subscription_id}")
            return False

        self.event_count += 1
        self.last_event_time = event.timestamp
        return True

    def deactivate(self) -> None:
        """Deactivate this subscription."""
        self.active = False


class TelemetryEventManager:
    """
    Manages telemetry event subscriptions and notifications.

    Provides thread-safe publication, subscription management and a bounded
    event history.
    """

    def __init__(self, max_history_size: int = 1000):
        self.max_history_size = max_history_size

        self._lock = threading.RLock()
        self._subscriptions: Dict[str, EventSubscription] = {}
        self._subscription_counter = 0
        self._event_history: deque = deque(maxlen=max_history_size)

        self._total_events_published = 0
        self._events_by_type: Dict[EventType, int] = defaultdict(int)
        self._events_by_severity: Dict[EventSeverity, int] = defaultdict(int)

    def subscribe(self,
                  callback: Callable[[TelemetryEvent], None],
                  event_filter: Optional[EventFilter] = None,
                  subscription_id: Optional[str] = None) -> str:
        """
        Subscribe to telemetry events.

        Args:
            callback: Function to call when matching events occur
            event_filter: Filter to specify which events to receive
            subscription_id: Optional custom ID for the subscription

        Returns:
            Subscription ID that can be used to unsubscribe
        """
        with self._lock:
            if subscription_id is None:
                self._subscription_counter += 1
                subscription_id = f"subscription_{self._subscription_counter}"

            self._subscriptions[subscription_id] = EventSubscription(
                callback, event_filter, subscription_id
            )
            return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns False if the ID is unknown."""
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
            if subscription is None:
                return False
            subscription.deactivate()
            return True

    def publish(self, event: TelemetryEvent) -> int:
        """
        Publish an event to all matching subscribers.

        Returns:
            Number of subscribers that were notified
        """
        with self._lock:
            self._event_history.append(event)
            self._total_events_published += 1
            self._events_by_type[event.event_type] += 1
            self._events_by_severity[event.severity] += 1
            subscriptions = list(self._subscriptions.values())

        # Callbacks run outside the lock so they may publish in turn
        return sum(1 for subscription in subscriptions if subscription.notify(event))

    def emit(self,
             event_type: EventType,
             source_component: str,
             message: str = "",
             severity: EventSeverity = EventSeverity.INFO,
             **details: Any) -> TelemetryEvent:
        """Build an event stamped with the current time and publish it."""
        event = TelemetryEvent(
            timestamp=time.time(),
            event_type=event_type,
            severity=severity,
            source_component=source_component,
            message=message,
            details=details,
        )
        self.publish(event)
        return event

    def get_event_history(self,
                          max_events: Optional[int] = None,
                          event_filter: Optional[EventFilter] = None) -> List[TelemetryEvent]:
        """Get historical events, optionally filtered and limited."""
        with self._lock:
            events = list(self._event_history)

        if event_filter:
            events = [event for event in events if event_filter.matches(event)]

        if max_events:
            events = events[-max_events:]

        return events

    def get_statistics(self) -> Dict[str, Any]:
        """Get event manager statistics."""
        with self._lock:
            return {
                'total_events_published': self._total_events_published,
                'active_subscriptions': len(self._subscriptions),
                'history_size': len(self._event_history),
                'max_history_size': self.max_history_size,
                'events_by_type': {k.value: v for k, v in self._events_by_type.items()},
                'events_by_severity': {k.name: v for k, v in self._events_by_severity.items()},
            }

    def clear_history(self) -> None:
        """Clear the event history."""
        with self._lock:
            self._event_history.clear()
