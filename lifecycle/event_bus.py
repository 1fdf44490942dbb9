"""
In-memory event bus for ban lifecycle events.

The coordinator publishes an event after each committed transition and the
notifier subscribes to them. Handlers can run on an executor so the caller's
ban/unban response never waits on notification delivery.

Design decisions:
- Type-based subscriptions, handlers called in registration order
- A handler that raises is logged and does not affect other handlers or
  the publisher (notification is best-effort)
- With an executor, publish returns immediately; flush() waits for pending
  handlers (used by tests and on shutdown)
- Published events are kept in a log for debugging and audit
"""

import logging
import threading
from collections import defaultdict
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

logger = logging.getLogger("event_bus")


@dataclass
class Event:
    """
    Immutable record of a transition that happened.

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: String name of the event type (used for routing)
        timestamp: When the event occurred
        source: Which component published the event
        payload: The event-specific data
    """
    event_type: str
    payload: dict[str, Any]
    source: str
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        return f"Event({self.event_type}, id={self.event_id[:8]}, source={self.source})"


# Type alias for event handler functions
EventHandler = Callable[[Event], None]


class EventBus:
    """
    Pub/sub between the coordinator and its side effects.

    Example usage:
        bus = EventBus(executor=ThreadPoolExecutor(max_workers=4))
        bus.subscribe("BanImposed", notifier_handler)
        bus.publish(ban_imposed(ban))
        bus.flush()
    """

    def __init__(self, executor: Optional[Executor] = None):
        """
        Args:
            executor: Run handlers here instead of on the publishing thread
        """
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._executor = executor
        self._lock = threading.Lock()
        self._pending: set[Future] = set()
        self._event_log: list[Event] = []

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        with self._lock:
            self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed handler to '{event_type}' events")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """
        Returns:
            True if the handler was found and removed, False otherwise
        """
        with self._lock:
            try:
                self._subscribers[event_type].remove(handler)
            except ValueError:
                return False
        logger.debug(f"Unsubscribed handler from '{event_type}' events")
        return True

    def publish(self, event: Event) -> int:
        """
        Deliver an event to its subscribers.

        Returns:
            Number of handlers the event was handed to
        """
        with self._lock:
            self._event_log.append(event)
            handlers = list(self._subscribers.get(event.event_type, []))

        logger.info(f"Publishing: {event}")
        if not handlers:
            logger.warning(f"No handlers for event type '{event.event_type}'")

        for handler in handlers:
            if self._executor is None:
                self._run(handler, event)
            else:
                future = self._executor.submit(self._run, handler, event)
                with self._lock:
                    self._pending.add(future)
                future.add_done_callback(self._discard)
        return len(handlers)

    @staticmethod
    def _run(handler: EventHandler, event: Event) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(f"Handler raised exception for {event}")

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for handlers still running on the executor.

        Returns:
            True if everything finished within `timeout`
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def get_subscriber_count(self, event_type: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def get_event_log(self) -> list[Event]:
        with self._lock:
            return self._event_log.copy()

    def clear_event_log(self) -> None:
        with self._lock:
            self._event_log.clear()
