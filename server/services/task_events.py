"""Task change broadcaster.

In-process publish/subscribe registry that connects task write endpoints
to the SSE streams in ``routers.tasks``. Delivery is synchronous, in
subscription order, at most once per registered listener. Nothing is
queued or replayed: a client that reconnects fetches a fresh snapshot.
"""

import itertools
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.logging import get_logger

logger = get_logger(__name__)


class TaskEventType(str, Enum):
    """Closed set of task lifecycle events."""

    CREATED = "task_created"
    UPDATED = "task_updated"
    DELETED = "task_deleted"
    ARCHIVED = "task_archived"
    STATUS_CHANGED = "task_status_changed"
    PRIORITY_CHANGED = "task_priority_changed"
    NETWORK_TYPE_CHANGED = "task_network_type_changed"
    ASSIGNED = "task_assigned"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TaskEvent:
    """An immutable notice that a task changed."""

    type: TaskEventType
    task_id: Optional[str] = None
    task: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape sent to SSE clients. Absent optional fields are omitted."""
        data: Dict[str, Any] = {"type": self.type.value, "timestamp": self.timestamp}
        if self.task_id is not None:
            data["taskId"] = self.task_id
        if self.task is not None:
            data["task"] = self.task
        if self.user_id is not None:
            data["userId"] = self.user_id
        return data


TaskEventCallback = Callable[[TaskEvent], Any]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``subscribe``; pass it back to ``unsubscribe``."""

    id: int
    callback: TaskEventCallback = field(compare=False, repr=False)


class TaskEventBroadcaster:
    """Observer registry with per-callback fault isolation."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, callback: TaskEventCallback) -> Subscription:
        subscription = Subscription(id=next(self._ids), callback=callback)
        with self._lock:
            self._subscriptions.append(subscription)
        logger.debug("Task event subscriber added",
                     subscription_id=subscription.id, total=self.subscriber_count)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                return False
        logger.debug("Task event subscriber removed",
                     subscription_id=subscription.id, total=self.subscriber_count)
        return True

    def publish(self, event: TaskEvent) -> None:
        """Invoke every registered callback with ``event``.

        A callback that raises is logged and skipped; the remaining
        subscribers still receive the event.
        """
        with self._lock:
            subscribers = list(self._subscriptions)

        for subscription in subscribers:
            try:
                subscription.callback(event)
            except Exception as e:
                logger.warning("Task event subscriber failed",
                               subscription_id=subscription.id,
                               event_type=event.type.value,
                               error=str(e))

    def emit(self, event_type: TaskEventType, task_id: Optional[str] = None,
             task: Optional[Dict[str, Any]] = None,
             user_id: Optional[str] = None) -> TaskEvent:
        """Build a timestamped event, publish it and return it."""
        event = TaskEvent(type=TaskEventType(event_type), task_id=task_id,
                          task=task, user_id=user_id)
        self.publish(event)
        logger.debug("Task event published", event_type=event.type.value,
                     task_id=task_id, user_id=user_id, subscribers=self.subscriber_count)
        return event
