"""Task write operations.

Every successful write commits to the database, drops the cached reads it
affects and then publishes one change event for the SSE streams.
"""

from typing import Any, Dict, Optional, Set

from constants import DASHBOARD_CACHE_PREFIX, PROJECT_TASKS_CACHE_PREFIX
from core.cache import TTLCache
from core.database import Database
from core.logging import get_logger
from services.task_events import TaskEventBroadcaster, TaskEventType

logger = get_logger(__name__)

# A single changed field gets its own event type
FIELD_EVENT_TYPES = {
    "status": TaskEventType.STATUS_CHANGED,
    "priority": TaskEventType.PRIORITY_CHANGED,
    "network_type": TaskEventType.NETWORK_TYPE_CHANGED,
    "assignee_id": TaskEventType.ASSIGNED,
}


def event_type_for_update(changed: Set[str], task: Dict[str, Any]) -> TaskEventType:
    """Archiving wins; a single tracked field gets its own type; anything else is an update."""
    if "is_archived" in changed and task.get("isArchived"):
        return TaskEventType.ARCHIVED
    if len(changed) == 1:
        return FIELD_EVENT_TYPES.get(next(iter(changed)), TaskEventType.UPDATED)
    return TaskEventType.UPDATED


class TaskService:
    """Task mutations with cache invalidation and change notification."""

    def __init__(self, database: Database, cache: TTLCache, broadcaster: TaskEventBroadcaster):
        self.database = database
        self.cache = cache
        self.broadcaster = broadcaster

    def invalidate(self) -> int:
        """Drop cached project task lists and dashboard counters."""
        return (self.cache.delete_pattern(PROJECT_TASKS_CACHE_PREFIX)
                + self.cache.delete_pattern(DASHBOARD_CACHE_PREFIX))

    async def create(self, actor_id: int, **fields) -> Dict[str, Any]:
        task = await self.database.create_task(creator_id=actor_id, **fields)
        self.invalidate()
        self.broadcaster.emit(TaskEventType.CREATED, task_id=task["id"], task=task,
                              user_id=str(actor_id))
        logger.info("Task created", task_id=task["id"], task_number=task["taskNumber"], user_id=actor_id)
        return task

    async def update(self, task_id: str, changes: Dict[str, Any],
                     actor_id: int) -> Optional[Dict[str, Any]]:
        """Apply ``changes``; returns None when the task does not exist.

        No event is published when nothing actually changed.
        """
        result = await self.database.update_task(task_id, changes)
        if result is None:
            return None

        task, changed = result
        if changed:
            self.invalidate()
            event_type = event_type_for_update(changed, task)
            self.broadcaster.emit(event_type, task_id=task_id, task=task, user_id=str(actor_id))
            logger.info("Task updated", task_id=task_id, event_type=event_type.value,
                        fields=sorted(changed), user_id=actor_id)
        return task

    async def delete(self, task_id: str, actor_id: int) -> bool:
        snapshot = await self.database.delete_task(task_id)
        if snapshot is None:
            return False

        self.invalidate()
        self.broadcaster.emit(TaskEventType.DELETED, task_id=task_id, user_id=str(actor_id))
        logger.info("Task deleted", task_id=task_id, user_id=actor_id)
        return True
