"""Task routes: CRUD, change polling and the task event stream."""

from datetime import datetime, timezone
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from constants import TaskPriority, TaskStatus, UNASSIGNED_VALUES
from core.config import Settings
from core.container import container
from core.database import Database
from core.errors import NotFoundError, ValidationError
from core.logging import get_logger
from services.sse import event_stream, sse_response
from services.task_events import TaskEventBroadcaster, now_ms
from services.tasks import TaskService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/tasks", tags=["tasks"])

# Columns that may be changed but never cleared
REQUIRED_TASK_FIELDS = ("title", "status", "priority", "is_archived")


def parse_assignee(value: Any) -> Optional[int]:
    """Accept a user id, or one of the form values meaning unassigned."""
    if value is None or (isinstance(value, str) and value.strip() in UNASSIGNED_VALUES):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError("assigneeId must be a user id")


class TaskFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: Optional[str] = None
    network_type: Optional[str] = Field(default=None, alias="networkType")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    assignee_id: Optional[Union[int, str]] = Field(default=None, alias="assigneeId")

    @field_validator("assignee_id", mode="before")
    @classmethod
    def normalize_assignee(cls, v):
        return parse_assignee(v)


class TaskCreateRequest(TaskFields):
    title: str = Field(min_length=1, max_length=255)
    status: TaskStatus = "NEW"
    priority: TaskPriority = "MEDIUM"
    project_id: Optional[str] = Field(default=None, alias="projectId")


class TaskUpdateRequest(TaskFields):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    is_archived: Optional[bool] = Field(default=None, alias="isArchived")


def get_settings() -> Settings:
    return container.settings()


@router.get("")
async def list_tasks(
    status: Optional[str] = None,
    search: Optional[str] = None,
    assignee_id: Optional[int] = Query(default=None, alias="assigneeId"),
    show_archived: bool = Query(default=False, alias="showArchived"),
    database: Database = Depends(lambda: container.database())
):
    """List tasks, newest first."""
    return await database.list_tasks(status=status, search=search,
                                     assignee_id=assignee_id, show_archived=show_archived)


@router.post("", status_code=201)
async def create_task(
    body: TaskCreateRequest,
    request: Request,
    tasks: TaskService = Depends(lambda: container.task_service())
):
    """Create a task; the caller becomes its creator."""
    return await tasks.create(actor_id=request.state.user_id, **body.model_dump())


@router.get("/events")
async def task_events(
    request: Request,
    broadcaster: TaskEventBroadcaster = Depends(lambda: container.task_events()),
    settings: Settings = Depends(get_settings)
):
    """Server-Sent Events stream of task changes."""
    return sse_response(event_stream(request, broadcaster, settings.sse_heartbeat_interval))


@router.get("/changes")
async def task_changes(
    request: Request,
    last_check: Optional[int] = Query(default=None, alias="lastCheck"),
    database: Database = Depends(lambda: container.database())
):
    """Tasks changed since ``lastCheck`` (epoch ms), for clients that cannot hold a stream open."""
    since = None
    if last_check is not None:
        try:
            since = datetime.fromtimestamp(last_check / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise ValidationError("lastCheck must be a timestamp in milliseconds")

    changed, new_count = await database.changed_tasks(since)
    return {
        "type": "changes",
        "timestamp": now_ms(),
        "userId": request.state.user_id,
        "changedTasks": changed,
        "newTasksCount": new_count,
        "hasChanges": bool(changed) or new_count > 0,
    }


@router.get("/poll")
async def task_poll(request: Request):
    """Server clock for polling clients."""
    return {"type": "polling", "timestamp": now_ms(), "userId": request.state.user_id}


@router.get("/{task_id}")
async def get_task(
    task_id: str,
    database: Database = Depends(lambda: container.database())
):
    task = await database.get_task(task_id)
    if not task:
        raise NotFoundError("Task not found")
    return task


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    body: TaskUpdateRequest,
    request: Request,
    tasks: TaskService = Depends(lambda: container.task_service())
):
    """Update the provided fields only."""
    changes = body.model_dump(exclude_unset=True)
    for name in REQUIRED_TASK_FIELDS:
        if name in changes and changes[name] is None:
            raise ValidationError(f"{name} cannot be null")

    task = await tasks.update(task_id, changes, actor_id=request.state.user_id)
    if task is None:
        raise NotFoundError("Task not found")
    return task


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    request: Request,
    tasks: TaskService = Depends(lambda: container.task_service())
):
    if not await tasks.delete(task_id, actor_id=request.state.user_id):
        raise NotFoundError("Task not found")
    return {"message": "Task deleted", "taskId": task_id}
