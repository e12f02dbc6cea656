"""Project routes, including the cached per-project task list."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from constants import TaskPriority, TaskStatus, project_tasks_cache_key
from core.cache import TTLCache
from core.config import Settings
from core.container import container
from core.database import Database
from core.errors import ForbiddenError, NotFoundError
from core.logging import get_logger
from routers.tasks import TaskFields
from services.tasks import TaskService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    member_ids: List[int] = Field(default_factory=list, alias="memberIds")


class ProjectTaskCreateRequest(TaskFields):
    title: str = Field(min_length=1, max_length=255)
    status: TaskStatus = "NEW"
    priority: TaskPriority = "LOW"


async def load_project(project_id: str, database: Database) -> dict:
    project = await database.get_project(project_id)
    if not project:
        raise NotFoundError("Project not found")
    return project


@router.post("", status_code=201)
async def create_project(
    body: ProjectCreateRequest,
    request: Request,
    database: Database = Depends(lambda: container.database())
):
    """Create a project; the caller is added as its owner."""
    project = await database.create_project(
        name=body.name,
        description=body.description,
        owner_id=request.state.user_id,
        member_ids=body.member_ids,
    )
    logger.info("Project created", project_id=project["id"], members=len(project["memberIds"]))
    return project


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    database: Database = Depends(lambda: container.database())
):
    return await load_project(project_id, database)


@router.get("/{project_id}/tasks")
async def list_project_tasks(
    project_id: str,
    status: Optional[str] = None,
    search: Optional[str] = None,
    database: Database = Depends(lambda: container.database()),
    cache: TTLCache = Depends(lambda: container.cache()),
    settings: Settings = Depends(lambda: container.settings())
):
    """Tasks of a project, served from the query cache for a short while."""
    project = await load_project(project_id, database)

    key = project_tasks_cache_key(project_id, status, search)
    cached = cache.get(key)
    if cached is not None:
        return cached

    tasks = await database.project_tasks(project_id, project["memberIds"], status=status, search=search)
    cache.set(key, tasks, settings.project_tasks_cache_ttl)
    return tasks


@router.post("/{project_id}/tasks", status_code=201)
async def create_project_task(
    project_id: str,
    body: ProjectTaskCreateRequest,
    request: Request,
    database: Database = Depends(lambda: container.database()),
    tasks: TaskService = Depends(lambda: container.task_service())
):
    """Create a task inside a project. Only members may do this."""
    project = await load_project(project_id, database)
    if request.state.user_id not in project["memberIds"]:
        raise ForbiddenError("Access denied")

    return await tasks.create(actor_id=request.state.user_id, project_id=project_id, **body.model_dump())
