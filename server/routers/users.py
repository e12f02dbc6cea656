"""Employee directory and presence routes."""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from constants import users_cache_key
from core.cache import TTLCache
from core.config import Settings
from core.container import container
from core.database import Database
from core.logging import get_logger
from services.sse import polling_stream, sse_response

logger = get_logger(__name__)
router = APIRouter(prefix="/api/users", tags=["users"])


class PresenceRequest(BaseModel):
    is_online: bool = Field(alias="isOnline")


@router.get("")
async def list_users(
    department: Optional[str] = None,
    search: Optional[str] = None,
    database: Database = Depends(lambda: container.database()),
    cache: TTLCache = Depends(lambda: container.cache()),
    settings: Settings = Depends(lambda: container.settings())
):
    """Employee directory, served from the query cache when fresh."""
    key = users_cache_key(department, search)
    users = cache.get(key)
    if users is None:
        users = await database.list_users(department=department, search=search)
        cache.set(key, users, settings.users_cache_ttl)
    return users


@router.get("/status")
async def user_status_stream(
    request: Request,
    database: Database = Depends(lambda: container.database()),
    settings: Settings = Depends(lambda: container.settings())
):
    """Server-Sent Events stream of everyone's online status, refreshed on a timer."""
    window = timedelta(minutes=settings.online_window_minutes)

    async def query():
        return await database.users_with_status(window)

    return sse_response(polling_stream(
        request, query,
        interval=settings.user_status_interval,
        update_type="status_update",
        key="users",
        name="user_status",
    ))


@router.post("/status")
async def update_user_status(
    body: PresenceRequest,
    request: Request,
    database: Database = Depends(lambda: container.database())
):
    """Record the caller's presence."""
    await database.update_presence(request.state.user_id, body.is_online)
    return {"success": True}
