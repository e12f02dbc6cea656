"""Dashboard counters and cache administration."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from constants import DASHBOARD_STATS_CACHE_KEY
from core.cache import TTLCache
from core.config import Settings
from core.container import container
from core.database import Database
from core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["dashboard"])


class CacheClearRequest(BaseModel):
    pattern: Optional[str] = None


@router.get("/dashboard/stats")
async def dashboard_stats(
    database: Database = Depends(lambda: container.database()),
    cache: TTLCache = Depends(lambda: container.cache()),
    settings: Settings = Depends(lambda: container.settings())
):
    stats = cache.get(DASHBOARD_STATS_CACHE_KEY)
    if stats is None:
        stats = await database.dashboard_stats()
        cache.set(DASHBOARD_STATS_CACHE_KEY, stats, settings.dashboard_cache_ttl)
    return stats


@router.post("/cache/clear")
async def clear_cache(
    body: Optional[CacheClearRequest] = None,
    cache: TTLCache = Depends(lambda: container.cache())
):
    """Drop cached query results whose key contains ``pattern``, or all of them."""
    pattern = body.pattern if body else None
    if pattern:
        cleared = cache.delete_pattern(pattern)
        message = f"Cache cleared for pattern: {pattern}"
    else:
        cleared = cache.clear()
        message = "Cache cleared"

    logger.info("Cache cleared on request", pattern=pattern, cleared=cleared)
    return {"message": message, "cleared": cleared}
