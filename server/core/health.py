"""Health check utilities for the /health endpoint."""
import time
from typing import Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from core.cache import TTLCache
    from core.cleanup import CacheSweeper
    from core.database import Database
    from services.task_events import TaskEventBroadcaster

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def check_database(database: "Database") -> bool:
    """Check database connectivity."""
    try:
        async with database.get_session() as session:
            from sqlalchemy import text
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


def check_cache(cache: "TTLCache") -> bool:
    """Round-trip a probe key through the cache."""
    test_key = "_health_check"
    cache.set(test_key, "ok", ttl=10)
    result = cache.get(test_key)
    cache.delete(test_key)
    return result == "ok"


async def get_health_status(
    database: "Database",
    cache: "TTLCache",
    sweeper: "CacheSweeper",
    broadcaster: "TaskEventBroadcaster",
) -> Dict[str, Any]:
    """Get health status for /health endpoint.

    Returns:
        Dict containing status, uptime, dependency checks and in-process state.
    """
    db_healthy = await check_database(database)
    cache_healthy = check_cache(cache)

    return {
        "status": "healthy" if (db_healthy and cache_healthy) else "degraded",
        "uptime_seconds": round(get_uptime(), 1),
        "checks": {
            "database": db_healthy,
            "cache": cache_healthy,
        },
        "cache": {**cache.stats(), "sweeper_running": sweeper.running},
        "task_event_subscribers": broadcaster.subscriber_count,
    }
