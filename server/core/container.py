"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import TTLCache
from core.cleanup import CacheSweeper
from services.task_events import TaskEventBroadcaster
from services.tasks import TaskService
from services.user_auth import UserAuthService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container.

    Cache, session cache and task broadcaster are process-wide singletons;
    ``reset_singletons()`` gives each test a fresh set.
    """

    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Query results (user lists, project tasks, dashboard counters)
    cache = providers.Singleton(
        TTLCache,
        default_ttl=settings.provided.cache_ttl,
        name="query",
    )

    # Authenticated user lookups done by the auth middleware
    session_cache = providers.Singleton(
        TTLCache,
        default_ttl=settings.provided.session_cache_ttl,
        name="session",
    )

    cache_sweeper = providers.Singleton(
        CacheSweeper,
        cache=cache,
        interval=settings.provided.cache_cleanup_interval,
    )

    session_cache_sweeper = providers.Singleton(
        CacheSweeper,
        cache=session_cache,
        interval=settings.provided.session_cache_cleanup_interval,
    )

    task_events = providers.Singleton(
        TaskEventBroadcaster,
    )

    task_service = providers.Factory(
        TaskService,
        database=database,
        cache=cache,
        broadcaster=task_events,
    )

    user_auth_service = providers.Factory(
        UserAuthService,
        database=database,
        settings=settings
    )


# Global container instance
container = Container()
