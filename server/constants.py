"""Centralized constants for task fields and cache keys.

Single source of truth for the values shared by request models, database
queries and cache invalidation.
"""

from typing import FrozenSet, Literal, Optional

# =============================================================================
# TASK FIELDS
# =============================================================================

TaskStatus = Literal["NEW", "IN_PROGRESS", "REVIEW", "COMPLETED"]
TaskPriority = Literal["LOW", "MEDIUM", "HIGH"]

# Assignee values the task forms send to mean "nobody"
UNASSIGNED_VALUES: FrozenSet[str] = frozenset(["", "not_assigned"])

# =============================================================================
# CACHE KEYS
# =============================================================================

USERS_CACHE_PREFIX = "users:"
PROJECT_TASKS_CACHE_PREFIX = "project-tasks:"
DASHBOARD_CACHE_PREFIX = "dashboard:"
DASHBOARD_STATS_CACHE_KEY = "dashboard:stats"


def users_cache_key(department: Optional[str], search: Optional[str]) -> str:
    return f"{USERS_CACHE_PREFIX}{department or 'all'}:{search or 'none'}"


def project_tasks_cache_key(project_id: str, status: Optional[str], search: Optional[str]) -> str:
    return f"{PROJECT_TASKS_CACHE_PREFIX}{project_id}:{status or 'all'}:{search or 'none'}"
